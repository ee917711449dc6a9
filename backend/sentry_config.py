"""
Sentry Error Monitoring Configuration
Error tracking for the token risk scanner backend
"""
import logging
import re
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger("Sentry")

SENSITIVE_KEYS = ['api_key', 'api-key', 'apikey', 'authorization', 'service_role', 'secret', 'password']

# Provider keys travel in URLs (Alchemy path segment, Helius ?api-key=)
_URL_KEY_PATTERNS = [
    re.compile(r"(api-key=)[^&\s]+", re.IGNORECASE),
    re.compile(r"(\.g\.alchemy\.com/v2/)[^/\s?]+", re.IGNORECASE),
]


def scrub_text(text: str) -> str:
    for pattern in _URL_KEY_PATTERNS:
        text = pattern.sub(r"\1[FILTERED]", text)
    return text


def filter_sensitive_data(event, hint):
    """Remove provider credentials from Sentry events."""
    request = event.get('request') or {}

    # Filter request headers and body
    for section in ('headers', 'data'):
        data = request.get(section)
        if isinstance(data, dict):
            for key in list(data):
                if any(s in key.lower() for s in SENSITIVE_KEYS):
                    data[key] = '[FILTERED]'

    if isinstance(request.get('url'), str):
        request['url'] = scrub_text(request['url'])

    # Exception messages may carry request URLs
    for exc in (event.get('exception') or {}).get('values') or []:
        if isinstance(exc.get('value'), str):
            exc['value'] = scrub_text(exc['value'])

    for crumb in (event.get('breadcrumbs') or {}).get('values') or []:
        if isinstance(crumb.get('message'), str):
            crumb['message'] = scrub_text(crumb['message'])
        crumb_data = crumb.get('data')
        if isinstance(crumb_data, dict) and isinstance(crumb_data.get('url'), str):
            crumb_data['url'] = scrub_text(crumb_data['url'])

    return event


def init_sentry(config) -> bool:
    """Initialize Sentry when a DSN is configured."""
    dsn = config.monitoring.sentry_dsn

    if not dsn:
        logger.info("[Sentry] No SENTRY_DSN found - error tracking disabled")
        return False

    environment = config.environment.value
    release = config.monitoring.release

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,

        # Performance monitoring
        traces_sample_rate=0.2,  # 20% of transactions

        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            StarletteIntegration(),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR
            ),
        ],

        before_send=filter_sensitive_data,
        send_default_pii=False,
        release=f"riskscan-backend@{release}",

        # Expected, already handled per token
        ignore_errors=[
            ConnectionRefusedError,
            TimeoutError,
        ],
    )

    logger.info(f"[Sentry] ✓ Initialized for {environment} (release: {release[:8]})")
    return True


def capture_batch_breadcrumb(request_id: str, tokens: int, tier: str):
    """Add breadcrumb for a batch scan."""
    sentry_sdk.add_breadcrumb(
        category="batch",
        message=f"Batch scan {request_id}",
        level="info",
        data={"tokens": tokens, "tier": tier}
    )
