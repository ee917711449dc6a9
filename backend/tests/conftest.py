"""
Pytest Configuration for Risk Scanner Backend Tests

Run all tests: python -m pytest tests/ -v
Run unit tests only: python -m pytest tests/ -v -m "not integration"
"""

import pytest
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment
from dotenv import load_dotenv
load_dotenv(Path(__file__).parent.parent / ".env")

from data_sources import ProviderClients
from security.validation import DEAD_ADDRESS


# =============================================================================
# FIXTURES - Shared across all test files
# =============================================================================

@pytest.fixture
def test_addresses():
    """Real token addresses, one per supported address format"""
    return {
        "USDC": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        "WETH": "0x4200000000000000000000000000000000000006",
        "AERO": "0x940181a94A35A4569E4529A3CDfB74e38FD98631",
        "BONK": "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263",
        "ZERO": "0x0000000000000000000000000000000000000000",
    }


class FakeClock:
    """Manually advanced clock for TTL and window tests"""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def make_security(**overrides):
    """
    GoPlus token_security record for a clean, widely held token:
    20 holders at 1% each, 5000 holders total, 95% of LP burned and locked.
    """
    record = {
        "is_honeypot": "0",
        "cannot_sell_all": "0",
        "buy_tax": "0",
        "sell_tax": "0",
        "transfer_tax": "0",
        "is_open_source": "1",
        "is_proxy": "0",
        "is_mintable": "0",
        "can_take_back_ownership": "0",
        "owner_change_balance": "0",
        "hidden_owner": "0",
        "transfer_pausable": "0",
        "is_blacklisted": "0",
        "slippage_modifiable": "0",
        "holder_count": "5000",
        "creator_percent": "0.01",
        "holders": [{"address": f"0x{i:040x}", "percent": "0.01"} for i in range(1, 21)],
        "lp_holders": [{"address": DEAD_ADDRESS, "percent": "0.95", "is_locked": 1}],
    }
    record.update(overrides)
    return record


@pytest.fixture
def security_factory():
    return make_security


@pytest.fixture
def mock_clients():
    """Provider clients with async methods mocked; GoPlus knows nothing by default"""
    goplus = MagicMock()
    goplus.get_token_security = AsyncMock(return_value=None)

    alchemy = MagicMock()
    alchemy.enabled = False
    alchemy.is_contract_verified = AsyncMock(return_value=True)
    alchemy.get_owner = AsyncMock(return_value=None)

    helius = MagicMock()
    helius.enabled = True
    helius.get_top_holders = AsyncMock(return_value=[])
    helius.get_token_holder_count = AsyncMock(return_value=0)

    return ProviderClients(goplus=goplus, alchemy=alchemy, helius=helius)


# =============================================================================
# MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (use real APIs)"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow running"
    )
