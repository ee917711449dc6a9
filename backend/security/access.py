"""
Caller access levels

Authentication itself (sessions, API keys) happens upstream. An auth
middleware places a CallerAccess on request.state.access; requests without
one are anonymous.
"""
from dataclasses import dataclass

from fastapi import Request


@dataclass(frozen=True)
class CallerAccess:
    """Who is calling: anonymous, a signed-in human, or an agent with an API key"""
    kind: str = "anonymous"
    tier: str = "anonymous"

    @property
    def is_anonymous(self) -> bool:
        return self.kind == "anonymous"

    def to_dict(self) -> dict:
        return {"kind": self.kind, "tier": self.tier}


ANONYMOUS = CallerAccess()


def get_caller_access(request: Request) -> CallerAccess:
    """FastAPI dependency: access resolved by the auth layer, else anonymous"""
    access = getattr(request.state, "access", None)
    return access if isinstance(access, CallerAccess) else ANONYMOUS
