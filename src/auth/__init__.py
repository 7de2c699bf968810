from .guard import CHECKING_PLACEHOLDER, AccessGuard, GuardState
from .session import AuthSession, can_submit

__all__ = [
    "CHECKING_PLACEHOLDER",
    "AccessGuard",
    "AuthSession",
    "GuardState",
    "can_submit",
]
