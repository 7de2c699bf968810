"""
Admin access guard.

Protected screens render only while the current session belongs to a profile
with role "admin". The check re-runs on every auth state change, so a logout
or an invalidated session turns an allowed guard into a denied one at once.

Fail closed: a failed profile lookup is treated exactly like a non-admin.
"""

from enum import Enum
from typing import Any, Callable, Optional

from rich.console import Console

from src.backend.supabase_client import AdminContext

console = Console()

ADMIN_ROLE = "admin"
CHECKING_PLACEHOLDER = "Checking permissions…"


class GuardState(str, Enum):
    CHECKING = "checking"
    ALLOWED = "allowed"
    DENIED = "denied"


def session_user_id(session: Any) -> Optional[str]:
    """User id of a session, or None for no session."""
    user = getattr(session, "user", None) if session is not None else None
    return getattr(user, "id", None) if user is not None else None


class AccessGuard:
    """
    Gate for protected views.

    Usage:
        guard = AccessGuard(context, navigate=router.replace)
        guard.start()
        guard.render(lambda: dashboard_view())
    """

    def __init__(self, context: AdminContext, navigate: Callable[[str], None]):
        self.context = context
        self.navigate = navigate
        self.state = GuardState.CHECKING
        self.user_id: Optional[str] = None
        self._subscription = None

    @property
    def allowed(self) -> bool:
        return self.state is GuardState.ALLOWED

    def start(self) -> GuardState:
        """Check the current session, then follow session changes."""
        try:
            session = self.context.client.auth.get_session()
        except Exception as e:
            console.print(f"[yellow]Could not read session: {e}[/yellow]")
            session = None
        self.check(session)

        self._subscription = self.context.client.auth.on_auth_state_change(
            self._on_auth_event
        )
        return self.state

    def stop(self) -> None:
        """Stop following session changes."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def refresh(self) -> GuardState:
        """Re-run the check against the current session."""
        try:
            session = self.context.client.auth.get_session()
        except Exception as e:
            console.print(f"[yellow]Could not read session: {e}[/yellow]")
            session = None
        return self.check(session)

    def _on_auth_event(self, event, session) -> None:
        self.check(session)

    def check(self, session: Any) -> GuardState:
        """Decide allowed/denied for a session."""
        uid = session_user_id(session)
        if not uid:
            return self._deny(None, "no session")

        try:
            result = (
                self.context.table("profiles")
                .select("role")
                .eq("id", uid)
                .limit(1)
                .execute()
            )
            rows = result.data or []
        except Exception as e:
            return self._deny(uid, f"profile lookup failed: {e}")

        if not rows:
            return self._deny(uid, "no profile")
        if rows[0].get("role") != ADMIN_ROLE:
            return self._deny(uid, "not an admin")

        self.user_id = uid
        self.state = GuardState.ALLOWED
        return self.state

    def _deny(self, uid: Optional[str], reason: str) -> GuardState:
        self.user_id = None
        self.state = GuardState.DENIED
        console.print(f"[yellow]Access denied ({reason})[/yellow]")
        self.navigate(self.context.routes.login)
        return self.state

    def render(self, content: Callable[[], Any]) -> Any:
        """
        Produce protected content only when allowed.

        Returns:
            The placeholder while checking, content() when allowed,
            None when denied
        """
        if self.state is GuardState.CHECKING:
            return CHECKING_PLACEHOLDER
        if self.state is GuardState.ALLOWED:
            return content()
        return None
