"""
Email/password sign-in, sign-out and password changes.
"""

from typing import Callable, Optional

from rich.console import Console

from src.backend.supabase_client import AdminContext
from src.errors import BackendError, ValidationError

console = Console()

MIN_PASSWORD_LENGTH = 8


def can_submit(email: str, password: str) -> bool:
    """Login form is submittable."""
    return len((email or "").strip()) > 3 and len(password or "") > 0


def validate_new_password(password: str, repeat: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must have at least {MIN_PASSWORD_LENGTH} characters."
        )
    if password != repeat:
        raise ValidationError("Passwords do not match.")


class AuthSession:
    """Auth actions of the signed-in admin."""

    def __init__(self, context: AdminContext, navigate: Callable[[str], None]):
        self.context = context
        self.navigate = navigate

    @property
    def auth(self):
        return self.context.client.auth

    def sign_in(self, email: str, password: str) -> str:
        """
        Sign in and navigate to the admin's landing route.

        Returns:
            The route navigated to

        Raises:
            ValidationError: Empty email or password
            BackendError: Rejected credentials or no session afterwards
        """
        if not can_submit(email, password):
            raise ValidationError("Enter an email and a password.")

        try:
            self.auth.sign_in_with_password(
                {"email": email.strip(), "password": password}
            )
        except Exception as e:
            raise BackendError(str(e)) from e

        session = self.auth.get_session()
        user = getattr(session, "user", None)
        if session is None or user is None:
            raise BackendError("No active session after signing in.")

        route = self._landing_route(user.id)
        console.print(f"[green]✓ Signed in as {email.strip()}[/green]")
        self.navigate(route)
        return route

    def _landing_route(self, user_id: str) -> str:
        routes = self.context.routes
        try:
            result = (
                self.context.table("profiles")
                .select("landing_route")
                .eq("id", user_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            console.print(f"[yellow]Could not read landing route: {e}[/yellow]")
            return routes.home
        rows = result.data or []
        landing: Optional[str] = rows[0].get("landing_route") if rows else None
        if landing in routes.allowed_landing_routes:
            return landing
        return routes.home

    def sign_out(self) -> None:
        """Sign out this session."""
        try:
            self.auth.sign_out({"scope": "local"})
        except Exception as e:
            raise BackendError(str(e)) from e
        self.navigate(self.context.routes.login)

    def sign_out_everywhere(self) -> None:
        """Invalidate every session of the current identity."""
        try:
            self.auth.sign_out({"scope": "global"})
        except Exception as e:
            raise BackendError(
                f"Could not sign out of all devices: {e}"
            ) from e
        self.navigate(self.context.routes.login)

    def change_password(self, password: str, repeat: str) -> None:
        """
        Update the current identity's password.

        Raises:
            ValidationError: Too short or not repeated correctly
            BackendError: Rejected by the auth service
        """
        validate_new_password(password, repeat)
        try:
            self.auth.update_user({"password": password})
        except Exception as e:
            raise BackendError(f"Could not change password: {e}") from e
        console.print("[green]✓ Password changed[/green]")
