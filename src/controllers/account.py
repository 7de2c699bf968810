"""
Account screen of the signed-in admin: profile, avatar, preferences,
password and sign-out of all devices.
"""

from typing import Callable, Optional

from rich.console import Console

from src.auth.session import AuthSession
from src.backend.supabase_client import AdminContext
from src.controllers.base import _no_navigation
from src.errors import BackendError, ValidationError
from src.models.catalog import UserProfile, collapse_whitespace
from src.storage.assets import AssetFile, AssetUploader

console = Console()

PROFILE_COLUMNS = "id,display_name,role,avatar_url,preferred_locale,landing_route"


class AccountController:
    def __init__(
        self,
        context: AdminContext,
        navigate: Optional[Callable[[str], None]] = None,
        uploader: Optional[AssetUploader] = None,
    ):
        self.context = context
        self.navigate = navigate or _no_navigation
        self.uploader = uploader or AssetUploader(context)
        self.session = AuthSession(context, self.navigate)

        self.user_id: Optional[str] = None
        self.email: Optional[str] = None
        self.profile: Optional[UserProfile] = None

    def load(self) -> Optional[UserProfile]:
        """Current identity and its profile; no identity -> login screen."""
        try:
            response = self.context.client.auth.get_user()
        except Exception as e:
            console.print(f"[yellow]Could not read user: {e}[/yellow]")
            response = None
        user = getattr(response, "user", None) if response is not None else None
        if user is None:
            self.navigate(self.context.routes.login)
            return None

        self.user_id = user.id
        self.email = getattr(user, "email", None)
        try:
            result = (
                self.context.table("profiles")
                .select(PROFILE_COLUMNS)
                .eq("id", user.id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise BackendError(f"Could not load profile: {e}") from e

        rows = result.data or []
        self.profile = UserProfile.model_validate(rows[0]) if rows else UserProfile(id=user.id)
        return self.profile

    def _require_user(self) -> str:
        if not self.user_id:
            raise ValidationError("Not signed in.")
        return self.user_id

    def _update_profile(self, changes: dict) -> UserProfile:
        uid = self._require_user()
        try:
            (
                self.context.table("profiles")
                .update(changes)
                .eq("id", uid)
                .execute()
            )
        except Exception as e:
            raise BackendError(f"Could not save profile: {e}") from e

        current = self.profile or UserProfile(id=uid)
        self.profile = current.model_copy(update=changes)
        return self.profile

    def save_profile(
        self, display_name: str, avatar: Optional[AssetFile] = None
    ) -> UserProfile:
        """
        Save the display name and optionally replace the avatar.

        The previous avatar is deleted only after the new URL is stored.
        """
        uid = self._require_user()
        changes = {"display_name": collapse_whitespace(display_name) or None}
        if avatar is None:
            profile = self._update_profile(changes)
        else:
            storage = self.context.config.storage
            profile = self.uploader.replace(
                self.profile.avatar_url if self.profile else None,
                avatar,
                bucket=storage.cms_bucket,
                folder=storage.avatars_folder,
                persist=lambda url: self._update_profile({**changes, "avatar_url": url}),
                owner_id=uid,
            )
        console.print("[green]✓ Profile saved[/green]")
        return profile

    def save_settings(self, locale: str, landing_route: str) -> UserProfile:
        """
        Raises:
            ValidationError: Unsupported locale or landing route
        """
        if locale not in self.context.config.supported_locales:
            raise ValidationError(f"Unsupported language: {locale}")
        if landing_route not in self.context.routes.allowed_landing_routes:
            raise ValidationError(f"Unsupported start page: {landing_route}")
        profile = self._update_profile(
            {"preferred_locale": locale, "landing_route": landing_route}
        )
        console.print("[green]✓ Settings saved[/green]")
        return profile

    def change_password(self, password: str, repeat: str) -> None:
        self.session.change_password(password, repeat)

    def sign_out_everywhere(self) -> None:
        self.session.sign_out_everywhere()
