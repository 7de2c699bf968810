"""
Configuration settings for the CosmoInside admin back-office.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file from project root
load_dotenv(Path(__file__).parent.parent / ".env")


@dataclass
class SupabaseConfig:
    """Connection settings for the hosted backend."""

    url: Optional[str] = field(default_factory=lambda: os.getenv("SUPABASE_URL"))
    key: Optional[str] = field(
        default_factory=lambda: os.getenv("SUPABASE_KEY")
        or os.getenv("SUPABASE_ANON_KEY")
    )

    # Session handling
    auto_refresh_token: bool = True
    persist_session: bool = True


@dataclass
class StorageConfig:
    """Buckets and folders used for uploaded assets."""

    cms_bucket: str = "cms"  # thumbnails + avatars
    logo_bucket: str = "brand-logos"  # must be public

    thumbs_folder: str = "thumbs"
    avatars_folder: str = "avatars"
    logos_folder: str = "brands"

    cache_control: str = "3600"


@dataclass
class FeatureFlags:
    """Schema features decided once at startup."""

    # products.is_new exists
    product_review_flag: bool = True

    # Ingredient recommendation level: older schemas store an int in
    # safety_level, newer ones a text enum in level_of_recommendation
    recommendation_column: str = "safety_level"
    recommendation_as_text: bool = False

    # product_categories is only writable through add_product_categories (RLS)
    categories_via_procedure: bool = True


@dataclass
class ListConfig:
    """List screen limits and debounce timings."""

    page_size: int = 200
    filter_debounce_ms: int = 200
    search_debounce_ms: int = 300
    search_min_length: int = 2
    latest_products: int = 5


@dataclass
class RouteConfig:
    """Routes the panel navigates between."""

    login: str = "/login"
    home: str = "/"
    brands: str = "/brands"
    ingredients: str = "/ingredients"
    products: str = "/products"
    account: str = "/account"

    allowed_landing_routes: tuple = ("/", "/products", "/brands", "/ingredients")


@dataclass
class PanelConfig:
    """Admin panel web settings."""

    # Signs the session cookie holding the admin's auth tokens
    secret_key: Optional[str] = field(
        default_factory=lambda: os.getenv("PANEL_SECRET_KEY")
    )
    session_cookie_name: str = "cosmoinside_admin"


@dataclass
class AdminConfig:
    """Main configuration combining all settings."""

    supabase: SupabaseConfig = field(default_factory=SupabaseConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    features: FeatureFlags = field(default_factory=FeatureFlags)
    lists: ListConfig = field(default_factory=ListConfig)
    routes: RouteConfig = field(default_factory=RouteConfig)
    panel: PanelConfig = field(default_factory=PanelConfig)

    supported_locales: tuple = ("pl", "en")

    def missing_credentials(self) -> list[str]:
        """Names of the environment variables that still need a value."""
        missing = []
        if not self.supabase.url:
            missing.append("SUPABASE_URL")
        if not self.supabase.key:
            missing.append("SUPABASE_KEY")
        return missing


# Default configuration instance
config = AdminConfig()
