"""
pytest configuration and shared fixtures for the admin tests.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.settings import AdminConfig, SupabaseConfig
from src.backend.supabase_client import AdminContext
from fake_supabase import FakeSupabase

PUBLIC = "https://test.supabase.co/storage/v1/object/public"


def catalog_tables() -> dict:
    return {
        "brands": [
            {"id": 5, "name": "Cerave", "url_logo": None, "is_new": True},
            {
                "id": 7,
                "name": "La Roche-Posay",
                "url_logo": f"{PUBLIC}/brand-logos/brands/old.png",
                "is_new": False,
            },
        ],
        "ingredients": [
            {"id": 3, "inci_name": "Aqua", "functions": ["solvent"], "safety_level": 1, "is_new": False},
            {"id": 9, "inci_name": "Glycerin", "functions": ["humectant"], "safety_level": 0, "is_new": True},
            {"id": 11, "inci_name": "Niacinamide", "functions": None, "safety_level": 2, "is_new": True},
        ],
        "products": [
            {
                "id": 42,
                "name": "Hydrating Cleanser",
                "brand_id": 5,
                "description": "Gentle foaming cleanser",
                "technologist_note": None,
                "thumb_url": f"{PUBLIC}/cms/thumbs/42_1.jpg",
                "barcode": None,
                "is_new": True,
            },
            {
                "id": 43,
                "name": "Cicaplast Baume",
                "brand_id": 7,
                "description": None,
                "technologist_note": None,
                "thumb_url": None,
                "barcode": "3337875",
                "is_new": False,
            },
        ],
        "product_ingredients": [
            {"product_id": 42, "ingredient_id": 3},
            {"product_id": 42, "ingredient_id": 9},
        ],
        "product_categories": [{"product_id": 42, "category_id": 2}],
        "product_tags": [],
        "categories": [
            {"id": 1, "name": "Twarz", "slug": "twarz", "parent_id": None, "depth": 0, "path": "twarz", "is_active": True},
            {"id": 2, "name": "Kremy", "slug": "kremy", "parent_id": 1, "depth": 1, "path": "twarz/kremy", "is_active": True},
            {"id": 6, "name": "Serum", "slug": "serum", "parent_id": 1, "depth": 1, "path": "twarz/serum", "is_active": True},
            {"id": 3, "name": "Ciało", "slug": "cialo", "parent_id": None, "depth": 0, "path": "cialo", "is_active": True},
            {"id": 4, "name": "Archiwum", "slug": "archiwum", "parent_id": None, "depth": 0, "path": "archiwum", "is_active": False},
        ],
        "tags": [
            {"id": 1, "name": "Vegan", "slug": "vegan"},
            {"id": 2, "name": "Fragrance free", "slug": "fragrance-free"},
        ],
        "profiles": [
            {
                "id": "admin-1",
                "display_name": "Ola",
                "role": "admin",
                "avatar_url": None,
                "preferred_locale": "pl",
                "landing_route": "/products",
            },
            {
                "id": "user-1",
                "display_name": "Kasia",
                "role": "user",
                "avatar_url": None,
                "preferred_locale": "pl",
                "landing_route": None,
            },
        ],
        "bug_reports": [
            {
                "id": 1,
                "title": "Scanner crashes",
                "description": "Crash after scanning a barcode",
                "status": "open",
                "created_at": "2024-05-01T10:00:00Z",
                "user_id": "user-1",
            },
            {
                "id": 2,
                "title": "Typo on product page",
                "description": "",
                "status": "closed",
                "created_at": "2024-04-01T10:00:00Z",
                "user_id": "user-1",
            },
        ],
    }


class Navigator:
    """Records navigate(route) calls."""

    def __init__(self):
        self.routes: list[str] = []

    def __call__(self, route: str) -> None:
        self.routes.append(route)

    @property
    def last(self):
        return self.routes[-1] if self.routes else None


class Confirmer:
    """Answers confirm(prompt) with a fixed answer and records prompts."""

    def __init__(self, answer: bool):
        self.answer = answer
        self.prompts: list[str] = []

    def __call__(self, prompt: str) -> bool:
        self.prompts.append(prompt)
        return self.answer


@pytest.fixture
def fake():
    client = FakeSupabase(catalog_tables())
    client.auth.add_user("admin@example.com", "secret-pass", "admin-1")
    client.auth.add_user("user@example.com", "user-pass", "user-1")
    return client


@pytest.fixture
def admin_config():
    return AdminConfig(
        supabase=SupabaseConfig(url="https://test.supabase.co", key="test-key")
    )


@pytest.fixture
def context(fake, admin_config):
    return AdminContext(fake, admin_config, client_factory=fake.fork)


@pytest.fixture
def signed_in(fake):
    """Current session belongs to the admin."""
    fake.auth.sign_in_as("admin-1", "admin@example.com")
    return fake


@pytest.fixture
def navigator():
    return Navigator()


@pytest.fixture
def confirm_yes():
    return Confirmer(True)


@pytest.fixture
def confirm_no():
    return Confirmer(False)
