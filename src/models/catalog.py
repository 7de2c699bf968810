"""
Catalog records read from and written to the backend.

Rows are plain records; these models only normalize what the backend returns
(joined relations, mixed-type columns) and validate what admins type in.
"""

import json
import re
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

# Non-numeric recommendation levels used by the newer ingredient schema
RECOMMENDATION_LABELS = ("alergen", "konserwant")
RECOMMENDATION_MIN = 0
RECOMMENDATION_MAX = 5

RecommendationLevel = Optional[Union[int, str]]


def collapse_whitespace(value: str) -> str:
    """Trim and collapse inner runs of whitespace to one space."""
    return re.sub(r"\s+", " ", value or "").strip()


def parse_functions(value: Any) -> Optional[list[str]]:
    """
    Normalize ingredient functions.

    Accepts a list, a JSON array string or a comma-separated string.
    Returns None when nothing is left after cleaning.
    """
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None
        items = parsed if isinstance(parsed, list) else text.split(",")
    elif isinstance(value, (list, tuple)):
        items = value
    else:
        raise ValueError(f"Unsupported functions value: {value!r}")

    cleaned = [str(item).strip() for item in items if str(item).strip()]
    return cleaned or None


def parse_recommendation(value: Any) -> RecommendationLevel:
    """
    Coerce a recommendation level into the union 0..5 | "alergen" | "konserwant".

    Digit strings become ints, ints are clamped into range, empty means None.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("Recommendation level cannot be a boolean")
    if isinstance(value, (int, float)):
        return max(RECOMMENDATION_MIN, min(RECOMMENDATION_MAX, int(value)))

    text = str(value).strip().lower()
    if not text:
        return None
    if re.fullmatch(r"-?\d+", text):
        return max(RECOMMENDATION_MIN, min(RECOMMENDATION_MAX, int(text)))
    if text in RECOMMENDATION_LABELS:
        return text
    raise ValueError(
        f"Recommendation level must be {RECOMMENDATION_MIN}-{RECOMMENDATION_MAX} "
        f"or one of {', '.join(RECOMMENDATION_LABELS)}"
    )


def _label(segment: str) -> str:
    """Slug segment to label: dashes to spaces, first letter upper-cased."""
    text = segment.replace("-", " ")
    return text[:1].upper() + text[1:]


def first_relation(value: Any) -> Any:
    """Joined one-to-one relations come back as an object or a one-item list."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


class BrandRef(BaseModel):
    """Brand as embedded in a product row."""

    id: Optional[int] = None
    name: Optional[str] = None


class Brand(BaseModel):
    """Cosmetics brand."""

    id: Optional[int] = None
    name: str
    url_logo: Optional[str] = None
    is_new: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def clean_name(cls, v: str) -> str:
        return collapse_whitespace(v)


class Ingredient(BaseModel):
    """INCI ingredient."""

    id: Optional[int] = None
    inci_name: str
    functions: Optional[list[str]] = None
    recommendation: RecommendationLevel = None
    is_new: Optional[bool] = None

    @model_validator(mode="before")
    @classmethod
    def read_recommendation_column(cls, data: Any) -> Any:
        """Rows carry the level under either historical column name."""
        if isinstance(data, dict) and "recommendation" not in data:
            for column in ("safety_level", "level_of_recommendation"):
                if data.get(column) is not None:
                    data = {**data, "recommendation": data[column]}
                    break
        return data

    @field_validator("inci_name")
    @classmethod
    def clean_inci_name(cls, v: str) -> str:
        return collapse_whitespace(v)

    @field_validator("functions", mode="before")
    @classmethod
    def clean_functions(cls, v: Any) -> Optional[list[str]]:
        return parse_functions(v)

    @field_validator("recommendation", mode="before")
    @classmethod
    def clean_recommendation(cls, v: Any) -> RecommendationLevel:
        return parse_recommendation(v)

    @property
    def functions_text(self) -> str:
        return ", ".join(self.functions or [])


class Category(BaseModel):
    """Hierarchical category; path encodes ancestry as slug/slug/slug."""

    id: int
    name: str
    slug: Optional[str] = None
    parent_id: Optional[int] = None
    depth: int = 0
    path: Optional[str] = None
    is_active: Optional[bool] = None

    @property
    def segments(self) -> list[str]:
        return [p for p in (self.path or "").split("/") if p]

    @property
    def breadcrumb(self) -> str:
        """Human-readable ancestry, e.g. 'Twarz › Kremy › Na noc'."""
        if not self.segments:
            return self.name
        return " › ".join(_label(p) for p in self.segments)

    @property
    def root(self) -> str:
        """Root group label (first path segment, else the name)."""
        root = (self.segments[0] if self.segments else self.name) or "Inne"
        return _label(root.lower())


class Tag(BaseModel):
    """Free-form product tag."""

    id: int
    name: str
    slug: str = ""


class Product(BaseModel):
    """Product with its brand and association ids."""

    id: Optional[int] = None
    name: str
    brand_id: Optional[int] = None
    brand: Optional[BrandRef] = None
    description: Optional[str] = None
    technologist_note: Optional[str] = None
    thumb_url: Optional[str] = None
    barcode: Optional[str] = None
    is_new: Optional[bool] = None

    ingredient_ids: list[int] = Field(default_factory=list)
    category_ids: list[int] = Field(default_factory=list)
    tag_ids: list[int] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def flatten_relations(cls, data: Any) -> Any:
        """Fold joined association rows into plain id lists."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for relation, column, target in (
            ("product_ingredients", "ingredient_id", "ingredient_ids"),
            ("product_categories", "category_id", "category_ids"),
            ("product_tags", "tag_id", "tag_ids"),
        ):
            rows = data.pop(relation, None)
            if rows and target not in data:
                data[target] = [r[column] for r in rows if r.get(column) is not None]
        if "brand" not in data and "brands" in data:
            data["brand"] = data.pop("brands")
        data["brand"] = first_relation(data.get("brand"))
        return data

    @property
    def brand_name(self) -> Optional[str]:
        return self.brand.name if self.brand else None


class UserProfile(BaseModel):
    """Profile row keyed by the auth identity."""

    id: str
    display_name: Optional[str] = None
    role: Optional[str] = None
    avatar_url: Optional[str] = None
    preferred_locale: Optional[str] = None
    landing_route: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class BugReport(BaseModel):
    """Bug reported from the mobile app."""

    id: int
    title: str
    description: str = ""
    status: str = "open"
    created_at: Optional[str] = None
    user_id: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status == "open"
