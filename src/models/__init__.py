from .catalog import (
    RECOMMENDATION_LABELS,
    Brand,
    BrandRef,
    BugReport,
    Category,
    Ingredient,
    Product,
    Tag,
    UserProfile,
    collapse_whitespace,
    parse_functions,
    parse_recommendation,
)

__all__ = [
    "RECOMMENDATION_LABELS",
    "Brand",
    "BrandRef",
    "BugReport",
    "Category",
    "Ingredient",
    "Product",
    "Tag",
    "UserProfile",
    "collapse_whitespace",
    "parse_functions",
    "parse_recommendation",
]
