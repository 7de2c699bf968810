from .account import AccountController
from .base import EntityController, EntitySchema, ListFilter, RowEditor
from .brands import BrandController
from .bugs import BugReportController
from .categories import CategoryTree
from .dashboard import Dashboard, DashboardStats
from .ingredients import IngredientController
from .products import ProductController, ProductDraft, ProductSearch

__all__ = [
    "AccountController",
    "BrandController",
    "BugReportController",
    "CategoryTree",
    "Dashboard",
    "DashboardStats",
    "EntityController",
    "EntitySchema",
    "IngredientController",
    "ListFilter",
    "ProductController",
    "ProductDraft",
    "ProductSearch",
    "RowEditor",
]
