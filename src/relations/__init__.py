from .reconciler import (
    PRODUCT_CATEGORIES,
    PRODUCT_CATEGORIES_VIA_RPC,
    PRODUCT_INGREDIENTS,
    PRODUCT_TAGS,
    JunctionTable,
    ReconcileResult,
    RelationReconciler,
)

__all__ = [
    "PRODUCT_CATEGORIES",
    "PRODUCT_CATEGORIES_VIA_RPC",
    "PRODUCT_INGREDIENTS",
    "PRODUCT_TAGS",
    "JunctionTable",
    "ReconcileResult",
    "RelationReconciler",
]
