"""
Category and tag pickers used by the product form.

Categories are shown either grouped by their root path segment (searchable
picker) or as a depth-ordered tree (parent -> children sorted by name).
"""

from collections import defaultdict
from typing import Iterable, Optional

from src.backend.supabase_client import AdminContext
from src.errors import BackendError
from src.models.catalog import Category, Tag


def format_breadcrumb(path: Optional[str], name: str) -> str:
    return Category(id=0, name=name, path=path).breadcrumb


def filter_categories(categories: list[Category], query: str) -> list[Category]:
    """Match the query against the name or the breadcrumb."""
    needle = (query or "").strip().lower()
    if not needle:
        return list(categories)
    return [
        c
        for c in categories
        if needle in c.name.lower() or needle in c.breadcrumb.lower()
    ]


def group_by_root(categories: list[Category]) -> list[tuple[str, list[Category]]]:
    """Groups sorted by root label, members sorted by path."""
    groups: dict[str, list[Category]] = defaultdict(list)
    for category in categories:
        groups[category.root].append(category)
    return [
        (root, sorted(groups[root], key=lambda c: (c.path or "").casefold()))
        for root in sorted(groups, key=str.casefold)
    ]


def toggle_selection(selected: list[int], category_id: int, single: bool = False) -> list[int]:
    """Check/uncheck one id; single mode keeps at most one."""
    if category_id in selected:
        return [] if single else [i for i in selected if i != category_id]
    return [category_id] if single else [*selected, category_id]


def select_visible(selected: list[int], visible: Iterable[Category]) -> list[int]:
    result = list(selected)
    for category in visible:
        if category.id not in result:
            result.append(category.id)
    return result


def clear_visible(selected: list[int], visible: Iterable[Category]) -> list[int]:
    hidden = {c.id for c in visible}
    return [i for i in selected if i not in hidden]


def filter_tags(tags: list[Tag], query: str) -> list[Tag]:
    needle = (query or "").strip().lower()
    if not needle:
        return list(tags)
    return [t for t in tags if needle in t.name.lower() or needle in t.slug.lower()]


class CategoryTree:
    """Active categories as roots plus children per parent."""

    def __init__(self, categories: list[Category]):
        self.categories = sorted(
            categories, key=lambda c: (c.depth, (c.path or "").casefold())
        )
        self.roots = [c for c in self.categories if c.depth == 0]
        self._children: dict[int, list[Category]] = defaultdict(list)
        for category in self.categories:
            if category.parent_id is not None:
                self._children[category.parent_id].append(category)
        for children in self._children.values():
            children.sort(key=lambda c: c.name.casefold())

    def children(self, category_id: int) -> list[Category]:
        return list(self._children.get(category_id, []))

    def walk(self) -> list[tuple[int, Category]]:
        """(level, category) in display order."""
        result = []

        def visit(category: Category, level: int) -> None:
            result.append((level, category))
            for child in self.children(category.id):
                visit(child, level + 1)

        for root in self.roots:
            visit(root, 0)
        return result

    @classmethod
    def load(cls, context: AdminContext) -> "CategoryTree":
        try:
            result = (
                context.table("categories")
                .select("id,name,slug,parent_id,depth,path,is_active")
                .eq("is_active", True)
                .order("depth")
                .order("path")
                .execute()
            )
        except Exception as e:
            raise BackendError(f"Could not load categories: {e}") from e
        return cls([Category.model_validate(r) for r in (result.data or [])])
