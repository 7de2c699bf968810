"""
Home dashboard: catalog counts, latest products, review queues, open bugs.

Every block is an independent read; they run concurrently and a failing block
leaves its default (0 / empty) while the others still render.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from rich.console import Console

from src.backend.supabase_client import AdminContext
from src.models.catalog import Brand, BugReport, Ingredient, Product

console = Console()


@dataclass
class DashboardStats:
    products: int = 0
    brands: int = 0
    ingredients: int = 0
    latest_products: list[Product] = field(default_factory=list)
    new_brands: list[Brand] = field(default_factory=list)
    new_ingredients: list[Ingredient] = field(default_factory=list)
    open_bugs: list[BugReport] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def review_total(self) -> int:
        return len(self.new_brands) + len(self.new_ingredients)


class Dashboard:
    def __init__(self, context: AdminContext):
        self.context = context
        self.stats: Optional[DashboardStats] = None

    def count(self, table: str) -> int:
        result = (
            self.context.table(table)
            .select("id", count="exact")
            .limit(1)
            .execute()
        )
        return result.count or 0

    def latest_products(self) -> list[Product]:
        result = (
            self.context.table("products")
            .select("id,name,thumb_url,brand:brands!products_brand_id_fkey(id,name)")
            .order("id", desc=True)
            .limit(self.context.config.lists.latest_products)
            .execute()
        )
        return [Product.model_validate(r) for r in (result.data or [])]

    def new_brands(self) -> list[Brand]:
        result = (
            self.context.table("brands")
            .select("id,name,url_logo,is_new")
            .eq("is_new", True)
            .order("name")
            .execute()
        )
        return [Brand.model_validate(r) for r in (result.data or [])]

    def new_ingredients(self) -> list[Ingredient]:
        column = self.context.features.recommendation_column
        result = (
            self.context.table("ingredients")
            .select(f"id,inci_name,functions,{column},is_new")
            .eq("is_new", True)
            .order("inci_name")
            .execute()
        )
        return [Ingredient.model_validate(r) for r in (result.data or [])]

    def open_bugs(self) -> list[BugReport]:
        result = (
            self.context.table("bug_reports")
            .select("id,title,description,status,created_at,user_id")
            .eq("status", "open")
            .order("created_at", desc=True)
            .execute()
        )
        return [BugReport.model_validate(r) for r in (result.data or [])]

    async def load(self) -> DashboardStats:
        stats = DashboardStats()

        async def block(name: str, fn, *args):
            try:
                value = await asyncio.to_thread(fn, *args)
            except Exception as e:
                message = f"Could not load {name}: {e}"
                console.print(f"[yellow]{message}[/yellow]")
                stats.errors.append(message)
                return
            setattr(stats, name, value)

        await asyncio.gather(
            block("products", self.count, "products"),
            block("brands", self.count, "brands"),
            block("ingredients", self.count, "ingredients"),
            block("latest_products", self.latest_products),
            block("new_brands", self.new_brands),
            block("new_ingredients", self.new_ingredients),
            block("open_bugs", self.open_bugs),
        )
        self.stats = stats
        return stats
