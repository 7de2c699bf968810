"""
Products screen.

A product save touches several things in sequence, without a transaction:

    thumbnail upload -> product row -> old thumbnail cleanup
    -> ingredients / categories / tags reconciliation

A failure stops the sequence where it happened; earlier steps stay applied.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Optional

from rich.console import Console

from src.backend.supabase_client import AdminContext
from src.controllers.base import EntityController, EntitySchema
from src.errors import BackendError, NotFoundError, ValidationError
from src.models.catalog import (
    Brand,
    Category,
    Ingredient,
    Product,
    Tag,
    collapse_whitespace,
    first_relation,
)
from src.relations.reconciler import (
    PRODUCT_CATEGORIES,
    PRODUCT_CATEGORIES_VIA_RPC,
    PRODUCT_INGREDIENTS,
    PRODUCT_TAGS,
    ReconcileResult,
    RelationReconciler,
)
from src.storage.assets import AssetFile, AssetUploader

console = Console()

BRAND_JOIN = "brand:brands!products_brand_id_fkey(id,name)"
NO_CATEGORY_PROMPT = "No category selected. Continue?"


def product_schema(context: AdminContext) -> EntitySchema:
    review = context.features.product_review_flag
    columns = "id,name,thumb_url," + ("is_new," if review else "") + BRAND_JOIN
    return EntitySchema(
        table="products",
        model=Product,
        label="product",
        columns=columns,
        name_field="name",
        order_by="id",
        search_fields=("name", "brand_name"),
        editable_fields=("name", "brand_id", "description", "technologist_note", "barcode"),
        unique_name=False,
        review_field="is_new" if review else None,
        list_route=context.routes.products,
    )


def _optional_text(value: Optional[str]) -> Optional[str]:
    text = (value or "").strip()
    return text or None


@dataclass
class ProductDraft:
    """Form state of the new/edit product screens."""

    name: str = ""
    brand_id: Optional[int] = None
    description: Optional[str] = None
    technologist_note: Optional[str] = None
    barcode: Optional[str] = None
    thumbnail: Optional[AssetFile] = None
    ingredient_ids: list[int] = field(default_factory=list)
    category_ids: list[int] = field(default_factory=list)
    tag_ids: list[int] = field(default_factory=list)

    def to_payload(self) -> dict:
        """
        Column values for the products row.

        Raises:
            ValidationError: Missing name or brand
        """
        name = collapse_whitespace(self.name)
        if not name or not self.brand_id:
            raise ValidationError("Enter a name and choose a brand.")
        return {
            "name": name,
            "brand_id": int(self.brand_id),
            "description": _optional_text(self.description),
            "technologist_note": _optional_text(self.technologist_note),
            "barcode": _optional_text(self.barcode),
        }

    @classmethod
    def from_product(cls, product: Product) -> "ProductDraft":
        return cls(
            name=product.name,
            brand_id=product.brand_id,
            description=product.description,
            technologist_note=product.technologist_note,
            barcode=product.barcode,
            ingredient_ids=list(product.ingredient_ids),
            category_ids=list(product.category_ids),
            tag_ids=list(product.tag_ids),
        )


@dataclass
class SaveResult:
    product: Optional[Product]
    relations: dict[str, ReconcileResult] = field(default_factory=dict)


@dataclass
class FormOptions:
    brands: list[Brand] = field(default_factory=list)
    ingredients: list[Ingredient] = field(default_factory=list)
    categories: list[Category] = field(default_factory=list)
    tags: list[Tag] = field(default_factory=list)


@dataclass
class ProductDetails:
    product: Product
    ingredients: list[Ingredient] = field(default_factory=list)
    categories: list[Category] = field(default_factory=list)
    tags: list[Tag] = field(default_factory=list)


class ProductController(EntityController):
    """Product list, search, create/edit forms and details."""

    def __init__(
        self,
        context: AdminContext,
        navigate: Optional[Callable[[str], None]] = None,
        confirm: Optional[Callable[[str], bool]] = None,
        uploader: Optional[AssetUploader] = None,
    ):
        super().__init__(context, product_schema(context), navigate, confirm)
        self.uploader = uploader or AssetUploader(context)

        categories = (
            PRODUCT_CATEGORIES_VIA_RPC
            if context.features.categories_via_procedure
            else PRODUCT_CATEGORIES
        )
        self.relations = {
            "ingredients": RelationReconciler(context, PRODUCT_INGREDIENTS),
            "categories": RelationReconciler(context, categories),
            "tags": RelationReconciler(context, PRODUCT_TAGS),
        }

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(self, query: str) -> list[Product]:
        """
        Empty query -> full list; short query -> local filter;
        otherwise the search_products procedure.
        """
        text = (query or "").strip()
        if not text:
            return self.load()
        if len(text) < self.context.config.lists.search_min_length:
            if not self.loaded:
                self.load()
            return self.filter(text)

        try:
            results = self.search_procedure(text)
        except BackendError as e:
            self.error = str(e)
            console.print(f"[red]{self.error}[/red]")
            return []
        self.error = None
        return results

    def search_procedure(self, text: str) -> list[Product]:
        try:
            result = self.context.client.rpc("search_products", {"q": text}).execute()
        except Exception as e:
            raise BackendError(f"Could not search products: {e}") from e
        return [Product.model_validate(r) for r in (result.data or [])]

    def matches(self, query: str) -> list[Product]:
        """
        Same results as search(), leaving rows, loaded and error untouched.

        Raises:
            BackendError: The list or the procedure could not be read
        """
        text = (query or "").strip()
        if not text:
            return self.fetch_rows()
        if len(text) < self.context.config.lists.search_min_length:
            rows = self.rows if self.loaded else self.fetch_rows()
            return self.match_rows(rows, text)
        return self.search_procedure(text)

    # ------------------------------------------------------------------
    # Create / edit
    # ------------------------------------------------------------------

    def create(self, draft: ProductDraft) -> Optional[Product]:
        """
        Insert a product with its thumbnail and associations.

        Returns:
            The new product, or None when the admin declined saving without
            a category (nothing written)
        """
        payload = draft.to_payload()
        if not draft.category_ids and not self.confirm(NO_CATEGORY_PROMPT):
            return None

        if draft.thumbnail is not None:
            storage = self.context.config.storage
            product = self.uploader.replace(
                None,
                draft.thumbnail,
                bucket=storage.cms_bucket,
                folder=storage.thumbs_folder,
                persist=lambda url: self._insert({**payload, "thumb_url": url}),
            )
        else:
            product = self._insert({**payload, "thumb_url": None})

        self.relations["ingredients"].add(product.id, draft.ingredient_ids)
        self.relations["categories"].add(product.id, draft.category_ids)
        self.relations["tags"].add(product.id, draft.tag_ids)

        self.navigate(self.schema.list_route)
        return product

    def load_for_edit(self, product_id: int) -> Optional[Product]:
        """Product row plus its association ids; not found -> back to list."""
        columns = (
            "id,name,brand_id,description,technologist_note,thumb_url,barcode,"
            + ("is_new," if self.schema.review_field else "")
            + "product_ingredients(ingredient_id),"
            "product_categories(category_id),"
            "product_tags(tag_id)"
        )
        try:
            result = (
                self.context.table("products")
                .select(columns)
                .eq("id", product_id)
                .limit(1)
                .execute()
            )
            rows = result.data or []
        except Exception as e:
            return self._not_found(f"Could not load product: {e}")
        if not rows:
            return self._not_found("Product not found.")

        self.selected = Product.model_validate(rows[0])
        return self.selected

    def editing_row(self, product_id: int) -> Product:
        """
        The row the edit form diffs against.

        List rows only carry the list columns, so the full row is read
        unless load_for_edit() already did.

        Raises:
            NotFoundError: The product does not exist
        """
        if self.selected is None or self.selected.id != product_id:
            if self.load_for_edit(product_id) is None:
                raise NotFoundError(self.notice or "Product not found.")
        return self.selected

    def save(self, product_id: int, draft: ProductDraft) -> SaveResult:
        """
        Save the edit form.

        Raises:
            ValidationError: before anything is written
            NotFoundError: the product is gone
            UploadError: thumbnail upload failed, record unchanged
            BackendError / ReconcileError: a later step failed, earlier
                steps stay applied
        """
        payload = draft.to_payload()
        current = self.editing_row(product_id)
        changes = self.changed_fields(product_id, payload)

        if draft.thumbnail is not None:
            storage = self.context.config.storage
            product = self.uploader.replace(
                current.thumb_url,
                draft.thumbnail,
                bucket=storage.cms_bucket,
                folder=storage.thumbs_folder,
                persist=lambda url: self._update(product_id, {**changes, "thumb_url": url}),
                owner_id=product_id,
            )
        else:
            product = self._update(product_id, changes)

        relations = {
            "ingredients": self.relations["ingredients"].reconcile(
                product_id, draft.ingredient_ids
            ),
            "categories": self.relations["categories"].reconcile(
                product_id, draft.category_ids
            ),
            "tags": self.relations["tags"].reconcile(product_id, draft.tag_ids),
        }

        console.print(f"[green]✓ Saved product #{product_id}[/green]")
        self.navigate(self.schema.list_route)
        return SaveResult(product=product, relations=relations)

    def delete(self, row_id: int) -> bool:
        """Delete the product, then clean up its thumbnail."""
        row = self.find(row_id)
        deleted = super().delete(row_id)
        if deleted and row is not None and row.thumb_url:
            self.uploader.delete_by_public_url(row.thumb_url)
        return deleted

    # ------------------------------------------------------------------
    # Concurrent reads
    # ------------------------------------------------------------------

    def _select(self, table: str, columns: str, order: str, **filters) -> list[dict]:
        query = self.context.table(table).select(columns)
        for column, value in filters.items():
            query = query.eq(column, value)
        return query.order(order).execute().data or []

    async def load_form_options(self) -> FormOptions:
        """Brands, ingredients, categories and tags, fetched together."""

        async def fetch(table: str, columns: str, order: str, model) -> list:
            try:
                rows = await asyncio.to_thread(self._select, table, columns, order)
            except Exception as e:
                console.print(f"[yellow]Could not load {table}: {e}[/yellow]")
                return []
            return [model.model_validate(r) for r in rows]

        brands, ingredients, categories, tags = await asyncio.gather(
            fetch("brands", "id,name", "name", Brand),
            fetch("ingredients", "id,inci_name", "inci_name", Ingredient),
            fetch("categories", "id,name,path", "path", Category),
            fetch("tags", "id,name,slug", "name", Tag),
        )
        return FormOptions(brands, ingredients, categories, tags)

    async def details(self, product_id: int) -> Optional[ProductDetails]:
        """Product with brand, then its three relations in parallel."""
        try:
            result = await asyncio.to_thread(
                lambda: self.context.table("products")
                .select(
                    "id,name,description,technologist_note,thumb_url,barcode,"
                    "brand:brands(id,name)"
                )
                .eq("id", product_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            return self._not_found(f"Could not load product: {e}")
        if not result.data:
            return self._not_found("Product not found.")
        product = Product.model_validate(result.data[0])

        async def related(table: str, relation: str, columns: str, order: str, model) -> list:
            rows = await asyncio.to_thread(
                self._select,
                table,
                f"{relation}:{columns}",
                order,
                product_id=product_id,
            )
            items = [first_relation(r.get(relation)) for r in rows]
            return [model.model_validate(item) for item in items if item]

        try:
            ingredients, categories, tags = await asyncio.gather(
                related("product_ingredients", "ingredient", "ingredients(id,inci_name)", "ingredient_id", Ingredient),
                related("product_categories", "category", "categories(id,name,path)", "category_id", Category),
                related("product_tags", "tag", "tags(id,name,slug)", "tag_id", Tag),
            )
        except Exception as e:
            raise BackendError(f"Could not load product relations: {e}") from e

        return ProductDetails(product, ingredients, categories, tags)


class ProductSearch:
    """
    Debounced server-side search.

    Each new query cancels the pending one; the backend is called only once
    the query stayed unchanged for the debounce interval. The worker thread
    only reads; results and errors land on this object from the event loop,
    so a superseded query never overwrites them.
    """

    def __init__(self, controller: ProductController, debounce_ms: Optional[int] = None):
        self.controller = controller
        lists = controller.context.config.lists
        self.debounce_ms = lists.search_debounce_ms if debounce_ms is None else debounce_ms
        self.results: list[Product] = []
        self.error: Optional[str] = None
        self.searching = False
        self._task: Optional[asyncio.Task] = None

    def set_query(self, query: str) -> asyncio.Task:
        """Schedule a search; must be called from a running event loop."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self.searching = True
        self._task = asyncio.get_running_loop().create_task(self._run(query))
        return self._task

    async def _run(self, query: str) -> list[Product]:
        await asyncio.sleep(self.debounce_ms / 1000)
        try:
            results = await asyncio.to_thread(self.controller.matches, query)
            self.error = None
        except BackendError as e:
            console.print(f"[red]{e}[/red]")
            results = []
            self.error = str(e)
        self.results = results
        self.searching = False
        return results

    async def wait(self) -> list[Product]:
        """Results of the latest query."""
        if self._task is None:
            return self.results
        return await self._task
