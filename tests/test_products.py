"""
Tests for the products screen: list, search, create/edit with thumbnails and
associations, details and form options.
"""

import asyncio
import re

import pytest

from config.settings import AdminConfig, FeatureFlags, SupabaseConfig
from src.backend.supabase_client import AdminContext
from src.controllers.products import (
    NO_CATEGORY_PROMPT,
    ProductController,
    ProductDraft,
    ProductSearch,
)
from src.errors import (
    BackendError,
    NotFoundError,
    ReconcileError,
    UploadError,
    ValidationError,
)
from src.storage.assets import AssetFile


@pytest.fixture
def products(context, navigator, confirm_yes):
    return ProductController(context, navigator, confirm_yes)


def kinds(fake):
    return [(w[0], w[1]) for w in fake.writes]


def ids_for(fake, table, column, product_id):
    return sorted(r[column] for r in fake.rows(table) if r["product_id"] == product_id)


class TestList:
    def test_load_joins_brand_and_orders_by_id(self, products, fake):
        rows = products.load()

        assert [p.id for p in rows] == [42, 43]
        assert rows[0].brand_name == "Cerave"
        columns = fake.calls_of("select", "products")[0][2]["columns"]
        assert "is_new" in columns
        assert "brand:brands!products_brand_id_fkey(id,name)" in columns

    def test_review_flag_disabled(self, fake):
        config = AdminConfig(
            supabase=SupabaseConfig(url="https://test.supabase.co", key="test-key"),
            features=FeatureFlags(product_review_flag=False),
        )
        controller = ProductController(AdminContext(fake, config))
        controller.load()

        assert "is_new" not in fake.calls_of("select", "products")[0][2]["columns"]
        assert controller.mark_reviewed(42) is False
        assert fake.writes == []

    def test_mark_reviewed(self, products, fake):
        products.load()

        assert products.mark_reviewed(42) is True
        assert fake.writes[0][2]["payload"] == {"is_new": False}
        assert products.find(42).is_new is False


class TestSearch:
    def test_empty_query_reloads_full_list(self, products, fake):
        assert [p.id for p in products.search("  ")] == [42, 43]
        assert fake.calls_of("rpc") == []

    def test_short_query_filters_locally(self, products, fake):
        assert [p.id for p in products.search("b")] == [43]
        assert fake.calls_of("rpc") == []

    def test_short_query_matches_brand_name(self, products):
        assert [p.id for p in products.search("V")] == [42]

    def test_long_query_uses_procedure(self, products, fake):
        results = products.search(" cica ")

        assert [p.id for p in results] == [43]
        assert fake.calls_of("rpc", "search_products")[0][2]["params"] == {"q": "cica"}

    def test_procedure_failure_shows_empty_list(self, products, fake):
        fake.fail("rpc", "search_products", "function does not exist")

        assert products.search("cica") == []
        assert "function does not exist" in products.error

    def test_debounced_search_only_runs_latest_query(self, products, fake):
        search = ProductSearch(products, debounce_ms=20)

        async def type_query():
            search.set_query("hyd")
            search.set_query("hydr")
            search.set_query("cica")
            assert search.searching
            return await search.wait()

        results = asyncio.run(type_query())

        assert [p.id for p in results] == [43]
        assert not search.searching
        assert len(fake.calls_of("rpc", "search_products")) == 1

    def test_background_search_keeps_loaded_rows(self, products, fake):
        products.load()
        fake.rows("products").append({"id": 50, "name": "Baume", "brand_id": 7})
        search = ProductSearch(products, debounce_ms=0)

        async def clear_query():
            search.set_query("")
            return await search.wait()

        assert [p.id for p in asyncio.run(clear_query())] == [42, 43, 50]
        assert [p.id for p in products.rows] == [42, 43]

    def test_background_search_error_stays_on_search(self, products, fake):
        fake.fail("rpc", "search_products", "timeout")
        search = ProductSearch(products, debounce_ms=0)

        async def type_query():
            search.set_query("cica")
            return await search.wait()

        assert asyncio.run(type_query()) == []
        assert "timeout" in search.error
        assert products.error is None

    def test_default_debounce_from_config(self, products):
        assert ProductSearch(products).debounce_ms == 300


class TestCreate:
    def test_no_category_declined_writes_nothing(self, context, fake, navigator, confirm_no):
        controller = ProductController(context, navigator, confirm_no)
        draft = ProductDraft(name="Ceramide Serum", brand_id=7)

        assert controller.create(draft) is None
        assert confirm_no.prompts == [NO_CATEGORY_PROMPT]
        assert fake.writes == []
        assert navigator.routes == []

    def test_no_category_confirmed(self, products, fake, confirm_yes):
        product = products.create(ProductDraft(name="Ceramide Serum", brand_id=7))

        assert product.id == 44
        assert confirm_yes.prompts == [NO_CATEGORY_PROMPT]
        assert kinds(fake) == [("insert", "products")]

    @pytest.mark.parametrize(
        "draft",
        [ProductDraft(name="   ", brand_id=7), ProductDraft(name="Serum", brand_id=None)],
    )
    def test_name_and_brand_are_required(self, products, fake, draft):
        with pytest.raises(ValidationError):
            products.create(draft)
        assert fake.calls == []

    def test_full_create_order(self, products, fake, navigator, confirm_yes):
        draft = ProductDraft(
            name="  Ceramide   Serum ",
            brand_id=7,
            barcode=" 590123 ",
            description="  ",
            thumbnail=AssetFile("serum.JPG", b"jpg", "image/jpeg"),
            ingredient_ids=[3, 11],
            category_ids=[6],
            tag_ids=[1],
        )

        product = products.create(draft)

        assert kinds(fake) == [
            ("upload", "cms"),
            ("insert", "products"),
            ("insert", "product_ingredients"),
            ("rpc", "add_product_categories"),
            ("insert", "product_tags"),
        ]
        upload = fake.calls_of("upload")[0][2]
        assert re.fullmatch(r"thumbs/\d+_[0-9a-f]{8}\.jpg", upload["path"])
        assert upload["options"]["upsert"] == "false"

        payload = fake.calls_of("insert", "products")[0][2]["payload"]
        assert payload["name"] == "Ceramide Serum"
        assert payload["barcode"] == "590123"
        assert payload["description"] is None
        assert payload["is_new"] is True
        assert payload["thumb_url"].endswith(upload["path"])

        assert ids_for(fake, "product_ingredients", "ingredient_id", product.id) == [3, 11]
        assert ids_for(fake, "product_categories", "category_id", product.id) == [6]
        assert ids_for(fake, "product_tags", "tag_id", product.id) == [1]
        assert confirm_yes.prompts == []
        assert navigator.last == "/products"

    def test_failed_thumbnail_aborts_create(self, products, fake):
        fake.fail("upload", "cms")
        draft = ProductDraft(
            name="Serum", brand_id=7, category_ids=[6], thumbnail=AssetFile("a.jpg", b"x")
        )

        with pytest.raises(UploadError):
            products.create(draft)
        assert fake.calls_of("insert") == []


class TestEdit:
    def test_load_for_edit_collects_association_ids(self, products):
        product = products.load_for_edit(42)

        assert product.ingredient_ids == [3, 9]
        assert product.category_ids == [2]
        assert product.tag_ids == []

    def test_missing_product_redirects(self, products, navigator):
        assert products.load_for_edit(999) is None
        assert products.notice == "Product not found."
        assert navigator.last == "/products"

    def test_save_reconciles_each_association(self, products, fake, navigator):
        draft = ProductDraft.from_product(products.load_for_edit(42))
        draft.ingredient_ids = [3, 11]
        draft.tag_ids = [1]

        result = products.save(42, draft)

        assert kinds(fake) == [
            ("insert", "product_ingredients"),
            ("delete", "product_ingredients"),
            ("insert", "product_tags"),
        ]
        assert result.relations["ingredients"].added == [11]
        assert result.relations["ingredients"].removed == [9]
        assert not result.relations["categories"].changed
        assert ids_for(fake, "product_ingredients", "ingredient_id", 42) == [3, 11]
        assert navigator.last == "/products"

    def test_save_sends_only_changed_fields(self, products, fake):
        draft = ProductDraft.from_product(products.load_for_edit(42))
        draft.name = "Hydrating Cleanser 473 ml"

        result = products.save(42, draft)

        assert fake.calls_of("update", "products")[0][2]["payload"] == {
            "name": "Hydrating Cleanser 473 ml"
        }
        assert result.product.name == "Hydrating Cleanser 473 ml"

    def test_list_rows_carry_only_list_columns(self, products):
        products.load()

        assert products.rows[0].description is None
        assert products.load_for_edit(42).description == "Gentle foaming cleanser"
        assert products.find(42).description == "Gentle foaming cleanser"

    def test_clearing_description_after_list_load(self, products, fake):
        products.load()
        draft = ProductDraft.from_product(products.load_for_edit(42))
        draft.description = None

        products.save(42, draft)

        assert fake.calls_of("update", "products")[0][2]["payload"] == {"description": None}
        assert fake.rows("products")[0]["description"] is None

    @pytest.mark.parametrize("field", ["description", "technologist_note", "barcode"])
    def test_clearing_a_text_field(self, products, fake, field):
        fake.rows("products")[0].update(technologist_note="Patch test first", barcode="3337")
        draft = ProductDraft.from_product(products.load_for_edit(42))
        setattr(draft, field, "   ")

        products.save(42, draft)

        assert fake.calls_of("update", "products")[0][2]["payload"] == {field: None}
        assert fake.rows("products")[0][field] is None

    def test_save_without_edit_form_reads_full_row(self, products, fake):
        products.load()
        draft = ProductDraft(
            name="Hydrating Cleanser", brand_id=5, ingredient_ids=[3, 9], category_ids=[2]
        )

        products.save(42, draft)

        assert fake.calls_of("update", "products")[0][2]["payload"] == {"description": None}
        assert kinds(fake) == [("update", "products")]

    def test_save_of_missing_product(self, products, fake):
        with pytest.raises(NotFoundError):
            products.save(999, ProductDraft(name="Serum", brand_id=5))
        assert fake.writes == []

    def test_thumbnail_replacement_order(self, products, fake):
        draft = ProductDraft.from_product(products.load_for_edit(42))
        draft.thumbnail = AssetFile("new.png", b"png", "image/png")

        products.save(42, draft)

        assert kinds(fake) == [("upload", "cms"), ("update", "products"), ("remove", "cms")]
        upload_path = fake.calls_of("upload")[0][2]["path"]
        assert re.fullmatch(r"thumbs/42_\d+\.png", upload_path)
        assert fake.calls_of("remove")[0][2]["paths"] == ["thumbs/42_1.jpg"]
        assert fake.rows("products")[0]["thumb_url"].endswith(upload_path)

    def test_failed_upload_changes_nothing(self, products, fake):
        fake.fail("upload", "cms", "too large")
        draft = ProductDraft.from_product(products.load_for_edit(42))
        draft.name = "Renamed"
        draft.ingredient_ids = [11]
        draft.thumbnail = AssetFile("new.png", b"png")

        with pytest.raises(UploadError):
            products.save(42, draft)

        assert kinds(fake) == [("upload", "cms")]
        assert fake.rows("products")[0]["name"] == "Hydrating Cleanser"

    def test_failed_row_update_removes_new_thumbnail(self, products, fake):
        fake.fail("update", "products", "permission denied")
        draft = ProductDraft.from_product(products.load_for_edit(42))
        draft.name = "Renamed"
        draft.ingredient_ids = [11]
        draft.thumbnail = AssetFile("new.png", b"png")

        with pytest.raises(BackendError):
            products.save(42, draft)

        new_path = fake.calls_of("upload")[0][2]["path"]
        assert fake.calls_of("remove")[0][2]["paths"] == [new_path]
        assert ids_for(fake, "product_ingredients", "ingredient_id", 42) == [3, 9]

    def test_reconcile_failure_keeps_earlier_steps(self, products, fake):
        fake.fail("delete", "product_ingredients", "permission denied")
        draft = ProductDraft.from_product(products.load_for_edit(42))
        draft.name = "Renamed"
        draft.ingredient_ids = [3, 11]

        with pytest.raises(ReconcileError) as exc:
            products.save(42, draft)

        assert exc.value.step == "remove"
        assert fake.rows("products")[0]["name"] == "Renamed"
        assert ids_for(fake, "product_ingredients", "ingredient_id", 42) == [3, 9, 11]


class TestDelete:
    def test_delete_removes_thumbnail(self, products, fake):
        products.load()

        assert products.delete(42) is True
        assert kinds(fake) == [("delete", "products"), ("remove", "cms")]

    def test_declined_delete(self, context, fake, confirm_no):
        controller = ProductController(context, confirm=confirm_no)
        controller.load()

        assert controller.delete(42) is False
        assert fake.writes == []


class TestConcurrentReads:
    def test_details(self, products):
        details = asyncio.run(products.details(42))

        assert details.product.brand_name == "Cerave"
        assert [i.inci_name for i in details.ingredients] == ["Aqua", "Glycerin"]
        assert [c.name for c in details.categories] == ["Kremy"]
        assert details.tags == []

    def test_details_of_missing_product(self, products, navigator):
        assert asyncio.run(products.details(999)) is None
        assert navigator.last == "/products"

    def test_details_relation_failure(self, products, fake):
        fake.fail("select", "product_tags", "timeout")

        with pytest.raises(BackendError):
            asyncio.run(products.details(42))

    def test_form_options(self, products):
        options = asyncio.run(products.load_form_options())

        assert [b.name for b in options.brands] == ["Cerave", "La Roche-Posay"]
        assert [i.inci_name for i in options.ingredients] == ["Aqua", "Glycerin", "Niacinamide"]
        assert len(options.categories) == 5
        assert [t.name for t in options.tags] == ["Fragrance free", "Vegan"]

    def test_form_options_tolerate_one_failure(self, products, fake):
        fake.fail("select", "tags", "timeout")

        options = asyncio.run(products.load_form_options())

        assert options.tags == []
        assert len(options.brands) == 2
