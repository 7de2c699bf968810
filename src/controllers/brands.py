"""
Brands screen: list, add with optional logo, rename / replace logo, delete,
mark reviewed.
"""

from typing import Callable, Optional

from src.backend.supabase_client import AdminContext
from src.controllers.base import EntityController, EntitySchema
from src.models.catalog import Brand
from src.storage.assets import AssetFile, AssetUploader


def brand_schema(context: AdminContext) -> EntitySchema:
    return EntitySchema(
        table="brands",
        model=Brand,
        label="brand",
        columns="id,name,url_logo,is_new",
        name_field="name",
        search_fields=("name",),
        editable_fields=("name",),
        unique_name=True,
        list_route=context.routes.brands,
    )


class BrandController(EntityController):
    """Brand list/form. Logo uploads may overwrite (bucket policy)."""

    def __init__(
        self,
        context: AdminContext,
        navigate: Optional[Callable[[str], None]] = None,
        confirm: Optional[Callable[[str], bool]] = None,
        uploader: Optional[AssetUploader] = None,
    ):
        super().__init__(context, brand_schema(context), navigate, confirm)
        self.uploader = uploader or AssetUploader(context)

    def _with_logo(
        self,
        logo: AssetFile,
        previous_url: Optional[str],
        persist: Callable[[str], Brand],
    ) -> Brand:
        storage = self.context.config.storage
        return self.uploader.replace(
            previous_url,
            logo,
            bucket=storage.logo_bucket,
            folder=storage.logos_folder,
            persist=persist,
            overwrite=True,
        )

    def create(self, values: dict) -> Brand:
        """
        Add a brand; `values` may carry a "logo" AssetFile.

        The logo is uploaded only after the name passed validation and the
        duplicate check; a failed upload aborts the insert.
        """
        values = dict(values)
        logo = values.pop("logo", None)
        payload = self.prepare(values)
        self.ensure_unique(payload["name"])
        if logo is None:
            return self._insert(payload)
        return self._with_logo(
            logo, None, lambda url: self._insert({**payload, "url_logo": url})
        )

    def update(self, row_id: int, values: dict) -> Brand:
        """Rename and/or replace the logo (old logo removed after saving)."""
        values = dict(values)
        logo = values.pop("logo", None)
        payload = self.prepare(values, partial=True)
        changes = self.changed_fields(row_id, payload)
        if "name" in changes:
            self.ensure_unique(changes["name"], exclude_id=row_id)
        if logo is None:
            return self._update(row_id, changes)

        current = self.find(row_id)
        return self._with_logo(
            logo,
            current.url_logo if current else None,
            lambda url: self._update(row_id, {**changes, "url_logo": url}),
        )
