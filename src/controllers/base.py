"""
Generic list/form controller.

Every entity screen (brands, ingredients, products) runs the same cycle:
fetch rows -> filter locally -> create / edit / delete / mark reviewed. The
differences live in an EntitySchema instead of per-screen copies.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel
from rich.console import Console

from src.backend.supabase_client import AdminContext
from src.errors import (
    AdminError,
    BackendError,
    DuplicateNameError,
    NotFoundError,
    ValidationError,
)
from src.models.catalog import collapse_whitespace

console = Console()


def _no_navigation(route: str) -> None:
    pass


def _never_confirm(prompt: str) -> bool:
    return False


@dataclass(frozen=True)
class EntitySchema:
    """Configuration table for one entity screen."""

    table: str
    model: type[BaseModel]
    label: str
    columns: str
    name_field: str
    order_by: Optional[str] = None  # defaults to name_field
    descending: bool = False
    search_fields: tuple = ()
    editable_fields: tuple = ()
    unique_name: bool = False
    review_field: Optional[str] = "is_new"
    list_route: str = "/"

    @property
    def order_column(self) -> str:
        return self.order_by or self.name_field


def field_text(value: Any) -> str:
    """Searchable text of a field value."""
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so ilike matches the literal text."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class ListFilter:
    """
    Query state of a list screen.

    The filtered rows are recomputed immediately; `filtering` only reports
    whether the query changed within the debounce window (the "filtering…"
    indicator).
    """

    def __init__(self, debounce_ms: int = 200, clock: Callable[[], float] = time.monotonic):
        self.debounce_ms = debounce_ms
        self.clock = clock
        self.query = ""
        self._changed_at: Optional[float] = None

    def set_query(self, query: str) -> None:
        if query != self.query:
            self.query = query
            self._changed_at = self.clock()

    @property
    def filtering(self) -> bool:
        if self._changed_at is None:
            return False
        return (self.clock() - self._changed_at) * 1000 < self.debounce_ms


class EditState(str, Enum):
    VIEWING = "viewing"
    EDITING = "editing"
    SAVING = "saving"


class RowEditor:
    """
    In-place edit of one row.

    viewing -> editing -> saving -> viewing (saved)
                                 -> editing (failed, error kept)
    editing -> viewing (cancel)
    """

    def __init__(self, controller: "EntityController"):
        self.controller = controller
        self.state = EditState.VIEWING
        self.editing_id: Optional[int] = None
        self.draft: dict = {}
        self.error: Optional[str] = None

    def start(self, row_id: int, values: Optional[dict] = None) -> None:
        row = self.controller.find(row_id)
        self.editing_id = row_id
        self.draft = dict(values) if values is not None else (
            self.controller.to_columns(row) if row else {}
        )
        self.error = None
        self.state = EditState.EDITING

    def cancel(self) -> None:
        self.state = EditState.VIEWING
        self.editing_id = None
        self.draft = {}
        self.error = None

    def save(self, values: Optional[dict] = None) -> Optional[BaseModel]:
        """Save the draft; errors are kept on the editor."""
        if self.state is not EditState.EDITING or self.editing_id is None:
            return None
        if values is not None:
            self.draft = dict(values)

        self.state = EditState.SAVING
        try:
            row = self.controller.update(self.editing_id, self.draft)
        except AdminError as e:
            self.error = str(e)
            self.state = EditState.EDITING
            return None

        self.cancel()
        return row


class EntityController:
    """
    Fetch/filter/create/edit/delete cycle for one entity type.

    Rows live in `self.rows`, kept in the schema's sort order.
    """

    def __init__(
        self,
        context: AdminContext,
        schema: EntitySchema,
        navigate: Optional[Callable[[str], None]] = None,
        confirm: Optional[Callable[[str], bool]] = None,
    ):
        self.context = context
        self.schema = schema
        self.navigate = navigate or _no_navigation
        self.confirm = confirm or _never_confirm

        self.rows: list = []
        self.loaded = False
        self.error: Optional[str] = None
        self.notice: Optional[str] = None
        self.selected = None

        self.list_filter = ListFilter(context.config.lists.filter_debounce_ms)
        self.editor = RowEditor(self)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def select_columns(self) -> str:
        return self.schema.columns

    def fetch_rows(self) -> list:
        """
        Read one page of the list without touching the screen state.

        Raises:
            BackendError: The list could not be read
        """
        schema = self.schema
        try:
            result = (
                self.context.table(schema.table)
                .select(self.select_columns())
                .order(schema.order_column, desc=schema.descending)
                .limit(self.context.config.lists.page_size)
                .execute()
            )
        except Exception as e:
            raise BackendError(f"Could not load {schema.label}s: {e}") from e
        rows = [schema.model.model_validate(r) for r in (result.data or [])]
        return sorted(rows, key=self._sort_key, reverse=schema.descending)

    def load(self) -> list:
        """Fetch the list; on error keep the message and show nothing."""
        try:
            self.rows = self.fetch_rows()
            self.error = None
        except BackendError as e:
            self.error = str(e)
            console.print(f"[red]{self.error}[/red]")
            self.rows = []
        self.loaded = True
        return self.rows

    def find(self, row_id: int):
        """
        The freshest known copy of a row.

        The row loaded for editing wins over the list row, which may carry
        only the list columns.
        """
        if self.selected is not None and self.selected.id == row_id:
            return self.selected
        for row in self.rows:
            if row.id == row_id:
                return row
        return None

    def get(self, row_id: int):
        """
        Load one row for editing.

        Not found (or unreadable) -> notice + redirect to the list, None.
        """
        schema = self.schema
        try:
            result = (
                self.context.table(schema.table)
                .select(self.select_columns())
                .eq("id", row_id)
                .limit(1)
                .execute()
            )
            rows = result.data or []
        except Exception as e:
            return self._not_found(f"Could not load {schema.label}: {e}")

        if not rows:
            return self._not_found(f"{schema.label.capitalize()} not found.")

        self.selected = schema.model.model_validate(rows[0])
        return self.selected

    def _not_found(self, message: str):
        self.notice = message
        self.selected = None
        console.print(f"[yellow]{message}[/yellow]")
        self.navigate(self.schema.list_route)
        return None

    def filter(self, query: str) -> list:
        """Case-insensitive substring match over the search fields."""
        self.list_filter.set_query(query)
        return self.match_rows(self.rows, query)

    def match_rows(self, rows: list, query: str) -> list:
        needle = (query or "").strip().lower()
        if not needle:
            return list(rows)
        fields = self.schema.search_fields or (self.schema.name_field,)
        return [
            row
            for row in rows
            if any(needle in field_text(getattr(row, f, None)).lower() for f in fields)
        ]

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def to_columns(self, row) -> dict:
        """Model -> column values as written to the table."""
        return row.model_dump(exclude_none=False)

    def prepare(self, values: dict, partial: bool = False) -> dict:
        """
        Validate form values into a column payload.

        Only editable fields pass. The name is whitespace-collapsed and
        required unless this is a partial update that leaves it out.
        """
        schema = self.schema
        payload = {k: values[k] for k in schema.editable_fields if k in values}

        if schema.name_field in payload or not partial:
            name = collapse_whitespace(str(payload.get(schema.name_field) or ""))
            if not name:
                raise ValidationError(f"Enter a {schema.label} name.")
            payload[schema.name_field] = name
        return payload

    def ensure_unique(self, name: str, exclude_id: Optional[int] = None) -> None:
        """
        Soft case-insensitive uniqueness check.

        Uses the loaded rows; asks the backend only when the list was never
        loaded (standalone forms).

        Raises:
            DuplicateNameError: The name is taken
        """
        schema = self.schema
        if not schema.unique_name:
            return
        key = collapse_whitespace(name).casefold()

        if self.loaded:
            for row in self.rows:
                if row.id == exclude_id:
                    continue
                if collapse_whitespace(getattr(row, schema.name_field, "")).casefold() == key:
                    raise DuplicateNameError(name, schema.label)
            return

        try:
            query = (
                self.context.table(schema.table)
                .select("id", count="exact")
                .ilike(schema.name_field, escape_like(collapse_whitespace(name)))
            )
            if exclude_id is not None:
                query = query.neq("id", exclude_id)
            result = query.execute()
        except Exception as e:
            raise BackendError(f"Could not check for duplicates: {e}") from e
        if (result.count or 0) > 0:
            raise DuplicateNameError(name, schema.label)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def create(self, values: dict):
        """
        Validate, check uniqueness and insert a new row.

        Raises:
            ValidationError / DuplicateNameError: before any network call
            BackendError: insert rejected (rows unchanged)
        """
        payload = self.prepare(values)
        self.ensure_unique(payload[self.schema.name_field])
        return self._insert(payload)

    def _insert(self, payload: dict):
        schema = self.schema
        if schema.review_field:
            payload = {**payload, schema.review_field: True}
        try:
            result = self.context.table(schema.table).insert(payload).execute()
        except Exception as e:
            raise BackendError(f"Could not add {schema.label}: {e}") from e
        if not result.data:
            raise BackendError(f"Could not add {schema.label}: nothing returned")

        row = schema.model.model_validate(result.data[0])
        self.rows.append(row)
        self._sort()
        console.print(f"[green]✓ Added {schema.label}: {getattr(row, schema.name_field)}[/green]")
        return row

    def changed_fields(self, row_id: int, payload: dict) -> dict:
        """Drop fields equal to the loaded row's values."""
        row = self.find(row_id)
        if row is None:
            return dict(payload)
        current = self.to_columns(row)
        return {k: v for k, v in payload.items() if current.get(k) != v}

    def update(self, row_id: int, values: dict):
        """
        Partial update of the allowed, changed fields.

        Raises:
            ValidationError / DuplicateNameError: before any network call
            BackendError: update rejected (rows unchanged)
        """
        payload = self.prepare(values, partial=True)
        changes = self.changed_fields(row_id, payload)
        if self.schema.name_field in changes:
            self.ensure_unique(changes[self.schema.name_field], exclude_id=row_id)
        return self._update(row_id, changes)

    def _update(self, row_id: int, changes: dict):
        schema = self.schema
        row = self.find(row_id)
        if not changes:
            return row

        try:
            result = (
                self.context.table(schema.table)
                .update(changes)
                .eq("id", row_id)
                .execute()
            )
        except Exception as e:
            raise BackendError(f"Could not save {schema.label}: {e}") from e

        if result.data:
            data = result.data[0]
        elif row is not None:
            data = {**self.to_columns(row), **changes}
        else:
            raise NotFoundError(f"{schema.label.capitalize()} {row_id} not found.")

        updated = schema.model.model_validate(data)
        self._replace(row_id, updated)
        return updated

    def delete(self, row_id: int) -> bool:
        """
        Delete after explicit confirmation.

        Returns:
            False when the admin declined, True once deleted
        """
        schema = self.schema
        row = self.find(row_id)
        name = getattr(row, schema.name_field, row_id) if row else row_id
        if not self.confirm(f"Delete {schema.label} '{name}'?"):
            return False

        try:
            self.context.table(schema.table).delete().eq("id", row_id).execute()
        except Exception as e:
            raise BackendError(f"Could not delete {schema.label}: {e}") from e

        self.rows = [r for r in self.rows if r.id != row_id]
        if self.editor.editing_id == row_id:
            self.editor.cancel()
        console.print(f"[green]Deleted {schema.label}: {name}[/green]")
        return True

    def mark_reviewed(self, row_id: int) -> bool:
        """Clear the review flag; local state follows the server."""
        schema = self.schema
        if not schema.review_field:
            return False
        try:
            (
                self.context.table(schema.table)
                .update({schema.review_field: False})
                .eq("id", row_id)
                .execute()
            )
        except Exception as e:
            raise BackendError(f"Could not update status: {e}") from e

        row = self.find(row_id)
        if row is not None:
            self._replace(row_id, row.model_copy(update={schema.review_field: False}))
        return True

    def review_queue(self) -> list:
        """Loaded rows still flagged for review."""
        field = self.schema.review_field
        if not field:
            return []
        return [row for row in self.rows if getattr(row, field, None)]

    # ------------------------------------------------------------------
    # Local state
    # ------------------------------------------------------------------

    def _sort_key(self, row):
        value = getattr(row, self.schema.order_column, None)
        if isinstance(value, str):
            return (0, value.casefold())
        return (0 if value is not None else 1, value if value is not None else 0)

    def _sort(self) -> None:
        self.rows.sort(key=self._sort_key, reverse=self.schema.descending)

    def _replace(self, row_id: int, row) -> None:
        self.rows = [row if r.id == row_id else r for r in self.rows]
        if self.selected is not None and self.selected.id == row_id:
            self.selected = row
        self._sort()
