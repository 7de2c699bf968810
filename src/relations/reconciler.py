"""
Many-to-many association reconciliation.

Moves the persisted association set of one owner (e.g. a product's
ingredients) to a desired set with at most two writes: one batched add and
one batched delete. The current set is always re-read from the association
table right before diffing; in-memory selections are never trusted as
"current".

No locking and no transaction: two concurrent reconciliations of the same
owner can interleave, last writer wins. A failed second write does not roll
back the first.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional

from rich.console import Console

from src.backend.supabase_client import AdminContext
from src.errors import BackendError, ReconcileError

console = Console()


@dataclass(frozen=True)
class JunctionTable:
    """A join table linking an owner to another entity."""

    table: str
    owner_column: str
    other_column: str

    # Server-side procedure used for adds when row-level policy blocks inserts.
    # Called as procedure(p_<owner>_id, p_<other>_ids).
    add_procedure: Optional[str] = None
    procedure_owner_param: Optional[str] = None
    procedure_ids_param: Optional[str] = None


PRODUCT_INGREDIENTS = JunctionTable(
    table="product_ingredients",
    owner_column="product_id",
    other_column="ingredient_id",
)

PRODUCT_CATEGORIES = JunctionTable(
    table="product_categories",
    owner_column="product_id",
    other_column="category_id",
)

PRODUCT_CATEGORIES_VIA_RPC = JunctionTable(
    table="product_categories",
    owner_column="product_id",
    other_column="category_id",
    add_procedure="add_product_categories",
    procedure_owner_param="p_product_id",
    procedure_ids_param="p_category_ids",
)

PRODUCT_TAGS = JunctionTable(
    table="product_tags",
    owner_column="product_id",
    other_column="tag_id",
)


@dataclass
class ReconcileResult:
    """Ids written by one reconciliation."""

    added: list[int] = field(default_factory=list)
    removed: list[int] = field(default_factory=list)

    @property
    def writes(self) -> int:
        return int(bool(self.added)) + int(bool(self.removed))

    @property
    def changed(self) -> bool:
        return self.writes > 0


def dedupe(ids: Iterable) -> list[int]:
    """Distinct ids in first-seen order."""
    seen = set()
    result = []
    for raw in ids:
        value = int(raw)
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


class RelationReconciler:
    """Synchronizes one association table for one owner at a time."""

    def __init__(self, context: AdminContext, junction: JunctionTable):
        self.context = context
        self.junction = junction

    def current_ids(self, owner_id: int) -> set[int]:
        """Authoritative read of the owner's associated ids."""
        try:
            result = (
                self.context.table(self.junction.table)
                .select(self.junction.other_column)
                .eq(self.junction.owner_column, owner_id)
                .execute()
            )
        except Exception as e:
            raise BackendError(
                f"Could not read {self.junction.table} for {owner_id}: {e}"
            ) from e
        return {row[self.junction.other_column] for row in (result.data or [])}

    def reconcile(self, owner_id: int, desired: Iterable) -> ReconcileResult:
        """
        Make the owner's association set equal to `desired`.

        Args:
            owner_id: Owning entity id
            desired: Ids that should be associated after the call

        Returns:
            ReconcileResult with the ids added and removed

        Raises:
            ReconcileError: The add or the remove write failed
        """
        desired_ids = dedupe(desired)
        current = self.current_ids(owner_id)

        to_add = [i for i in desired_ids if i not in current]
        desired_set = set(desired_ids)
        to_remove = sorted(i for i in current if i not in desired_set)

        result = ReconcileResult()
        if to_add:
            try:
                self._add(owner_id, to_add)
            except Exception as e:
                raise ReconcileError(
                    f"Could not add {self.junction.table} rows: {e}", step="add"
                ) from e
            result.added = to_add

        if to_remove:
            try:
                (
                    self.context.table(self.junction.table)
                    .delete()
                    .eq(self.junction.owner_column, owner_id)
                    .in_(self.junction.other_column, to_remove)
                    .execute()
                )
            except Exception as e:
                raise ReconcileError(
                    f"Could not remove {self.junction.table} rows: {e}",
                    step="remove",
                    added=result.added,
                ) from e
            result.removed = to_remove

        if result.changed:
            console.print(
                f"[dim]  {self.junction.table} #{owner_id}: "
                f"+{len(result.added)} -{len(result.removed)}[/dim]"
            )
        return result

    def add(self, owner_id: int, ids: Iterable) -> list[int]:
        """
        Add-only path for a freshly created owner (no current set to read).

        Raises:
            ReconcileError: The batched add failed
        """
        to_add = dedupe(ids)
        if not to_add:
            return []
        try:
            self._add(owner_id, to_add)
        except Exception as e:
            raise ReconcileError(
                f"Could not add {self.junction.table} rows: {e}", step="add"
            ) from e
        return to_add

    def _add(self, owner_id: int, ids: list[int]) -> None:
        junction = self.junction
        if junction.add_procedure:
            self.context.client.rpc(
                junction.add_procedure,
                {junction.procedure_owner_param: owner_id, junction.procedure_ids_param: ids},
            ).execute()
            return
        rows = [{junction.owner_column: owner_id, junction.other_column: i} for i in ids]
        self.context.table(junction.table).insert(rows).execute()
