"""
Bug reports sent from the mobile app.
"""

from typing import Callable, Optional

from rich.console import Console

from src.backend.supabase_client import AdminContext
from src.controllers.base import _no_navigation
from src.errors import BackendError
from src.models.catalog import BugReport

console = Console()

BUG_COLUMNS = "id,title,description,status,created_at,user_id"


class BugReportController:
    def __init__(
        self,
        context: AdminContext,
        navigate: Optional[Callable[[str], None]] = None,
    ):
        self.context = context
        self.navigate = navigate or _no_navigation
        self.report: Optional[BugReport] = None
        self.notice: Optional[str] = None

    def open_reports(self) -> list[BugReport]:
        try:
            result = (
                self.context.table("bug_reports")
                .select(BUG_COLUMNS)
                .eq("status", "open")
                .order("created_at", desc=True)
                .execute()
            )
        except Exception as e:
            raise BackendError(f"Could not load bug reports: {e}") from e
        return [BugReport.model_validate(r) for r in (result.data or [])]

    def get(self, bug_id: int) -> Optional[BugReport]:
        """One report; not found -> notice and back home."""
        try:
            result = (
                self.context.table("bug_reports")
                .select(BUG_COLUMNS)
                .eq("id", bug_id)
                .limit(1)
                .execute()
            )
            rows = result.data or []
        except Exception as e:
            return self._not_found(f"Could not load bug report: {e}")
        if not rows:
            return self._not_found("Bug report not found.")
        self.report = BugReport.model_validate(rows[0])
        return self.report

    def _not_found(self, message: str) -> None:
        self.notice = message
        self.report = None
        console.print(f"[yellow]{message}[/yellow]")
        self.navigate(self.context.routes.home)
        return None

    def toggle_status(self, bug: BugReport) -> BugReport:
        """
        Flip open <-> closed. Closing a report returns to the dashboard.

        Raises:
            BackendError: The update was rejected (report unchanged)
        """
        status = "closed" if bug.is_open else "open"
        try:
            (
                self.context.table("bug_reports")
                .update({"status": status})
                .eq("id", bug.id)
                .execute()
            )
        except Exception as e:
            raise BackendError(f"Could not update bug report: {e}") from e

        updated = bug.model_copy(update={"status": status})
        self.report = updated
        console.print(f"[green]✓ Bug #{bug.id} {status}[/green]")
        if status == "closed":
            self.navigate(self.context.routes.home)
        return updated
