"""
Error types raised by the admin controllers.

Controllers raise; the screen boundary (panel routes, CLI commands, RowEditor)
catches AdminError and shows the message.
"""

from typing import Optional


class AdminError(Exception):
    """Base class for every error surfaced to an admin."""


class ConfigurationError(AdminError):
    """Missing credentials or invalid settings."""


class ValidationError(AdminError):
    """Local validation failure, raised before any network call."""


class DuplicateNameError(ValidationError):
    """A record with the same name (case-insensitive) is already loaded."""

    def __init__(self, name: str, entity: str = "record"):
        self.name = name
        self.entity = entity
        super().__init__(f"A {entity} named '{name}' already exists.")


class BackendError(AdminError):
    """The backend rejected a request; carries the backend's message."""


class NotFoundError(BackendError):
    """No row with the requested id."""


class ReconcileError(BackendError):
    """An association write failed part-way; nothing is rolled back."""

    def __init__(
        self,
        message: str,
        step: str,
        added: Optional[list] = None,
        removed: Optional[list] = None,
    ):
        self.step = step
        self.added = added or []
        self.removed = removed or []
        super().__init__(message)


class UploadError(AdminError):
    """Object upload failed; callers treat it as "no change"."""
