"""Exceptions raised by document stores."""

from __future__ import annotations


class StoreError(Exception):
    """Base class for document store failures."""

    def __init__(self, project_id: str | None, message: str) -> None:
        super().__init__(message)
        self.project_id = project_id


class NotFoundError(StoreError):
    """The project id does not resolve to a document."""

    def __init__(self, project_id: str) -> None:
        super().__init__(project_id, f"Project {project_id} not found")


class PermissionDeniedError(StoreError):
    """Store-side rules refuse the caller access to the document."""

    def __init__(self, project_id: str) -> None:
        super().__init__(project_id, f"Permission denied for project {project_id}")


class AlreadyExistsError(StoreError):
    """A set-if-absent create found the id already taken."""

    def __init__(self, project_id: str) -> None:
        super().__init__(project_id, f"Project {project_id} already exists")


class StoreUnavailableError(StoreError):
    """Transient failure talking to the store (network, driver, timeout)."""
