"""SQLModel database models for Storyboard Sync.

Each storyboard project is one row: the document body lives in a JSONB
column, server timestamps and the owner live in their own columns.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


def _timestamptz_column() -> Any:
    """Create a TIMESTAMP WITH TIME ZONE column for PostgreSQL."""
    return Column(DateTime(timezone=True), nullable=False)


class ProjectDocument(SQLModel, table=True):
    """Stored body of one storyboard project.

    Attributes:
        id: Store key of the project (not repeated inside ``data``).
        owner_id: Creating user's id, copied out of ``data`` for listing.
        data: Document body minus ``createdAt`` / ``lastEdited``.
        created_at: Server time the document was created.
        last_edited: Server time of the latest write.
    """

    __tablename__ = "project_document"

    id: str = Field(sa_column=Column(String(64), primary_key=True, nullable=False))
    owner_id: str = Field(
        sa_column=Column(String(128), nullable=False, index=True),
    )
    data: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False),
    )
    created_at: datetime = Field(
        default_factory=_utcnow, sa_column=_timestamptz_column()
    )
    last_edited: datetime = Field(
        default_factory=_utcnow, sa_column=_timestamptz_column()
    )
