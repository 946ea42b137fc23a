"""Tests for the SQLModel table definition (no database needed)."""

from __future__ import annotations

from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateTable

from storyboard.db.bootstrap import get_expected_tables
from storyboard.db.models import ProjectDocument


class TestProjectDocumentTable:
    def test_table_registered(self) -> None:
        assert "project_document" in get_expected_tables()

    def test_columns(self) -> None:
        columns = ProjectDocument.__table__.columns

        assert set(columns.keys()) == {
            "id",
            "owner_id",
            "data",
            "created_at",
            "last_edited",
        }
        assert columns["id"].primary_key
        assert columns["owner_id"].index
        assert columns["created_at"].type.timezone is True

    def test_data_is_jsonb_on_postgres(self) -> None:
        ddl = str(
            CreateTable(ProjectDocument.__table__).compile(dialect=postgresql.dialect())
        )

        assert "data JSONB NOT NULL" in ddl
        assert "TIMESTAMP WITH TIME ZONE" in ddl

    def test_defaults(self) -> None:
        record = ProjectDocument(id="p1", owner_id="u1")

        assert record.data == {}
        assert record.created_at.tzinfo is not None
