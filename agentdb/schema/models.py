"""
Schema graph models.

Pydantic models describing a mapped database: tables, columns, foreign key
edges (both directions) and indexes. A SchemaGraph is built in one pass and
never mutated afterwards.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ColumnNode(BaseModel):
    """A single column of a table or view."""

    name: str = Field(..., description="Column name")
    declared_type: str = Field(..., description="Normalized type, e.g. varchar(255)")
    nullable: bool = Field(..., description="Whether the column accepts NULL")
    default_value: str | None = Field(None, description="Column default expression")
    is_primary_key: bool = Field(default=False, description="Part of the primary key")
    comment: str | None = Field(None, description="Catalog comment")


class ForeignKeyEdge(BaseModel):
    """
    Directed foreign key reference.

    On the referencing table the edge reads "column -> referenced_table.
    referenced_column". The mirrored edge stored on the referenced table has
    the roles swapped: column is the referenced column and referenced_* name
    the table and column that point at it.
    """

    column: str = Field(..., description="Local column")
    referenced_schema: str = Field(..., description="Schema of the other table")
    referenced_table: str = Field(..., description="Name of the other table")
    referenced_column: str = Field(..., description="Column on the other table")

    model_config = ConfigDict(frozen=True)


class IndexNode(BaseModel):
    """Index parsed from its rendered definition."""

    name: str = Field(..., description="Index name")
    columns: list[str] = Field(default_factory=list, description="Indexed columns in order")
    is_unique: bool = Field(default=False, description="Unique index (always true for primary)")
    is_primary: bool = Field(default=False, description="Backs the primary key")


class TableNode(BaseModel):
    """A table or view with its columns, references and indexes."""

    schema_name: str = Field(..., alias="schema", description="Schema name")
    name: str = Field(..., description="Table name")
    kind: Literal["table", "view"] = Field(default="table", description="Relation kind")
    columns: list[ColumnNode] = Field(default_factory=list)
    outgoing_refs: list[ForeignKeyEdge] = Field(
        default_factory=list, description="Foreign keys declared on this table"
    )
    incoming_refs: list[ForeignKeyEdge] = Field(
        default_factory=list, description="Foreign keys on other tables pointing here"
    )
    indexes: list[IndexNode] = Field(default_factory=list)
    estimated_row_count: int = Field(default=0, ge=0, description="Planner estimate")
    comment: str | None = Field(None, description="Catalog comment")

    model_config = ConfigDict(populate_by_name=True)

    @property
    def key(self) -> str:
        """Identity of the table inside a graph: schema.name."""
        return f"{self.schema_name}.{self.name}"

    def column(self, name: str) -> ColumnNode | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None


class SchemaGraph(BaseModel):
    """Root aggregate produced by one mapping pass."""

    database_name: str = Field(..., description="Current database")
    engine_version: str = Field(..., description="Server version, e.g. PostgreSQL 16.2")
    schema_names: list[str] = Field(default_factory=list, description="Sorted schema names")
    tables: list[TableNode] = Field(default_factory=list)
    mapped_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def table_count(self) -> int:
        return sum(1 for table in self.tables if table.kind == "table")

    @property
    def view_count(self) -> int:
        return sum(1 for table in self.tables if table.kind == "view")

    @property
    def relation_count(self) -> int:
        return sum(len(table.outgoing_refs) for table in self.tables)
