"""
API request and response models.
"""

from typing import Any

from pydantic import BaseModel, Field


class ConnectRequest(BaseModel):
    """Connect the server to a database."""

    url: str = Field(..., min_length=1, description="PostgreSQL connection URL")
    name: str | None = Field(None, description="Save the connection under this name")


class ConnectionStatus(BaseModel):
    connected: bool
    url: str | None = Field(None, description="Connection URL with the password masked")
    database: str | None = None
    version: str | None = None
    tables: int = 0
    views: int = 0
    read_only: bool = True
    provider: str | None = None
    model: str | None = None


class TableSummary(BaseModel):
    schema_name: str = Field(..., serialization_alias="schema")
    name: str
    kind: str
    column_count: int
    estimated_row_count: int


class RelationGraphResponse(BaseModel):
    nodes: list[dict[str, Any]]
    edges: list[dict[str, Any]]


class ExecuteRequest(BaseModel):
    sql: str = Field(..., min_length=1, description="Statement to execute")


class ReadOnlyRequest(BaseModel):
    enabled: bool = Field(..., description="Enable or disable read-only mode")


class ReadOnlyResponse(BaseModel):
    read_only: bool
