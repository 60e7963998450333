"""
Schema mapping.

Usage:
    from agentdb.schema import SchemaEngine

    engine = SchemaEngine(connector)
    graph = await engine.map_database()
"""

from agentdb.schema.engine import SchemaEngine
from agentdb.schema.models import (
    ColumnNode,
    ForeignKeyEdge,
    IndexNode,
    SchemaGraph,
    TableNode,
)

__all__ = [
    "SchemaEngine",
    "SchemaGraph",
    "TableNode",
    "ColumnNode",
    "ForeignKeyEdge",
    "IndexNode",
]
