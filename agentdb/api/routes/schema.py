"""
Schema Routes

Read access to the mapped schema graph plus a re-map trigger.
"""

import logging

from fastapi import APIRouter, HTTPException, Query, status

from agentdb.api.models import RelationGraphResponse, TableSummary
from agentdb.schema.models import SchemaGraph, TableNode

logger = logging.getLogger(__name__)

router = APIRouter()


def _graph() -> SchemaGraph:
    from agentdb.api.main import get_session

    graph = get_session().graph
    if graph is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Schema not mapped.")
    return graph


def _summary(table: TableNode) -> TableSummary:
    return TableSummary(
        schema_name=table.schema_name,
        name=table.name,
        kind=table.kind,
        column_count=len(table.columns),
        estimated_row_count=table.estimated_row_count,
    )


@router.get("/schema", response_model=SchemaGraph)
async def get_schema() -> SchemaGraph:
    """Full schema graph."""
    return _graph()


@router.get("/schema/tables", response_model=list[TableSummary])
async def list_tables() -> list[TableSummary]:
    return [_summary(table) for table in _graph().tables]


@router.get("/schema/tables/{schema_name}/{table_name}", response_model=TableNode)
async def get_table(schema_name: str, table_name: str) -> TableNode:
    from agentdb.api.main import get_session

    table = get_session().schema_engine.get_table(schema_name, table_name)
    if table is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Table not found: {schema_name}.{table_name}",
        )
    return table


@router.get("/schema/search", response_model=list[TableSummary])
async def search_tables(q: str = Query(..., min_length=1)) -> list[TableSummary]:
    from agentdb.api.main import get_session

    return [_summary(table) for table in get_session().schema_engine.search_tables(q)]


@router.get("/schema/relations", response_model=RelationGraphResponse)
async def get_relations() -> RelationGraphResponse:
    """Foreign key graph as node and edge lists."""
    from agentdb.api.main import get_session

    graph = get_session().schema_engine.relation_graph()
    return RelationGraphResponse(
        nodes=[{"id": node, **attrs} for node, attrs in graph.nodes(data=True)],
        edges=[
            {"source": source, "target": target, **attrs}
            for source, target, attrs in graph.edges(data=True)
        ],
    )


@router.post("/schema/map", response_model=SchemaGraph)
async def remap_schema() -> SchemaGraph:
    """Re-read the catalog and refresh the model's system prompt."""
    from agentdb.api.main import get_session

    graph = await get_session().remap()
    logger.info(f"Schema re-mapped: {graph.relation_count} relations")
    return graph
