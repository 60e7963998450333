"""
Schema Engine

Maps a live PostgreSQL catalog into an in-memory SchemaGraph and answers
navigation questions about it (search, related tables, context summary).

Five catalog queries (tables, columns, primary keys, foreign keys, indexes)
are fetched and joined in memory keyed by ``schema.table``. Foreign keys are
inserted into the outgoing and incoming maps in the same step, so every
outgoing edge has its mirrored incoming edge by construction.

Usage:
    engine = SchemaEngine(connector)
    graph = await engine.map_database()

    related = engine.find_related_tables("public", "orders", depth=2)
    prompt_context = engine.generate_context_summary()
"""

import logging
import re
from collections import defaultdict, deque
from datetime import UTC, datetime
from typing import Any

import networkx as nx

from agentdb.connectors.base import BaseConnector, ConnectionError, ConnectorError
from agentdb.schema.models import (
    ColumnNode,
    ForeignKeyEdge,
    IndexNode,
    SchemaGraph,
    TableNode,
)

logger = logging.getLogger(__name__)

SCHEMA_NOT_MAPPED = "Schema not mapped."

_EXCLUDED_SCHEMAS = "('pg_catalog', 'information_schema', 'pg_toast')"

TABLES_QUERY = f"""
    SELECT
        t.table_schema,
        t.table_name,
        t.table_type,
        pg_catalog.obj_description(c.oid, 'pg_class') AS comment,
        c.reltuples::bigint AS estimated_rows
    FROM information_schema.tables t
    LEFT JOIN pg_catalog.pg_namespace n ON n.nspname = t.table_schema
    LEFT JOIN pg_catalog.pg_class c
        ON c.relname = t.table_name AND c.relnamespace = n.oid
    WHERE t.table_schema NOT IN {_EXCLUDED_SCHEMAS}
    ORDER BY t.table_schema, t.table_name
"""

COLUMNS_QUERY = f"""
    SELECT
        c.table_schema,
        c.table_name,
        c.column_name,
        c.data_type,
        c.character_maximum_length,
        c.is_nullable,
        c.column_default,
        pg_catalog.col_description(
            format('%I.%I', c.table_schema, c.table_name)::regclass::oid,
            c.ordinal_position
        ) AS comment
    FROM information_schema.columns c
    WHERE c.table_schema NOT IN {_EXCLUDED_SCHEMAS}
    ORDER BY c.table_schema, c.table_name, c.ordinal_position
"""

PRIMARY_KEYS_QUERY = """
    SELECT
        tc.table_schema,
        tc.table_name,
        kcu.column_name
    FROM information_schema.table_constraints tc
    JOIN information_schema.key_column_usage kcu
        ON tc.constraint_name = kcu.constraint_name
        AND tc.table_schema = kcu.table_schema
    WHERE tc.constraint_type = 'PRIMARY KEY'
"""

FOREIGN_KEYS_QUERY = """
    SELECT
        tc.table_schema,
        tc.table_name,
        kcu.column_name,
        ccu.table_schema AS referenced_schema,
        ccu.table_name AS referenced_table,
        ccu.column_name AS referenced_column
    FROM information_schema.table_constraints tc
    JOIN information_schema.key_column_usage kcu
        ON tc.constraint_name = kcu.constraint_name
        AND tc.table_schema = kcu.table_schema
    JOIN information_schema.constraint_column_usage ccu
        ON tc.constraint_name = ccu.constraint_name
        AND tc.constraint_schema = ccu.constraint_schema
    WHERE tc.constraint_type = 'FOREIGN KEY'
"""

INDEXES_QUERY = f"""
    SELECT
        schemaname,
        tablename,
        indexname,
        indexdef
    FROM pg_indexes
    WHERE schemaname NOT IN {_EXCLUDED_SCHEMAS}
"""

# Applied in order, first occurrence only
TYPE_ALIASES: list[tuple[str, str]] = [
    ("character varying", "varchar"),
    ("character", "char"),
    ("timestamp without time zone", "timestamp"),
    ("timestamp with time zone", "timestamptz"),
    ("double precision", "float8"),
    ("boolean", "bool"),
]

_VERSION_PATTERN = re.compile(r"PostgreSQL\s+([\d.]+)")
_INDEX_COLUMNS_PATTERN = re.compile(r"\(([^)]+)\)")


def normalize_type(data_type: str, max_length: int | None = None) -> str:
    """Render a catalog type the short way, e.g. ``varchar(255)``."""
    rendered = f"{data_type}({max_length})" if max_length else data_type
    for long_name, short_name in TYPE_ALIASES:
        rendered = rendered.replace(long_name, short_name, 1)
    return rendered


def normalize_version(banner: str) -> str:
    match = _VERSION_PATTERN.search(banner)
    return f"PostgreSQL {match.group(1)}" if match else banner


def parse_index_definition(name: str, definition: str) -> IndexNode:
    """
    Build an IndexNode from a ``pg_indexes.indexdef`` string.

    Only the first parenthesized group is read, so expression indexes or
    unusual formatting can yield a partial or empty column list.
    """
    match = _INDEX_COLUMNS_PATTERN.search(definition)
    columns = (
        [part.strip().replace('"', "") for part in match.group(1).split(",")]
        if match
        else []
    )
    is_primary = name.endswith("_pkey")
    is_unique = "UNIQUE" in definition.upper()
    return IndexNode(
        name=name,
        columns=columns,
        is_unique=is_unique or is_primary,
        is_primary=is_primary,
    )


def _row_count(value: Any) -> int:
    if value is None:
        return 0
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


class SchemaEngine:
    """
    Builds and serves the SchemaGraph for one connection.

    The graph reference is swapped in a single assignment at the end of
    map_database(), so concurrent readers see either the previous graph or
    the new one.
    """

    def __init__(self, connector: BaseConnector):
        self.connector = connector
        self._graph: SchemaGraph | None = None

    async def map_database(self) -> SchemaGraph:
        """
        Query the catalog and build a fresh SchemaGraph.

        Returns:
            The new graph (also retained for later lookups)

        Raises:
            ConnectionError: If any catalog query fails
        """
        logger.info("Mapping database schema")

        database_name = (await self._query("SELECT current_database() AS current_database"))[0][
            "current_database"
        ]
        banner = (await self._query("SELECT version() AS version"))[0]["version"]

        table_rows = await self._query(TABLES_QUERY)
        column_rows = await self._query(COLUMNS_QUERY)
        pk_rows = await self._query(PRIMARY_KEYS_QUERY)
        fk_rows = await self._query(FOREIGN_KEYS_QUERY)
        index_rows = await self._query(INDEXES_QUERY)

        graph = self.build_graph(
            database_name=database_name,
            version_banner=banner,
            table_rows=table_rows,
            column_rows=column_rows,
            pk_rows=pk_rows,
            fk_rows=fk_rows,
            index_rows=index_rows,
        )
        self._graph = graph

        logger.info(
            f"Mapped {len(graph.tables)} relations in {len(graph.schema_names)} schemas",
            extra={
                "database": graph.database_name,
                "tables": graph.table_count,
                "views": graph.view_count,
                "relations": graph.relation_count,
            },
        )
        return graph

    async def _query(self, sql: str) -> list[dict[str, Any]]:
        try:
            result = await self.connector.execute(sql)
        except ConnectorError as e:
            logger.error(f"Catalog query failed: {e}")
            raise ConnectionError(f"Failed to read database catalog: {e}") from e
        return result.rows

    @staticmethod
    def build_graph(
        *,
        database_name: str,
        version_banner: str,
        table_rows: list[dict[str, Any]],
        column_rows: list[dict[str, Any]],
        pk_rows: list[dict[str, Any]],
        fk_rows: list[dict[str, Any]],
        index_rows: list[dict[str, Any]],
    ) -> SchemaGraph:
        """Join flat catalog rows into a SchemaGraph."""
        primary_keys = {
            f"{row['table_schema']}.{row['table_name']}.{row['column_name']}" for row in pk_rows
        }

        outgoing: dict[str, list[ForeignKeyEdge]] = defaultdict(list)
        incoming: dict[str, list[ForeignKeyEdge]] = defaultdict(list)
        for row in fk_rows:
            key = f"{row['table_schema']}.{row['table_name']}"
            ref_key = f"{row['referenced_schema']}.{row['referenced_table']}"
            outgoing[key].append(
                ForeignKeyEdge(
                    column=row["column_name"],
                    referenced_schema=row["referenced_schema"],
                    referenced_table=row["referenced_table"],
                    referenced_column=row["referenced_column"],
                )
            )
            incoming[ref_key].append(
                ForeignKeyEdge(
                    column=row["referenced_column"],
                    referenced_schema=row["table_schema"],
                    referenced_table=row["table_name"],
                    referenced_column=row["column_name"],
                )
            )

        indexes: dict[str, list[IndexNode]] = defaultdict(list)
        for row in index_rows:
            key = f"{row['schemaname']}.{row['tablename']}"
            indexes[key].append(parse_index_definition(row["indexname"], row["indexdef"]))

        columns: dict[str, list[ColumnNode]] = defaultdict(list)
        for row in column_rows:
            key = f"{row['table_schema']}.{row['table_name']}"
            columns[key].append(
                ColumnNode(
                    name=row["column_name"],
                    declared_type=normalize_type(
                        row["data_type"], row.get("character_maximum_length")
                    ),
                    nullable=row["is_nullable"] == "YES",
                    default_value=row.get("column_default"),
                    is_primary_key=f"{key}.{row['column_name']}" in primary_keys,
                    comment=row.get("comment"),
                )
            )

        schemas: set[str] = set()
        tables: list[TableNode] = []
        seen: set[str] = set()
        for row in table_rows:
            key = f"{row['table_schema']}.{row['table_name']}"
            if key in seen:
                continue
            seen.add(key)
            schemas.add(row["table_schema"])
            tables.append(
                TableNode(
                    schema=row["table_schema"],
                    name=row["table_name"],
                    kind="view" if row["table_type"] == "VIEW" else "table",
                    columns=columns.get(key, []),
                    outgoing_refs=outgoing.get(key, []),
                    incoming_refs=incoming.get(key, []),
                    indexes=indexes.get(key, []),
                    estimated_row_count=_row_count(row.get("estimated_rows")),
                    comment=row.get("comment"),
                )
            )

        return SchemaGraph(
            database_name=database_name,
            engine_version=normalize_version(version_banner),
            schema_names=sorted(schemas),
            tables=tables,
            mapped_at=datetime.now(UTC),
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_graph(self) -> SchemaGraph | None:
        return self._graph

    def get_table(self, schema: str, name: str) -> TableNode | None:
        if not self._graph:
            return None
        for table in self._graph.tables:
            if table.schema_name == schema and table.name == name:
                return table
        return None

    def search_tables(self, query: str) -> list[TableNode]:
        """Case-insensitive substring match on table, schema or column names."""
        if not self._graph:
            return []
        needle = query.lower()
        return [
            table
            for table in self._graph.tables
            if needle in table.name.lower()
            or needle in table.schema_name.lower()
            or any(needle in column.name.lower() for column in table.columns)
        ]

    def find_tables_with_column(self, column_name: str) -> list[TableNode]:
        if not self._graph:
            return []
        needle = column_name.lower()
        return [
            table
            for table in self._graph.tables
            if any(needle in column.name.lower() for column in table.columns)
        ]

    def find_related_tables(self, schema: str, name: str, depth: int = 2) -> list[TableNode]:
        """
        Tables reachable through foreign keys in either direction.

        Breadth-first, up to ``depth`` hops. A table is marked visited when
        it is enqueued, so it is reported once at the depth where it was
        first discovered. The start table is never returned.
        """
        if not self._graph:
            return []

        by_key = {table.key: table for table in self._graph.tables}
        start_key = f"{schema}.{name}"
        visited = {start_key}
        related: list[TableNode] = []
        queue = deque([(start_key, 0)])

        while queue:
            key, current_depth = queue.popleft()

            if current_depth > 0 and key in by_key:
                related.append(by_key[key])

            if current_depth >= depth:
                continue

            table = by_key.get(key)
            if table is None:
                continue

            for edge in table.outgoing_refs + table.incoming_refs:
                neighbor = f"{edge.referenced_schema}.{edge.referenced_table}"
                if neighbor in visited:
                    continue
                visited.add(neighbor)
                queue.append((neighbor, current_depth + 1))

        logger.debug(
            f"Found {len(related)} tables related to '{start_key}' (depth={depth})"
        )
        return related

    def relation_graph(self) -> nx.MultiDiGraph:
        """
        Foreign key graph for visualization.

        Nodes are ``schema.table`` keys, edges run from the referencing table
        to the referenced one (one edge per foreign key column).
        """
        graph = nx.MultiDiGraph()
        if not self._graph:
            return graph

        for table in self._graph.tables:
            graph.add_node(
                table.key,
                schema=table.schema_name,
                name=table.name,
                kind=table.kind,
                column_count=len(table.columns),
                row_count=table.estimated_row_count,
            )

        for table in self._graph.tables:
            for edge in table.outgoing_refs:
                target = f"{edge.referenced_schema}.{edge.referenced_table}"
                graph.add_edge(
                    table.key,
                    target,
                    column=edge.column,
                    referenced_column=edge.referenced_column,
                    label=f"{edge.column} → {edge.referenced_column}",
                )
        return graph

    # ------------------------------------------------------------------
    # Prompt rendering
    # ------------------------------------------------------------------

    def generate_context_summary(self) -> str:
        """
        Render the whole graph as compact text for the system prompt.

        One line per relation in graph order, followed by one indented line
        per incoming reference.
        """
        graph = self._graph
        if not graph:
            return SCHEMA_NOT_MAPPED

        lines = [
            f"Database: {graph.database_name} ({graph.engine_version})",
            f"Schemas: {', '.join(graph.schema_names)}",
            f"Tables: {graph.table_count} | Views: {graph.view_count} "
            f"| Total Relations: {graph.relation_count}",
            "",
        ]

        for table in graph.tables:
            parts = []
            for column in table.columns:
                part = f"{column.name} {column.declared_type}"
                if column.is_primary_key:
                    part += " PK"
                fk = next(
                    (edge for edge in table.outgoing_refs if edge.column == column.name), None
                )
                if fk:
                    part += f" FK→{fk.referenced_table}.{fk.referenced_column}"
                if not column.nullable and not column.is_primary_key:
                    part += " NOT NULL"
                parts.append(part)

            kind_label = " [VIEW]" if table.kind == "view" else ""
            rows_label = (
                f" [~{table.estimated_row_count} rows]" if table.estimated_row_count > 0 else ""
            )
            lines.append(f"{table.key} ({', '.join(parts)}){kind_label}{rows_label}")

            for ref in table.incoming_refs:
                lines.append(
                    f"  ← {ref.referenced_schema}.{ref.referenced_table}.{ref.referenced_column} FK"
                )
            if table.incoming_refs:
                lines.append("")

        return "\n".join(lines)
