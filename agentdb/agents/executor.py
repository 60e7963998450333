"""
Query Executor

Extracts SQL from model answers, classifies statements as destructive or
not, enforces the read-only flag and runs statements through the database
collaborator.

Both the extraction and the destructive check are keyword heuristics, not
a SQL parser:
- A keyword hidden inside a string literal right after a ``;`` is still
  treated as a statement start (over-classification).
- Writes that do not start a statement, e.g. a data-modifying CTE
  (``WITH x AS (DELETE ...) SELECT ...``) or ``SELECT ... INTO``, are not
  detected here. They still run inside a READ ONLY transaction, which the
  server rejects.

Execution failures are returned as values (``ExecutionResult.error``) and
never raised, so callers can treat SQL errors and connectivity errors the
same way.
"""

import logging
import re
from collections import deque
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from agentdb.connectors.base import BaseConnector, ConnectorError

logger = logging.getLogger(__name__)

DESTRUCTIVE_KEYWORDS = [
    "INSERT",
    "UPDATE",
    "DELETE",
    "DROP",
    "ALTER",
    "TRUNCATE",
    "CREATE",
]

SQL_STARTERS = [
    "SELECT",
    "INSERT",
    "UPDATE",
    "DELETE",
    "CREATE",
    "ALTER",
    "DROP",
    "TRUNCATE",
    "WITH",
    "EXPLAIN",
    "BEGIN",
]

READ_ONLY_BLOCKED_MESSAGE = (
    "Read-only mode is active. Disable read-only mode to run this statement."
)

_SQL_BLOCK = re.compile(r"```sql\s*\n([\s\S]*?)```", re.IGNORECASE)
_GENERIC_BLOCK = re.compile(r"```\s*\n([\s\S]*?)```")
_SQL_BLOCK_ALL = re.compile(r"```sql\s*\n[\s\S]*?```", re.IGNORECASE)
_GENERIC_BLOCK_ALL = re.compile(r"```\s*\n[\s\S]*?```")
_LINE_COMMENT = re.compile(r"--.*$", re.MULTILINE)
_BLOCK_COMMENT = re.compile(r"/\*[\s\S]*?\*/")
_DESTRUCTIVE_PATTERNS = [
    re.compile(rf"(^|;)\s*{keyword}\b") for keyword in DESTRUCTIVE_KEYWORDS
]


class ExecutionResult(BaseModel):
    """Outcome of one execution attempt."""

    sql: str = Field(..., description="Statement that was (or would have been) run")
    rows: list[dict[str, Any]] = Field(default_factory=list, description="Result rows")
    row_count: int = Field(default=0, ge=0, description="Rows returned or affected")
    duration_ms: float = Field(default=0.0, ge=0, description="Execution time in ms")
    columns: list[str] | None = Field(None, description="Column names when known")
    error: str | None = Field(None, description="Failure message; None on success")
    blocked: bool = Field(
        default=False, description="Refused by the read-only gate, never sent to the database"
    )

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def column_names(self) -> list[str]:
        """Explicit columns, else the keys of the first row."""
        if self.columns:
            return list(self.columns)
        if self.rows:
            return list(self.rows[0].keys())
        return []


class QueryHistoryEntry(BaseModel):
    """One executed statement, kept for the history view."""

    sql: str
    row_count: int = 0
    duration_ms: float = 0.0
    error: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


def looks_like_sql(text: str) -> bool:
    """True when the text starts with a known SQL keyword (case-insensitive)."""
    upper = text.strip().upper()
    return any(upper.startswith(keyword) for keyword in SQL_STARTERS)


def strip_sql_blocks(answer: str) -> str:
    """Remove every fenced code block from a model answer."""
    without_sql = _SQL_BLOCK_ALL.sub("", answer)
    return _GENERIC_BLOCK_ALL.sub("", without_sql).strip()


class QueryExecutor:
    """
    Safety gate and executor for model-proposed SQL.

    Read-only mode is on by default. While it is on, destructive statements
    are refused without touching the database.

    Usage:
        executor = QueryExecutor(connector)
        sql = executor.extract_sql(answer)
        if sql:
            result = await executor.execute(sql)
            if result.error:
                ...
    """

    def __init__(
        self,
        connector: BaseConnector,
        read_only: bool = True,
        history_size: int = 50,
    ):
        self.connector = connector
        self._read_only = read_only
        self._history: deque[QueryHistoryEntry] = deque(maxlen=history_size)

    # ------------------------------------------------------------------
    # Extraction and classification
    # ------------------------------------------------------------------

    @staticmethod
    def extract_sql(answer: str) -> str | None:
        """
        Pull the SQL statement out of a model answer.

        Tried in order, first match wins:
        1. a fenced block tagged ``sql``
        2. an untagged fenced block whose content starts with a SQL keyword
        3. the run of non-blank lines starting at the first line that looks
           like SQL, up to the next blank line, accepted if it ends with
           ``;`` or starts with a SQL keyword
        """
        tagged = _SQL_BLOCK.search(answer)
        if tagged:
            sql = tagged.group(1).strip()
            if sql:
                return sql

        generic = _GENERIC_BLOCK.search(answer)
        if generic:
            content = generic.group(1).strip()
            if looks_like_sql(content):
                return content

        collected: list[str] = []
        for line in answer.split("\n"):
            trimmed = line.strip()
            if not collected:
                if trimmed and looks_like_sql(trimmed):
                    collected.append(trimmed)
                continue
            if not trimmed:
                break
            collected.append(trimmed)

        if collected:
            sql = "\n".join(collected).strip()
            if sql.endswith(";") or looks_like_sql(sql):
                return sql

        return None

    @staticmethod
    def is_destructive_query(sql: str) -> bool:
        """
        True if any statement in ``sql`` starts with a writing keyword.

        Comments are stripped first; a statement start is the beginning of
        the text or a position right after ``;``.
        """
        cleaned = _BLOCK_COMMENT.sub("", _LINE_COMMENT.sub("", sql)).strip().upper()
        return any(pattern.search(cleaned) for pattern in _DESTRUCTIVE_PATTERNS)

    def set_read_only_mode(self, enabled: bool) -> None:
        logger.info(f"Read-only mode {'enabled' if enabled else 'disabled'}")
        self._read_only = enabled

    def is_read_only(self) -> bool:
        return self._read_only

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, sql: str) -> ExecutionResult:
        """
        Run a statement through the safety gate.

        Non-destructive statements use the connector's read-only
        transaction; destructive ones (only when read-only mode is off) use
        ordinary execution. Never raises for SQL or connection failures.
        """
        destructive = self.is_destructive_query(sql)

        if destructive and self._read_only:
            logger.warning(
                "Blocked destructive statement in read-only mode",
                extra={"sql": sql[:200]},
            )
            return ExecutionResult(sql=sql, error=READ_ONLY_BLOCKED_MESSAGE, blocked=True)

        try:
            if destructive:
                result = await self.connector.execute(sql)
            else:
                result = await self.connector.execute_read_only(sql)
        except ConnectorError as e:
            outcome = ExecutionResult(sql=sql, error=str(e) or e.__class__.__name__)
        except Exception as e:
            logger.exception("Unexpected error while executing statement")
            outcome = ExecutionResult(sql=sql, error=str(e) or "Unknown query error")
        else:
            outcome = ExecutionResult(
                sql=sql,
                rows=result.rows,
                row_count=result.row_count,
                duration_ms=result.execution_time_ms,
                columns=result.columns or None,
            )

        self._record(outcome)
        logger.info(
            "Statement executed" if outcome.succeeded else "Statement failed",
            extra={
                "sql": sql[:200],
                "row_count": outcome.row_count,
                "duration_ms": outcome.duration_ms,
                "error": outcome.error,
            },
        )
        return outcome

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def _record(self, outcome: ExecutionResult) -> None:
        self._history.appendleft(
            QueryHistoryEntry(
                sql=outcome.sql,
                row_count=outcome.row_count,
                duration_ms=outcome.duration_ms,
                error=outcome.error,
            )
        )

    def get_query_history(self) -> list[QueryHistoryEntry]:
        """Executed statements, newest first."""
        return list(self._history)

    def clear_query_history(self) -> None:
        self._history.clear()
