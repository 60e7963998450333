"""
AgentDB Agents Module

Building blocks used by the turn orchestrator.

Available Components:
    - ContextBuilder: Renders the schema-grounded system prompt
    - QueryExecutor: SQL extraction, destructive-statement gate and execution

Usage:
    from agentdb.agents import ContextBuilder, QueryExecutor

    executor = QueryExecutor(connector)
    sql = executor.extract_sql(answer)
"""

from agentdb.agents.context import ContextBuilder
from agentdb.agents.executor import (
    ExecutionResult,
    QueryExecutor,
    QueryHistoryEntry,
    looks_like_sql,
    strip_sql_blocks,
)

__all__ = [
    "ContextBuilder",
    "ExecutionResult",
    "QueryExecutor",
    "QueryHistoryEntry",
    "looks_like_sql",
    "strip_sql_blocks",
]
