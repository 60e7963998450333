"""
Chat Orchestrator

Runs one conversational turn end to end:
- ask the model, pull SQL out of the answer
- gate destructive statements (read-only mode, optional confirmation)
- execute, and on failure give the model exactly one chance to fix the SQL
- send the rows back to the model for a natural-language summary

All output goes through a MessageSink in a fixed order: thinking, then
text/sql, then executing, then result or error, then summary. The
orchestrator is the error boundary of a turn: anything that goes wrong is
reported as a single ``error`` event and never raised to the caller.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from agentdb.agents.executor import ExecutionResult, QueryExecutor, strip_sql_blocks
from agentdb.llm.base import BaseChatClient
from agentdb.pipeline.events import ChatEvent, MessageSink

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[str], Awaitable[bool]]

READ_ONLY_WARNING = "Read-only mode is active. Enable write mode to run this statement."
CANCELLED_NOTICE = "Execution cancelled."


class TurnState(str, Enum):
    """States of a single turn."""

    IDLE = "idle"
    THINKING = "thinking"
    NO_SQL = "no_sql"
    HAS_SQL = "has_sql"
    SAFETY_GATE = "safety_gate"
    EXECUTING = "executing"
    SUCCESS = "success"
    FAILED = "failed"
    CORRECTING = "correcting"
    RE_EXECUTING = "re_executing"
    SUMMARIZING = "summarizing"


def correction_prompt(error: str) -> str:
    return f"The query returned an error:\n{error}\n\nPlease fix the query."


def summary_prompt(result: ExecutionResult, max_rows: int) -> str:
    rows = json.dumps(result.rows[:max_rows], indent=2, default=str)
    return f"Query result ({result.row_count} rows, {result.duration_ms}ms):\n{rows}"


class ChatOrchestrator:
    """
    Turn state machine over a chat client and a query executor.

    Concurrent turns on the same orchestrator are not supported; callers
    must wait for handle_message() to return before starting another.

    Usage:
        orchestrator = ChatOrchestrator(client, executor)
        sink = CollectingSink()
        await orchestrator.handle_message("How many tables are there?", sink)
        print(sink.types)
    """

    def __init__(
        self,
        client: BaseChatClient,
        executor: QueryExecutor,
        summary_max_rows: int = 20,
        auto_correct: bool = True,
        confirm_destructive: ConfirmCallback | None = None,
    ):
        self.client = client
        self.executor = executor
        self.summary_max_rows = summary_max_rows
        self.auto_correct = auto_correct
        self.confirm_destructive = confirm_destructive
        self.state = TurnState.IDLE
        self.last_result: ExecutionResult | None = None

    def _transition(self, state: TurnState) -> None:
        logger.debug(f"Turn state {self.state.value} -> {state.value}")
        self.state = state

    async def handle_message(self, user_text: str, sink: MessageSink) -> None:
        """Run one turn; every outcome is reported through ``sink``."""
        try:
            await self._run_turn(user_text, sink)
        except Exception as e:
            logger.error(f"Turn failed: {e}", exc_info=True)
            await sink.send(ChatEvent(type="error", content=str(e) or e.__class__.__name__))
        finally:
            self._transition(TurnState.IDLE)

    async def _run_turn(self, user_text: str, sink: MessageSink) -> None:
        self._transition(TurnState.THINKING)
        await sink.send(ChatEvent(type="thinking", content=""))

        response = await self.client.chat(user_text)
        sql = self.executor.extract_sql(response.content)

        if not sql:
            self._transition(TurnState.NO_SQL)
            await sink.send(ChatEvent(type="text", content=response.content))
            return

        self._transition(TurnState.HAS_SQL)
        remainder = strip_sql_blocks(response.content)
        if remainder:
            await sink.send(ChatEvent(type="text", content=remainder))
        await sink.send(ChatEvent(type="sql", content=sql))

        result = await self._gate_and_execute(sql, sink, TurnState.EXECUTING)
        if result is None:
            return

        if result.error:
            self._transition(TurnState.FAILED)
            await sink.send(
                ChatEvent(type="error", content=f"SQL error: {result.error}", data={"sql": sql})
            )
            if self.auto_correct:
                await self._correct(result, sink)
            return

        await self._report_success(result, sink)

    async def _gate_and_execute(
        self, sql: str, sink: MessageSink, executing_state: TurnState
    ) -> ExecutionResult | None:
        """Safety gate then execution. Returns None when the statement was not run."""
        self._transition(TurnState.SAFETY_GATE)
        if self.executor.is_destructive_query(sql):
            if self.executor.is_read_only():
                logger.info("Destructive statement refused in read-only mode")
                await sink.send(
                    ChatEvent(type="error", content=READ_ONLY_WARNING, data={"blocked": True})
                )
                return None
            if self.confirm_destructive is not None and not await self.confirm_destructive(sql):
                await sink.send(ChatEvent(type="text", content=CANCELLED_NOTICE))
                return None

        self._transition(executing_state)
        await sink.send(ChatEvent(type="executing", content=""))
        result = await self.executor.execute(sql)
        self.last_result = result
        return result

    async def _correct(self, failed: ExecutionResult, sink: MessageSink) -> None:
        """One correction round-trip; a second failure ends the turn."""
        self._transition(TurnState.CORRECTING)
        try:
            reply = await self.client.chat(correction_prompt(failed.error or ""))
        except Exception as e:
            logger.warning(f"Correction request failed: {e}")
            await sink.send(ChatEvent(type="error", content=f"Could not correct the query: {e}"))
            return

        fixed_sql = self.executor.extract_sql(reply.content)
        if not fixed_sql:
            await sink.send(ChatEvent(type="text", content=reply.content))
            return

        remainder = strip_sql_blocks(reply.content)
        if remainder:
            await sink.send(ChatEvent(type="text", content=remainder))
        await sink.send(ChatEvent(type="sql", content=fixed_sql))

        result = await self._gate_and_execute(fixed_sql, sink, TurnState.RE_EXECUTING)
        if result is None:
            return

        if result.error:
            self._transition(TurnState.FAILED)
            await sink.send(
                ChatEvent(
                    type="error",
                    content=f"Persistent SQL error: {result.error}",
                    data={"sql": fixed_sql},
                )
            )
            return

        await self._report_success(result, sink)

    async def _report_success(self, result: ExecutionResult, sink: MessageSink) -> None:
        self._transition(TurnState.SUCCESS)
        await sink.send(ChatEvent(type="result", data=self.result_payload(result)))

        if not result.rows:
            return

        self._transition(TurnState.SUMMARIZING)
        try:
            summary = await self.client.chat(summary_prompt(result, self.summary_max_rows))
        except Exception as e:
            logger.warning(f"Summary request failed, skipping: {e}")
            return
        await sink.send(ChatEvent(type="summary", content=summary.content))

    @staticmethod
    def result_payload(result: ExecutionResult) -> dict[str, Any]:
        return {
            "sql": result.sql,
            "rows": result.rows,
            "rowCount": result.row_count,
            "duration": result.duration_ms,
            "columns": result.column_names,
        }
