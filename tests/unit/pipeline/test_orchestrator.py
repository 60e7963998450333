"""
Tests for ChatOrchestrator.

The chat client is mocked; the executor is real and runs over a mocked
connector, so the safety gate and history behave as in production.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from agentdb.agents.executor import ExecutionResult, QueryExecutor
from agentdb.connectors.base import QueryError, QueryResult
from agentdb.llm.base import RateLimitError, TransientServiceError
from agentdb.llm.models import ChatResponse
from agentdb.pipeline.events import CollectingSink
from agentdb.pipeline.orchestrator import (
    CANCELLED_NOTICE,
    READ_ONLY_WARNING,
    ChatOrchestrator,
    TurnState,
    correction_prompt,
    summary_prompt,
)


def reply(content: str) -> ChatResponse:
    return ChatResponse(content=content, model="m", provider="openai")


def make_client(*answers):
    """Chat client whose successive chat() calls return/raise ``answers``."""
    client = MagicMock()
    client.chat = AsyncMock(
        side_effect=[a if isinstance(a, Exception) else reply(a) for a in answers]
    )
    return client


ROWS = [{"id": 1, "email": "a@example.com"}, {"id": 2, "email": "b@example.com"}]


@pytest.fixture
def executor(mock_postgres_connector):
    mock_postgres_connector.execute_read_only.return_value = QueryResult(
        rows=ROWS, row_count=2, columns=["id", "email"], execution_time_ms=3.5
    )
    return QueryExecutor(mock_postgres_connector)


class TestPlainAnswers:
    """Turns where the model answers without SQL."""

    @pytest.mark.asyncio
    async def test_text_only(self, executor, mock_postgres_connector):
        client = make_client("There are six tables.")
        sink = CollectingSink()

        await ChatOrchestrator(client, executor).handle_message("how many tables?", sink)

        assert sink.types == ["thinking", "text"]
        assert sink.events[1].content == "There are six tables."
        mock_postgres_connector.execute_read_only.assert_not_called()

    @pytest.mark.asyncio
    async def test_chat_failure_is_single_error(self, executor):
        client = make_client(TransientServiceError("HTTP 500: upstream"))
        sink = CollectingSink()
        orchestrator = ChatOrchestrator(client, executor)

        await orchestrator.handle_message("hi", sink)

        assert sink.types == ["thinking", "error"]
        assert sink.events[1].content == "HTTP 500: upstream"
        assert orchestrator.state is TurnState.IDLE


class TestSuccessfulQuery:
    """Turns where the SQL runs on the first attempt."""

    @pytest.mark.asyncio
    async def test_full_event_sequence(self, executor):
        client = make_client(
            "Here you go:\n```sql\nSELECT id, email FROM customers;\n```",
            "Two customers.",
        )
        sink = CollectingSink()
        orchestrator = ChatOrchestrator(client, executor)

        await orchestrator.handle_message("list customers", sink)

        assert sink.types == ["thinking", "text", "sql", "executing", "result", "summary"]
        assert sink.events[1].content == "Here you go:"
        assert sink.events[2].content == "SELECT id, email FROM customers;"
        assert sink.events[5].content == "Two customers."

        data = sink.events[4].data
        assert data["rows"] == ROWS
        assert data["rowCount"] == 2
        assert data["duration"] == 3.5
        assert data["columns"] == ["id", "email"]
        assert orchestrator.last_result.row_count == 2
        assert orchestrator.state is TurnState.IDLE

    @pytest.mark.asyncio
    async def test_bare_sql_answer_has_no_text_event(self, executor):
        client = make_client("```sql\nSELECT 1;\n```", "One.")
        sink = CollectingSink()

        await ChatOrchestrator(client, executor).handle_message("q", sink)

        assert sink.types == ["thinking", "sql", "executing", "result", "summary"]

    @pytest.mark.asyncio
    async def test_empty_result_skips_summary(self, executor, mock_postgres_connector):
        mock_postgres_connector.execute_read_only.return_value = QueryResult(
            rows=[], row_count=0, execution_time_ms=1.0
        )
        client = make_client("```sql\nSELECT * FROM orders WHERE false;\n```")
        sink = CollectingSink()

        await ChatOrchestrator(client, executor).handle_message("q", sink)

        assert sink.types == ["thinking", "sql", "executing", "result"]
        assert client.chat.await_count == 1

    @pytest.mark.asyncio
    async def test_summary_prompt_sent_to_model(self, executor):
        client = make_client("```sql\nSELECT 1;\n```", "ok")

        await ChatOrchestrator(client, executor).handle_message("q", CollectingSink())

        prompt = client.chat.await_args_list[1].args[0]
        assert prompt.startswith("Query result (2 rows, 3.5ms):\n")
        assert json.loads(prompt.split("\n", 1)[1]) == ROWS

    @pytest.mark.asyncio
    async def test_summary_failure_is_skipped(self, executor):
        client = make_client("```sql\nSELECT 1;\n```", TransientServiceError("overloaded"))
        sink = CollectingSink()

        await ChatOrchestrator(client, executor).handle_message("q", sink)

        assert sink.types == ["thinking", "sql", "executing", "result"]


class TestSafetyGate:
    """Destructive statements in read-only and write mode."""

    @pytest.mark.asyncio
    async def test_blocked_in_read_only_mode(self, executor, mock_postgres_connector):
        client = make_client("```sql\nDELETE FROM orders;\n```")
        sink = CollectingSink()

        await ChatOrchestrator(client, executor).handle_message("delete everything", sink)

        assert sink.types == ["thinking", "sql", "error"]
        assert sink.events[2].content == READ_ONLY_WARNING
        assert sink.events[2].data == {"blocked": True}
        mock_postgres_connector.execute.assert_not_called()
        mock_postgres_connector.execute_read_only.assert_not_called()
        assert executor.get_query_history() == []

    @pytest.mark.asyncio
    async def test_write_mode_confirm_declined(self, executor, mock_postgres_connector):
        executor.set_read_only_mode(False)
        confirm = AsyncMock(return_value=False)
        client = make_client("```sql\nDROP TABLE audit.events;\n```")
        sink = CollectingSink()

        orchestrator = ChatOrchestrator(client, executor, confirm_destructive=confirm)
        await orchestrator.handle_message("drop it", sink)

        confirm.assert_awaited_once_with("DROP TABLE audit.events;")
        assert sink.types == ["thinking", "sql", "text"]
        assert sink.events[2].content == CANCELLED_NOTICE
        mock_postgres_connector.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_write_mode_confirmed(self, executor, mock_postgres_connector):
        executor.set_read_only_mode(False)
        mock_postgres_connector.execute.return_value = QueryResult(
            rows=[], row_count=3, execution_time_ms=2.0
        )
        confirm = AsyncMock(return_value=True)
        client = make_client("```sql\nUPDATE orders SET total = 0;\n```")
        sink = CollectingSink()

        orchestrator = ChatOrchestrator(client, executor, confirm_destructive=confirm)
        await orchestrator.handle_message("zero totals", sink)

        assert sink.types == ["thinking", "sql", "executing", "result"]
        assert sink.events[3].data["rowCount"] == 3
        mock_postgres_connector.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_write_mode_without_callback_runs(self, executor, mock_postgres_connector):
        executor.set_read_only_mode(False)
        mock_postgres_connector.execute.return_value = QueryResult(
            rows=[], row_count=1, execution_time_ms=1.0
        )
        client = make_client("```sql\nINSERT INTO products (id) VALUES (9);\n```")
        sink = CollectingSink()

        await ChatOrchestrator(client, executor).handle_message("add", sink)

        assert sink.types[-1] == "result"


class TestCorrection:
    """The single automatic correction round-trip."""

    @pytest.mark.asyncio
    async def test_fixed_on_second_attempt(self, executor, mock_postgres_connector):
        mock_postgres_connector.execute_read_only.side_effect = [
            QueryError('column "emial" does not exist'),
            QueryResult(rows=ROWS, row_count=2, execution_time_ms=1.0),
        ]
        client = make_client(
            "```sql\nSELECT emial FROM customers;\n```",
            "Typo, sorry:\n```sql\nSELECT email FROM customers;\n```",
            "Two emails.",
        )
        sink = CollectingSink()

        await ChatOrchestrator(client, executor).handle_message("emails?", sink)

        assert sink.types == [
            "thinking", "sql", "executing", "error",
            "text", "sql", "executing", "result", "summary",
        ]
        assert sink.events[3].content == 'SQL error: column "emial" does not exist'
        assert sink.events[3].data == {"sql": "SELECT emial FROM customers;"}
        assert client.chat.await_args_list[1].args[0] == correction_prompt(
            'column "emial" does not exist'
        )
        assert len(executor.get_query_history()) == 2

    @pytest.mark.asyncio
    async def test_persistent_error_stops(self, executor, mock_postgres_connector):
        mock_postgres_connector.execute_read_only.side_effect = [
            QueryError("relation \"x\" does not exist"),
            QueryError("relation \"y\" does not exist"),
        ]
        client = make_client("```sql\nSELECT * FROM x;\n```", "```sql\nSELECT * FROM y;\n```")
        sink = CollectingSink()

        await ChatOrchestrator(client, executor).handle_message("q", sink)

        assert sink.types == ["thinking", "sql", "executing", "error", "sql", "executing", "error"]
        assert sink.events[-1].content == 'Persistent SQL error: relation "y" does not exist'
        assert client.chat.await_count == 2

    @pytest.mark.asyncio
    async def test_correction_without_sql(self, executor, mock_postgres_connector):
        mock_postgres_connector.execute_read_only.side_effect = QueryError("boom")
        client = make_client("```sql\nSELECT 1;\n```", "I cannot fix this without more detail.")
        sink = CollectingSink()

        await ChatOrchestrator(client, executor).handle_message("q", sink)

        assert sink.types == ["thinking", "sql", "executing", "error", "text"]
        assert sink.events[-1].content == "I cannot fix this without more detail."

    @pytest.mark.asyncio
    async def test_correction_request_fails(self, executor, mock_postgres_connector):
        mock_postgres_connector.execute_read_only.side_effect = QueryError("boom")
        client = make_client("```sql\nSELECT 1;\n```", RateLimitError("rate limited"))
        sink = CollectingSink()

        await ChatOrchestrator(client, executor).handle_message("q", sink)

        assert sink.types == ["thinking", "sql", "executing", "error", "error"]
        assert sink.events[-1].content == "Could not correct the query: rate limited"

    @pytest.mark.asyncio
    async def test_corrected_statement_is_gated(self, executor, mock_postgres_connector):
        mock_postgres_connector.execute_read_only.side_effect = QueryError("boom")
        client = make_client("```sql\nSELECT 1;\n```", "```sql\nDROP TABLE orders;\n```")
        sink = CollectingSink()

        await ChatOrchestrator(client, executor).handle_message("q", sink)

        assert sink.types[-1] == "error"
        assert sink.events[-1].data == {"blocked": True}
        mock_postgres_connector.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_auto_correct_disabled(self, executor, mock_postgres_connector):
        mock_postgres_connector.execute_read_only.side_effect = QueryError("boom")
        client = make_client("```sql\nSELECT 1;\n```")
        sink = CollectingSink()

        orchestrator = ChatOrchestrator(client, executor, auto_correct=False)
        await orchestrator.handle_message("q", sink)

        assert sink.types == ["thinking", "sql", "executing", "error"]
        assert client.chat.await_count == 1


class TestPrompts:
    def test_correction_prompt(self):
        assert correction_prompt("bad") == "The query returned an error:\nbad\n\nPlease fix the query."

    def test_summary_prompt_truncates_rows(self):
        result = ExecutionResult(
            sql="SELECT n",
            rows=[{"n": i} for i in range(50)],
            row_count=50,
            duration_ms=7.0,
        )

        prompt = summary_prompt(result, 20)

        header, body = prompt.split("\n", 1)
        assert header == "Query result (50 rows, 7.0ms):"
        assert len(json.loads(body)) == 20

    def test_result_payload_infers_columns(self):
        result = ExecutionResult(sql="SELECT 1", rows=[{"a": 1, "b": 2}], row_count=1)

        payload = ChatOrchestrator.result_payload(result)

        assert payload == {
            "sql": "SELECT 1",
            "rows": [{"a": 1, "b": 2}],
            "rowCount": 1,
            "duration": 0.0,
            "columns": ["a", "b"],
        }
