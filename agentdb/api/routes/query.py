"""
Query Routes

Direct SQL execution through the same safety gate the chat uses, the
read-only toggle and the executed-statement history.
"""

import logging

from fastapi import APIRouter, status

from agentdb.agents.executor import ExecutionResult, QueryHistoryEntry
from agentdb.api.models import ExecuteRequest, ReadOnlyRequest, ReadOnlyResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/query/execute", response_model=ExecutionResult)
async def execute_query(payload: ExecuteRequest) -> ExecutionResult:
    """
    Execute one statement.

    SQL failures and read-only refusals are reported in the ``error`` and
    ``blocked`` fields with status 200, as the chat does.
    """
    from agentdb.api.main import get_session

    return await get_session().executor.execute(payload.sql)


@router.get("/query/read-only", response_model=ReadOnlyResponse)
async def get_read_only() -> ReadOnlyResponse:
    from agentdb.api.main import get_session

    return ReadOnlyResponse(read_only=get_session().executor.is_read_only())


@router.post("/query/read-only", response_model=ReadOnlyResponse)
async def set_read_only(payload: ReadOnlyRequest) -> ReadOnlyResponse:
    from agentdb.api.main import get_session

    session = get_session()
    session.set_read_only_mode(payload.enabled)
    return ReadOnlyResponse(read_only=session.executor.is_read_only())


@router.get("/query/history", response_model=list[QueryHistoryEntry])
async def get_history() -> list[QueryHistoryEntry]:
    from agentdb.api.main import get_session

    return get_session().executor.get_query_history()


@router.delete("/query/history", status_code=status.HTTP_204_NO_CONTENT)
async def clear_history() -> None:
    from agentdb.api.main import get_session

    get_session().executor.clear_query_history()
