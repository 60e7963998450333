"""Connection routes."""

import logging

from fastapi import APIRouter, HTTPException, status

from agentdb import settings_store
from agentdb.api.models import ConnectionStatus, ConnectRequest
from agentdb.auth.tokens import load_auth
from agentdb.config import get_settings
from agentdb.connectors.base import ConnectionError as ConnectorConnectionError
from agentdb.connectors.factory import mask_url
from agentdb.pipeline.session import AgentSession

logger = logging.getLogger(__name__)

router = APIRouter()


def _status(session: AgentSession | None) -> ConnectionStatus:
    if session is None:
        return ConnectionStatus(connected=False)
    graph = session.graph
    return ConnectionStatus(
        connected=True,
        url=mask_url(session.database_url),
        database=graph.database_name if graph else None,
        version=graph.engine_version if graph else None,
        tables=graph.table_count if graph else 0,
        views=graph.view_count if graph else 0,
        read_only=session.executor.is_read_only(),
        provider=session.client.provider_name,
        model=session.client.get_model(),
    )


@router.post("/connections/connect", response_model=ConnectionStatus)
async def connect(payload: ConnectRequest) -> ConnectionStatus:
    """Open a new session, replacing the current one."""
    from agentdb.api.main import app_state

    auth = load_auth()
    try:
        session = await AgentSession.open(payload.url, auth, get_settings())
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ConnectorConnectionError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Failed to connect to database: {exc}",
        ) from exc

    previous = app_state["session"]
    app_state["session"] = session
    if previous is not None:
        await previous.close()

    if payload.name:
        settings_store.add_connection(payload.name, payload.url)

    return _status(session)


@router.get("/connections/status", response_model=ConnectionStatus)
async def connection_status() -> ConnectionStatus:
    from agentdb.api.main import app_state

    return _status(app_state["session"])
