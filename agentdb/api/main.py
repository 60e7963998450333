"""
FastAPI Application

HTTP and WebSocket surface for AgentDB with:
- Lifespan management for the current database session
- CORS middleware for a browser client
- Global exception handlers for connector and model errors
- Connection, schema, query and chat endpoints

Usage:
    uvicorn agentdb.api.main:app --reload --port 3001
"""

import asyncio
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agentdb import __version__, settings_store
from agentdb.api import websocket
from agentdb.api.routes import connections, query, schema
from agentdb.auth.base import AuthError
from agentdb.auth.tokens import load_auth
from agentdb.config import get_settings
from agentdb.connectors.base import ConnectionError as ConnectorConnectionError
from agentdb.connectors.base import QueryError
from agentdb.llm.base import LLMError
from agentdb.pipeline.session import AgentSession

logger = logging.getLogger(__name__)

# Global state for the current session
app_state = {
    "session": None,
    "turn_lock": asyncio.Lock(),
}


def _startup_database_url() -> str | None:
    config = get_settings()
    if config.database.url:
        return config.database.url
    default = settings_store.get_default_connection()
    return default["url"] if default else None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Lifespan context manager for startup and shutdown.

    Opens a session for DATABASE_URL (or the stored default connection)
    when both a database and a model credential are available. Otherwise
    the server starts disconnected and waits for /api/connections/connect.
    """
    config = get_settings()
    config.logging.configure()
    logger.info(f"Starting {config.app_name} API server...")

    try:
        database_url = _startup_database_url()
        if database_url:
            try:
                app_state["session"] = await AgentSession.open(database_url, load_auth(), config)
            except (AuthError, ConnectorConnectionError) as e:
                logger.warning(f"Startup connection skipped: {e}")
                app_state["session"] = None
        else:
            logger.warning("No database configured; waiting for a connect request.")

        logger.info(f"{config.app_name} API server started successfully")

        yield  # Application runs here

    finally:
        logger.info(f"Shutting down {config.app_name} API server...")
        if app_state["session"]:
            try:
                await app_state["session"].close()
                logger.info("Database session closed")
            except Exception as e:
                logger.error(f"Error closing session: {e}")
            app_state["session"] = None


# Create FastAPI app
app = FastAPI(
    title="AgentDB API",
    description="Conversational SQL agent for PostgreSQL",
    version=__version__,
    lifespan=lifespan,
)

cors_origins_env = os.getenv("CORS_ORIGINS", "")
cors_origins = (
    [origin.strip() for origin in cors_origins_env.split(",") if origin.strip()]
    if cors_origins_env
    else ["http://localhost:3000", "http://localhost:5173"]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(ConnectorConnectionError)
async def connection_error_handler(request: Request, exc: ConnectorConnectionError) -> JSONResponse:
    """Handle database connection errors."""
    logger.error(f"Database connection error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": "connection_error", "message": str(exc)},
    )


@app.exception_handler(QueryError)
async def query_error_handler(request: Request, exc: QueryError) -> JSONResponse:
    """Handle query execution errors."""
    logger.error(f"Query execution error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "query_error", "message": str(exc)},
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Handle missing or unusable model credentials."""
    logger.warning(f"Auth error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"error": "auth_error", "message": str(exc)},
    )


@app.exception_handler(LLMError)
async def llm_error_handler(request: Request, exc: LLMError) -> JSONResponse:
    """Handle model provider failures."""
    logger.error(f"Model error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"error": "model_error", "message": str(exc)},
    )


# Include routers
app.include_router(connections.router, prefix="/api", tags=["connections"])
app.include_router(schema.router, prefix="/api", tags=["schema"])
app.include_router(query.router, prefix="/api", tags=["query"])
app.include_router(websocket.router, tags=["websocket"])


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "name": "AgentDB API",
        "version": __version__,
        "description": "Conversational SQL agent for PostgreSQL",
        "docs": "/docs",
    }


def get_session() -> AgentSession:
    """Get the current session or fail with 409."""
    session = app_state["session"]
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="No database connected. POST /api/connections/connect first.",
        )
    return session
