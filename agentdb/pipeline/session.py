"""
Agent Session

Owns every collaborator of one database conversation: the connector, the
schema engine, the query executor, the model client and the orchestrator.
Reconnecting builds a fresh session instead of mutating this one.

Usage:
    session = await AgentSession.open(url, load_auth(), get_settings())
    await session.orchestrator.handle_message("Top 5 customers?", sink)
    await session.close()
"""

import logging

import httpx

from agentdb.agents.context import ContextBuilder
from agentdb.agents.executor import QueryExecutor
from agentdb.auth.base import AuthProvider
from agentdb.config import Settings
from agentdb.connectors.base import BaseConnector
from agentdb.connectors.factory import create_connector, mask_url
from agentdb.llm.base import BaseChatClient
from agentdb.llm.factory import create_chat_client
from agentdb.pipeline.orchestrator import ChatOrchestrator, ConfirmCallback
from agentdb.schema.engine import SchemaEngine
from agentdb.schema.models import SchemaGraph

logger = logging.getLogger(__name__)


class AgentSession:
    """Connected database plus the chat pipeline built around it."""

    def __init__(
        self,
        database_url: str,
        connector: BaseConnector,
        schema_engine: SchemaEngine,
        executor: QueryExecutor,
        client: BaseChatClient,
        orchestrator: ChatOrchestrator,
        context_builder: ContextBuilder,
    ):
        self.database_url = database_url
        self.connector = connector
        self.schema_engine = schema_engine
        self.executor = executor
        self.client = client
        self.orchestrator = orchestrator
        self.context_builder = context_builder

    @classmethod
    async def open(
        cls,
        database_url: str,
        auth: AuthProvider,
        settings: Settings,
        confirm_destructive: ConfirmCallback | None = None,
        http_client: httpx.AsyncClient | None = None,
        connector: BaseConnector | None = None,
    ) -> "AgentSession":
        """
        Connect, map the schema and prime the model with the system prompt.

        Raises:
            ConnectionError: If the database cannot be reached or mapped
        """
        connector = connector or create_connector(
            database_url=database_url,
            pool_size=settings.database.pool_size,
            timeout=settings.database.timeout,
            connect_timeout=settings.database.connect_timeout,
        )
        await connector.connect()

        try:
            schema_engine = SchemaEngine(connector)
            await schema_engine.map_database()
        except Exception:
            await connector.close()
            raise

        executor = QueryExecutor(
            connector,
            read_only=settings.agent.read_only,
            history_size=settings.agent.query_history_size,
        )
        client = create_chat_client(auth, settings.llm, http_client=http_client)
        context_builder = ContextBuilder(
            schema_engine, response_language=settings.agent.response_language
        )
        orchestrator = ChatOrchestrator(
            client,
            executor,
            summary_max_rows=settings.agent.summary_max_rows,
            auto_correct=settings.agent.auto_correct,
            confirm_destructive=confirm_destructive,
        )

        session = cls(
            database_url=database_url,
            connector=connector,
            schema_engine=schema_engine,
            executor=executor,
            client=client,
            orchestrator=orchestrator,
            context_builder=context_builder,
        )
        session.prime()
        logger.info(f"Session opened for {mask_url(database_url)}")
        return session

    @property
    def graph(self) -> SchemaGraph | None:
        return self.schema_engine.get_graph()

    def prime(self) -> None:
        """Install a fresh system prompt for the current schema and mode."""
        prompt = self.context_builder.build_system_prompt(read_only=self.executor.is_read_only())
        self.client.set_system_prompt(prompt)

    def set_read_only_mode(self, enabled: bool) -> None:
        self.executor.set_read_only_mode(enabled)
        self.prime()

    async def remap(self) -> SchemaGraph:
        graph = await self.schema_engine.map_database()
        self.prime()
        return graph

    async def close(self) -> None:
        await self.connector.close()
        logger.info(f"Session closed for {mask_url(self.database_url)}")
