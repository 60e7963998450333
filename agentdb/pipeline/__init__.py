"""
Conversation pipeline.

Usage:
    from agentdb.pipeline import AgentSession, CollectingSink

    session = await AgentSession.open(url, auth, settings)
    sink = CollectingSink()
    await session.orchestrator.handle_message("How many orders today?", sink)
"""

from agentdb.pipeline.events import ChatEvent, CollectingSink, MessageSink
from agentdb.pipeline.orchestrator import ChatOrchestrator, TurnState
from agentdb.pipeline.session import AgentSession

__all__ = [
    "AgentSession",
    "ChatEvent",
    "ChatOrchestrator",
    "CollectingSink",
    "MessageSink",
    "TurnState",
]
