"""
Chat events and the message-sink interface.

Every output of a conversation turn is a ChatEvent pushed through a
MessageSink. The WebSocket endpoint, the terminal REPL and tests each
provide their own sink.
"""

from abc import ABC, abstractmethod
from typing import Any, Literal

from pydantic import BaseModel, Field

EventType = Literal["thinking", "text", "sql", "executing", "result", "summary", "error"]


class ChatEvent(BaseModel):
    """One message emitted during a turn."""

    type: EventType = Field(..., description="Event kind")
    content: str | None = Field(None, description="Human-readable text")
    data: dict[str, Any] | None = Field(None, description="Structured payload (result rows)")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class MessageSink(ABC):
    """Destination for turn events. Events must be delivered in emission order."""

    @abstractmethod
    async def send(self, event: ChatEvent) -> None:
        pass


class CollectingSink(MessageSink):
    """Keeps every event in memory; used by the HTTP chat route and tests."""

    def __init__(self) -> None:
        self.events: list[ChatEvent] = []

    async def send(self, event: ChatEvent) -> None:
        self.events.append(event)

    @property
    def types(self) -> list[str]:
        return [event.type for event in self.events]
