"""
WebSocket Routes

Chat endpoint streaming turn events to the browser.
"""

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder

from agentdb.pipeline.events import ChatEvent, MessageSink

logger = logging.getLogger(__name__)

router = APIRouter()


class WebSocketSink(MessageSink):
    """Sends each event as one JSON frame, in emission order."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def send(self, event: ChatEvent) -> None:
        try:
            await self.websocket.send_json(jsonable_encoder(event.to_wire()))
        except WebSocketDisconnect:
            raise
        except Exception as e:
            logger.warning(f"Failed to send {event.type} event: {e}")


@router.websocket("/ws/chat")
async def websocket_chat(websocket: WebSocket) -> None:
    """
    WebSocket endpoint for conversational turns.

    The connection stays open for any number of turns; turns are handled
    one at a time.

    Message Format:
        Client -> Server:
        {"message": "Which customers ordered last week?"}

        Server -> Client (one frame per event):
        {"type": "thinking", "content": ""}
        {"type": "text", "content": "Here are the customers..."}
        {"type": "sql", "content": "SELECT ..."}
        {"type": "executing", "content": ""}
        {"type": "result", "data": {"rows": [...], "rowCount": 3, "duration": 4.2, "columns": [...]}}
        {"type": "summary", "content": "Three customers ordered..."}
        {"type": "error", "content": "SQL error: ..."}
    """
    from agentdb.api.main import app_state

    await websocket.accept()
    logger.info("WebSocket connection established")
    sink = WebSocketSink(websocket)

    try:
        while True:
            data = await websocket.receive_json()
            message = data.get("message") if isinstance(data, dict) else None
            if not isinstance(message, str) or not message.strip():
                await sink.send(
                    ChatEvent(type="error", content="Missing required field: message")
                )
                continue

            session = app_state.get("session")
            if session is None:
                await sink.send(
                    ChatEvent(
                        type="error",
                        content="No database connected. POST /api/connections/connect first.",
                    )
                )
                continue

            logger.info(f"Received chat message: {message[:100]}")
            async with app_state["turn_lock"]:
                await session.orchestrator.handle_message(message, sink)

    except WebSocketDisconnect:
        logger.info("WebSocket client disconnected")
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON received: {e}")
        await sink.send(ChatEvent(type="error", content="Invalid JSON format"))
        await websocket.close(code=status.WS_1003_UNSUPPORTED_DATA)
