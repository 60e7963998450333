"""
Incremental server-sent-events decoder.

Network reads do not respect line boundaries, and a multi-byte UTF-8
character can be split between two reads. The decoder keeps both the
undecoded byte tail and the partial text line between feeds, and only
acts on complete lines.
"""

import codecs
import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


class SSEDecoder:
    """
    Turns raw stream chunks into parsed ``data:`` payloads.

    Usage:
        decoder = SSEDecoder()
        async for chunk in response.aiter_bytes():
            for event in decoder.feed(chunk):
                handle(event)
        for event in decoder.flush():
            handle(event)
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.raw = ""

    def feed(self, chunk: bytes) -> list[dict[str, Any]]:
        """Consume one network chunk and return events for the complete lines."""
        text = self._decoder.decode(chunk)
        self.raw += text
        self._buffer += text

        events = []
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            event = self._parse_line(line)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> list[dict[str, Any]]:
        """Process whatever is left once the stream has ended."""
        tail = self._decoder.decode(b"", final=True)
        self.raw += tail
        self._buffer += tail
        line, self._buffer = self._buffer, ""
        event = self._parse_line(line)
        return [event] if event is not None else []

    @staticmethod
    def _parse_line(line: str) -> dict[str, Any] | None:
        line = line.rstrip()
        if not line.startswith("data:"):
            return None
        payload = line[5:].strip()
        if not payload or payload == DONE_SENTINEL:
            return None
        try:
            event = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed SSE line", extra={"line": payload[:200]})
            return None
        return event if isinstance(event, dict) else None
