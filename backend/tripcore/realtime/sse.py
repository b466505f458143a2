"""
Server-sent events framing.
"""
import json
from typing import Any, Dict, Optional


def format_sse(event: str, data: Dict[str, Any], event_id: Optional[str] = None) -> str:
    """Format one SSE frame: optional ``id``, ``event`` and a single JSON ``data`` line."""
    lines = []
    if event_id:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {event}")
    lines.append("data: " + json.dumps(data, separators=(",", ":"), default=str))
    return "\n".join(lines) + "\n\n"


class SseMessage:
    """A parsed SSE frame."""

    def __init__(self, event: str = "message", data: str = "", id: Optional[str] = None):
        self.event = event
        self.data = data
        self.id = id

    def json(self) -> Dict[str, Any]:
        return json.loads(self.data) if self.data else {}

    def __repr__(self):
        return f"SseMessage(event={self.event!r}, id={self.id!r}, data={self.data!r})"


class SseParser:
    """
    Incremental SSE parser. Feed it one line at a time (without the newline);
    it returns a message when a blank line completes a frame.
    """

    def __init__(self):
        self._reset()

    def _reset(self):
        self._event = None
        self._data = []
        self._id = None

    def feed(self, line: str) -> Optional[SseMessage]:
        line = line.rstrip("\r")
        if not line:
            if not self._data and self._event is None:
                return None
            message = SseMessage(self._event or "message", "\n".join(self._data), self._id)
            self._reset()
            return message
        if line.startswith(":"):
            return None  # comment

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            self._event = value
        elif field == "data":
            self._data.append(value)
        elif field == "id":
            self._id = value
        return None
