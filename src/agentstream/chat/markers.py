"""Reserved system markers carried in message content.

A marker row looks like ``__NAME__`` optionally followed by a payload
(``__PDF_VALIDATED__{"title": "..."}``). Such rows are signals, never chat
bubbles.
"""

import json
import re
from typing import Any

from pydantic import BaseModel

_MARKER = re.compile(r"^__([A-Z][A-Z0-9_]*?)__(.*)$", re.DOTALL)


class SystemMarker(BaseModel):
    name: str
    payload: str = ""

    def payload_json(self) -> dict[str, Any]:
        """Decode the payload as a JSON object ({} when absent or invalid)."""
        if not self.payload:
            return {}
        try:
            data = json.loads(self.payload)
        except json.JSONDecodeError:
            return {}
        return data if isinstance(data, dict) else {}


def parse_marker(content: str | None) -> SystemMarker | None:
    if not content:
        return None
    match = _MARKER.match(content.strip())
    if match is None:
        return None
    return SystemMarker(name=match.group(1), payload=match.group(2).strip())


def is_marker(content: str | None) -> bool:
    return parse_marker(content) is not None
