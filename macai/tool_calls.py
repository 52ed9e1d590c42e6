import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional


@dataclass
class ToolCallFragment:
    index: int
    id: Optional[str] = None
    name_delta: Optional[str] = None
    arguments_delta: Optional[str] = None

    @classmethod
    def from_delta(cls, raw: Dict[str, Any]) -> "ToolCallFragment":
        """Build a fragment from one entry of a streamed `delta.tool_calls` list."""
        function = raw.get("function") or {}
        return cls(
            index=int(raw.get("index") or 0),
            id=raw.get("id") or None,
            name_delta=function.get("name"),
            arguments_delta=function.get("arguments"),
        )


@dataclass
class ToolCallRecord:
    id: str = ""
    name: str = ""
    arguments: str = ""

    def to_message_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


class ToolCallAccumulator:
    """Reassembles streamed tool calls, keyed by their position index."""

    def __init__(self) -> None:
        self._pending: Dict[int, ToolCallRecord] = {}

    def __bool__(self) -> bool:
        return bool(self._pending)

    def feed(self, fragment: ToolCallFragment) -> None:
        record = self._pending.setdefault(fragment.index, ToolCallRecord())
        if fragment.id and not record.id:
            record.id = fragment.id
        if fragment.name_delta:
            record.name += fragment.name_delta
        if fragment.arguments_delta:
            record.arguments += fragment.arguments_delta

    def feed_delta(self, raw_fragments: Iterable[Dict[str, Any]]) -> None:
        for raw in raw_fragments:
            if isinstance(raw, dict):
                self.feed(ToolCallFragment.from_delta(raw))

    def records(self) -> List[ToolCallRecord]:
        return [self._pending[index] for index in sorted(self._pending)]


def parse_arguments(record: ToolCallRecord) -> Dict[str, Any]:
    try:
        parsed = json.loads(record.arguments) if record.arguments else {}
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}
