from __future__ import annotations

import json
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator


@dataclass
class ImportSummary:
    total: int
    imported: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": True, "imported": self.imported}
        if self.errors:
            body["errors"] = list(self.errors)
        return body


class ProgressSink:
    """Receives per-row outcomes of an import run. The base class discards them."""

    def progress(self, current: int, total: int, imported: int, errors: int) -> None:
        pass

    def error(self, message: str, row: int) -> None:
        pass

    def complete(self, summary: ImportSummary) -> None:
        pass


class EventBuffer(ProgressSink):
    """Queues progress events until the streaming response drains them."""

    def __init__(self) -> None:
        self._events: deque[dict[str, Any]] = deque()

    def progress(self, current: int, total: int, imported: int, errors: int) -> None:
        self._events.append(
            {"type": "progress", "current": current, "total": total, "imported": imported, "errors": errors}
        )

    def error(self, message: str, row: int) -> None:
        self._events.append({"type": "error", "error": message, "row": row})

    def complete(self, summary: ImportSummary) -> None:
        self._events.append(
            {"type": "complete", "imported": summary.imported, "errors": list(summary.errors), "total": summary.total}
        )

    def drain(self) -> Iterator[dict[str, Any]]:
        while self._events:
            yield self._events.popleft()


def format_sse(event: dict[str, Any]) -> str:
    return f"data: {json.dumps(event)}\n\n"


def stream_events(outcomes: Iterable[Any], buffer: EventBuffer) -> Iterator[str]:
    """Yield SSE frames as each row finishes, then the terminal event."""
    for _ in outcomes:
        for event in buffer.drain():
            yield format_sse(event)
    for event in buffer.drain():
        yield format_sse(event)
