from __future__ import annotations

from typing import Any, Mapping, Protocol


class Emitter(Protocol):
    def emit(self, tag: str, timestamp: int, record: Mapping[str, Any]) -> None: ...
