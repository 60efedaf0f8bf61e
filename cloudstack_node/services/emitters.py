"""Downstream sinks for collected records."""
from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Mapping, TextIO

logger = logging.getLogger(__name__)


class JsonLinesEmitter:
    """Writes one ``{"tag", "time", "record"}`` JSON object per line.

    With ``path`` set each emit appends to that file; otherwise lines go to
    ``stream`` (stdout by default).
    """

    def __init__(self, path: str | None = None, stream: TextIO | None = None) -> None:
        self.path = Path(path) if path else None
        self.stream = stream
        if self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)

    def emit(self, tag: str, timestamp: int, record: Mapping[str, Any]) -> None:
        line = json.dumps(
            {"tag": tag, "time": int(timestamp), "record": dict(record)},
            default=str,
            sort_keys=True,
        )
        if self.path is not None:
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
            return

        stream = self.stream or sys.stdout
        stream.write(line + "\n")
        stream.flush()


class LoggingEmitter:
    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    def emit(self, tag: str, timestamp: int, record: Mapping[str, Any]) -> None:
        logger.log(self.level, "%s %d %s", tag, int(timestamp), json.dumps(dict(record), default=str, sort_keys=True))
