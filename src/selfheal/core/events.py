from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import orjson

from ..types import HealEvent

logger = logging.getLogger(__name__)


class EventLog:
    """Append-only JSON lines file recording every cache and AI resolution."""

    def __init__(self, report_file: Path | str) -> None:
        self.report_file = Path(report_file)

    async def append(self, event: HealEvent) -> None:
        line = orjson.dumps(event.to_wire()) + b"\n"
        try:
            await asyncio.to_thread(self._write, line)
        except OSError as exc:
            logger.warning("Could not append heal event to %s: %s", self.report_file, exc)

    def _write(self, line: bytes) -> None:
        self.report_file.parent.mkdir(parents=True, exist_ok=True)
        with self.report_file.open("ab") as handle:
            handle.write(line)
