from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..types import Strategy, StrategyPayload

logger = logging.getLogger(__name__)


def cache_key(action: str, url: str, description: str) -> str:
    """``<action>::<origin><path>::<description>``; query and fragment are ignored."""

    parts = urlsplit(url)
    if parts.scheme and parts.netloc:
        location = f"{parts.scheme}://{parts.netloc}{parts.path}"
    else:
        location = parts.path or url
    return f"{action}::{location}::{description}"


class CacheEntry(BaseModel):
    """A healed strategy as stored in the cache file."""

    type: str
    value: str | None = None
    selector: str | None = None
    role: str | None = None
    name: str | None = None
    text: str | None = None
    exact: bool | None = None
    context: str = ""
    test_name: str | None = Field(default=None, alias="testName")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @classmethod
    def from_strategy(cls, strategy: Strategy, description: str, test_name: str | None = None) -> "CacheEntry":
        return cls(**strategy.to_payload(), context=description, test_name=test_name)

    def to_strategy(self) -> Strategy:
        """Rebuild the strict strategy; hand-edited or outdated entries raise ``StrategyValidationError``."""

        payload = StrategyPayload.model_validate(
            self.model_dump(include={"type", "value", "selector", "role", "name", "text", "exact"}, exclude_none=True)
        )
        return payload.to_strategy()

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class CacheManager:
    """Two-tier strategy cache: an in-memory map in front of a JSON file.

    The file is loaded lazily on the first lookup. Every write re-reads the
    file, merges the new entry and atomically replaces the file, so entries
    written by other processes survive unless they race on the same key.
    """

    def __init__(self, cache_file: Path | str) -> None:
        self.cache_file = Path(cache_file)
        self._memory: dict[str, CacheEntry] = {}
        self._disk: dict[str, CacheEntry] | None = None

    async def get(self, key: str) -> CacheEntry | None:
        entry = self._memory.get(key)
        if entry is not None:
            return entry
        if self._disk is None:
            self._disk = await asyncio.to_thread(self._read_file)
        entry = self._disk.get(key)
        if entry is not None:
            self._memory[key] = entry
        return entry

    async def put(
        self,
        key: str,
        strategy: Strategy,
        description: str,
        test_name: str | None = None,
    ) -> CacheEntry:
        entry = CacheEntry.from_strategy(strategy, description, test_name)
        self._memory[key] = entry
        try:
            self._disk = await asyncio.to_thread(self._merge_and_write, key, entry)
        except OSError as exc:
            logger.warning("Could not persist healed locator to %s: %s", self.cache_file, exc)
        return entry

    def _read_file(self) -> dict[str, CacheEntry]:
        try:
            raw = self.cache_file.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError as exc:
            logger.warning("Could not read locator cache %s: %s", self.cache_file, exc)
            return {}

        try:
            data = orjson.loads(raw) if raw.strip() else {}
        except orjson.JSONDecodeError as exc:
            logger.warning("Ignoring corrupt locator cache %s: %s", self.cache_file, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring locator cache %s: expected a JSON object", self.cache_file)
            return {}

        entries: dict[str, CacheEntry] = {}
        for key, value in data.items():
            try:
                entries[key] = CacheEntry.model_validate(value)
            except ValidationError:
                logger.warning("Skipping malformed cache entry %r", key)
        return entries

    def _merge_and_write(self, key: str, entry: CacheEntry) -> dict[str, CacheEntry]:
        entries = self._read_file()
        entries[key] = entry
        payload = {name: item.to_wire() for name, item in entries.items()}

        self.cache_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.cache_file.with_name(self.cache_file.name + ".tmp")
        tmp_path.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))
        os.replace(tmp_path, self.cache_file)
        return entries
