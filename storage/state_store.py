"""Durable key-value persistence of the workflow state."""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from loguru import logger
from pydantic import ValidationError

from config.settings import settings
from models.workflow import WorkflowState


class KeyValueStorage(Protocol):
    """The get/set/remove surface the orchestrator needs from a storage backend."""

    async def get(self, key: str) -> Optional[Any]: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def remove(self, key: str) -> None: ...


class MemoryStorage:
    """Process-local storage; values are JSON round-tripped like on disk."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage:
    """
    Storage backed by a single JSON object on disk.

    The whole file is rewritten on every ``set``; writes go through a
    temporary file and ``os.replace`` so a crash never leaves half a file.
    File access runs in a worker thread, one writer at a time.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self._path = Path(path or settings.state_file)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._write_lock = asyncio.Lock()

    def _read(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(f"Failed to read {self._path}: {exc}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, ensure_ascii=False)
        os.replace(tmp, self._path)

    def _set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def _remove(self, key: str) -> None:
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)

    async def get(self, key: str) -> Optional[Any]:
        data = await asyncio.to_thread(self._read)
        return data.get(key)

    async def set(self, key: str, value: Any) -> None:
        async with self._write_lock:
            await asyncio.to_thread(self._set, key, value)

    async def remove(self, key: str) -> None:
        async with self._write_lock:
            await asyncio.to_thread(self._remove, key)


class StateStore:
    """Saves and restores :class:`WorkflowState` under one fixed storage key."""

    def __init__(self, storage: Optional[KeyValueStorage] = None, key: Optional[str] = None) -> None:
        self._storage = storage or JsonFileStorage()
        self._key = key or settings.state_key

    async def load(self) -> Optional[WorkflowState]:
        """Return the persisted state, or None when nothing was ever saved."""
        raw = await self._storage.get(self._key)
        if raw is None:
            return None
        try:
            state = WorkflowState.model_validate(raw)
        except ValidationError as exc:
            logger.warning(f"Discarding unreadable persisted state: {exc}")
            return None
        logger.debug(f"Loaded state (status={state.status.value}, units={len(state.units)})")
        return state

    async def save(self, state: WorkflowState) -> None:
        await self._storage.set(self._key, state.model_dump(mode="json"))

    async def clear(self) -> None:
        await self._storage.remove(self._key)
        logger.debug("Persisted state cleared.")
