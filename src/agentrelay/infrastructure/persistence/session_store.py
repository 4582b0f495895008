"""Session store adapters implementing SessionStoreProtocol.

Directory layout::

    <work_dir>/sessions/
        <config_id>.json   - {"sessions": {<session_key>: <record>, ...}}

All writes of a config go through one ``asyncio.Lock`` and an atomic
temp-file replace, which makes ``upsert`` an atomic insert-or-update on
the session key within the process. A document that cannot be read
reads as empty, but write paths raise ``SessionStoreError`` instead of
overwriting it.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any

import aiofiles
import structlog

from agentrelay.core.domain.channels import PersistedSession
from agentrelay.core.domain.errors import SessionStoreError


def _record_to_dict(record: PersistedSession) -> dict[str, Any]:
    return {
        "id": record.id,
        "config_id": record.config_id,
        "session_key": record.session_key,
        "backend_session_id": record.backend_session_id,
        "created_at": record.created_at.isoformat(),
        "last_used_at": record.last_used_at.isoformat(),
    }


def _record_from_dict(payload: dict[str, Any]) -> PersistedSession:
    return PersistedSession(
        id=payload["id"],
        config_id=payload["config_id"],
        session_key=payload["session_key"],
        backend_session_id=payload["backend_session_id"],
        created_at=datetime.fromisoformat(payload["created_at"]),
        last_used_at=datetime.fromisoformat(payload["last_used_at"]),
    )


def _merge(existing: PersistedSession | None, record: PersistedSession) -> PersistedSession:
    if existing is None:
        return record
    return replace(
        existing,
        backend_session_id=record.backend_session_id,
        last_used_at=record.last_used_at,
    )


class FileSessionStore:
    """File-based persisted session store, one JSON document per config."""

    def __init__(self, work_dir: str = ".agentrelay") -> None:
        self._base_dir = Path(work_dir) / "sessions"
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._locks: dict[str, asyncio.Lock] = {}
        self._logger = structlog.get_logger()

    async def get(self, config_id: str, session_key: str) -> PersistedSession | None:
        async with self._get_lock(config_id):
            records = await self._load(config_id)
        return records.get(session_key)

    async def upsert(self, record: PersistedSession) -> PersistedSession:
        async with self._get_lock(record.config_id):
            records = await self._load(record.config_id, for_write=True)
            stored = _merge(records.get(record.session_key), record)
            records[record.session_key] = stored
            await self._save(record.config_id, records)
        return stored

    async def touch(self, config_id: str, session_key: str, when: datetime) -> None:
        async with self._get_lock(config_id):
            records = await self._load(config_id, for_write=True)
            existing = records.get(session_key)
            if existing is None:
                return
            records[session_key] = replace(existing, last_used_at=when)
            await self._save(config_id, records)

    async def delete(self, config_id: str, session_key: str) -> bool:
        async with self._get_lock(config_id):
            records = await self._load(config_id, for_write=True)
            if records.pop(session_key, None) is None:
                return False
            await self._save(config_id, records)
        return True

    async def most_recent(self, config_id: str) -> PersistedSession | None:
        async with self._get_lock(config_id):
            records = await self._load(config_id)
        if not records:
            return None
        return max(records.values(), key=lambda record: record.last_used_at)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get_lock(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def _config_path(self, config_id: str) -> Path:
        safe_id = config_id.replace("/", "_").replace("\\", "_")
        return self._base_dir / f"{safe_id}.json"

    async def _load(
        self, config_id: str, *, for_write: bool = False
    ) -> dict[str, PersistedSession]:
        path = self._config_path(config_id)
        if not path.exists():
            return {}
        try:
            async with aiofiles.open(path, encoding="utf-8") as handle:
                payload = json.loads(await handle.read())
            return {
                key: _record_from_dict(entry)
                for key, entry in payload.get("sessions", {}).items()
            }
        except (OSError, json.JSONDecodeError, KeyError, ValueError) as exc:
            self._logger.error(
                "session_store.load_failed",
                config_id=config_id,
                error=str(exc),
                for_write=for_write,
            )
            if for_write:
                raise SessionStoreError(
                    f"Cannot read sessions of config '{config_id}': {exc}",
                    config_id=config_id,
                ) from exc
            return {}

    async def _save(self, config_id: str, records: dict[str, PersistedSession]) -> None:
        path = self._config_path(config_id)
        temp_path = path.with_suffix(".json.tmp")
        payload = {"sessions": {key: _record_to_dict(rec) for key, rec in records.items()}}
        async with aiofiles.open(temp_path, "w", encoding="utf-8") as handle:
            await handle.write(json.dumps(payload, indent=2, ensure_ascii=False))
        temp_path.replace(path)


class InMemorySessionStore:
    """In-memory session store for tests."""

    def __init__(self) -> None:
        self._records: dict[str, PersistedSession] = {}

    async def get(self, config_id: str, session_key: str) -> PersistedSession | None:
        record = self._records.get(session_key)
        if record is None or record.config_id != config_id:
            return None
        return record

    async def upsert(self, record: PersistedSession) -> PersistedSession:
        stored = _merge(self._records.get(record.session_key), record)
        self._records[record.session_key] = stored
        return stored

    async def touch(self, config_id: str, session_key: str, when: datetime) -> None:
        record = await self.get(config_id, session_key)
        if record is not None:
            self._records[session_key] = replace(record, last_used_at=when)

    async def delete(self, config_id: str, session_key: str) -> bool:
        if await self.get(config_id, session_key) is None:
            return False
        del self._records[session_key]
        return True

    async def most_recent(self, config_id: str) -> PersistedSession | None:
        records = [r for r in self._records.values() if r.config_id == config_id]
        if not records:
            return None
        return max(records, key=lambda record: record.last_used_at)
