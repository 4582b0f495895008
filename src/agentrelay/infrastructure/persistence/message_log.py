"""Message log adapters implementing MessageLogProtocol.

Stores one JSON-lines file per channel config under
``{work_dir}/messages/{config_id}.jsonl``.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Any

import aiofiles
import structlog

from agentrelay.core.domain.channels import MessageDirection, MessageRecord


def _record_to_dict(record: MessageRecord) -> dict[str, Any]:
    return {
        "config_id": record.config_id,
        "direction": record.direction.value,
        "content": record.content,
        "created_at": record.created_at.isoformat(),
        "external_id": record.external_id,
        "session_id": record.session_id,
        "user_id": record.user_id,
        "user_name": record.user_name,
    }


def _record_from_dict(payload: dict[str, Any]) -> MessageRecord:
    return MessageRecord(
        config_id=payload["config_id"],
        direction=MessageDirection(payload["direction"]),
        content=payload.get("content", ""),
        created_at=datetime.fromisoformat(payload["created_at"]),
        external_id=payload.get("external_id"),
        session_id=payload.get("session_id"),
        user_id=payload.get("user_id"),
        user_name=payload.get("user_name"),
    )


class FileMessageLog:
    """Append-only JSON-lines message log."""

    def __init__(self, work_dir: str = ".agentrelay") -> None:
        self._base_dir = Path(work_dir) / "messages"
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._locks: dict[str, asyncio.Lock] = {}
        self._logger = structlog.get_logger()

    async def append(self, record: MessageRecord) -> None:
        path = self._log_path(record.config_id)
        line = json.dumps(_record_to_dict(record), ensure_ascii=False)
        async with self._get_lock(record.config_id):
            try:
                async with aiofiles.open(path, "a", encoding="utf-8") as handle:
                    await handle.write(line + "\n")
            except OSError as exc:
                self._logger.error(
                    "message_log.append_failed", config_id=record.config_id, error=str(exc)
                )

    async def list_messages(self, config_id: str, limit: int = 50) -> list[MessageRecord]:
        path = self._log_path(config_id)
        if not path.exists():
            return []
        async with self._get_lock(config_id):
            async with aiofiles.open(path, encoding="utf-8") as handle:
                lines = (await handle.read()).splitlines()

        records: list[MessageRecord] = []
        for line in lines[-limit:] if limit > 0 else []:
            if not line.strip():
                continue
            try:
                records.append(_record_from_dict(json.loads(line)))
            except (json.JSONDecodeError, KeyError, ValueError):
                self._logger.warning("message_log.skipped_corrupt_line", config_id=config_id)
        return records

    def _get_lock(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def _log_path(self, config_id: str) -> Path:
        safe_id = config_id.replace("/", "_").replace("\\", "_")
        return self._base_dir / f"{safe_id}.jsonl"


class InMemoryMessageLog:
    """In-memory message log for tests."""

    def __init__(self) -> None:
        self.records: list[MessageRecord] = []

    async def append(self, record: MessageRecord) -> None:
        self.records.append(record)

    async def list_messages(self, config_id: str, limit: int = 50) -> list[MessageRecord]:
        matching = [r for r in self.records if r.config_id == config_id]
        return matching[-limit:] if limit > 0 else []
