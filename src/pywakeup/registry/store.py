"""Registration stores.

A store holds one :class:`~pywakeup.models.Registration` per push token.
Every mutation is atomic per key.  :meth:`mark_notified` and
:meth:`delete` with ``created_at`` are conditional, so a slow dispatch can
never move ``last_notified_at`` backwards or touch a newer registration of
the same token.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from pywakeup._redact import short_token
from pywakeup.exceptions import StorageError
from pywakeup.models.registration import Registration

_logger = logging.getLogger(__name__)


class RegistrationStore(Protocol):
    """Structural store interface used by the service and the scheduler."""

    async def get(self, token: str) -> Registration | None:
        ...

    async def put(self, registration: Registration) -> None:
        ...

    async def delete(self, token: str, *, created_at: datetime | None = None) -> bool:
        ...

    async def scan(self, predicate: Callable[[Registration], bool]) -> list[Registration]:
        ...

    async def mark_notified(self, token: str, notified_at: datetime, *, created_at: datetime) -> bool:
        ...


def _accept_notified(current: Registration | None, notified_at: datetime, created_at: datetime) -> bool:
    if current is None:
        return False
    if current.created_at != created_at:
        # Re-registered while the push was in flight; the new record wins.
        return False
    return notified_at > current.last_notified_at


def _accept_delete(current: Registration | None, created_at: datetime | None) -> bool:
    if current is None:
        return False
    return created_at is None or current.created_at == created_at


class MemoryRegistrationStore:
    """In-process store.  Loses its content on restart."""

    def __init__(self) -> None:
        self._records: dict[str, Registration] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    async def get(self, token: str) -> Registration | None:
        return self._records.get(token)

    async def put(self, registration: Registration) -> None:
        async with self._lock:
            self._records[registration.push_token] = registration

    async def delete(self, token: str, *, created_at: datetime | None = None) -> bool:
        """Remove *token*.  With *created_at*, only if that generation is still stored."""
        async with self._lock:
            if not _accept_delete(self._records.get(token), created_at):
                return False
            del self._records[token]
            return True

    async def scan(self, predicate: Callable[[Registration], bool]) -> list[Registration]:
        return [reg for reg in list(self._records.values()) if predicate(reg)]

    async def mark_notified(self, token: str, notified_at: datetime, *, created_at: datetime) -> bool:
        async with self._lock:
            current = self._records.get(token)
            if not _accept_notified(current, notified_at, created_at):
                return False
            assert current is not None  # noqa: S101
            self._records[token] = current.notified(notified_at)
            return True


class JsonFileRegistrationStore:
    """Durable store backed by a single JSON document.

    The file maps push tokens to camelCase registration records.  Reads
    happen once, lazily; every mutation rewrites the file atomically
    (temp file + ``os.replace``) in the default executor.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._records: dict[str, Registration] | None = None
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read_file(self) -> dict[str, Registration]:
        if not self._path.exists():
            return {}
        try:
            text = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Cannot read registration store {self._path}: {exc}") from exc
        if not text.strip():
            return {}
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StorageError(f"Registration store {self._path} is not valid JSON") from exc
        if not isinstance(raw, dict):
            raise StorageError(f"Registration store {self._path} must contain a JSON object")

        records: dict[str, Registration] = {}
        for token, item in raw.items():
            try:
                records[token] = Registration.model_validate(item)
            except ValidationError:
                _logger.warning("Dropping unreadable registration %s", short_token(str(token)))
        return records

    def _write_file(self, records: dict[str, Registration]) -> None:
        payload: dict[str, Any] = {
            token: reg.model_dump(mode="json", by_alias=True) for token, reg in records.items()
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".registrations-", dir=self._path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(payload, handle, separators=(",", ":"), sort_keys=True)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StorageError(f"Cannot write registration store {self._path}: {exc}") from exc

    async def _load(self) -> dict[str, Registration]:
        if self._records is None:
            loop = asyncio.get_running_loop()
            self._records = await loop.run_in_executor(None, self._read_file)
        return self._records

    async def _commit(self, records: dict[str, Registration]) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write_file, dict(records))
        self._records = records

    async def get(self, token: str) -> Registration | None:
        async with self._lock:
            records = await self._load()
            return records.get(token)

    async def put(self, registration: Registration) -> None:
        async with self._lock:
            records = dict(await self._load())
            records[registration.push_token] = registration
            await self._commit(records)

    async def delete(self, token: str, *, created_at: datetime | None = None) -> bool:
        async with self._lock:
            records = await self._load()
            if not _accept_delete(records.get(token), created_at):
                return False
            updated = dict(records)
            updated.pop(token)
            await self._commit(updated)
            return True

    async def scan(self, predicate: Callable[[Registration], bool]) -> list[Registration]:
        async with self._lock:
            records = await self._load()
            return [reg for reg in records.values() if predicate(reg)]

    async def mark_notified(self, token: str, notified_at: datetime, *, created_at: datetime) -> bool:
        async with self._lock:
            records = await self._load()
            current = records.get(token)
            if not _accept_notified(current, notified_at, created_at):
                return False
            assert current is not None  # noqa: S101
            updated = dict(records)
            updated[token] = current.notified(notified_at)
            await self._commit(updated)
            return True
