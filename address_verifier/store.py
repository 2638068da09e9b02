"""
Verification record store.

Contract (shared by every backend):
  put(record)   upsert keyed by id; created_at set by the store on first insert, then preserved
  get(id)       record, or RecordNotFound
  list_all()    all records, newest created_at first
  delete(id)    removing a missing id is not an error
  delete_all()  removes everything, returns how many were removed

Backends:
  InMemoryVerificationStore : dict-backed (tests, local runs)
  RedisVerificationStore    : JSON documents + a sorted-set index by creation time
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Optional

from redis import Redis, RedisError

from .config import Settings
from .exceptions import MissingIdError, PersistenceFailure, RecordNotFound, StatusRegression
from .models import VerificationRecord, VerificationStatus

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class VerificationStore(ABC):
    """Base class: id/created_at/status rules live here, storage in subclasses."""

    def clock(self) -> str:
        """Source of created_at for first inserts; backends may inject another."""
        return utc_now_iso()

    def put(self, record: VerificationRecord) -> VerificationRecord:
        """Insert or replace the record with the same id.

        Raises:
            MissingIdError: The record has no id.
            StatusRegression: An evaluated record would go back to pending.
            PersistenceFailure: The backend failed the write.
        """
        if not record.id or not record.id.strip():
            raise MissingIdError()

        existing = self._load(record.id)
        stored = record.model_copy(deep=True)

        if existing is not None:
            _check_status_transition(existing, stored)
            stored.created_at = existing.created_at or self.clock()
        else:
            stored.created_at = self.clock()

        self._save(stored)
        logger.info(
            "Stored verification %s (%s)", stored.id, stored.verification_status.value
        )
        return stored

    def get(self, record_id: str) -> VerificationRecord:
        record = self._load(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        return record

    @abstractmethod
    def list_all(self) -> list[VerificationRecord]: ...

    @abstractmethod
    def delete(self, record_id: str) -> None: ...

    @abstractmethod
    def delete_all(self) -> int: ...

    @abstractmethod
    def _load(self, record_id: str) -> Optional[VerificationRecord]: ...

    @abstractmethod
    def _save(self, record: VerificationRecord) -> None: ...


def _check_status_transition(
    existing: VerificationRecord, incoming: VerificationRecord
) -> None:
    if (
        existing.verification_status != VerificationStatus.PENDING
        and incoming.verification_status == VerificationStatus.PENDING
    ):
        raise StatusRegression(
            f"Verification {existing.id} is already "
            f"'{existing.verification_status.value}' and cannot return to pending",
            {"id": existing.id, "status": existing.verification_status.value},
        )


# ─── In-Memory Backend ───────────────────────────────────────────────


class InMemoryVerificationStore(VerificationStore):
    def __init__(self, clock: Callable[[], str] | None = None) -> None:
        if clock is not None:
            self.clock = clock
        self._docs: dict[str, dict] = {}
        self._lock = threading.Lock()

    def list_all(self) -> list[VerificationRecord]:
        with self._lock:
            docs = list(self._docs.values())
        records = [VerificationRecord.model_validate(d) for d in docs]
        return sorted(records, key=lambda r: r.created_at or "", reverse=True)

    def delete(self, record_id: str) -> None:
        with self._lock:
            self._docs.pop(record_id, None)

    def delete_all(self) -> int:
        with self._lock:
            count = len(self._docs)
            self._docs.clear()
        return count

    def _load(self, record_id: str) -> Optional[VerificationRecord]:
        with self._lock:
            doc = self._docs.get(record_id)
        return VerificationRecord.model_validate(doc) if doc is not None else None

    def _save(self, record: VerificationRecord) -> None:
        with self._lock:
            self._docs[record.id] = record.to_document()


# ─── Redis Backend ───────────────────────────────────────────────────

KEY = "verification:{id}"
INDEX = "verifications:by_created"


class RedisVerificationStore(VerificationStore):
    """Records as JSON strings; a sorted set scored by created_at orders them."""

    def __init__(
        self,
        r: Optional[Redis] = None,
        url: str = "redis://localhost:6379/0",
        clock: Callable[[], str] | None = None,
    ):
        self.r = r or Redis.from_url(url)
        if clock is not None:
            self.clock = clock

    def list_all(self) -> list[VerificationRecord]:
        try:
            ids = [_decode(i) for i in self.r.zrevrange(INDEX, 0, -1)]
            raws = self.r.mget([KEY.format(id=i) for i in ids]) if ids else []
        except RedisError as e:
            raise self._failure("list", e) from e
        return [VerificationRecord.model_validate(json.loads(raw)) for raw in raws if raw]

    def delete(self, record_id: str) -> None:
        try:
            pipe = self.r.pipeline()
            pipe.delete(KEY.format(id=record_id))
            pipe.zrem(INDEX, record_id)
            pipe.execute()
        except RedisError as e:
            raise self._failure("delete", e) from e

    def delete_all(self) -> int:
        try:
            ids = [_decode(i) for i in self.r.zrange(INDEX, 0, -1)]
            if not ids:
                return 0
            pipe = self.r.pipeline()
            pipe.delete(*[KEY.format(id=i) for i in ids])
            pipe.delete(INDEX)
            deleted, _ = pipe.execute()
        except RedisError as e:
            raise self._failure("bulk delete", e) from e
        return int(deleted)

    def _load(self, record_id: str) -> Optional[VerificationRecord]:
        try:
            raw = self.r.get(KEY.format(id=record_id))
        except RedisError as e:
            raise self._failure("read", e) from e
        return VerificationRecord.model_validate(json.loads(raw)) if raw else None

    def _save(self, record: VerificationRecord) -> None:
        try:
            score = datetime.fromisoformat(record.created_at or "").timestamp()
            pipe = self.r.pipeline()
            pipe.set(KEY.format(id=record.id), json.dumps(record.to_document()))
            pipe.zadd(INDEX, {record.id: score})
            pipe.execute()
        except (RedisError, ValueError) as e:
            raise self._failure("write", e) from e

    @staticmethod
    def _failure(action: str, e: Exception) -> PersistenceFailure:
        logger.error("Redis %s failed: %s", action, e)
        return PersistenceFailure(f"Failed to {action} verification: {e}")


def _decode(value: bytes | str) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


def create_store(settings: Settings | None = None) -> VerificationStore:
    """Redis when REDIS_URL is configured, otherwise in-memory."""
    settings = settings or Settings.from_env()
    if settings.redis_url:
        logger.info("Using Redis record store")
        return RedisVerificationStore(url=settings.redis_url)
    logger.info("No REDIS_URL set, using in-memory record store")
    return InMemoryVerificationStore()
