from datetime import UTC, datetime, timedelta

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from passvault.exceptions import StoreUnavailable
from passvault.models.kv_entry import KVEntry

logger = structlog.get_logger()


class KVStore:
    """
    Whole-value key-value store backed by the ``kv_entries`` table.

    Offers only get/put/delete. Each put or delete commits on its own, so a
    sequence of calls is never atomic. Any database failure surfaces as
    ``StoreUnavailable``.
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    def get(self, key: str) -> str | None:
        try:
            entry = self._db.get(KVEntry, key)
        except SQLAlchemyError as e:
            self._fail("get", key, e)

        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= _utcnow():
            return None
        return entry.value

    def put(self, key: str, value: str, ttl: int | None = None) -> None:
        """Write the whole value. ``ttl`` is in seconds; ``None`` never expires."""
        if ttl is not None and ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        expires_at = _utcnow() + timedelta(seconds=ttl) if ttl is not None else None
        try:
            entry = self._db.get(KVEntry, key)
            if entry is None:
                self._db.add(KVEntry(key=key, value=value, expires_at=expires_at))
            else:
                entry.value = value
                entry.expires_at = expires_at
            self._db.commit()
        except SQLAlchemyError as e:
            self._fail("put", key, e)

    def delete(self, key: str) -> None:
        try:
            self._db.query(KVEntry).filter(KVEntry.key == key).delete()
            self._db.commit()
        except SQLAlchemyError as e:
            self._fail("delete", key, e)

    def purge_expired(self) -> int:
        """Delete entries whose TTL has passed. Returns the count removed."""
        try:
            result = (
                self._db.query(KVEntry)
                .filter(
                    KVEntry.expires_at != None,  # noqa: E711
                    KVEntry.expires_at <= _utcnow(),
                )
                .delete()
            )
            self._db.commit()
        except SQLAlchemyError as e:
            self._fail("purge", "*", e)
        return result

    def _fail(self, operation: str, key: str, error: SQLAlchemyError):
        self._db.rollback()
        # Key prefix only: the suffix may be a bearer token
        logger.error(
            "kv_store_error",
            operation=operation,
            key_prefix=key.split(":", 1)[0],
            error=type(error).__name__,
        )
        raise StoreUnavailable("Storage service temporarily unavailable") from error


def _utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)
