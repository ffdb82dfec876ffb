"""
Record CRUD and the trash lifecycle.

Every operation loads whole lists through ``RecordListStore``, mutates them in
memory and writes them back. There is no locking: concurrent writers to the
same list race and the last write wins.

Moving a record between lists (``soft_delete``, ``restore``) takes two
independent writes. The destination list is written first, so a failure
between the writes leaves the record in both lists rather than in neither.
Both moves replace an existing copy with the same id instead of appending a
second one, so repeating the operation repairs that state.
"""

import time
import uuid
from dataclasses import dataclass
from typing import Any

import structlog

from passvault.config import settings
from passvault.exceptions import (
    EmptyImportData,
    ImportLimitExceeded,
    InvalidImportData,
    NotFound,
    NotFoundInTrash,
    ValidationError,
)
from passvault.services.record_store import RecordListStore, data_key, trash_key

logger = structlog.get_logger()

FIELD_LIMITS = {
    "platform": 200,
    "account": 200,
    "password": 500,
    "remark": 1000,
    "category": 50,
}
REQUIRED_FIELDS = ("platform", "account", "password")
DEFAULT_CATEGORY = "general"

# Bookkeeping fields stripped from exports
INTERNAL_FIELDS = ("id", "createdAt", "updatedAt", "deletedAt")


@dataclass(frozen=True, slots=True)
class VaultContext:
    """Per-request identity and key material. Passed explicitly, never global."""

    username: str
    secret: str
    salt: str


def now_ms() -> int:
    return int(time.time() * 1000)


def _clean_field(name: str, value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ValidationError(f"Field '{name}' must be a string")
    return str(value)[: FIELD_LIMITS[name]]


def _normalize_fields(fields: dict[str, Any]) -> dict[str, str]:
    """Truncate (never reject) over-long values and apply defaults."""
    record = {name: _clean_field(name, fields.get(name)) for name in FIELD_LIMITS}
    if not record["category"]:
        record["category"] = DEFAULT_CATEGORY
    return record


def _find_index(items: list[dict[str, Any]], record_id: str) -> int:
    for index, item in enumerate(items):
        if isinstance(item, dict) and item.get("id") == record_id:
            return index
    return -1


def _put_record(items: list[dict[str, Any]], record: dict[str, Any]) -> None:
    """Append, or replace a copy left behind by an interrupted move."""
    index = _find_index(items, record["id"])
    if index == -1:
        items.append(record)
    else:
        items[index] = record


def list_records(store: RecordListStore, ctx: VaultContext) -> list[dict[str, Any]]:
    return store.load(data_key(ctx.username), ctx.secret, ctx.salt)


def list_trash(store: RecordListStore, ctx: VaultContext) -> list[dict[str, Any]]:
    return store.load(trash_key(ctx.username), ctx.secret, ctx.salt)


def add_record(store: RecordListStore, ctx: VaultContext, fields: dict[str, Any]) -> dict[str, Any]:
    """
    Create a record and append it to the active list.

    ``platform``, ``account`` and ``password`` must be non-empty.
    """
    if not isinstance(fields, dict):
        raise ValidationError("Record must be an object")
    if any(not fields.get(name) for name in REQUIRED_FIELDS):
        raise ValidationError("Missing fields", code="MISSING_FIELDS")

    timestamp = now_ms()
    record = {
        **_normalize_fields(fields),
        "id": str(uuid.uuid4()),
        "createdAt": timestamp,
        "updatedAt": timestamp,
    }

    key = data_key(ctx.username)
    items = store.load(key, ctx.secret, ctx.salt)
    items.append(record)
    store.save(key, items, ctx.secret, ctx.salt)

    logger.info("record_added", username=ctx.username, record_id=record["id"])
    return record


def update_record(
    store: RecordListStore, ctx: VaultContext, record_id: str, patch: dict[str, Any]
) -> dict[str, Any]:
    """Shallow-merge known fields over an active record."""
    key = data_key(ctx.username)
    items = store.load(key, ctx.secret, ctx.salt)

    index = _find_index(items, record_id)
    if index == -1:
        raise NotFound("Item not found")

    # Only record fields are patchable, so id and createdAt survive the merge
    changes = {
        name: _clean_field(name, value) for name, value in patch.items() if name in FIELD_LIMITS
    }
    items[index] = {**items[index], **changes, "updatedAt": now_ms()}
    store.save(key, items, ctx.secret, ctx.salt)

    logger.info(
        "record_updated", username=ctx.username, record_id=record_id, fields=sorted(changes)
    )
    return items[index]


def soft_delete(store: RecordListStore, ctx: VaultContext, record_id: str) -> None:
    """Move an active record to the trash, stamping ``deletedAt``."""
    active_key = data_key(ctx.username)
    active = store.load(active_key, ctx.secret, ctx.salt)

    index = _find_index(active, record_id)
    if index == -1:
        raise NotFound("Item not found")

    record = {**active.pop(index), "deletedAt": now_ms()}

    bin_key = trash_key(ctx.username)
    trash = store.load(bin_key, ctx.secret, ctx.salt)
    _put_record(trash, record)

    store.save(bin_key, trash, ctx.secret, ctx.salt)
    store.save(active_key, active, ctx.secret, ctx.salt)

    logger.info("record_trashed", username=ctx.username, record_id=record_id)


def restore(store: RecordListStore, ctx: VaultContext, record_id: str) -> None:
    """Move a trashed record back to the active list, dropping ``deletedAt``."""
    bin_key = trash_key(ctx.username)
    trash = store.load(bin_key, ctx.secret, ctx.salt)

    index = _find_index(trash, record_id)
    if index == -1:
        raise NotFoundInTrash("Item not found in trash")

    record = trash.pop(index)
    record.pop("deletedAt", None)

    active_key = data_key(ctx.username)
    active = store.load(active_key, ctx.secret, ctx.salt)
    _put_record(active, record)

    store.save(active_key, active, ctx.secret, ctx.salt)
    store.save(bin_key, trash, ctx.secret, ctx.salt)

    logger.info("record_restored", username=ctx.username, record_id=record_id)


def permanent_delete(store: RecordListStore, ctx: VaultContext, record_id: str) -> None:
    """Remove a record from the trash for good. Active records are untouched."""
    bin_key = trash_key(ctx.username)
    trash = store.load(bin_key, ctx.secret, ctx.salt)

    remaining = [
        item for item in trash if not (isinstance(item, dict) and item.get("id") == record_id)
    ]
    if len(remaining) == len(trash):
        raise NotFound("Item not found")

    store.save(bin_key, remaining, ctx.secret, ctx.salt)
    logger.info("record_purged", username=ctx.username, record_id=record_id)


def empty_trash(store: RecordListStore, ctx: VaultContext) -> None:
    """Drop the whole trash list without reading it."""
    store.clear(trash_key(ctx.username))
    logger.info("trash_emptied", username=ctx.username)


def import_records(store: RecordListStore, ctx: VaultContext, items: Any) -> int:
    """
    Append many records in input order with a single write.

    Validation happens before anything is loaded or written, so a rejected
    import leaves the stored list unchanged.
    """
    if not isinstance(items, list):
        raise InvalidImportData("Invalid import data")
    if not items:
        raise EmptyImportData("Import data is empty")
    if len(items) > settings.import_max_items:
        raise ImportLimitExceeded(
            f"Cannot import more than {settings.import_max_items} items at once"
        )

    timestamp = now_ms()
    new_records = []
    for item in items:
        if not isinstance(item, dict):
            raise InvalidImportData("Invalid import data")
        try:
            fields = _normalize_fields(item)
        except ValidationError as e:
            raise InvalidImportData(e.message) from e
        new_records.append(
            {**fields, "id": str(uuid.uuid4()), "createdAt": timestamp, "updatedAt": timestamp}
        )

    key = data_key(ctx.username)
    existing = store.load(key, ctx.secret, ctx.salt)
    existing.extend(new_records)
    store.save(key, existing, ctx.secret, ctx.salt)

    logger.info("records_imported", username=ctx.username, count=len(new_records))
    return len(new_records)


def export_records(store: RecordListStore, ctx: VaultContext) -> list[dict[str, Any]]:
    """Return active records without ids or timestamps."""
    items = store.load(data_key(ctx.username), ctx.secret, ctx.salt)
    return [
        {name: value for name, value in item.items() if name not in INTERNAL_FIELDS}
        for item in items
        if isinstance(item, dict)
    ]
