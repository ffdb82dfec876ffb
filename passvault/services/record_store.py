"""
Load and save a user's record lists.

A stored list is found in one of three encodings: an encrypted envelope,
a legacy plaintext JSON array written before encryption existed, or nothing
at all. ``decode_stored_value`` sorts the raw value into exactly one case;
``load`` then turns every case into a list. ``save`` always writes an
envelope, so any write upgrades legacy data to the encrypted format.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import structlog

from passvault.services import cipher
from passvault.services.kv_store import KVStore

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class EncryptedValue:
    envelope: dict


@dataclass(frozen=True, slots=True)
class LegacyValue:
    items: list


@dataclass(frozen=True, slots=True)
class AbsentValue:
    pass


@dataclass(frozen=True, slots=True)
class CorruptValue:
    reason: str


StoredValue = EncryptedValue | LegacyValue | AbsentValue | CorruptValue


def data_key(username: str) -> str:
    return f"data:{username}"


def trash_key(username: str) -> str:
    return f"trash:{username}"


def decode_stored_value(raw: str | None) -> StoredValue:
    """Classify a raw stored string. Never raises."""
    if raw is None:
        return AbsentValue()
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return CorruptValue("invalid json")

    if isinstance(parsed, list):
        return LegacyValue(parsed)
    if isinstance(parsed, dict) and parsed.get("iv") and parsed.get("data"):
        return EncryptedValue(parsed)
    if parsed is None:
        return AbsentValue()
    return CorruptValue(f"unexpected {type(parsed).__name__}")


class RecordListStore:
    """Encrypted list persistence over a whole-value key-value store."""

    def __init__(self, kv: KVStore) -> None:
        self._kv = kv

    def load(self, key: str, secret: str, salt: str) -> list[dict[str, Any]]:
        """
        Return the list stored at ``key``.

        Decryption failures and corrupt values yield an empty list.
        Store failures propagate as ``StoreUnavailable``.
        """
        stored = decode_stored_value(self._kv.get(key))

        if isinstance(stored, LegacyValue):
            return stored.items

        if isinstance(stored, CorruptValue):
            logger.warning("stored_value_corrupt", key_prefix=_prefix(key), reason=stored.reason)
            return []

        if isinstance(stored, AbsentValue):
            return []

        items = cipher.decrypt(stored.envelope, secret, salt)
        if items is None:
            logger.warning("stored_value_undecryptable", key_prefix=_prefix(key))
            return []
        if not isinstance(items, list):
            logger.warning("stored_value_corrupt", key_prefix=_prefix(key), reason="not a list")
            return []
        return items

    def save(self, key: str, items: list[dict[str, Any]], secret: str, salt: str) -> None:
        envelope = cipher.encrypt(items, secret, salt)
        self._kv.put(key, json.dumps(envelope))

    def clear(self, key: str) -> None:
        self._kv.delete(key)


def _prefix(key: str) -> str:
    return key.split(":", 1)[0]
