"""
Registration, login and session resolution.

Sessions live at ``session:{token}`` with a TTL. Current sessions are JSON
objects ``{username, encryptionKey, createdAt}``. Sessions written by older
versions hold the bare username, and the token itself is the encryption
secret.
"""

import json
import re
import time
import uuid

import structlog

from passvault.config import settings
from passvault.exceptions import (
    DataCorrupted,
    InvalidCredentials,
    SessionExpired,
    UserExists,
    ValidationError,
)
from passvault.services.crypto_utils import (
    derive_encryption_secret,
    hash_password,
    verify_legacy_password,
    verify_password,
)
from passvault.services.kv_store import KVStore
from passvault.services.vault_service import VaultContext

logger = structlog.get_logger()

USERNAME_PATTERN = re.compile(r"[A-Za-z0-9_一-龥]+")
USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 50
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 100


def user_key(username: str) -> str:
    return f"user:{username}"


def session_key(token: str) -> str:
    return f"session:{token}"


def validate_username(username: object) -> str:
    if not isinstance(username, str) or not (
        USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH
    ):
        raise ValidationError(
            f"Username must be {USERNAME_MIN_LENGTH}-{USERNAME_MAX_LENGTH} characters",
            code="INVALID_USERNAME",
        )
    if not USERNAME_PATTERN.fullmatch(username):
        raise ValidationError(
            "Username may only contain letters, digits, underscores and CJK characters",
            code="INVALID_USERNAME",
        )
    return username


def validate_password(password: object) -> str:
    if not isinstance(password, str) or len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters",
            code="INVALID_PASSWORD",
        )
    if len(password) > PASSWORD_MAX_LENGTH:
        raise ValidationError(
            f"Password cannot exceed {PASSWORD_MAX_LENGTH} characters",
            code="INVALID_PASSWORD",
        )
    return password


def _load_user(kv: KVStore, username: str) -> dict | None:
    raw = kv.get(user_key(username))
    if raw is None:
        return None
    try:
        user = json.loads(raw)
    except json.JSONDecodeError:
        user = None
    if not isinstance(user, dict):
        logger.error("user_record_corrupt", username=username)
        raise DataCorrupted("User data is corrupted, contact an administrator")
    return user


def register(kv: KVStore, username: str, password: str) -> None:
    """Create a user record with a fresh salt. The salt never changes afterwards."""
    validate_username(username)
    validate_password(password)

    if kv.get(user_key(username)) is not None:
        raise UserExists("Username already exists")

    user = {
        "salt": str(uuid.uuid4()),
        "passwordHash": hash_password(password),
        "createdAt": int(time.time() * 1000),
    }
    kv.put(user_key(username), json.dumps(user))
    logger.info("user_registered", username=username)


def login(kv: KVStore, username: str, password: str) -> str:
    """
    Check credentials and open a session.

    Returns the new bearer token.
    """
    validate_username(username)
    validate_password(password)

    user = _load_user(kv, username)
    if user is None or not _check_password(kv, username, user, password):
        logger.info("login_failed", username=username)
        raise InvalidCredentials("Invalid username or password")

    token = str(uuid.uuid4())
    session = {
        "username": username,
        "encryptionKey": derive_encryption_secret(password, user["salt"]),
        "createdAt": int(time.time() * 1000),
    }
    kv.put(session_key(token), json.dumps(session), ttl=settings.session_ttl_seconds)

    logger.info("session_created", username=username)
    return token


def _check_password(kv: KVStore, username: str, user: dict, password: str) -> bool:
    salt = user.get("salt")
    if not isinstance(salt, str):
        return False

    if "passwordHash" in user:
        return verify_password(password, user["passwordHash"])

    if isinstance(user.get("hash"), str):
        if not verify_legacy_password(password, salt, user["hash"]):
            return False
        # Upgrade to Argon2id; the salt is kept because it keys the stored data
        upgraded = {k: v for k, v in user.items() if k != "hash"}
        upgraded["passwordHash"] = hash_password(password)
        kv.put(user_key(username), json.dumps(upgraded))
        logger.info("password_hash_upgraded", username=username)
        return True

    return False


def resolve_session(kv: KVStore, token: str) -> tuple[str, str]:
    """
    Map a bearer token to ``(username, encryption_secret)``.

    Raises SessionExpired when the session is unknown or has expired.
    """
    raw = kv.get(session_key(token)) if token else None
    if not raw:
        raise SessionExpired("Session expired or invalid")

    try:
        session = json.loads(raw)
    except json.JSONDecodeError:
        session = None

    if isinstance(session, dict):
        if not session.get("username"):
            raise SessionExpired("Session expired or invalid")
        return session["username"], session.get("encryptionKey") or token

    # Legacy sessions hold only the username; the token doubles as the secret
    return raw, token


def load_salt(kv: KVStore, username: str) -> str:
    """
    Return the user's fixed salt.

    Falls back to the configured default salt when the user record is
    missing. That key is deterministic and weak, but data already written
    under it must stay readable.
    """
    user = _load_user(kv, username)
    if user is None or not isinstance(user.get("salt"), str):
        logger.warning("default_salt_fallback", username=username)
        return settings.default_salt
    return user["salt"]


def resolve_context(kv: KVStore, token: str) -> VaultContext:
    username, secret = resolve_session(kv, token)
    return VaultContext(username=username, secret=secret, salt=load_salt(kv, username))
