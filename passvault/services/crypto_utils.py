import hashlib
import hmac

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

# Configure Argon2id with secure parameters
# time_cost=3, memory_cost=65536 (64MB), parallelism=4
ph = PasswordHasher(
    time_cost=3,
    memory_cost=65536,
    parallelism=4,
    hash_len=32,
    salt_len=16,
)


def hash_password(password: str) -> str:
    """Hash a login password using Argon2id."""
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a login password against its Argon2id hash."""
    try:
        ph.verify(password_hash, password)
        return True
    except (VerificationError, InvalidHashError):
        return False


def legacy_password_hash(password: str, salt: str) -> str:
    """Hex SHA-256 of password + salt, as stored by accounts created before Argon2."""
    return hashlib.sha256((password + salt).encode("utf-8")).hexdigest()


def verify_legacy_password(password: str, salt: str, stored_hash: str) -> bool:
    return hmac.compare_digest(legacy_password_hash(password, salt), stored_hash)


def derive_encryption_secret(password: str, salt: str) -> str:
    """
    Derive the session's working encryption secret from the login password.

    Deterministic per (password, salt) so every login for an account reaches
    the same data key. Stored only inside the session entry.
    """
    return hashlib.sha256((password + salt + "encryption").encode("utf-8")).hexdigest()
