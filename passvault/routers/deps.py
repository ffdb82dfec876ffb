from fastapi import Depends, Header
from sqlalchemy.orm import Session

from passvault.database import get_db
from passvault.exceptions import Unauthorized
from passvault.services.auth_service import resolve_context
from passvault.services.kv_store import KVStore
from passvault.services.record_store import RecordListStore
from passvault.services.vault_service import VaultContext


def get_kv_store(db: Session = Depends(get_db)) -> KVStore:
    return KVStore(db)


def get_record_store(kv: KVStore = Depends(get_kv_store)) -> RecordListStore:
    return RecordListStore(kv)


def extract_bearer_token(authorization: str | None = Header(None)) -> str:
    """Extract token from Authorization header."""
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthorized("Unauthorized")
    return authorization[7:]


def get_vault_context(
    token: str = Depends(extract_bearer_token),
    kv: KVStore = Depends(get_kv_store),
) -> VaultContext:
    """Resolve the caller's session into the context every vault operation takes."""
    return resolve_context(kv, token)
