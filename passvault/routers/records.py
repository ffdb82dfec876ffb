from typing import Any

from fastapi import APIRouter, Body, Depends, Request, Response

from passvault.config import settings
from passvault.exceptions import ValidationError
from passvault.middleware.rate_limit import limiter
from passvault.routers.deps import get_record_store, get_vault_context
from passvault.schemas.record import RecordDeleteRequest, RecordUpdateRequest
from passvault.schemas.response import ApiResponse
from passvault.services.record_store import RecordListStore
from passvault.services.vault_service import (
    VaultContext,
    add_record,
    empty_trash,
    export_records,
    import_records,
    list_records,
    list_trash,
    permanent_delete,
    restore,
    soft_delete,
    update_record,
)

router = APIRouter()


def require_id(record_id: str | None) -> str:
    if not record_id:
        raise ValidationError("Missing ID", code="MISSING_ID")
    return record_id


@router.get("/records", response_model=ApiResponse, response_model_exclude_none=True)
@limiter.limit(settings.rate_limit_records)
def get_records(
    request: Request,
    ctx: VaultContext = Depends(get_vault_context),
    store: RecordListStore = Depends(get_record_store),
):
    """Return the caller's active records in insertion order."""
    return ApiResponse(success=True, data=list_records(store, ctx))


@router.post(
    "/records", response_model=ApiResponse, response_model_exclude_none=True, status_code=201
)
@limiter.limit(settings.rate_limit_records)
def post_records(
    request: Request,
    response: Response,
    body: dict[str, Any] = Body(...),
    ctx: VaultContext = Depends(get_vault_context),
    store: RecordListStore = Depends(get_record_store),
):
    """
    Add a record, or run a bulk action.

    ``{"action": "import", "data": [...]}`` appends many records at once;
    ``{"action": "export"}`` returns records without ids or timestamps.
    Any other body is a new record.
    """
    action = body.get("action")

    if action in ("import", "export"):
        response.status_code = 200

    if action == "import":
        imported = import_records(store, ctx, body.get("data"))
        return ApiResponse(success=True, data={"imported": imported}, imported=imported)

    if action == "export":
        return ApiResponse(success=True, data=export_records(store, ctx))

    record = add_record(store, ctx, body)
    return ApiResponse(success=True, data=record)


@router.put("/records", response_model=ApiResponse, response_model_exclude_none=True)
@limiter.limit(settings.rate_limit_records)
def put_records(
    request: Request,
    update: RecordUpdateRequest,
    ctx: VaultContext = Depends(get_vault_context),
    store: RecordListStore = Depends(get_record_store),
):
    """Patch an active record by id."""
    record = update_record(store, ctx, require_id(update.id), update.patch)
    return ApiResponse(success=True, data=record)


@router.delete("/records", response_model=ApiResponse, response_model_exclude_none=True)
@limiter.limit(settings.rate_limit_records)
def delete_records(
    request: Request,
    delete: RecordDeleteRequest,
    ctx: VaultContext = Depends(get_vault_context),
    store: RecordListStore = Depends(get_record_store),
):
    """
    Trash operations.

    - ``action=getTrash``: list the trash
    - ``action=restore``: move ``id`` back to the active list
    - ``action=emptyTrash``: drop every trashed record
    - ``permanent=true``: delete ``id`` from the trash for good
    - otherwise: move ``id`` to the trash
    """
    if delete.action == "getTrash":
        return ApiResponse(success=True, data=list_trash(store, ctx))

    if delete.action == "restore":
        restore(store, ctx, require_id(delete.id))
        return ApiResponse(success=True)

    if delete.action == "emptyTrash":
        empty_trash(store, ctx)
        return ApiResponse(success=True)

    if delete.permanent:
        permanent_delete(store, ctx, require_id(delete.id))
        return ApiResponse(success=True)

    soft_delete(store, ctx, require_id(delete.id))
    return ApiResponse(success=True)
