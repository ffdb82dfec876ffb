from fastapi import APIRouter, Depends, Request

from passvault.config import settings
from passvault.exceptions import ValidationError
from passvault.middleware.rate_limit import limiter
from passvault.routers.deps import get_kv_store
from passvault.schemas.auth import AuthRequest, LoginData
from passvault.schemas.response import ApiResponse
from passvault.services.auth_service import login, register
from passvault.services.kv_store import KVStore

router = APIRouter()


@router.post("/auth", response_model=ApiResponse, response_model_exclude_none=True)
@limiter.limit(settings.rate_limit_auth)
def authenticate(
    request: Request,
    auth_data: AuthRequest,
    kv: KVStore = Depends(get_kv_store),
):
    """
    Register a new account or log in.

    ``type`` selects the operation. A successful login returns a bearer token
    valid for ``session_ttl_seconds``.
    """
    if not auth_data.username or not auth_data.password:
        raise ValidationError("Username and password are required", code="MISSING_FIELDS")

    if auth_data.type == "register":
        register(kv, auth_data.username, auth_data.password)
        return ApiResponse(success=True, message="Registration successful")

    if auth_data.type == "login":
        token = login(kv, auth_data.username, auth_data.password)
        return ApiResponse(
            success=True,
            data=LoginData(token=token, username=auth_data.username).model_dump(),
        )

    raise ValidationError("Invalid type, use register or login", code="INVALID_TYPE")
