from passvault.schemas.auth import AuthRequest, LoginData
from passvault.schemas.record import RecordDeleteRequest, RecordUpdateRequest
from passvault.schemas.response import ApiResponse

__all__ = [
    "ApiResponse",
    "AuthRequest",
    "LoginData",
    "RecordDeleteRequest",
    "RecordUpdateRequest",
]
