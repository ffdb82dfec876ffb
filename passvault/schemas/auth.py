from pydantic import BaseModel


class AuthRequest(BaseModel):
    # Format rules live in auth_service so they map to specific error codes
    type: str | None = None
    username: str | None = None
    password: str | None = None


class LoginData(BaseModel):
    token: str
    username: str
