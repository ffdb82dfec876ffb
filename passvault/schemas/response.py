from typing import Any

from pydantic import BaseModel


class ApiResponse(BaseModel):
    """Envelope shared by every endpoint."""

    success: bool
    data: Any | None = None
    message: str | None = None
    code: str | None = None

    # Import count, also kept at the top level for older clients
    imported: int | None = None
