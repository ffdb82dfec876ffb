from typing import Any

from pydantic import BaseModel, ConfigDict


class RecordUpdateRequest(BaseModel):
    """``{id, ...patch}``; everything besides ``id`` is the patch."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None

    @property
    def patch(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class RecordDeleteRequest(BaseModel):
    id: str | None = None
    permanent: bool = False
    # getTrash | restore | emptyTrash; anything else falls through to a soft delete
    action: str | None = None
