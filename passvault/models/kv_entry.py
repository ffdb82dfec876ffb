from datetime import UTC, datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from passvault.database import Base


class KVEntry(Base):
    """
    One whole-value entry in the shared key-value namespace.

    Keys follow the layout ``user:{username}``, ``session:{token}``,
    ``data:{username}`` and ``trash:{username}``. Values are opaque strings
    (JSON text in practice) that are always read and written in full.
    """

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(512), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    # Entries with an expiry are treated as absent once it has passed
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True, default=None, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(UTC).replace(tzinfo=None),
        onupdate=lambda: datetime.now(UTC).replace(tzinfo=None),
        nullable=False,
    )
