"""Table model for key-value storage slots."""

from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


class StorageSlot(SQLModel, table=True):
    """One encoded blob stored under a namespaced key."""

    __tablename__ = "storage_slots"

    namespace: str = Field(primary_key=True)
    key: str = Field(primary_key=True)
    value: str
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
