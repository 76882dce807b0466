import uuid
from datetime import datetime, UTC
from typing import Any, Dict, Literal

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Column, DateTime, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import JSONB, UUID

from datapusher.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Account(Base):
    """Tenant owning destinations; inbound senders authenticate with its secret token."""

    __tablename__ = "accounts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account_name = Column(String, nullable=False)
    website = Column(String, nullable=True)
    app_secret_token = Column(
        String,
        nullable=False,
        unique=True,
        index=True,
        default=lambda: str(uuid.uuid4()),
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )


class Destination(Base):
    __tablename__ = "destinations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account_id = Column(
        UUID(as_uuid=True),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    url = Column(String, nullable=False)
    http_method = Column(String, nullable=False, default="POST")
    headers = Column(JSONB, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )


class DeliveryLog(Base):
    """Append-only record of one inbound event fanned out to one destination."""

    __tablename__ = "delivery_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Caller supplied; the same id legitimately repeats across destinations and retries
    event_id = Column(String, nullable=False, index=True)
    account_id = Column(
        UUID(as_uuid=True),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    destination_id = Column(
        UUID(as_uuid=True),
        ForeignKey("destinations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    received_data = Column(JSONB, nullable=False)
    status = Column(String, nullable=False, default="success")
    received_timestamp = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    processed_timestamp = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        Index("ix_delivery_logs_account_received", "account_id", received_timestamp.desc()),
    )


# --- Pydantic Schemas ---

DeliveryStatus = Literal["success", "failed"]


class Tenant(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    account_name: str
    website: str | None = None
    app_secret_token: str


class DestinationSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    account_id: uuid.UUID
    url: str
    http_method: str = "POST"
    headers: Dict[str, Any] = Field(default_factory=dict)


class DeliveryLogCreate(BaseModel):
    event_id: str
    account_id: uuid.UUID
    destination_id: uuid.UUID
    received_data: Any
    status: DeliveryStatus = "success"
    received_timestamp: datetime = Field(default_factory=_utcnow)


class DeliveryLogSchema(DeliveryLogCreate):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    processed_timestamp: datetime | None = None
