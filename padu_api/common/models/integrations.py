"""Integration models (review sources connected by a user)."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4, UUID

from sqlalchemy import (
    String,
    Index,
    Integer,
    JSON,
    TIMESTAMP,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from padu_api.common.models.base import Base, utcnow


class IntegrationStatus(str, Enum):
    """Connection state of an integration."""

    PENDING = "pending"
    CONNECTED = "connected"
    ERROR = "error"
    DISCONNECTED = "disconnected"


class Integration(Base):
    """A review source owned by one user (CSV uploads use type ``csv``)."""

    __tablename__ = "integrations"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), nullable=False, index=True
    )
    platform: Mapped[str] = mapped_column(String(50), nullable=False)
    type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="csv"
    )  # "csv", "api"
    name: Mapped[Optional[str]] = mapped_column(String(200))
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=IntegrationStatus.PENDING.value
    )
    total_reviews: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[Optional[dict]] = mapped_column(
        "metadata", JSON, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("ix_integrations_user_platform", "user_id", "platform"),
    )
