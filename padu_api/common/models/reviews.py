"""Canonical review records."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4, UUID

from sqlalchemy import (
    String,
    ForeignKey,
    UniqueConstraint,
    Index,
    Integer,
    TIMESTAMP,
    Uuid,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from padu_api.common.models.base import (
    Base,
    ReviewProvider,
    ReviewSentiment,
    utcnow,
)


class Sentiment(str, Enum):
    """Sentiment bucket derived from the star rating."""

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"

    @classmethod
    def from_rating(cls, rating: int) -> "Sentiment":
        if rating >= 4:
            return cls.POSITIVE
        if rating == 3:
            return cls.NEUTRAL
        return cls.NEGATIVE


class Review(Base):
    """Reviews table, one row per (user, provider, external review id)."""

    __tablename__ = "reviews"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), nullable=False, index=True
    )
    integration_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("integrations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    provider: Mapped[str] = mapped_column(ReviewProvider, nullable=False)
    # Platform-native id, or a surrogate content hash
    external_review_id: Mapped[str] = mapped_column(String(255), nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    text: Mapped[Optional[str]] = mapped_column(Text)
    language: Mapped[Optional[str]] = mapped_column(String(16))
    date: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(500))
    response_text: Mapped[Optional[str]] = mapped_column(Text)
    responded_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True)
    )
    sentiment: Mapped[Optional[str]] = mapped_column(ReviewSentiment)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "provider",
            "external_review_id",
            name="uq_reviews_user_provider_external_id",
        ),
        Index("ix_reviews_user_date", "user_id", "date"),
    )
