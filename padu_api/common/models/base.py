"""Base classes shared across all models."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Enum, MetaData
from sqlalchemy.orm import DeclarativeBase


NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=NAMING_CONVENTION)


class Base(DeclarativeBase):
    metadata = metadata


def utcnow() -> datetime:
    """Timezone-aware current time, used as column default."""
    return datetime.now(timezone.utc)


# Enums
ReviewProvider = Enum("google", "tripadvisor", "booking", name="review_provider")
ReviewSentiment = Enum("positive", "neutral", "negative", name="review_sentiment")
