"""Review store: upsert-based persistence of canonical review records."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from padu_api.common.models import Review, utcnow

logger = logging.getLogger(__name__)

CONFLICT_KEYS = ("user_id", "provider", "external_review_id")

# Columns replaced on conflict; the key, id and created_at are kept
OVERWRITE_COLUMNS = (
    "integration_id",
    "rating",
    "text",
    "language",
    "date",
    "title",
    "response_text",
    "responded_at",
    "sentiment",
)


@dataclass
class ReviewRecord:
    """A fully coerced review ready to be written."""

    user_id: UUID
    provider: str
    external_review_id: str
    rating: int
    date: datetime
    integration_id: Optional[UUID] = None
    text: Optional[str] = None
    language: Optional[str] = None
    title: Optional[str] = None
    response_text: Optional[str] = None
    responded_at: Optional[datetime] = None
    sentiment: Optional[str] = None

    @property
    def key(self) -> tuple[UUID, str, str]:
        return (self.user_id, self.provider, self.external_review_id)


@dataclass
class UpsertResult:
    """Affected counts of one upsert batch."""

    inserted: int = 0
    updated: int = 0

    @property
    def affected(self) -> int:
        return self.inserted + self.updated


class ReviewStore(ABC):
    """Storage contract for reviews.

    ``upsert`` is keyed on ``(user_id, provider, external_review_id)``. On
    conflict the stored row is overwritten by the incoming values (no field
    merging). A batch is applied atomically: all of it or none of it.
    """

    @abstractmethod
    def upsert(self, records: Iterable[ReviewRecord]) -> UpsertResult:
        """Insert or overwrite a batch of reviews."""

    @abstractmethod
    def count_for_integration(self, integration_id: UUID) -> int:
        """Number of stored reviews attributed to an integration."""


class SqlReviewStore(ReviewStore):
    """SQLAlchemy-backed store using the dialect's ``ON CONFLICT DO UPDATE``."""

    def __init__(self, db: Session):
        self.db = db

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(Review)
        if dialect == "sqlite":
            return sqlite_insert(Review)
        raise NotImplementedError(f"Upsert not supported for dialect: {dialect}")

    def _existing_keys(
        self, records: list[ReviewRecord]
    ) -> set[tuple[UUID, str, str]]:
        """Keys of the batch that are already stored."""
        grouped: dict[tuple[UUID, str], list[str]] = {}
        for record in records:
            grouped.setdefault((record.user_id, record.provider), []).append(
                record.external_review_id
            )

        existing: set[tuple[UUID, str, str]] = set()
        for (user_id, provider), external_ids in grouped.items():
            found = self.db.execute(
                select(Review.external_review_id).where(
                    Review.user_id == user_id,
                    Review.provider == provider,
                    Review.external_review_id.in_(external_ids),
                )
            ).scalars()
            existing.update((user_id, provider, ext_id) for ext_id in found)
        return existing

    def upsert(self, records: Iterable[ReviewRecord]) -> UpsertResult:
        """
        Insert or overwrite reviews in one transaction.

        Duplicate keys inside the batch collapse to the last occurrence.

        Args:
            records: Reviews to write

        Returns:
            UpsertResult with inserted/updated counts

        Raises:
            SQLAlchemyError: the batch was rolled back
        """
        batch: dict[tuple[UUID, str, str], ReviewRecord] = {}
        for record in records:
            batch[record.key] = record
        if not batch:
            return UpsertResult()

        unique_records = list(batch.values())
        now = utcnow()
        try:
            existing = self._existing_keys(unique_records)

            stmt = self._insert().values(
                [
                    {**asdict(record), "id": uuid4(), "created_at": now, "updated_at": now}
                    for record in unique_records
                ]
            )
            overwrite = {name: stmt.excluded[name] for name in OVERWRITE_COLUMNS}
            overwrite["updated_at"] = now
            stmt = stmt.on_conflict_do_update(
                index_elements=list(CONFLICT_KEYS),
                set_=overwrite,
            )
            self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        inserted = sum(1 for key in batch if key not in existing)
        return UpsertResult(
            inserted=inserted,
            updated=len(batch) - inserted,
        )

    def count_for_integration(self, integration_id: UUID) -> int:
        return self.db.execute(
            select(func.count(Review.id)).where(
                Review.integration_id == integration_id
            )
        ).scalar_one()

    def count_for_user(self, user_id: UUID) -> int:
        return self.db.execute(
            select(func.count(Review.id)).where(Review.user_id == user_id)
        ).scalar_one()
