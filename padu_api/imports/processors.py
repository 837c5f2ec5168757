"""Row processors for import jobs."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping, Optional
from uuid import UUID

from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError

from padu_api.common.models import Sentiment
from padu_api.core.config import settings
from padu_api.imports.coercers import (
    coerce_provider,
    coerce_rating,
    coerce_review_datetime,
    coerce_string,
)
from padu_api.imports.mappers import map_row_values
from padu_api.imports.surrogate import resolve_review_id
from padu_api.imports.validators import ValidationIssue, validate_record
from padu_api.reviews.store import ReviewRecord, ReviewStore

logger = logging.getLogger(__name__)

ERROR_TYPE_VALIDATION = "validation"
ERROR_TYPE_HASHING = "hashing"
ERROR_TYPE_STORAGE = "storage"

OUTCOME_INSERTED = "inserted"
OUTCOME_UPDATED = "updated"


@dataclass
class ProcessResult:
    """Result of processing a row."""

    success: bool
    outcome: Optional[str] = None  # "inserted" or "updated"
    error_type: Optional[str] = None
    errors: list[ValidationIssue] = None
    message: Optional[str] = None
    mapped: Optional[dict[str, str]] = None

    def __post_init__(self):
        """Initialize default values."""
        if self.errors is None:
            self.errors = []

    @property
    def error_message(self) -> str:
        if self.message:
            return self.message
        return "; ".join(issue.message for issue in self.errors)


class RowProcessor(ABC):
    """Abstract base class for row processors."""

    @abstractmethod
    def process_row(
        self,
        values: list[Any],
        row_number: int,
        column_mapping: Mapping[str, str],
    ) -> ProcessResult:
        """Process a single submitted row."""


class ReviewRowProcessor(RowProcessor):
    """Validate, identify and upsert one review row at a time.

    Validation, hashing and storage problems come back as a failed
    ``ProcessResult``. Lost database connectivity (``OperationalError``,
    ``InterfaceError``) is re-raised so the job fails as a whole.
    """

    def __init__(
        self,
        store: ReviewStore,
        user_id: UUID,
        integration_id: Optional[UUID] = None,
        text_warning_length: Optional[int] = None,
    ):
        self.store = store
        self.user_id = user_id
        self.integration_id = integration_id
        self.text_warning_length = (
            text_warning_length or settings.import_text_warning_length
        )

    def build_record(self, mapped: Mapping[str, str], external_review_id: str) -> ReviewRecord:
        """Coerce an already validated canonical row into a ReviewRecord."""
        provider = coerce_provider(mapped["provider"]).coerced_value
        rating = coerce_rating(mapped["rating"]).coerced_value
        created_at = coerce_review_datetime(mapped["created_at"]).coerced_value
        responded_at = None
        if mapped.get("responded_at"):
            responded_at = coerce_review_datetime(mapped["responded_at"]).coerced_value

        return ReviewRecord(
            user_id=self.user_id,
            integration_id=self.integration_id,
            provider=provider,
            external_review_id=external_review_id,
            rating=rating,
            date=created_at,
            text=coerce_string(mapped.get("text")).coerced_value,
            language=coerce_string(mapped.get("language")).coerced_value,
            title=coerce_string(mapped.get("title")).coerced_value,
            response_text=coerce_string(mapped.get("response_text")).coerced_value,
            responded_at=responded_at,
            sentiment=Sentiment.from_rating(rating).value,
        )

    def process_row(
        self,
        values: list[Any],
        row_number: int,
        column_mapping: Mapping[str, str],
    ) -> ProcessResult:
        """
        Process one row.

        Args:
            values: Positional cell values as submitted
            row_number: 1-based data row in the original file
            column_mapping: ``{column index: canonical field}``

        Returns:
            ProcessResult with outcome ``inserted``/``updated`` or an error type

        Raises:
            OperationalError, InterfaceError: storage is unreachable
        """
        mapped = map_row_values(values, column_mapping)

        issues = validate_record(mapped, row_number, self.text_warning_length)
        errors = [issue for issue in issues if issue.is_error]
        if errors:
            return ProcessResult(
                success=False,
                error_type=ERROR_TYPE_VALIDATION,
                errors=errors,
                mapped=mapped,
            )

        try:
            external_id = resolve_review_id(mapped)
        except (UnicodeEncodeError, ValueError, TypeError) as e:
            return ProcessResult(
                success=False,
                error_type=ERROR_TYPE_HASHING,
                message=f"Could not compute review id: {e}",
                mapped=mapped,
            )

        record = self.build_record(mapped, external_id)
        try:
            result = self.store.upsert([record])
        except (OperationalError, InterfaceError):
            raise
        except SQLAlchemyError as e:
            logger.warning(f"Storage error on row {row_number}: {e}")
            return ProcessResult(
                success=False,
                error_type=ERROR_TYPE_STORAGE,
                message=f"Could not store review: {getattr(e, 'orig', None) or e}",
                mapped=mapped,
            )

        return ProcessResult(
            success=True,
            outcome=OUTCOME_INSERTED if result.inserted else OUTCOME_UPDATED,
            mapped=mapped,
        )
