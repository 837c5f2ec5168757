"""Validation rules for review import data.

Validation is a pure function of ``(rows, mapping)``: every rule looks at one
row in isolation, and issues come out in ascending row order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, Optional

from padu_api.imports.coercers import (
    VALID_PROVIDERS,
    coerce_provider,
    coerce_rating,
    coerce_review_datetime,
    coerce_string,
)
from padu_api.imports.mappers import (
    REQUIRED_FIELDS,
    ColumnMapping,
    apply_mapping,
)
from padu_api.imports.parsers import ParsedRow
from padu_api.imports.surrogate import review_key

DEFAULT_TEXT_WARNING_LENGTH = 5000

# Storage limits of the optional string columns
MAX_LENGTHS = {
    "external_review_id": 255,
    "language": 16,
    "title": 500,
}


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class ValidationIssue:
    """A problem attributed to one 1-based data row."""

    row: int
    field: str
    message: str
    severity: Severity = Severity.ERROR

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    def format(self) -> str:
        return f"Row {self.row}: {self.message}"


def validate_required(value: Any, field_name: str) -> Optional[str]:
    """Validate that required field is not empty."""
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return f"Required field '{field_name}' is missing"
    return None


def validate_provider(value: str) -> Optional[str]:
    if not coerce_provider(value).success:
        return (
            f"Invalid platform '{value}'. "
            f"Must be one of: {', '.join(VALID_PROVIDERS)}"
        )
    return None


def validate_rating(value: str) -> Optional[str]:
    if not coerce_rating(value).success:
        return f"Invalid rating '{value}'. Rating must be between 1 and 5"
    return None


def validate_date(value: str) -> Optional[str]:
    if not coerce_review_datetime(value).success:
        return (
            f"Invalid date '{value}'. Use ISO 8601 "
            "(e.g., 2025-07-22T14:05:00Z) or MM/DD/YYYY"
        )
    return None


def validate_string_length(value: str, max_length: int) -> Optional[str]:
    """Validate string length."""
    result = coerce_string(value, {"max_length": max_length})
    if not result.success:
        return result.error
    return None


FORMAT_RULES = {
    "provider": validate_provider,
    "rating": validate_rating,
    "created_at": validate_date,
    "responded_at": validate_date,
}


def validate_record(
    record: Mapping[str, str],
    row_number: int,
    text_warning_length: int = DEFAULT_TEXT_WARNING_LENGTH,
) -> list[ValidationIssue]:
    """
    Validate one canonical record (field -> raw string).

    Args:
        record: Output of ``apply_mapping`` or ``map_row_values``
        row_number: 1-based data row the record came from
        text_warning_length: Texts longer than this get a warning

    Returns:
        Issues for the row, errors before warnings, in field order
    """
    issues: list[ValidationIssue] = []

    for field_name in REQUIRED_FIELDS:
        message = validate_required(record.get(field_name), field_name)
        if message:
            issues.append(ValidationIssue(row_number, field_name, message))

    for field_name, rule in FORMAT_RULES.items():
        value = (record.get(field_name) or "").strip()
        if not value:
            continue
        message = rule(value)
        if message:
            issues.append(ValidationIssue(row_number, field_name, message))

    for field_name, max_length in MAX_LENGTHS.items():
        value = record.get(field_name) or ""
        message = validate_string_length(value, max_length)
        if message:
            issues.append(ValidationIssue(row_number, field_name, message))

    text = record.get("text") or ""
    if len(text) > text_warning_length:
        issues.append(
            ValidationIssue(
                row_number,
                "text",
                f"Review text is longer than {text_warning_length} characters",
                Severity.WARNING,
            )
        )
    return issues


def validate_row(
    row: ParsedRow,
    mapping: ColumnMapping,
    text_warning_length: int = DEFAULT_TEXT_WARNING_LENGTH,
) -> list[ValidationIssue]:
    """Validate a parsed row through a column mapping."""
    return validate_record(
        apply_mapping(row, mapping), row.row_number, text_warning_length
    )


def validate_rows(
    rows: Iterable[ParsedRow],
    mapping: ColumnMapping,
    text_warning_length: int = DEFAULT_TEXT_WARNING_LENGTH,
) -> Iterator[ValidationIssue]:
    """Lazily yield every issue, in row order."""
    for row in rows:
        yield from validate_row(row, mapping, text_warning_length)


def iter_accepted_rows(
    rows: Iterable[ParsedRow],
    mapping: ColumnMapping,
    text_warning_length: int = DEFAULT_TEXT_WARNING_LENGTH,
) -> Iterator[ParsedRow]:
    """Rows with no error-severity issue (warnings are allowed through)."""
    for row in rows:
        if not any(i.is_error for i in validate_row(row, mapping, text_warning_length)):
            yield row


def check_duplicate(
    record: Mapping[str, str],
    row_number: int,
    first_seen: dict[tuple[str, str], int],
) -> Optional[ValidationIssue]:
    """Warn when a valid record has the same review key as an earlier row."""
    key = review_key(record)
    first = first_seen.setdefault(key, row_number)
    if first == row_number:
        return None
    return ValidationIssue(
        row_number,
        "external_review_id",
        f"Same review as row {first}; the later row overwrites it on import",
        Severity.WARNING,
    )


@dataclass(frozen=True)
class ValidationPolicy:
    """Share of rows that may carry errors before import is blocked.

    ``max_error_ratio=0.0`` blocks on any error; ``0.02`` tolerates up to 2%
    of rows with errors (those rows are skipped).
    """

    max_error_ratio: float = 0.0

    def allows(self, error_rows: int, total_rows: int) -> bool:
        if total_rows <= 0:
            return False
        return error_rows / total_rows <= self.max_error_ratio


@dataclass
class ValidationReport:
    """Aggregate of a full validation pass."""

    total_rows: int = 0
    error_rows: int = 0
    warning_rows: int = 0
    error_count: int = 0
    warning_count: int = 0
    issues: list[ValidationIssue] = field(default_factory=list)
    error_issues: list[ValidationIssue] = field(default_factory=list)
    preview_limit: int = 10

    @property
    def accepted_rows(self) -> int:
        return self.total_rows - self.error_rows

    def add_row(self, row_issues: list[ValidationIssue]) -> None:
        self.total_rows += 1
        errors = sum(1 for i in row_issues if i.is_error)
        warnings = len(row_issues) - errors
        self.error_count += errors
        self.warning_count += warnings
        if errors:
            self.error_rows += 1
        elif warnings:
            self.warning_rows += 1
        room = self.preview_limit - len(self.issues)
        if room > 0:
            self.issues.extend(row_issues[:room])
        room = self.preview_limit - len(self.error_issues)
        if room > 0:
            self.error_issues.extend([i for i in row_issues if i.is_error][:room])

    def is_importable(self, policy: ValidationPolicy) -> bool:
        return self.accepted_rows > 0 and policy.allows(self.error_rows, self.total_rows)

    def preview(self) -> list[ValidationIssue]:
        """Up to ``preview_limit`` issues, errors first.

        Errors are kept apart from warnings so rows that block the import
        are always listed, however many warnings come before them.
        """
        warnings = [issue for issue in self.issues if not issue.is_error]
        return (self.error_issues + warnings)[: self.preview_limit]

    def messages(self) -> list[str]:
        return [issue.format() for issue in self.preview()]

    @classmethod
    def build(
        cls,
        rows: Iterable[ParsedRow],
        mapping: ColumnMapping,
        preview_limit: int = 10,
        text_warning_length: int = DEFAULT_TEXT_WARNING_LENGTH,
    ) -> "ValidationReport":
        """
        Validate all rows, keeping counts and the first ``preview_limit`` issues.

        Valid rows that resolve to the same review id (native or surrogate)
        as an earlier row get a warning: the import keeps the last one.
        """
        report = cls(preview_limit=preview_limit)
        first_seen: dict[tuple[str, str], int] = {}
        for row in rows:
            record = apply_mapping(row, mapping)
            issues = validate_record(record, row.row_number, text_warning_length)
            if not any(issue.is_error for issue in issues):
                duplicate = check_duplicate(record, row.row_number, first_seen)
                if duplicate:
                    issues.append(duplicate)
            report.add_row(issues)
        return report
