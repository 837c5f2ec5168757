"""Column mapping and auto-detection for review imports."""

from __future__ import annotations

import re
from typing import Iterable, Mapping, Optional

from fuzzywuzzy import fuzz

from padu_api.imports.parsers import ParsedRow

# Canonical review schema, in template column order
CANONICAL_FIELDS = (
    "provider",
    "external_review_id",
    "rating",
    "text",
    "language",
    "created_at",
    "title",
    "response_text",
    "responded_at",
)
REQUIRED_FIELDS = ("provider", "rating", "created_at")
IGNORED = "ignored"

EXACT_SCORE = 100
SUBSTRING_SCORE = 90
FUZZY_THRESHOLD = 80
MIN_SUBSTRING_LENGTH = 3

# Header variations per canonical field. The simplified upload layout
# (date, platform, rating, text, title) is covered by the aliases.
FIELD_MAPPINGS: dict[str, list[str]] = {
    "provider": [
        "provider",
        "platform",
        "source",
        "review platform",
        "review source",
        "site",
        "channel",
    ],
    "external_review_id": [
        "external review id",
        "review id",
        "external id",
        "reviewid",
        "id",
    ],
    "rating": ["rating", "stars", "star rating", "score", "rating value"],
    "text": ["text", "review text", "review", "comment", "content", "body"],
    "language": ["language", "lang", "locale"],
    "created_at": [
        "created at",
        "date",
        "review date",
        "created",
        "posted at",
        "published at",
    ],
    "title": ["title", "review title", "headline", "subject"],
    "response_text": [
        "response text",
        "response",
        "reply",
        "owner response",
        "management response",
    ],
    "responded_at": ["responded at", "response date", "reply date", "replied at"],
}


class IncompleteMapping(Exception):
    """A required field is unmapped, or the mapping is inconsistent."""

    def __init__(self, message: str, missing: Optional[list[str]] = None):
        self.missing = missing or []
        super().__init__(message)


def normalize_column_name(name: str) -> str:
    """Normalize column name for matching."""
    name = name.lower().strip().replace("_", " ").replace("-", " ").replace(".", " ")
    return re.sub(r"\s+", " ", name)


def score_header(header: str, variation: str) -> int:
    """
    Score how well a source header matches one field variation.

    Exact (normalized) match scores 100. A variation of at least
    ``MIN_SUBSTRING_LENGTH`` characters found anywhere in the header, spaces
    ignored, scores 90 ("ReviewRating" and "StarRating" both hit "rating").
    Otherwise the fuzzy ratio is used when it clears the threshold.
    """
    source = normalize_column_name(header)
    target = normalize_column_name(variation)
    if not source:
        return 0
    if source == target:
        return EXACT_SCORE
    if len(target) >= MIN_SUBSTRING_LENGTH and target.replace(" ", "") in source.replace(" ", ""):
        return SUBSTRING_SCORE
    ratio = fuzz.ratio(source, target)
    return ratio if ratio >= FUZZY_THRESHOLD else 0


class ColumnMapping:
    """Canonical field -> source header.

    A header is bound to at most one field; assigning a header that is
    already in use moves it (last write wins).
    """

    def __init__(self, assignments: Optional[Mapping[str, str]] = None):
        self._fields: dict[str, str] = {}
        for field_name, header in (assignments or {}).items():
            self.assign(field_name, header)

    def assign(self, field_name: str, header: str) -> None:
        if field_name not in CANONICAL_FIELDS:
            raise IncompleteMapping(f"Unknown field '{field_name}'")
        for other, bound in list(self._fields.items()):
            if bound == header and other != field_name:
                del self._fields[other]
        self._fields[field_name] = header

    def ignore(self, header: str) -> None:
        """Unbind a header from whichever field it was mapped to."""
        for field_name, bound in list(self._fields.items()):
            if bound == header:
                del self._fields[field_name]

    def header_for(self, field_name: str) -> Optional[str]:
        return self._fields.get(field_name)

    def field_for(self, header: str) -> str:
        for field_name, bound in self._fields.items():
            if bound == header:
                return field_name
        return IGNORED

    def missing_required(self) -> list[str]:
        return [f for f in REQUIRED_FIELDS if f not in self._fields]

    def is_complete(self) -> bool:
        return not self.missing_required()

    def as_dict(self) -> dict[str, str]:
        return dict(self._fields)

    def to_wire(self, headers: list[str]) -> dict[str, str]:
        """Column-index keyed mapping sent with each chunk."""
        return {str(index): self.field_for(header) for index, header in enumerate(headers)}

    @classmethod
    def from_wire(
        cls, column_mapping: Mapping[str, str], headers: list[str]
    ) -> "ColumnMapping":
        """Rebuild a mapping from ``{column index or header: field}``.

        Raises:
            IncompleteMapping: unknown field, unknown column, or a field
                mapped from two columns
        """
        validate_wire_mapping(column_mapping, len(headers), headers)
        mapping = cls()
        for source, field_name in column_mapping.items():
            if field_name == IGNORED:
                continue
            header = headers[int(source)] if source.isdigit() else source
            mapping.assign(field_name, header)
        return mapping

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ColumnMapping):
            return NotImplemented
        return self._fields == other._fields

    def __repr__(self) -> str:
        return f"ColumnMapping({self._fields!r})"


def is_complete(mapping: ColumnMapping) -> bool:
    """True iff every required field is mapped to exactly one header."""
    return mapping.is_complete()


def auto_map_columns(headers: Iterable[str]) -> ColumnMapping:
    """
    Propose an initial mapping from source headers.

    Candidates are ranked by score, then by the length of the matched
    variation, then by canonical field order. Assignment is greedy so no
    header ends up on two fields and no field takes two headers.

    Args:
        headers: Source column names in file order

    Returns:
        ColumnMapping (possibly incomplete)
    """
    header_list = list(headers)
    candidates = []
    for header_index, header in enumerate(header_list):
        for field_index, field_name in enumerate(CANONICAL_FIELDS):
            best_score = 0
            best_length = 0
            for variation in FIELD_MAPPINGS[field_name]:
                score = score_header(header, variation)
                if (score, len(variation)) > (best_score, best_length):
                    best_score, best_length = score, len(variation)
            if best_score:
                candidates.append(
                    (-best_score, -best_length, field_index, header_index, field_name, header)
                )

    mapping = ColumnMapping()
    used_headers: set[int] = set()
    for _, _, _, header_index, field_name, header in sorted(candidates):
        if header_index in used_headers or mapping.header_for(field_name) is not None:
            continue
        mapping.assign(field_name, header)
        used_headers.add(header_index)
    return mapping


def validate_wire_mapping(
    column_mapping: Mapping[str, str],
    column_count: int,
    headers: Optional[list[str]] = None,
) -> None:
    """Check a submitted ``{column: field}`` mapping.

    Keys are column indexes (strings of digits) or, when ``headers`` is
    given, header names.

    Raises:
        IncompleteMapping: with ``missing`` set when required fields are absent
    """
    seen: dict[str, str] = {}
    for source, field_name in column_mapping.items():
        if field_name != IGNORED and field_name not in CANONICAL_FIELDS:
            raise IncompleteMapping(f"Unknown field '{field_name}' for column {source}")
        if source.isdigit():
            if int(source) >= column_count:
                raise IncompleteMapping(f"Column index {source} is out of range")
        elif headers is None or source not in headers:
            raise IncompleteMapping(f"Unknown column '{source}'")
        if field_name == IGNORED:
            continue
        if field_name in seen:
            raise IncompleteMapping(
                f"Field '{field_name}' is mapped from both {seen[field_name]} and {source}"
            )
        seen[field_name] = source

    missing = [f for f in REQUIRED_FIELDS if f not in seen]
    if missing:
        raise IncompleteMapping(
            f"Required fields not mapped: {', '.join(missing)}", missing=missing
        )


def apply_mapping(row: ParsedRow, mapping: ColumnMapping) -> dict[str, str]:
    """Project a parsed row onto the canonical fields ("" when unmapped)."""
    return {
        field_name: row.get(mapping.header_for(field_name))
        for field_name in CANONICAL_FIELDS
    }


def map_row_values(
    values: list[str], column_mapping: Mapping[str, str]
) -> dict[str, str]:
    """Project a positional row (as submitted in a chunk) onto canonical fields."""
    mapped = {field_name: "" for field_name in CANONICAL_FIELDS}
    for index, field_name in column_mapping.items():
        if field_name == IGNORED:
            continue
        position = int(index)
        if position < len(values):
            value = values[position]
            mapped[field_name] = "" if value is None else str(value).strip()
    return mapped
