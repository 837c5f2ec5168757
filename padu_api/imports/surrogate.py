"""Surrogate review ids for rows without a platform-native id."""

from __future__ import annotations

import hashlib
from typing import Mapping

from padu_api.imports.coercers import coerce_provider, coerce_review_datetime, to_iso8601

SEPARATOR = "|"


def surrogate_review_id(provider: str, created_at: str, text: str) -> str:
    """
    Deterministic SHA-256 hex digest of ``"{provider}|{created_at}|{text}"``.

    Callers pass the normalized provider and ISO-8601 ``created_at`` so the
    same logical review hashes the same way on every import.

    Returns:
        64-character lowercase hex string
    """
    payload = SEPARATOR.join((provider, created_at, text or ""))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def resolve_review_id(record: Mapping[str, str]) -> str:
    """Native ``external_review_id``, or the surrogate of provider/created_at/text.

    ``record`` must already have passed validation.
    """
    external_id = (record.get("external_review_id") or "").strip()
    if external_id:
        return external_id
    provider = coerce_provider(record["provider"]).coerced_value
    created_at = coerce_review_datetime(record["created_at"]).coerced_value
    return surrogate_review_id(provider, to_iso8601(created_at), record.get("text") or "")


def review_key(record: Mapping[str, str]) -> tuple[str, str]:
    """``(provider, review id)``: the per-user part of the storage upsert key."""
    return coerce_provider(record["provider"]).coerced_value, resolve_review_id(record)
