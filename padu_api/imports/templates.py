"""Downloadable CSV template for the review importer."""

from __future__ import annotations

import csv
import io

TEMPLATE_FILENAME = "padu_reviews_template.csv"

TEMPLATE_HEADERS = [
    "provider",
    "external_review_id",
    "rating",
    "text",
    "language",
    "created_at",
    "response_text",
    "responded_at",
]

TEMPLATE_ROWS = [
    [
        "google",
        "ChdDSUhNMG9nS0VJQ0FnSUQ2cU5UQW53RRAB",
        "5",
        "Amazing hotel with great service!",
        "en",
        "2025-07-22T14:05:00Z",
        "Thank you for your wonderful review!",
        "2025-07-23T09:00:00Z",
    ],
    [
        "tripadvisor",
        "12345678",
        "4",
        "Nice place, good location. Room was clean.",
        "en",
        "2025-07-21T18:30:00Z",
        "",
        "",
    ],
]


def build_template_csv() -> bytes:
    """Template file with every cell quoted, UTF-8 encoded."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(TEMPLATE_HEADERS)
    writer.writerows(TEMPLATE_ROWS)
    return buffer.getvalue().encode("utf-8")
