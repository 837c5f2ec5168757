"""OpenTelemetry metrics for the ingestion service.

Counters are created lazily from the globally registered meter provider, so
emission is a no-op until ``setup_opentelemetry`` installs a real provider.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from opentelemetry import metrics
from opentelemetry.metrics import Counter, Meter

from padu_api.core.config import settings

logger = logging.getLogger(__name__)


class ImportMetric:
    """Catalog of import business metrics with standardized naming."""

    IMPORT_JOB_CREATED = "ImportJobCreated"
    IMPORT_JOB_COMPLETED = "ImportJobCompleted"
    IMPORT_JOB_FAILED = "ImportJobFailed"
    IMPORT_JOB_CANCELLED = "ImportJobCancelled"
    IMPORT_ROW_FAILED = "ImportRowFailed"


# Global meter instance
_meter: Meter | None = None

# Metric instruments (lazy initialization)
_error_counter: Counter | None = None
_business_metric_counter: Counter | None = None

_UUID_SEGMENT = re.compile(
    r"/[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
)


def get_meter() -> Meter:
    """Get or create the global OpenTelemetry meter instance."""
    global _meter
    if _meter is None:
        meter_provider = metrics.get_meter_provider()
        _meter = meter_provider.get_meter(
            name=settings.metrics_namespace or settings.app_name.replace(" ", "/"),
            version="1.0.0",
        )
    return _meter


def _get_error_counter() -> Counter:
    """Get or create error counter metric."""
    global _error_counter
    if _error_counter is None:
        _error_counter = get_meter().create_counter(
            name="errors_total",
            description="Total number of errors",
            unit="1",
        )
    return _error_counter


def _get_business_metric_counter() -> Counter:
    """Get or create business metric counter."""
    global _business_metric_counter
    if _business_metric_counter is None:
        _business_metric_counter = get_meter().create_counter(
            name="business_metrics_total",
            description="Total number of business metric events",
            unit="1",
        )
    return _business_metric_counter


def _normalize_path(path: str) -> str:
    """Replace UUID path segments to keep route cardinality low."""
    return _UUID_SEGMENT.sub("/{id}", path)


def emit_error(
    error_code: str,
    status_code: int,
    path: str,
    method: str,
    **metadata: Any,
) -> None:
    """Emit an error counter increment."""
    if not settings.enable_metrics:
        return

    try:
        if status_code >= 500:
            severity = "server_error"
        elif status_code >= 400:
            severity = "client_error"
        else:
            severity = "unknown"

        attributes = {
            "error.code": error_code,
            "http.status_code": str(status_code),
            "error.severity": severity,
            "http.method": method,
            "http.route": _normalize_path(path),
        }
        for key, value in metadata.items():
            if value is not None:
                attributes[key] = str(value)

        _get_error_counter().add(1, attributes=attributes)
    except Exception as e:
        logger.warning(f"Failed to emit error metric: {e}", exc_info=True)


def emit_import_metric(
    metric_name: str,
    value: int = 1,
    **metadata: Any,
) -> None:
    """Emit an import business metric.

    Args:
        metric_name: Metric name from ImportMetric
        value: Increment (row counts for row-level metrics)
        **metadata: Additional attributes such as user_id or import_job_id
    """
    if not settings.enable_metrics:
        return

    try:
        attributes = {
            "metric.name": metric_name,
            "metric.category": "import",
        }
        for key, meta_value in metadata.items():
            if meta_value is not None:
                attributes[key] = str(meta_value)

        _get_business_metric_counter().add(int(value), attributes=attributes)
    except Exception as e:
        logger.warning(f"Failed to emit business metric: {e}", exc_info=True)
