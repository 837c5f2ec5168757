"""OpenTelemetry SDK setup and configuration."""

from __future__ import annotations

import logging

from opentelemetry import metrics
from opentelemetry.exporter.otlp.proto.http.metric_exporter import (
    OTLPMetricExporter,
)
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource

from padu_api.core.config import settings

logger = logging.getLogger(__name__)

_initialized = False


def setup_opentelemetry() -> None:
    """Initialize the OpenTelemetry meter provider."""
    global _initialized

    if _initialized:
        return

    if not settings.enable_metrics:
        logger.info("OpenTelemetry metrics disabled via configuration")
        return

    try:
        resource = Resource.create(
            {
                "service.name": settings.otel_service_name or settings.app_name,
                "service.namespace": (
                    settings.metrics_namespace or settings.app_name.replace(" ", "/")
                ),
            }
        )

        if settings.otel_exporter_otlp_endpoint:
            metrics_endpoint = settings.otel_exporter_otlp_endpoint + "/v1/metrics"
            metric_reader = PeriodicExportingMetricReader(
                OTLPMetricExporter(endpoint=metrics_endpoint),
                export_interval_millis=60000,
            )
            meter_provider = MeterProvider(
                resource=resource, metric_readers=[metric_reader]
            )
            logger.info(f"OpenTelemetry metrics exporter configured: {metrics_endpoint}")
        else:
            # No exporter: instruments record into a provider nobody reads
            meter_provider = MeterProvider(resource=resource)
            logger.info(
                "OpenTelemetry metrics exporter not configured (no endpoint specified)"
            )

        metrics.set_meter_provider(meter_provider)
        _initialized = True
    except Exception as e:
        logger.warning(
            "Failed to initialize OpenTelemetry SDK: %s", e, exc_info=True
        )
