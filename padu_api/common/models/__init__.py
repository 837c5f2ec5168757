"""Models package - exports the shared models.

Models are organized into:
- base: Base class, metadata and column defaults
- integrations: review sources a user has connected
- reviews: canonical review records

Import job tables live in ``padu_api.imports.models``.
"""

from __future__ import annotations

from padu_api.common.models.base import (
    Base,
    metadata,
    NAMING_CONVENTION,
    utcnow,
)
from padu_api.common.models.integrations import (
    Integration,
    IntegrationStatus,
)
from padu_api.common.models.reviews import (
    Review,
    Sentiment,
)

__all__ = [
    # Base
    "Base",
    "metadata",
    "NAMING_CONVENTION",
    "utcnow",
    # Integrations
    "Integration",
    "IntegrationStatus",
    # Reviews
    "Review",
    "Sentiment",
]
