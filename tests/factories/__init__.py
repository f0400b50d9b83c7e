"""Request factories for API tests."""

from tests.factories.api import (
    HOOK,
    MAPPING,
    PAID_PLANS,
    create_destination,
    create_pipeline,
    create_route,
    create_transformation,
    log_event,
)

__all__ = [
    "HOOK",
    "MAPPING",
    "PAID_PLANS",
    "create_destination",
    "create_pipeline",
    "create_route",
    "create_transformation",
    "log_event",
]
