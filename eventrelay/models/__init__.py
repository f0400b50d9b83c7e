"""
Models package for the application.
"""

from .event import Event
from .destination import Destination
from .transformation import Transformation
from .route import Route
from .inbound_provider_event import InboundProviderEvent

__all__ = [
    "Event",
    "Destination",
    "Transformation",
    "Route",
    "InboundProviderEvent",
]
