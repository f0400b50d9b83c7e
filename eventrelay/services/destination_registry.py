"""
In-memory registry of live destinations keyed by name.

Writers build a new mapping and swap it in; readers iterate over a snapshot,
so a delivery in flight never sees a half-applied change.
"""

import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from eventrelay.core.logger import get_logger
from eventrelay.enums import BodyFormat, HttpMethod
from eventrelay.services.transformer_service import transformer_service

logger = get_logger("destination_registry")

NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,100}$")
DEFAULT_TIMEOUT_MS = 5000


def normalize_event_types(event_types: Any) -> List[str]:
    if event_types is None or event_types == "*":
        return ["*"]
    if isinstance(event_types, (list, tuple)):
        return [str(event_type) for event_type in event_types]
    return [str(event_types)]


def is_valid_url(url: Any) -> bool:
    if not isinstance(url, str) or not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def matches_event(entry: dict, event_name: Optional[str]) -> bool:
    """Whether an enabled entry accepts ``event_name`` by its exact-name filter."""
    if not entry.get("enabled"):
        return False
    event_types = entry.get("eventTypes") or ["*"]
    return "*" in event_types or event_name in event_types


class DestinationRegistry:
    def __init__(self):
        self._destinations: Dict[str, dict] = {}

    def register(self, name: str, config: dict) -> dict:
        """
        Validate and store a destination under ``name``. Last write wins.

        ``config`` keys: url, method, headers, secret, eventTypes, transform
        (spec or callable), enabled, timeout (ms), format, retryStrategy, type.
        """
        if not isinstance(name, str) or not NAME_PATTERN.match(name):
            raise ValueError(f"Invalid destination name: {name!r}")
        if not is_valid_url(config.get("url")):
            raise ValueError(f"Invalid URL for destination {name}")

        transform = config.get("transform")
        transform_fn = transform if callable(transform) else transformer_service.create_transformer(transform)

        method = str(config.get("method") or HttpMethod.POST.value).upper()
        if method not in HttpMethod.__members__:
            raise ValueError(f"Unsupported HTTP method for destination {name}: {method}")

        body_format = config.get("format") or BodyFormat.JSON.value
        if body_format not in {item.value for item in BodyFormat}:
            raise ValueError(f"Unsupported body format for destination {name}: {body_format}")

        entry = {
            "name": name,
            "type": config.get("type"),
            "url": config["url"],
            "method": method,
            "headers": dict(config.get("headers") or {}),
            "secret": config.get("secret") or None,
            "eventTypes": normalize_event_types(config.get("eventTypes")),
            "transform": transform_fn,
            "enabled": config.get("enabled", True) is not False,
            "timeout": int(config.get("timeout") or DEFAULT_TIMEOUT_MS),
            "format": body_format,
            "retryStrategy": config.get("retryStrategy"),
        }

        updated = dict(self._destinations)
        updated[name] = entry
        self._destinations = updated
        logger.info(f"Registered destination: {name}")
        return entry

    def remove(self, name: str) -> bool:
        if name not in self._destinations:
            return False
        updated = dict(self._destinations)
        updated.pop(name, None)
        self._destinations = updated
        logger.info(f"Removed destination: {name}")
        return True

    def set_status(self, name: str, enabled: bool) -> bool:
        entry = self._destinations.get(name)
        if entry is None:
            return False
        updated = dict(self._destinations)
        updated[name] = {**entry, "enabled": bool(enabled)}
        self._destinations = updated
        logger.info(f"Destination {name} {'enabled' if enabled else 'disabled'}")
        return True

    def get(self, name: str) -> Optional[dict]:
        return self._destinations.get(name)

    def snapshot(self) -> Dict[str, dict]:
        return dict(self._destinations)

    def clear(self) -> None:
        self._destinations = {}

    def __contains__(self, name: str) -> bool:
        return name in self._destinations

    def __len__(self) -> int:
        return len(self._destinations)


destination_registry = DestinationRegistry()
