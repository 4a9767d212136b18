"""Adapters that pull raw lead records from the listing provider."""

from .auth import TokenProvider  # noqa: F401
from .base import ApiClientConfig, JsonApiClient  # noqa: F401
from .property_finder import ENDPOINTS, PropertyFinderSource, unwrap_envelope  # noqa: F401
from .sample import JsonFileSource  # noqa: F401

__all__ = [
    "ApiClientConfig",
    "ENDPOINTS",
    "JsonApiClient",
    "JsonFileSource",
    "PropertyFinderSource",
    "TokenProvider",
    "unwrap_envelope",
]
