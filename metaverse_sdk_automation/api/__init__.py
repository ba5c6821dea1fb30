"""REST client for the Metaverse API."""

from .client import ApiClient

__all__ = ["ApiClient"]
