"""HTTP clients for annotation services."""

from deg_enrichment.api_clients.base import CachedAPIClient

__all__ = ["CachedAPIClient"]
