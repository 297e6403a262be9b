"""Cached HTTP access to annotation web services (KEGG REST and friends)."""

import logging
import time
from pathlib import Path
from typing import Any

import requests
import requests_cache
from requests.exceptions import ConnectionError, HTTPError, Timeout
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from deg_enrichment import __version__
from deg_enrichment.config.schema import PipelineConfig

logger = logging.getLogger(__name__)

# Status codes worth another attempt; KEGG answers 400/404 for unknown ids
RETRY_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def is_retryable(exc: BaseException) -> bool:
    """True for network failures and throttling/server errors, False otherwise."""
    if isinstance(exc, (Timeout, ConnectionError)):
        return True
    if isinstance(exc, HTTPError):
        response = getattr(exc, "response", None)
        return response is not None and response.status_code in RETRY_STATUS_CODES
    return False


class CachedAPIClient:
    """
    GET-only client backed by a SQLite response cache.

    KEGG asks clients to stay below a few requests per second, while pathway
    lists, KGML files and images change only with a KEGG release. Responses
    are therefore kept on disk (cache_ttl seconds, 0 = forever) and the rate
    limit is applied to network hits only.
    """

    def __init__(
        self,
        cache_dir: Path,
        base_url: str = "",
        rate_limit: int = 5,
        max_retries: int = 5,
        cache_ttl: int = 86400,
        timeout: int = 30,
    ):
        """
        Args:
            cache_dir: Directory holding api_cache.sqlite
            base_url: Service root that relative paths are appended to
            rate_limit: Network requests per second
            max_retries: Attempts per request for retryable failures
            cache_ttl: Seconds a cached response stays valid (0 = no expiry)
            timeout: Per-request timeout in seconds
        """
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        self.base_url = base_url.rstrip("/")
        self.rate_limit = rate_limit
        self.max_retries = max_retries
        self.timeout = timeout

        self.session = requests_cache.CachedSession(
            cache_name=str(self.cache_dir / "api_cache"),
            backend="sqlite",
            expire_after=cache_ttl if cache_ttl > 0 else None,
        )
        self.session.headers["User-Agent"] = f"deg-enrichment/{__version__}"

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")) or not self.base_url:
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _retrying(self):
        return retry(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=2, max=60),
            retry=retry_if_exception(is_retryable),
            reraise=True,
        )

    def get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        **kwargs,
    ) -> requests.Response:
        """
        Fetch a URL, from the cache when possible.

        Args:
            path: Absolute URL or path relative to base_url
            params: Query parameters
            **kwargs: Passed through to CachedSession.get

        Returns:
            Response object (response.from_cache tells where it came from)

        Raises:
            HTTPError: Non-retryable status, or retries exhausted
            Timeout: Retries exhausted
            ConnectionError: Retries exhausted
        """
        url = self._url(path)

        @self._retrying()
        def _fetch() -> requests.Response:
            response = self.session.get(url, params=params, timeout=self.timeout, **kwargs)
            try:
                response.raise_for_status()
            except HTTPError:
                if response.status_code == 429:
                    logger.warning(f"Throttled by {url} (429), backing off")
                else:
                    logger.debug(f"HTTP {response.status_code} for {url}")
                raise
            return response

        response = _fetch()

        if not getattr(response, "from_cache", False):
            time.sleep(1 / self.rate_limit)

        return response

    def get_text(self, path: str, params: dict[str, Any] | None = None) -> str:
        """Decoded body (KEGG flat files, KGML)."""
        return self.get(path, params=params).text

    def get_bytes(self, path: str, params: dict[str, Any] | None = None) -> bytes:
        """Raw body (pathway PNG images)."""
        return self.get(path, params=params).content

    @classmethod
    def from_config(cls, config: PipelineConfig, base_url: str = "") -> "CachedAPIClient":
        """Client using config.cache_dir and the api section of the config."""
        api = config.api
        return cls(
            cache_dir=config.cache_dir,
            base_url=base_url,
            rate_limit=api.rate_limit_per_second,
            max_retries=api.max_retries,
            cache_ttl=api.cache_ttl_seconds,
            timeout=api.timeout_seconds,
        )

    def clear_cache(self) -> None:
        self.session.cache.clear()
        logger.info(f"Cleared API cache in {self.cache_dir}")

    def cache_stats(self) -> dict[str, Any]:
        """Location and size of the SQLite cache file."""
        cache_path = self.cache_dir / "api_cache.sqlite"
        stats = {
            "cache_enabled": True,
            "cache_path": str(cache_path),
            "cache_exists": cache_path.exists(),
        }
        if cache_path.exists():
            stats["cache_size_bytes"] = cache_path.stat().st_size
        return stats
