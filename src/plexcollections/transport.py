"""HTTP transport for the Plex Media Server API."""

import logging
import threading
import time
from collections import deque
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from .auth import create_auth_headers, redact_token
from .cancellation import CancelToken
from .models import PlexConfig

logger = logging.getLogger(__name__)


def merge_query(path: str, params: Optional[Dict[str, Any]] = None) -> str:
    """Append ``params`` to any query string already in ``path``.

    httpx replaces a URL's existing query when ``params=`` is passed, so
    everything goes into the path instead. The existing query is kept
    verbatim; None values are dropped.

    Examples:
        >>> merge_query("/library/sections/1/all?genre=action", {"X-Plex-Container-Size": 1})
        '/library/sections/1/all?genre=action&X-Plex-Container-Size=1'
        >>> merge_query("/library/collections", {"title": "Top Picks", "uri": None})
        '/library/collections?title=Top+Picks'
    """
    query = urlencode({k: str(v) for k, v in (params or {}).items() if v is not None})
    if not query:
        return path
    if "?" not in path:
        return f"{path}?{query}"
    if path.endswith(("?", "&")):
        return f"{path}{query}"
    return f"{path}&{query}"


class PlexTransport:
    """Issues authenticated requests against a Plex server.

    The transport never interprets status codes: every HTTP response is
    returned to the caller, and only network failures raise
    (``httpx.TransportError`` and subclasses). Automatic retries for
    connection errors are delegated to ``httpx.HTTPTransport``.

    Attributes:
        config: PlexConfig with server connection details
        client: httpx.Client for HTTP requests
    """

    def __init__(self, config: PlexConfig, transport: Optional[httpx.BaseTransport] = None):
        """Initialize the transport.

        Args:
            config: PlexConfig with server URL and token
            transport: Optional httpx transport override (e.g. httpx.MockTransport)
        """
        self.config = config
        self.base_url = config.url.rstrip("/")

        self.rate_limit = config.rate_limit
        self._request_times: Optional[deque] = deque(maxlen=100) if config.rate_limit else None
        self._rate_lock = threading.Lock()

        if transport is None:
            transport = httpx.HTTPTransport(
                limits=httpx.Limits(
                    max_connections=100,
                    max_keepalive_connections=20,
                    keepalive_expiry=5.0,
                ),
                retries=3,  # connection errors only
            )

        timeout = httpx.Timeout(config.timeout, connect=30.0, pool=5.0)
        headers = create_auth_headers(config)

        # HTTP/2 needs the optional h2 package
        try:
            self.client = httpx.Client(
                base_url=self.base_url,
                headers=headers,
                timeout=timeout,
                transport=transport,
                follow_redirects=True,
                http2=True,
            )
        except ImportError:
            logger.debug("HTTP/2 not available, using HTTP/1.1")
            self.client = httpx.Client(
                base_url=self.base_url,
                headers=headers,
                timeout=timeout,
                transport=transport,
                follow_redirects=True,
            )

        logger.info(f"Initialized Plex transport for {self.base_url}")
        if self.rate_limit:
            logger.info(f"Rate limiting enabled: {self.rate_limit} requests/second")

    def _apply_rate_limit(self):
        """Sleep as needed to stay under ``rate_limit`` requests per second.

        Uses a sliding one-second window over recent request times.
        """
        if not self.rate_limit or self._request_times is None:
            return

        # Held across the sleep so concurrent callers queue for the window
        with self._rate_lock:
            now = time.time()
            while self._request_times and now - self._request_times[0] > 1.0:
                self._request_times.popleft()

            if len(self._request_times) >= self.rate_limit:
                sleep_time = 1.0 - (now - self._request_times[0])
                if sleep_time > 0:
                    logger.debug(f"Rate limit reached, sleeping for {sleep_time:.3f}s")
                    time.sleep(sleep_time)
                    now = time.time()
                    while self._request_times and now - self._request_times[0] > 1.0:
                        self._request_times.popleft()

            self._request_times.append(time.time())

    def send(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> httpx.Response:
        """Send one request and return the response whatever its status.

        Args:
            method: HTTP method
            path: Server-relative path, optionally with a query string
            params: Extra query parameters, merged with any in ``path``
            cancel: Optional cancellation token checked before sending

        Returns:
            httpx.Response

        Raises:
            OperationCancelledError: If ``cancel`` is cancelled or expired
            httpx.TransportError: On network failure
        """
        if cancel is not None:
            cancel.raise_if_cancelled(f"{method} {path}")

        request_kwargs: Dict[str, Any] = {}
        path = merge_query(path, params)
        if cancel is not None and cancel.remaining() is not None:
            request_kwargs["timeout"] = min(self.config.timeout, max(cancel.remaining(), 0.001))

        self._apply_rate_limit()
        logger.debug(f"{method} {redact_token(path)}")
        response = self.client.request(method, path, **request_kwargs)
        logger.debug(f"{method} {redact_token(path)} -> {response.status_code}")
        return response

    def close(self):
        """Close the underlying HTTP client."""
        self.client.close()
