"""Request/response handling shared by the collection components."""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

import httpx

from .cancellation import CancelToken
from .exceptions import (
    MalformedResponseError,
    PlexAPIError,
    PlexAuthenticationError,
    PlexAuthorizationError,
    PlexBadRequestError,
    PlexNotFoundError,
    PlexServerError,
)
from .models import MediaContainer, PlexConfig
from .transport import PlexTransport

logger = logging.getLogger(__name__)

LIBRARY_URI_ROOT = "server://{machine_identifier}/com.plexapp.plugins.library"


class PlexSession:
    """Authenticated access to one Plex server.

    Wraps :class:`PlexTransport`, turning error statuses into typed
    exceptions and response bodies into :class:`MediaContainer` values.
    Holds no per-operation state; the only cached value is the server's
    machine identifier, which never changes for a server.
    """

    def __init__(
        self,
        config: PlexConfig,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """Initialize a session.

        Args:
            config: PlexConfig with server URL and token
            transport: Optional httpx transport override
            sleep: Sleep function used for settle delays (default: time.sleep)
        """
        self.config = config
        self.transport = PlexTransport(config, transport=transport)
        self._sleep = sleep or time.sleep
        self._machine_identifier = config.machine_identifier
        self.server_version: Optional[str] = None

    @property
    def base_url(self) -> str:
        return self.transport.base_url

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Raise a typed PlexAPIError for 4xx/5xx responses.

        Raises:
            PlexBadRequestError: 400
            PlexAuthenticationError: 401
            PlexAuthorizationError: 403
            PlexNotFoundError: 404
            PlexServerError: 5xx
            PlexAPIError: any other status >= 400
        """
        status = response.status_code
        if status < 400:
            return response

        body = response.text
        message = response.reason_phrase or "API error occurred"
        logger.error(f"Plex API error {status} for {response.request.method} {response.request.url.path}")

        if status == 400:
            raise PlexBadRequestError(status, message, body)
        elif status == 401:
            raise PlexAuthenticationError(status, message, body)
        elif status == 403:
            raise PlexAuthorizationError(status, message, body)
        elif status == 404:
            raise PlexNotFoundError(status, message, body)
        elif status >= 500:
            raise PlexServerError(status, message, body)
        else:
            raise PlexAPIError(status, message, body)

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> httpx.Response:
        """Send a request and raise for error statuses."""
        response = self.transport.send(method, path, params=params, cancel=cancel)
        return self._handle_response(response)

    @staticmethod
    def decode_json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Response body is not valid JSON: {e}") from e

    def get_container(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> MediaContainer:
        """GET ``path`` and unwrap its MediaContainer."""
        response = self.request("GET", path, params=params, cancel=cancel)
        return MediaContainer.from_response(self.decode_json(response))

    def identity(self, cancel: Optional[CancelToken] = None) -> Dict[str, Any]:
        """Read ``/identity`` and cache the machine identifier and version.

        Returns:
            The raw MediaContainer dictionary from /identity
        """
        response = self.request("GET", "/identity", cancel=cancel)
        data = self.decode_json(response)
        container = data.get("MediaContainer") if isinstance(data, dict) else None
        if not isinstance(container, dict) or not container.get("machineIdentifier"):
            raise MalformedResponseError("/identity response has no machineIdentifier")

        self._machine_identifier = container["machineIdentifier"]
        self.server_version = container.get("version")
        logger.info(
            f"Plex server {self._machine_identifier} (version {self.server_version or 'unknown'})"
        )
        return container

    def machine_identifier(self, cancel: Optional[CancelToken] = None) -> str:
        if not self._machine_identifier:
            self.identity(cancel=cancel)
        return self._machine_identifier

    def item_uri(self, item_ids: List[str], cancel: Optional[CancelToken] = None) -> str:
        """Build the server-addressable URI referencing library items.

        Example:
            server://abc123/com.plexapp.plugins.library/library/metadata/1234,5678
        """
        root = LIBRARY_URI_ROOT.format(machine_identifier=self.machine_identifier(cancel=cancel))
        return f"{root}/library/metadata/{','.join(item_ids)}"

    def settle(self, cancel: Optional[CancelToken] = None) -> None:
        """Wait ``config.settle_delay`` seconds for the server to catch up.

        Cancellable when a token is supplied.
        """
        delay = self.config.settle_delay
        if delay <= 0:
            return
        logger.debug(f"Waiting {delay:.1f}s for server to settle")
        if cancel is not None:
            cancel.wait(delay)
        else:
            self._sleep(delay)

    def close(self):
        self.transport.close()
