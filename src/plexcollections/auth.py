"""Plex request authentication.

Plex authenticates every request with a long-lived token sent in the
``X-Plex-Token`` header. Alongside it, clients identify themselves with
``X-Plex-Client-Identifier`` and ``X-Plex-Product`` so the server can
attribute activity to a device.

Example:
    >>> from src.plexcollections.models import PlexConfig
    >>> config = PlexConfig(url="https://plex.example.com:32400", token="abc123")
    >>> create_auth_headers(config)["X-Plex-Token"]
    'abc123'

Security Notes:
    - The token grants full account access; never log it
    - Use :func:`redact_token` before logging URLs that may embed it
"""

import re
from typing import Dict

from .models import PlexConfig

_TOKEN_PARAM = re.compile(r"(X-Plex-Token=)[^&\s]+", re.IGNORECASE)


def create_auth_headers(config: PlexConfig) -> Dict[str, str]:
    """Build the headers sent with every Plex request.

    Args:
        config: Plex configuration with token and client identity

    Returns:
        Header dictionary including JSON ``Accept``
    """
    return {
        "Accept": "application/json",
        "X-Plex-Token": config.token,
        "X-Plex-Client-Identifier": config.client_identifier,
        "X-Plex-Product": config.product,
    }


def redact_token(text: str) -> str:
    """Mask any ``X-Plex-Token`` query parameter in a URL or message.

    Examples:
        >>> redact_token("http://h/library?X-Plex-Token=secret&a=1")
        'http://h/library?X-Plex-Token=***&a=1'
    """
    return _TOKEN_PARAM.sub(r"\1***", text)
