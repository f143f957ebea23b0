"""Configuration loading for the Plex collections client.

All configuration is read from environment variables (NO .env files).
"""
import os
from typing import Optional

from .models import PlexConfig

_TRUE_VALUES = ("1", "true", "yes", "on")


def _optional_int(value: Optional[str]) -> Optional[int]:
    return int(value) if value else None


def load_config() -> PlexConfig:
    """Load PlexConfig from environment variables.

    Required:
        PLEX_SERVER_URL, PLEX_TOKEN

    Optional:
        PLEX_CLIENT_IDENTIFIER, PLEX_MACHINE_IDENTIFIER, PLEX_SETTLE_DELAY,
        PLEX_NATIVE_ITEM_ENDPOINTS, PLEX_DEFAULT_ITEM_TYPE, PLEX_TIMEOUT,
        PLEX_RATE_LIMIT

    Returns:
        PlexConfig: Loaded configuration object

    Raises:
        EnvironmentError: If required environment variables are missing
        ValueError: If a numeric variable cannot be parsed
    """
    required = {
        'PLEX_SERVER_URL': os.getenv('PLEX_SERVER_URL'),
        'PLEX_TOKEN': os.getenv('PLEX_TOKEN'),
    }

    missing = [var for var, value in required.items() if not value]
    if missing:
        raise EnvironmentError(
            f"Required environment variables missing: {', '.join(missing)}\n"
            f"These variables must be set in your shell environment (NOT in .env files).\n"
            f"Example: export PLEX_SERVER_URL='https://plex.example.com:32400'"
        )

    return PlexConfig(
        url=required['PLEX_SERVER_URL'],
        token=required['PLEX_TOKEN'],
        client_identifier=os.getenv('PLEX_CLIENT_IDENTIFIER', 'plexcollections'),
        machine_identifier=os.getenv('PLEX_MACHINE_IDENTIFIER') or None,
        settle_delay=float(os.getenv('PLEX_SETTLE_DELAY', '2.0')),
        native_item_endpoints=os.getenv('PLEX_NATIVE_ITEM_ENDPOINTS', 'true').lower() in _TRUE_VALUES,
        default_item_type=int(os.getenv('PLEX_DEFAULT_ITEM_TYPE', '1')),
        timeout=float(os.getenv('PLEX_TIMEOUT', '60')),
        rate_limit=_optional_int(os.getenv('PLEX_RATE_LIMIT')),
    )
