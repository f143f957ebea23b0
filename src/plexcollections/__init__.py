"""Plex collection management client."""

__version__ = "1.0.0"

from .auth import create_auth_headers, redact_token
from .cancellation import CancelToken
from .client import CollectionsClient
from .config import load_config
from .exceptions import (
    CapabilityError,
    CollectionNotFoundError,
    IdentityResolutionError,
    MalformedResponseError,
    NotSmartCollectionError,
    OperationCancelledError,
    PlexAPIError,
    PlexAuthenticationError,
    PlexAuthorizationError,
    PlexBadRequestError,
    PlexError,
    PlexNotFoundError,
    PlexServerError,
    SmartCollectionError,
    SmartFilterUnavailableError,
    SmartFilterValidationError,
)
from .logger import setup_logging
from .models import (
    COLLECTION_MODE_DEFAULT,
    COLLECTION_MODE_HIDE,
    COLLECTION_MODE_HIDE_ITEMS,
    COLLECTION_MODE_SHOW_ITEMS,
    COLLECTION_SORT_ALPHA,
    COLLECTION_SORT_CUSTOM,
    COLLECTION_SORT_RELEASE,
    Collection,
    CollectionVisibility,
    MediaContainer,
    PlexConfig,
    coerce_flag,
    mode_from_code,
    mode_to_code,
    sort_from_code,
    sort_to_code,
)
from .reconciler import MembershipPlan, MembershipReconciler, Strategy, plan_add, plan_remove
from .smart_filter import SmartFilterEngine, normalize_filter_query, parse_filter_uri

__all__ = [
    # Client
    "CollectionsClient",
    "SmartFilterEngine",
    "MembershipReconciler",
    "CancelToken",
    # Configuration
    "PlexConfig",
    "load_config",
    "setup_logging",
    # Models
    "Collection",
    "CollectionVisibility",
    "MediaContainer",
    "MembershipPlan",
    "Strategy",
    "COLLECTION_MODE_DEFAULT",
    "COLLECTION_MODE_HIDE",
    "COLLECTION_MODE_HIDE_ITEMS",
    "COLLECTION_MODE_SHOW_ITEMS",
    "COLLECTION_SORT_RELEASE",
    "COLLECTION_SORT_ALPHA",
    "COLLECTION_SORT_CUSTOM",
    # Helpers
    "coerce_flag",
    "mode_to_code",
    "mode_from_code",
    "sort_to_code",
    "sort_from_code",
    "normalize_filter_query",
    "parse_filter_uri",
    "plan_add",
    "plan_remove",
    "create_auth_headers",
    "redact_token",
    # Exceptions
    "PlexError",
    "PlexAPIError",
    "PlexBadRequestError",
    "PlexAuthenticationError",
    "PlexAuthorizationError",
    "PlexNotFoundError",
    "PlexServerError",
    "MalformedResponseError",
    "CollectionNotFoundError",
    "CapabilityError",
    "SmartCollectionError",
    "NotSmartCollectionError",
    "SmartFilterValidationError",
    "SmartFilterUnavailableError",
    "IdentityResolutionError",
    "OperationCancelledError",
]
