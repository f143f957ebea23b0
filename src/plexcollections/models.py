"""Data models for Plex collection management."""

import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .exceptions import MalformedResponseError

# Collection mode labels
COLLECTION_MODE_DEFAULT = "default"
COLLECTION_MODE_HIDE = "hide"
COLLECTION_MODE_HIDE_ITEMS = "hideItems"
COLLECTION_MODE_SHOW_ITEMS = "showItems"

# Wire code -> label. Single source of truth for both directions.
COLLECTION_MODE_KEYS: Dict[int, str] = {
    -1: COLLECTION_MODE_DEFAULT,
    0: COLLECTION_MODE_HIDE,
    1: COLLECTION_MODE_HIDE_ITEMS,
    2: COLLECTION_MODE_SHOW_ITEMS,
}
DEFAULT_COLLECTION_MODE_CODE = -1

# Collection sort labels
COLLECTION_SORT_RELEASE = "release"
COLLECTION_SORT_ALPHA = "alpha"
COLLECTION_SORT_CUSTOM = "custom"

COLLECTION_SORT_KEYS: Dict[int, str] = {
    0: COLLECTION_SORT_RELEASE,
    1: COLLECTION_SORT_ALPHA,
    2: COLLECTION_SORT_CUSTOM,
}
DEFAULT_COLLECTION_SORT_CODE = 0


# Plex metadata type numbers, keyed by the ``subtype`` a collection reports
ITEM_TYPE_CODES: Dict[str, int] = {
    "movie": 1,
    "show": 2,
    "season": 3,
    "episode": 4,
    "artist": 8,
    "album": 9,
    "track": 10,
    "photo": 13,
}


def item_type_code(subtype: Optional[str], default: int = 1) -> int:
    """Map a collection ``subtype`` to the ``type`` parameter used on create."""
    return ITEM_TYPE_CODES.get(subtype or "", default)


def _code_for(label: str, table: Dict[int, str], default: int) -> int:
    for code, name in table.items():
        if name == label:
            return code
    return default


def mode_to_code(mode: str) -> int:
    """Translate a collection mode label to its wire code.

    Unknown labels map to the default mode code (-1).

    Examples:
        >>> mode_to_code("hideItems")
        1
        >>> mode_to_code("bogus")
        -1
    """
    return _code_for(mode, COLLECTION_MODE_KEYS, DEFAULT_COLLECTION_MODE_CODE)


def mode_from_code(code: Any) -> str:
    """Translate a wire mode code (int or numeric string) to its label."""
    try:
        return COLLECTION_MODE_KEYS.get(int(code), COLLECTION_MODE_DEFAULT)
    except (TypeError, ValueError):
        return COLLECTION_MODE_DEFAULT


def sort_to_code(sort: str) -> int:
    """Translate a collection sort label to its wire code (default 0)."""
    return _code_for(sort, COLLECTION_SORT_KEYS, DEFAULT_COLLECTION_SORT_CODE)


def sort_from_code(code: Any) -> str:
    """Translate a wire sort code (int or numeric string) to its label."""
    try:
        return COLLECTION_SORT_KEYS.get(int(code), COLLECTION_SORT_RELEASE)
    except (TypeError, ValueError):
        return COLLECTION_SORT_RELEASE


def coerce_flag(value: Any) -> bool:
    """Normalize a polymorphic wire flag to a boolean.

    Plex serializes flags such as ``smart`` as booleans on some endpoints,
    numbers on others and strings on the rest.

    Examples:
        >>> coerce_flag("1"), coerce_flag("true"), coerce_flag(1.0)
        (True, True, True)
        >>> coerce_flag("0"), coerce_flag("false"), coerce_flag(None)
        (False, False, False)
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value > 0
    if isinstance(value, str):
        return value in ("1", "true")
    return False


def count_field(value: Any, name: str) -> int:
    """Decode a wire count such as ``childCount`` or ``size``; missing means 0.

    Raises:
        MalformedResponseError: If the value is not numeric
    """
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        raise MalformedResponseError(f"Non-numeric {name}: {value!r}")


def bool_to_flag(value: bool) -> str:
    """Encode a boolean as the "0"/"1" string Plex expects in query params."""
    return "1" if value else "0"


@dataclass
class PlexConfig:
    """Configuration for connecting to a Plex Media Server.

    Attributes:
        url: Base server URL (e.g., "https://plex.example.com:32400")
        token: Plex authentication token (X-Plex-Token)
        client_identifier: Value sent as X-Plex-Client-Identifier
        product: Value sent as X-Plex-Product
        machine_identifier: Server machine identifier used in item URIs.
            Resolved from /identity on first use when not supplied.
        settle_delay: Seconds to wait after a mutation before a confirmatory read
        native_item_endpoints: Whether the server supports per-item add/remove
            on /library/collections/{id}/items. When False, membership changes
            are applied by recreating the collection.
        default_item_type: Plex metadata type used when creating collections (1 = movie)
        timeout: Default per-request timeout in seconds
        rate_limit: Optional maximum requests per second
    """

    url: str
    token: str
    client_identifier: str = "plexcollections"
    product: str = "plexcollections"
    machine_identifier: Optional[str] = None
    settle_delay: float = 2.0
    native_item_endpoints: bool = True
    default_item_type: int = 1
    timeout: float = 60.0
    rate_limit: Optional[int] = None

    def __post_init__(self):
        """Validate configuration on initialization."""
        if not self.url or not self.url.startswith(("http://", "https://")):
            raise ValueError("url must be a valid HTTP/HTTPS URL")
        if not self.token:
            raise ValueError("token is required")
        if self.settle_delay < 0:
            raise ValueError("settle_delay must be >= 0")

        if not self.url.startswith("https://"):
            warnings.warn(
                "Using HTTP instead of HTTPS for Plex connection. "
                "The Plex token will be transmitted insecurely.",
                UserWarning,
                stacklevel=2,
            )

    def __repr__(self) -> str:
        """Return string representation with the token masked."""
        return (
            f"PlexConfig(url='{self.url}', token='***', "
            f"client_identifier='{self.client_identifier}', "
            f"machine_identifier={self.machine_identifier!r}, "
            f"settle_delay={self.settle_delay}, "
            f"native_item_endpoints={self.native_item_endpoints})"
        )


@dataclass
class Collection:
    """A Plex collection as returned by the collections endpoints.

    Attributes:
        ratingKey: Server-assigned identifier, unique within the server
        key: Navigational path for the collection's children
        title: Display title
        smart: Normalized smart flag (see :func:`coerce_flag`)
        sectionID: Owning library section
        childCount: Server-reported item count; may lag actual membership
        collectionMode: Mode label from COLLECTION_MODE_KEYS
        collectionSort: Sort label from COLLECTION_SORT_KEYS
        content: Smart filter URI, when the detail endpoint exposes one
    """

    ratingKey: str
    key: str = ""
    title: str = ""
    guid: Optional[str] = None
    titleSort: Optional[str] = None
    summary: Optional[str] = None
    smart: bool = False
    thumb: Optional[str] = None
    art: Optional[str] = None
    addedAt: Optional[int] = None
    updatedAt: Optional[int] = None
    childCount: int = 0
    collectionMode: str = COLLECTION_MODE_DEFAULT
    collectionSort: str = COLLECTION_SORT_RELEASE
    sectionID: Optional[int] = None
    sectionTitle: Optional[str] = None
    sectionUUID: Optional[str] = None
    type: str = "collection"
    subtype: Optional[str] = None
    content: Optional[str] = None

    def is_smart(self) -> bool:
        """Return True if membership is computed from a server-side filter."""
        return self.smart

    @classmethod
    def from_dict(cls, data: Dict[str, Any], content: Optional[str] = None) -> "Collection":
        """Build a Collection from a decoded ``Metadata`` record.

        Args:
            data: Raw record from a MediaContainer
            content: Container-level ``content`` field, used as the smart
                filter URI when the record itself carries none

        Raises:
            MalformedResponseError: If the record has no ratingKey
        """
        if not isinstance(data, dict):
            raise MalformedResponseError(f"Expected collection record, got {type(data).__name__}")

        rating_key = data.get("ratingKey")
        if rating_key is None or str(rating_key) == "":
            raise MalformedResponseError("Collection record is missing ratingKey")
        rating_key = str(rating_key)

        section_id = data.get("librarySectionID")
        try:
            section_id = int(section_id) if section_id is not None else None
        except (TypeError, ValueError):
            raise MalformedResponseError(
                f"Collection {rating_key} has a non-numeric librarySectionID: {section_id!r}"
            )

        return cls(
            ratingKey=rating_key,
            key=data.get("key") or f"/library/collections/{rating_key}/children",
            title=data.get("title", ""),
            guid=data.get("guid"),
            titleSort=data.get("titleSort"),
            summary=data.get("summary"),
            smart=coerce_flag(data.get("smart")),
            thumb=data.get("thumb"),
            art=data.get("art"),
            addedAt=data.get("addedAt"),
            updatedAt=data.get("updatedAt"),
            childCount=count_field(data.get("childCount"), f"childCount for collection {rating_key}"),
            collectionMode=mode_from_code(data.get("collectionMode", DEFAULT_COLLECTION_MODE_CODE)),
            collectionSort=sort_from_code(data.get("collectionSort", DEFAULT_COLLECTION_SORT_CODE)),
            sectionID=section_id,
            sectionTitle=data.get("librarySectionTitle"),
            sectionUUID=data.get("librarySectionUUID"),
            type=data.get("type", "collection"),
            subtype=data.get("subtype"),
            content=data.get("content") or content,
        )


@dataclass
class CollectionVisibility:
    """Where a collection is promoted.

    Attributes:
        library: Shown on the library's Recommended tab
        home: Shown on the owner's Home
        shared: Shown on shared users' Home
    """

    library: bool = False
    home: bool = False
    shared: bool = False

    def to_params(self) -> Dict[str, str]:
        """Convert to /hubs/sections/{id}/manage query parameters."""
        return {
            "promotedToRecommended": bool_to_flag(self.library),
            "promotedToOwnHome": bool_to_flag(self.home),
            "promotedToSharedHome": bool_to_flag(self.shared),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CollectionVisibility":
        return cls(
            library=coerce_flag(data.get("promotedToRecommended")),
            home=coerce_flag(data.get("promotedToOwnHome")),
            shared=coerce_flag(data.get("promotedToSharedHome")),
        )


@dataclass
class MediaContainer:
    """The ``MediaContainer`` envelope wrapping listing and detail responses.

    Listings put entities under ``Metadata``; some section listings and the
    hub management endpoint use ``Directory`` instead. Both are kept in
    response order.
    """

    size: int = 0
    totalSize: Optional[int] = None
    allowSync: bool = False
    identifier: Optional[str] = None
    content: Optional[str] = None
    metadata: List[Dict[str, Any]] = field(default_factory=list)
    directory: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def records(self) -> List[Dict[str, Any]]:
        """All entity records, ``Metadata`` first, then ``Directory``."""
        return self.metadata + self.directory

    @classmethod
    def from_response(cls, data: Any) -> "MediaContainer":
        """Unwrap ``{"MediaContainer": {...}}``.

        Raises:
            MalformedResponseError: If the body is not a MediaContainer envelope
        """
        if not isinstance(data, dict) or not isinstance(data.get("MediaContainer"), dict):
            raise MalformedResponseError("Response body is not a MediaContainer")
        container = data["MediaContainer"]

        metadata = container.get("Metadata") or []
        directory = container.get("Directory") or []
        if not isinstance(metadata, list) or not isinstance(directory, list):
            raise MalformedResponseError("MediaContainer entity lists must be arrays")

        return cls(
            size=count_field(container.get("size"), "MediaContainer size"),
            totalSize=container.get("totalSize"),
            allowSync=coerce_flag(container.get("allowSync")),
            identifier=container.get("identifier"),
            content=container.get("content"),
            metadata=metadata,
            directory=directory,
        )
