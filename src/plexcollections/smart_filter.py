"""Smart collection filters.

Plex has no structured smart-filter object. A smart collection is created
from a section listing URI whose query string holds the predicates, e.g.::

    https://plex.example.com:32400/library/sections/1/all?type=1&genre=action

and the collection detail echoes that URI back in a free-text ``content``
field. Filters are treated as opaque query strings: they are never parsed
into predicates, only normalized, tested against the live server and
extracted again.
"""

import logging
from typing import Optional, Tuple
from urllib.parse import urlsplit

from .cancellation import CancelToken
from .exceptions import (
    NotSmartCollectionError,
    SmartFilterUnavailableError,
    SmartFilterValidationError,
)
from .models import Collection
from .session import PlexSession

logger = logging.getLogger(__name__)

SECTION_LISTING_PATH = "/library/sections/{section_id}/all"


def normalize_filter_query(filter_query: str) -> str:
    """Return ``filter_query`` with exactly one leading ``?``.

    Examples:
        >>> normalize_filter_query("genre=action")
        '?genre=action'
        >>> normalize_filter_query("??genre=action")
        '?genre=action'
    """
    return "?" + (filter_query or "").strip().lstrip("?")


def section_listing_path(section_id: int, filter_query: str = "") -> str:
    """Server-relative listing path for a section with a filter applied."""
    path = SECTION_LISTING_PATH.format(section_id=section_id)
    if not filter_query or not filter_query.strip().lstrip("?"):
        return path
    return path + normalize_filter_query(filter_query)


def parse_filter_uri(filter_uri: str) -> Optional[Tuple[int, str]]:
    """Extract ``(section_id, "?query")`` from a section listing URI.

    Returns None when the URI has no ``/sections/{numeric id}`` segment.

    Examples:
        >>> parse_filter_uri("http://h/library/sections/3/all?genre=action")
        (3, '?genre=action')
        >>> parse_filter_uri("not a listing") is None
        True
    """
    try:
        parts = urlsplit(filter_uri)
    except ValueError:
        return None

    segments = parts.path.split("/")
    for index, segment in enumerate(segments[:-1]):
        if segment == "sections":
            try:
                section_id = int(segments[index + 1])
            except ValueError:
                continue
            return section_id, "?" + parts.query
    return None


class SmartFilterEngine:
    """Builds, tests and extracts smart collection filters."""

    def __init__(self, session: PlexSession):
        self.session = session

    def build_filter_uri(self, section_id: int, filter_query: str) -> str:
        """Compose the fully-qualified listing URI used to define a smart collection.

        Args:
            section_id: Library section the filter applies to
            filter_query: Filter query, with or without a leading ``?``

        Returns:
            e.g. ``https://plex:32400/library/sections/1/all?genre=action``
        """
        path = SECTION_LISTING_PATH.format(section_id=section_id)
        return f"{self.session.base_url}{path}{normalize_filter_query(filter_query)}"

    def test_filter(
        self, section_id: int, filter_query: str, cancel: Optional[CancelToken] = None
    ) -> bool:
        """Return True if the filter matches at least one item in the section.

        A match count of zero is a normal False result, not an error.

        Raises:
            PlexAPIError: If the server rejects the listing request
            httpx.TransportError: On network failure
        """
        container = self.session.get_container(
            section_listing_path(section_id, filter_query),
            params={"X-Plex-Container-Start": 0, "X-Plex-Container-Size": 1},
            cancel=cancel,
        )
        has_results = bool(container.records)
        logger.debug(
            f"Smart filter {normalize_filter_query(filter_query)} in section {section_id}: "
            f"{'matches' if has_results else 'no matches'}"
        )
        return has_results

    def validate_filter(
        self, section_id: int, filter_query: str, cancel: Optional[CancelToken] = None
    ) -> None:
        """Raise SmartFilterValidationError unless the filter matches something."""
        if not self.test_filter(section_id, filter_query, cancel=cancel):
            raise SmartFilterValidationError(section_id, normalize_filter_query(filter_query))

    def extract_filter(self, collection: Collection) -> str:
        """Return the ``?query`` part of a smart collection's ``content`` URI.

        Raises:
            NotSmartCollectionError: If the collection is not smart
            SmartFilterUnavailableError: If the detail record has no ``content``
        """
        if not collection.is_smart():
            raise NotSmartCollectionError(f"Collection {collection.ratingKey} is not a smart collection")
        if not collection.content:
            raise SmartFilterUnavailableError(
                f"Smart filter not found in detail for collection {collection.ratingKey}"
            )
        return "?" + urlsplit(collection.content).query

    def get_filter(self, collection: Collection, cancel: Optional[CancelToken] = None) -> str:
        """Extract the filter, re-reading collection detail if ``content`` was not loaded.

        Listing responses omit ``content``; only the detail endpoint carries it.
        """
        if not collection.is_smart():
            raise NotSmartCollectionError(f"Collection {collection.ratingKey} is not a smart collection")
        if collection.content:
            return self.extract_filter(collection)

        container = self.session.get_container(
            f"/library/collections/{collection.ratingKey}", cancel=cancel
        )
        record = container.records[0] if container.records else {"ratingKey": collection.ratingKey}
        detail = Collection.from_dict({**record, "smart": True}, content=container.content)
        return self.extract_filter(detail)
