"""HTTP client for Plex Media Server collections."""

import logging
import re
from typing import Callable, List, Optional, Union

import httpx

from .cancellation import CancelToken
from .exceptions import (
    CollectionNotFoundError,
    IdentityResolutionError,
    MalformedResponseError,
    NotSmartCollectionError,
)
from .models import (
    COLLECTION_MODE_DEFAULT,
    COLLECTION_MODE_KEYS,
    COLLECTION_SORT_KEYS,
    COLLECTION_SORT_RELEASE,
    Collection,
    CollectionVisibility,
    MediaContainer,
    PlexConfig,
    bool_to_flag,
    item_type_code,
    mode_to_code,
    sort_to_code,
)
from .reconciler import MembershipReconciler
from .session import PlexSession
from .smart_filter import SmartFilterEngine, parse_filter_uri

logger = logging.getLogger(__name__)

_LOCATION_ID = re.compile(r"/library/collections/([^/?#]+)")

CollectionRef = Union[Collection, str, int]


class CollectionsClient:
    """Synchronous client for Plex collection management.

    This client implements collection lifecycle operations with:
    - Regular and smart collection creation, lookup and deletion
    - Membership add/remove/move, via per-item endpoints or by recreating
      the collection on servers without them
    - Smart filter validation before any create or update
    - Presentation (mode/sort) and visibility settings
    - A configurable settle delay after mutations, since Plex applies
      changes asynchronously

    Every public method accepts an optional ``cancel`` token that is checked
    before each request. Methods taking a collection accept either a
    :class:`Collection` or its ratingKey; passing a Collection skips the
    detail fetch used to classify it.

    Attributes:
        config: PlexConfig with server connection details
        session: PlexSession used for all requests
        filters: SmartFilterEngine
        reconciler: MembershipReconciler

    Example:
        >>> config = PlexConfig(url="https://plex.example.com:32400", token="abc")
        >>> with CollectionsClient(config) as client:
        ...     movies = client.create_collection(1, "Favourites", ["1234", "5678"])
        ...     client.add_items(movies, ["9012"])
    """

    def __init__(
        self,
        config: PlexConfig,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """Initialize the collections client.

        Args:
            config: PlexConfig with server URL and token
            transport: Optional httpx transport override (e.g. httpx.MockTransport)
            sleep: Sleep function used for settle delays (default: time.sleep)
        """
        self.config = config
        self.session = PlexSession(config, transport=transport, sleep=sleep)
        self.filters = SmartFilterEngine(self.session)
        self.reconciler = MembershipReconciler(self.session, self.filters, recreate=self._recreate)

    def ping(self, cancel: Optional[CancelToken] = None) -> bool:
        """Test connectivity and authentication, caching the machine identifier.

        Raises:
            PlexAuthenticationError: If the token is invalid
            httpx.TransportError: For network errors
        """
        self.session.identity(cancel=cancel)
        logger.info("Plex ping successful")
        return True

    # Reads

    def get_collections(self, section_id: int, cancel: Optional[CancelToken] = None) -> List[Collection]:
        """List all collections in a library section.

        Args:
            section_id: Library section ID

        Returns:
            Collections in server order (may be empty)
        """
        container = self.session.get_container(f"/library/sections/{section_id}/collections", cancel=cancel)
        collections = [Collection.from_dict(record) for record in container.metadata]
        logger.info(f"Retrieved {len(collections)} collections from section {section_id}")
        return collections

    def get_collection(self, collection_id: Union[str, int], cancel: Optional[CancelToken] = None) -> Collection:
        """Fetch one collection's detail.

        The returned Collection carries ``content`` (the smart filter URI)
        when the server exposes it.

        Raises:
            CollectionNotFoundError: If the server returns no record
            PlexNotFoundError: If the server answers 404
        """
        container = self.session.get_container(f"/library/collections/{collection_id}", cancel=cancel)
        if not container.metadata:
            raise CollectionNotFoundError(str(collection_id))
        return Collection.from_dict(container.metadata[0], content=container.content)

    def _resolve(self, collection: CollectionRef, cancel: Optional[CancelToken]) -> Collection:
        if isinstance(collection, Collection):
            return collection
        return self.get_collection(collection, cancel=cancel)

    def get_items(self, collection: CollectionRef, cancel: Optional[CancelToken] = None) -> List[str]:
        """Return the ratingKeys of the items in a collection.

        Order is meaningful for regular collections only. Results may lag
        recent mutations by a few seconds.
        """
        collection = self._resolve(collection, cancel)
        items = self.reconciler.get_items(collection, cancel=cancel)
        logger.info(f"Retrieved {len(items)} items from collection {collection.ratingKey}")
        return items

    # Creation and deletion

    def _resolve_created_id(self, response: httpx.Response) -> str:
        """Find the new collection's ID in a create response.

        The Location header is preferred; the body is used when the header
        is absent or does not name a collection.

        Raises:
            IdentityResolutionError: If neither yields an ID
        """
        location = response.headers.get("Location")
        if location:
            match = _LOCATION_ID.search(location)
            if match:
                return match.group(1)
            logger.warning(f"Unrecognized Location header on create: {location}")

        if response.content:
            try:
                container = MediaContainer.from_response(self.session.decode_json(response))
                if container.metadata and container.metadata[0].get("ratingKey") not in (None, ""):
                    return str(container.metadata[0]["ratingKey"])
            except MalformedResponseError as e:
                logger.warning(f"Could not parse create response body: {e}")

        logger.error("Collection created but its ID could not be resolved")
        raise IdentityResolutionError(
            "No collection ID in Location header or response body",
            status_code=response.status_code,
            location=location,
        )

    def _create_raw(
        self,
        section_id: int,
        title: str,
        item_type: int,
        smart: bool,
        uri: str,
        cancel: Optional[CancelToken],
    ) -> str:
        response = self.session.request(
            "POST",
            "/library/collections",
            params={
                "type": item_type,
                "title": title,
                "smart": bool_to_flag(smart),
                "sectionId": section_id,
                "uri": uri,
            },
            cancel=cancel,
        )
        return self._resolve_created_id(response)

    def create_collection(
        self,
        section_id: int,
        title: str,
        item_ids: List[str],
        item_type: Optional[int] = None,
        cancel: Optional[CancelToken] = None,
    ) -> Collection:
        """Create a regular collection.

        Args:
            section_id: Library section ID
            title: Collection title
            item_ids: Initial item ratingKeys (may be empty)
            item_type: Plex metadata type (default: config.default_item_type)

        Returns:
            The created collection, re-read after the settle delay

        Raises:
            IdentityResolutionError: If the new ID cannot be determined
        """
        item_ids = [str(item_id) for item_id in item_ids]
        if item_ids:
            uri = self.session.item_uri(item_ids, cancel=cancel)
        else:
            uri = f"{self.session.base_url}/library/metadata"

        collection_id = self._create_raw(
            section_id,
            title,
            item_type if item_type is not None else self.config.default_item_type,
            False,
            uri,
            cancel,
        )
        logger.info(f"Created collection {collection_id} '{title}' with {len(item_ids)} items")

        self.session.settle(cancel)
        return self.get_collection(collection_id, cancel=cancel)

    def create_smart_collection(
        self,
        section_id: int,
        title: str,
        smart_type: int,
        filter_query: str,
        cancel: Optional[CancelToken] = None,
    ) -> Collection:
        """Create a smart collection after checking its filter matches something.

        Args:
            section_id: Library section ID
            title: Collection title
            smart_type: Plex metadata type the filter selects (1 = movie, 2 = show, ...)
            filter_query: Filter query string, e.g. ``genre=action``

        Raises:
            SmartFilterValidationError: If the filter matches no items (nothing is created)
            IdentityResolutionError: If the new ID cannot be determined
        """
        self.filters.validate_filter(section_id, filter_query, cancel=cancel)

        uri = self.filters.build_filter_uri(section_id, filter_query)
        collection_id = self._create_raw(section_id, title, smart_type, True, uri, cancel)
        logger.info(f"Created smart collection {collection_id} '{title}'")

        self.session.settle(cancel)
        return self.get_collection(collection_id, cancel=cancel)

    def delete_collection(self, collection: CollectionRef, cancel: Optional[CancelToken] = None) -> None:
        """Delete a collection and wait for the server to settle."""
        collection_id = collection.ratingKey if isinstance(collection, Collection) else collection
        self.session.request("DELETE", f"/library/collections/{collection_id}", cancel=cancel)
        logger.info(f"Deleted collection {collection_id}")
        self.session.settle(cancel)

    def _recreate(self, collection: Collection, item_ids: List[str], cancel: Optional[CancelToken]) -> str:
        """Replace ``collection`` with a new one holding ``item_ids``.

        The replacement is created before the original is deleted, so a
        failed create leaves the original untouched. Mode and sort are
        carried over when they differ from the defaults.
        """
        if collection.sectionID is None:
            raise MalformedResponseError(f"Collection {collection.ratingKey} has no librarySectionID")

        uri = self.session.item_uri(item_ids, cancel=cancel) if item_ids else (
            f"{self.session.base_url}/library/metadata"
        )
        new_id = self._create_raw(
            collection.sectionID,
            collection.title,
            item_type_code(collection.subtype, self.config.default_item_type),
            False,
            uri,
            cancel,
        )
        logger.info(f"Recreated collection {collection.ratingKey} as {new_id} with {len(item_ids)} items")

        if collection.collectionMode != COLLECTION_MODE_DEFAULT:
            self.update_mode(new_id, collection.collectionMode, cancel=cancel)
        if collection.collectionSort != COLLECTION_SORT_RELEASE:
            self.update_sort(new_id, collection.collectionSort, cancel=cancel)

        self.session.request("DELETE", f"/library/collections/{collection.ratingKey}", cancel=cancel)
        return new_id

    # Membership

    def add_items(
        self, collection: CollectionRef, item_ids: List[str], cancel: Optional[CancelToken] = None
    ) -> Collection:
        """Add items to a regular collection.

        Items already present are ignored; if nothing is new, no request
        beyond the reads is made. On servers without per-item endpoints the
        collection is recreated and the returned Collection has a new ratingKey.

        Raises:
            SmartCollectionError: If the collection is smart
        """
        collection = self._resolve(collection, cancel)
        plan = self.reconciler.add(collection, item_ids, cancel=cancel)
        if plan.is_noop:
            return collection
        self.session.settle(cancel)
        return self.get_collection(plan.collection_id, cancel=cancel)

    def remove_items(
        self, collection: CollectionRef, item_ids: List[str], cancel: Optional[CancelToken] = None
    ) -> Collection:
        """Remove items from a regular collection.

        Items not in the collection are ignored.

        Raises:
            SmartCollectionError: If the collection is smart
        """
        collection = self._resolve(collection, cancel)
        plan = self.reconciler.remove(collection, item_ids, cancel=cancel)
        if plan.is_noop:
            return collection
        self.session.settle(cancel)
        return self.get_collection(plan.collection_id, cancel=cancel)

    def move_item(
        self,
        collection: CollectionRef,
        item_id: str,
        after: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
    ) -> None:
        """Move an item after ``after``, or to the top when ``after`` is None.

        Raises:
            SmartCollectionError: If the collection is smart
        """
        collection = self._resolve(collection, cancel)
        self.reconciler.move(collection, item_id, after=after, cancel=cancel)

    # Presentation

    def update_mode(
        self, collection: CollectionRef, mode: str, cancel: Optional[CancelToken] = None
    ) -> None:
        """Set the collection mode (default, hide, hideItems, showItems).

        Unknown modes fall back to ``default``.
        """
        collection_id = collection.ratingKey if isinstance(collection, Collection) else collection
        if mode not in COLLECTION_MODE_KEYS.values():
            logger.warning(f"Unknown collection mode '{mode}', using '{COLLECTION_MODE_DEFAULT}'")
        self.session.request(
            "PUT",
            f"/library/collections/{collection_id}/prefs",
            params={"collectionMode": mode_to_code(mode)},
            cancel=cancel,
        )
        logger.info(f"Set mode of collection {collection_id} to {mode}")

    def update_sort(
        self, collection: CollectionRef, sort: str, cancel: Optional[CancelToken] = None
    ) -> None:
        """Set the collection sort (release, alpha, custom).

        Unknown sorts fall back to ``release``.
        """
        collection_id = collection.ratingKey if isinstance(collection, Collection) else collection
        if sort not in COLLECTION_SORT_KEYS.values():
            logger.warning(f"Unknown collection sort '{sort}', using '{COLLECTION_SORT_RELEASE}'")
        self.session.request(
            "PUT",
            f"/library/collections/{collection_id}/prefs",
            params={"collectionSort": sort_to_code(sort)},
            cancel=cancel,
        )
        logger.info(f"Set sort of collection {collection_id} to {sort}")

    # Visibility. Stored on the section's hub management resource, not on
    # the collection itself.

    def _section_of(self, collection: CollectionRef, section_id: Optional[int], cancel) -> tuple:
        if section_id is not None:
            collection_id = collection.ratingKey if isinstance(collection, Collection) else str(collection)
            return collection_id, section_id
        collection = self._resolve(collection, cancel)
        if collection.sectionID is None:
            raise MalformedResponseError(f"Collection {collection.ratingKey} has no librarySectionID")
        return collection.ratingKey, collection.sectionID

    def get_visibility(
        self,
        collection: CollectionRef,
        section_id: Optional[int] = None,
        cancel: Optional[CancelToken] = None,
    ) -> CollectionVisibility:
        """Read where a collection is promoted.

        Args:
            collection: Collection or ratingKey
            section_id: Owning section; looked up from the collection if omitted

        Raises:
            CollectionNotFoundError: If the server has no visibility record
        """
        collection_id, section_id = self._section_of(collection, section_id, cancel)
        container = self.session.get_container(
            f"/hubs/sections/{section_id}/manage",
            params={"metadataItemId": collection_id},
            cancel=cancel,
        )
        if not container.records:
            raise CollectionNotFoundError(
                collection_id, f"No visibility information found for collection {collection_id}"
            )
        return CollectionVisibility.from_dict(container.records[0])

    def set_visibility(
        self,
        collection: CollectionRef,
        visibility: CollectionVisibility,
        section_id: Optional[int] = None,
        cancel: Optional[CancelToken] = None,
    ) -> None:
        """Write where a collection is promoted."""
        collection_id, section_id = self._section_of(collection, section_id, cancel)
        params = {"metadataItemId": collection_id}
        params.update(visibility.to_params())
        self.session.request("POST", f"/hubs/sections/{section_id}/manage", params=params, cancel=cancel)
        logger.info(f"Updated visibility of collection {collection_id}: {visibility}")

    # Smart filters

    def build_smart_filter_uri(self, section_id: int, filter_query: str) -> str:
        return self.filters.build_filter_uri(section_id, filter_query)

    def test_smart_filter(
        self, section_id: int, filter_query: str, cancel: Optional[CancelToken] = None
    ) -> bool:
        return self.filters.test_filter(section_id, filter_query, cancel=cancel)

    def get_smart_filter(self, collection: CollectionRef, cancel: Optional[CancelToken] = None) -> str:
        """Return a smart collection's filter query (with leading ``?``).

        Raises:
            NotSmartCollectionError: If the collection is not smart
            SmartFilterUnavailableError: If the server does not expose the filter
        """
        collection = self._resolve(collection, cancel)
        return self.filters.get_filter(collection, cancel=cancel)

    def update_smart_filter(
        self, collection: CollectionRef, filter_uri: str, cancel: Optional[CancelToken] = None
    ) -> None:
        """Replace a smart collection's filter.

        When the section and query can be read from ``filter_uri`` the
        filter is tested first; otherwise the update is sent unvalidated.

        Raises:
            NotSmartCollectionError: If the collection is not smart
            SmartFilterValidationError: If the filter matches no items
        """
        collection = self._resolve(collection, cancel)
        if not collection.is_smart():
            raise NotSmartCollectionError(
                f"Cannot update smart filter for non-smart collection {collection.ratingKey}"
            )

        parsed = parse_filter_uri(filter_uri)
        if parsed is not None:
            section_id, filter_query = parsed
            self.filters.validate_filter(section_id, filter_query, cancel=cancel)
        else:
            logger.debug(f"Could not parse section from filter URI, skipping validation: {filter_uri}")

        self.session.request(
            "PUT",
            f"/library/collections/{collection.ratingKey}/items",
            params={"uri": filter_uri},
            cancel=cancel,
        )
        logger.info(f"Updated smart filter of collection {collection.ratingKey}")

    def close(self):
        """Close the HTTP client and release resources."""
        self.session.close()
        logger.debug("Plex client closed")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit with cleanup."""
        self.close()
