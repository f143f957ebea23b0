"""Exception classes for the Plex collections client."""

from typing import Optional


class PlexError(Exception):
    """Base exception for all Plex collection errors.

    Attributes:
        message: Human-readable error message
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class PlexAPIError(PlexError):
    """Server rejected a request with a 4xx/5xx status.

    Attributes:
        status_code: HTTP status returned by the server
        message: Error message
        body: Raw response body (may be empty)
    """

    def __init__(self, status_code: int, message: str, body: str = ""):
        """Initialize Plex API error.

        Args:
            status_code: HTTP status code
            message: Human-readable error message
            body: Response body text for diagnostics
        """
        self.status_code = status_code
        self.body = body
        super().__init__(f"Plex API Error {status_code}: {message}")


class PlexBadRequestError(PlexAPIError):
    """Malformed request or invalid parameter (HTTP 400)."""

    pass


class PlexAuthenticationError(PlexAPIError):
    """Token missing or invalid (HTTP 401)."""

    pass


class PlexAuthorizationError(PlexAPIError):
    """Token valid but not allowed to perform the action (HTTP 403)."""

    pass


class PlexNotFoundError(PlexAPIError):
    """Requested path or resource does not exist (HTTP 404)."""

    pass


class PlexServerError(PlexAPIError):
    """Server-side failure (HTTP 5xx)."""

    pass


class MalformedResponseError(PlexError):
    """Response body could not be decoded into the expected shape.

    Raised for non-JSON bodies, missing MediaContainer envelopes and
    collection records without a ratingKey.
    """

    pass


class CollectionNotFoundError(PlexError):
    """A read that expected one entity returned an empty result set."""

    def __init__(self, collection_id: str, message: Optional[str] = None):
        self.collection_id = str(collection_id)
        super().__init__(message or f"Collection {collection_id} not found")


class CapabilityError(PlexError):
    """Operation is not supported by the target collection's kind.

    Always raised locally, before any mutating request is issued.
    """

    pass


class SmartCollectionError(CapabilityError):
    """Membership of a smart collection cannot be edited directly."""

    pass


class NotSmartCollectionError(CapabilityError):
    """Smart filter operation attempted on a regular collection."""

    pass


class SmartFilterValidationError(PlexError):
    """Smart filter matched no items in its target section.

    Attributes:
        section_id: Section the filter was tested against
        filter_query: The rejected query string
    """

    def __init__(self, section_id: int, filter_query: str):
        self.section_id = section_id
        self.filter_query = filter_query
        super().__init__(f"Smart filter returned no results in section {section_id}: {filter_query}")


class SmartFilterUnavailableError(PlexError):
    """Collection detail does not expose its smart filter.

    Some servers omit the ``content`` field for smart collections.
    """

    pass


class IdentityResolutionError(PlexError):
    """Collection was created but its identifier could not be resolved.

    The server-side collection is left in place.

    Attributes:
        status_code: Status of the create response
        location: Location header value, if any
    """

    def __init__(self, message: str, status_code: Optional[int] = None, location: Optional[str] = None):
        self.status_code = status_code
        self.location = location
        super().__init__(message)


class OperationCancelledError(PlexError):
    """Caller cancelled the operation or its deadline passed before the next round trip."""

    pass
