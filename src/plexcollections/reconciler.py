"""Collection membership reconciliation.

Membership changes are planned as pure functions over the current and
requested item lists, then applied with one of two strategies:

- NATIVE: per-item calls on ``/library/collections/{id}/items``
- RECREATE: create a replacement collection holding the target membership,
  then delete the original (for servers without the per-item endpoints)

Strategy choice comes from static capability knowledge
(``PlexConfig.native_item_endpoints``), never from catching a failed
native call.

Smart collections are never edited: their membership is derived from a
filter. Concurrent edits to the same collection are not coordinated;
two racing add calls can both read the same membership and the last
write wins.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Optional

from .cancellation import CancelToken
from .exceptions import PlexNotFoundError, SmartCollectionError, SmartFilterUnavailableError
from .models import Collection, MediaContainer
from .session import PlexSession
from .smart_filter import SmartFilterEngine, section_listing_path

logger = logging.getLogger(__name__)


class Strategy(str, Enum):
    """How a membership plan is applied."""

    NOOP = "noop"
    NATIVE = "native"
    RECREATE = "recreate"


@dataclass
class MembershipPlan:
    """Result of planning an add or remove.

    Attributes:
        operation: "add" or "remove"
        current: Membership read before the change, in server order
        target: Membership after the change
        changes: IDs actually added or removed (after idempotent filtering)
        strategy: How the plan is applied
        collection_id: Collection holding ``target`` once applied. Differs
            from the original ID after a RECREATE.
    """

    operation: str
    current: List[str]
    target: List[str]
    changes: List[str]
    strategy: Strategy
    collection_id: Optional[str] = None

    @property
    def is_noop(self) -> bool:
        return self.strategy is Strategy.NOOP


def unique_ids(item_ids: Iterable) -> List[str]:
    """Stringify and de-duplicate IDs, keeping first occurrence order."""
    seen = set()
    result = []
    for item_id in item_ids:
        item_id = str(item_id)
        if item_id not in seen:
            seen.add(item_id)
            result.append(item_id)
    return result


def select_strategy(changes: List[str], native_available: bool) -> Strategy:
    if not changes:
        return Strategy.NOOP
    return Strategy.NATIVE if native_available else Strategy.RECREATE


def plan_add(current: List[str], requested: Iterable, native_available: bool) -> MembershipPlan:
    """Plan adding ``requested`` to ``current``.

    The target keeps current order and appends new IDs in request order.

    Examples:
        >>> plan = plan_add(["1", "2"], ["2", "3"], native_available=True)
        >>> plan.target, plan.changes, plan.strategy.value
        (['1', '2', '3'], ['3'], 'native')
        >>> plan_add(["1"], ["1"], native_available=True).is_noop
        True
    """
    current = unique_ids(current)
    present = set(current)
    changes = [item_id for item_id in unique_ids(requested) if item_id not in present]
    return MembershipPlan(
        operation="add",
        current=current,
        target=current + changes,
        changes=changes,
        strategy=select_strategy(changes, native_available),
    )


def plan_remove(current: List[str], requested: Iterable, native_available: bool) -> MembershipPlan:
    """Plan removing ``requested`` from ``current``.

    IDs not in the collection are dropped from the plan silently.

    Examples:
        >>> plan = plan_remove(["1", "2", "3"], ["2", "9"], native_available=False)
        >>> plan.target, plan.changes, plan.strategy.value
        (['1', '3'], ['2'], 'recreate')
    """
    current = unique_ids(current)
    present = set(current)
    changes = [item_id for item_id in unique_ids(requested) if item_id in present]
    removed = set(changes)
    return MembershipPlan(
        operation="remove",
        current=current,
        target=[item_id for item_id in current if item_id not in removed],
        changes=changes,
        strategy=select_strategy(changes, native_available),
    )


def ordered_item_ids(container: MediaContainer) -> List[str]:
    """Item ratingKeys in response order, skipping records without one."""
    item_ids = []
    for record in container.records:
        rating_key = record.get("ratingKey") if isinstance(record, dict) else None
        if rating_key is None or str(rating_key) == "":
            logger.warning(f"Skipping item without ratingKey: {record!r}")
            continue
        item_ids.append(str(rating_key))
    return unique_ids(item_ids)


# (collection, target item IDs, cancel) -> ID of the replacement collection
RecreateFn = Callable[[Collection, List[str], Optional[CancelToken]], str]


class MembershipReconciler:
    """Reads and edits collection membership.

    Args:
        session: Plex session used for all requests
        filters: Smart filter engine used to read smart membership
        recreate: Callback that replaces a collection with one holding the
            given membership and returns the new collection's ID
    """

    def __init__(self, session: PlexSession, filters: SmartFilterEngine, recreate: RecreateFn):
        self.session = session
        self.filters = filters
        self._recreate = recreate

    @property
    def native_available(self) -> bool:
        return self.session.config.native_item_endpoints

    def _children(self, collection_id: str, cancel: Optional[CancelToken]) -> List[str]:
        container = self.session.get_container(f"/library/collections/{collection_id}/children", cancel=cancel)
        return ordered_item_ids(container)

    def get_items(self, collection: Collection, cancel: Optional[CancelToken] = None) -> List[str]:
        """Return the collection's item IDs.

        Regular collections are read from their children. Smart collections
        are read by replaying their filter against the section listing; if
        the filter cannot be extracted, the children listing is used instead.
        """
        if not collection.is_smart():
            return self._children(collection.ratingKey, cancel)

        if collection.sectionID is None:
            logger.warning(
                f"Smart collection {collection.ratingKey} has no section; reading children instead"
            )
            return self._children(collection.ratingKey, cancel)

        try:
            filter_query = self.filters.get_filter(collection, cancel=cancel)
        except SmartFilterUnavailableError as e:
            logger.warning(f"{e}; falling back to children listing")
            return self._children(collection.ratingKey, cancel)

        container = self.session.get_container(
            section_listing_path(collection.sectionID, filter_query), cancel=cancel
        )
        return ordered_item_ids(container)

    def _require_regular(self, collection: Collection, action: str) -> None:
        if collection.is_smart():
            raise SmartCollectionError(
                f"Cannot {action} smart collection {collection.ratingKey}; "
                f"its membership is defined by a filter"
            )

    def add(
        self, collection: Collection, item_ids: List[str], cancel: Optional[CancelToken] = None
    ) -> MembershipPlan:
        """Add items to a regular collection.

        Raises:
            SmartCollectionError: If the collection is smart (no request issued)
        """
        self._require_regular(collection, "add items to")

        if not item_ids:
            return plan_add([], [], self.native_available)

        current = self.get_items(collection, cancel=cancel)
        plan = plan_add(current, item_ids, self.native_available)
        plan.collection_id = collection.ratingKey

        if plan.is_noop:
            logger.info(f"All requested items already in collection {collection.ratingKey}")
            return plan

        if plan.strategy is Strategy.NATIVE:
            uri = self.session.item_uri(plan.target, cancel=cancel)
            self.session.request(
                "PUT", f"/library/collections/{collection.ratingKey}/items", params={"uri": uri}, cancel=cancel
            )
        else:
            plan.collection_id = self._recreate(collection, plan.target, cancel)

        logger.info(
            f"Added {len(plan.changes)} item(s) to collection {collection.ratingKey} "
            f"({plan.strategy.value})"
        )
        return plan

    def remove(
        self, collection: Collection, item_ids: List[str], cancel: Optional[CancelToken] = None
    ) -> MembershipPlan:
        """Remove items from a regular collection.

        With native endpoints, a 404 for an individual item means it is
        already gone and is not an error. Any other failure propagates.

        Raises:
            SmartCollectionError: If the collection is smart (no request issued)
        """
        self._require_regular(collection, "remove items from")

        if not item_ids:
            return plan_remove([], [], self.native_available)

        current = self.get_items(collection, cancel=cancel)
        plan = plan_remove(current, item_ids, self.native_available)
        plan.collection_id = collection.ratingKey

        if plan.is_noop:
            logger.info(f"None of the requested items are in collection {collection.ratingKey}")
            return plan

        if plan.strategy is Strategy.NATIVE:
            for item_id in plan.changes:
                try:
                    self.session.request(
                        "DELETE", f"/library/collections/{collection.ratingKey}/items/{item_id}", cancel=cancel
                    )
                except PlexNotFoundError:
                    logger.warning(f"Item {item_id} already absent from collection {collection.ratingKey}")
        else:
            plan.collection_id = self._recreate(collection, plan.target, cancel)

        logger.info(
            f"Removed {len(plan.changes)} item(s) from collection {collection.ratingKey} "
            f"({plan.strategy.value})"
        )
        return plan

    def move(
        self,
        collection: Collection,
        item_id: str,
        after: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
    ) -> None:
        """Move an item to follow ``after``, or to the head when ``after`` is empty.

        Raises:
            SmartCollectionError: If the collection is smart (no request issued)
        """
        self._require_regular(collection, "reorder")

        params = {"after": str(after)} if after else None
        self.session.request(
            "PUT",
            f"/library/collections/{collection.ratingKey}/items/{item_id}/move",
            params=params,
            cancel=cancel,
        )
        logger.info(
            f"Moved item {item_id} in collection {collection.ratingKey} "
            f"{'after ' + str(after) if after else 'to the top'}"
        )
