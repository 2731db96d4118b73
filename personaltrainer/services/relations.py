"""On-demand loading of related entities.

Trainings read from a HAL collection carry a ``customer`` link instead of an
embedded customer. Display code derives a label with the pure helpers below
and, separately, asks a ``RelationLoader`` to fill the gap in the
background. Re-deriving the view as often as it likes never issues a second
request for the same ``(training, relation)`` pair.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable

from personaltrainer.services.identity import relation_href

logger = logging.getLogger(__name__)

LOADING_LABEL = "Loading..."
NO_CUSTOMER_LABEL = "No Customer"

Fetch = Callable[[str], Awaitable[Any]]


def customer_display_name(training: Any) -> str:
    customer = getattr(training, "customer", None)
    if customer is not None and getattr(customer, "firstname", ""):
        return f"{customer.firstname} {customer.lastname}"
    if relation_href(training, "customer"):
        return LOADING_LABEL
    return NO_CUSTOMER_LABEL


def missing_relations(items: Iterable[Any], relation: str) -> list[Any]:
    """Items lacking the embedded relation but holding a link to it."""
    return [
        item
        for item in items
        if getattr(item, relation, None) is None and relation_href(item, relation)
    ]


class RelationLoader:
    """Fetch missing relations once per (parent address, relation) pair.

    The fetched entity is merged into every item of the caller's collection
    whose ``self`` address equals the parent's, so a merge that lands after
    the collection was refreshed still reaches the current objects.
    """

    def __init__(self, fetch: Fetch):
        self.fetch = fetch
        self._pending: dict[tuple[str, str], asyncio.Task] = {}
        self._settled: set[tuple[str, str]] = set()

    def ensure_relation(self, parent: Any, relation: str, collection: Iterable[Any]) -> asyncio.Task | None:
        """Schedule a fetch for ``parent.<relation>`` unless one is pending or done.

        Must be called with a running event loop. Returns the in-flight task,
        or ``None`` when nothing needs fetching.
        """
        if getattr(parent, relation, None) is not None:
            return None
        link = relation_href(parent, relation)
        parent_address = relation_href(parent, "self")
        if not link or not parent_address:
            return None
        key = (parent_address, relation)
        if key in self._pending:
            return self._pending[key]
        if key in self._settled:
            return None
        task = asyncio.get_running_loop().create_task(
            self._load(key, parent, link, collection)
        )
        self._pending[key] = task
        return task

    async def _load(self, key: tuple[str, str], parent: Any, link: str, collection: Iterable[Any]) -> None:
        parent_address, relation = key
        try:
            related = await self.fetch(link)
        except Exception as e:
            logger.warning("Failed to load %s for %s: %s", relation, parent_address, e)
            related = None
        finally:
            self._pending.pop(key, None)
            self._settled.add(key)
        if related is None:
            return
        merge_relation(parent, relation, related, collection)

    async def load_missing(self, collection: Iterable[Any], relation: str) -> None:
        """Fetch every missing relation in the collection and wait for all merges."""
        tasks = []
        for item in missing_relations(list(collection), relation):
            task = self.ensure_relation(item, relation, collection)
            if task is not None:
                tasks.append(task)
        if tasks:
            await asyncio.gather(*tasks)

    def forget(self) -> None:
        """Allow settled pairs to be fetched again, e.g. after a full refresh."""
        self._settled.clear()

    @property
    def in_flight(self) -> int:
        return len(self._pending)


def merge_relation(parent: Any, relation: str, related: Any, collection: Iterable[Any]) -> int:
    """Attach ``related`` to the parent and its copies in the collection.

    Matching is on the parent's own ``self`` address. Returns the number of
    collection items updated.
    """
    parent_address = relation_href(parent, "self")
    setattr(parent, relation, related)
    merged = 0
    for item in collection:
        if relation_href(item, "self") == parent_address:
            setattr(item, relation, related)
            merged += 1
    return merged
