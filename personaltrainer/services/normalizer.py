"""Shape raw backend payloads into Customer / Training dataclasses.

Collections come either HAL-embedded (``{"_embedded": {"customers": [...]}}``)
or as a flat JSON array (``/gettrainings``). Anything else normalizes to an
empty list rather than an error.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from personaltrainer.models import (
    CUSTOMER_FIELDS,
    CUSTOMER_RELATIONS,
    TRAINING_RELATIONS,
    Customer,
    Training,
)
from personaltrainer.services.identity import numeric_key, relation_href

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _normalize_links(raw: dict[str, Any], relations: tuple[str, ...]) -> dict[str, str]:
    """Map ``_links`` (or an already canonical ``links``) to relation -> href.

    Every canonical relation is present; missing ones become ``""``.
    """
    links = {name: relation_href(raw, name) for name in relations}
    extra = raw.get("_links") or raw.get("links") or {}
    if isinstance(extra, dict):
        for name in extra:
            if name not in links:
                links[name] = relation_href(raw, name)
    return links


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _as_minutes(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def normalize_customer(raw: dict[str, Any]) -> Customer:
    """Convert a raw customer JSON object to a Customer."""
    if not isinstance(raw, dict):
        raise ValueError(f"customer payload must be an object, got {type(raw).__name__}")
    values = {name: _as_str(raw.get(name)) for name in CUSTOMER_FIELDS}
    return Customer(
        **values,
        id=numeric_key(raw),
        links=_normalize_links(raw, CUSTOMER_RELATIONS),
    )


def normalize_training(raw: dict[str, Any]) -> Training:
    """Convert a raw training JSON object to a Training.

    An embedded customer object is normalized too; a customer given only as
    a string is left to the ``customer`` link.
    """
    if not isinstance(raw, dict):
        raise ValueError(f"training payload must be an object, got {type(raw).__name__}")
    links = _normalize_links(raw, TRAINING_RELATIONS)
    customer = None
    embedded = raw.get("customer")
    if isinstance(embedded, dict):
        customer = normalize_customer(embedded)
    elif isinstance(embedded, Customer):
        customer = embedded
    elif isinstance(embedded, str) and embedded and not links["customer"]:
        links["customer"] = embedded

    return Training(
        date=_as_str(raw.get("date")),
        duration=_as_minutes(raw.get("duration")),
        activity=_as_str(raw.get("activity")),
        id=numeric_key(raw),
        customer=customer,
        links=links,
    )


def _embedded_items(payload: Any, resource: str) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return []
    embedded = payload.get("_embedded")
    if not isinstance(embedded, dict):
        return []
    items = embedded.get(resource)
    if not isinstance(items, list):
        return []
    return items


def normalize_collection(payload: Any, resource: str, factory: Callable[[dict[str, Any]], T]) -> list[T]:
    """Shape a HAL-embedded or flat collection, preserving payload order."""
    results: list[T] = []
    for raw in _embedded_items(payload, resource):
        try:
            results.append(factory(raw))
        except (ValueError, TypeError):
            logger.warning("Skipping malformed %s item: %r", resource, raw)
    return results


def normalize_one(payload: Any, factory: Callable[[dict[str, Any]], T]) -> T:
    return factory(payload)
