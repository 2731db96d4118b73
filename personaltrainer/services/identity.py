"""Entity identity resolution.

The backend addresses the same record two ways: by numeric primary key
(``/customers/5``) and by HAL hyperlink (``_links.self.href``). Which one an
entity carries depends on the endpoint it came from. This module turns any
of the known shapes into one address, or ``None`` when the entity cannot be
addressed at all.

Everything here is pure: no network access, no shared state, no exceptions
for malformed input.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Optional

from personaltrainer.models import DISCRIMINATING_FIELDS

_ABSOLUTE_PREFIXES = ("http://", "https://")

AddressStrategy = Callable[[Any, str, Optional[str]], Optional[str]]
AttributeKey = Callable[[Any], Optional[tuple]]


def is_absolute(ref: str) -> bool:
    return ref.startswith(_ABSOLUTE_PREFIXES)


def join_address(base: str, tail: Any) -> str:
    return f"{base.rstrip('/')}/{str(tail).strip('/')}"


def extract_id(address: str | None) -> str | None:
    """Return the trailing path segment of an address, e.g. ``"5"``."""
    if not address or not isinstance(address, str):
        return None
    path = address.split("?", 1)[0].rstrip("/")
    return path.rsplit("/", 1)[-1] or None


def _href(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        href = value.get("href")
        return href if isinstance(href, str) else ""
    return ""


def relation_href(entity: Any, relation: str) -> str:
    """Look up a relation address in canonical ``links`` or HAL ``_links``.

    Accepts the dataclasses from ``personaltrainer.models`` as well as raw
    dicts in either shape. Missing relations yield ``""``.
    """
    if isinstance(entity, dict):
        blocks = (entity.get("links"), entity.get("_links"))
    else:
        blocks = (getattr(entity, "links", None),)
    for block in blocks:
        if isinstance(block, dict):
            href = _href(block.get(relation))
            if href:
                return href
    return ""


def numeric_key(entity: Any) -> int | None:
    if isinstance(entity, dict):
        raw = entity.get("id")
    elif isinstance(entity, int):
        raw = entity
    else:
        raw = getattr(entity, "id", None)
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


def qualify_address(ref: Any, collection_url: str, base_url: str | None = None) -> str | None:
    """Expand a bare reference into a fully-qualified address.

    ``"https://host/api/customers/5"`` is returned verbatim,
    ``"customers/5"`` is joined onto the base address, and ``"5"`` or ``5``
    onto the collection address.
    """
    if base_url is None:
        base_url = collection_url.rstrip("/").rsplit("/", 1)[0]
    if isinstance(ref, bool):
        return None
    if isinstance(ref, int):
        return join_address(collection_url, ref)
    if not isinstance(ref, str):
        return None
    ref = ref.strip()
    if not ref:
        return None
    if is_absolute(ref):
        return ref
    if "/" in ref.strip("/"):
        return join_address(base_url, ref)
    return join_address(collection_url, ref)


# -- Resolution strategies, most specific first --


def _from_self_link(entity: Any, collection_url: str, alternate: str | None) -> str | None:
    return relation_href(entity, "self") or None


def _from_numeric_key(entity: Any, collection_url: str, alternate: str | None) -> str | None:
    key = numeric_key(entity)
    if key is None:
        return None
    return join_address(collection_url, key)


def _from_alternate_link(entity: Any, collection_url: str, alternate: str | None) -> str | None:
    if not alternate:
        return None
    return relation_href(entity, alternate) or None


ADDRESS_STRATEGIES: tuple[AddressStrategy, ...] = (
    _from_self_link,
    _from_numeric_key,
    _from_alternate_link,
)


def resolve_address(
    entity: Any,
    collection_url: str,
    alternate: str | None = None,
    base_url: str | None = None,
) -> str | None:
    """Resolve an entity, key or address string to a backend address.

    Precedence for entities: ``self`` link, numeric key, then the
    ``alternate`` relation (the link named after the resource itself, e.g.
    ``customer`` on a customer). Returns ``None`` when no channel yields an
    address.
    """
    if entity is None:
        return None
    if isinstance(entity, (str, int)):
        return qualify_address(entity, collection_url, base_url)
    for strategy in ADDRESS_STRATEGIES:
        address = strategy(entity, collection_url, alternate)
        if address:
            return address
    return None


def discriminating_attributes(entity: Any) -> tuple[str, ...] | None:
    """First name, last name and email, or ``None`` if any is missing."""
    values = []
    for name in DISCRIMINATING_FIELDS:
        if isinstance(entity, dict):
            value = entity.get(name)
        else:
            value = getattr(entity, name, None)
        if not isinstance(value, str) or not value:
            return None
        values.append(value)
    return tuple(values)


def training_attributes(training: Any) -> tuple[str, ...] | None:
    """Owner's first name, last name and email plus the training date.

    The owner is read from the training itself when it carries the customer
    fields inline, otherwise from its embedded customer.
    """
    if isinstance(training, dict):
        customer, date = training.get("customer"), training.get("date")
    else:
        customer, date = getattr(training, "customer", None), getattr(training, "date", None)
    owner = discriminating_attributes(training)
    if owner is None and customer is not None and not isinstance(customer, (str, int)):
        owner = discriminating_attributes(customer)
    if owner is None or not isinstance(date, str) or not date:
        return None
    return owner + (date,)


def find_by_attributes(
    entity: Any,
    candidates: Iterable[Any],
    key: AttributeKey = discriminating_attributes,
) -> Any | None:
    """Return the single candidate sharing the entity's discriminating attributes.

    Zero or several matches count as "not found".
    """
    wanted = key(entity)
    if wanted is None:
        return None
    matches = [c for c in candidates if key(c) == wanted]
    if len(matches) != 1:
        return None
    return matches[0]


def is_addressable(
    entity: Any,
    alternate: str | None = None,
    key: AttributeKey = discriminating_attributes,
) -> bool:
    if isinstance(entity, (str, int)):
        return False
    return (
        numeric_key(entity) is not None
        or bool(relation_href(entity, "self"))
        or bool(alternate and relation_href(entity, alternate))
        or key(entity) is not None
    )
