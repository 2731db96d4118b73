"""Resilient CRUD client for the personal-trainer REST/HAL API.

Every public coroutine converts transport errors, non-2xx responses and
undecodable bodies into a return value: ``[]`` for listings, ``None`` for
single reads and an ``OperationResult`` for writes. Nothing raised by httpx
reaches the caller.

Addressing for update/delete follows a fixed order: ``self`` link, numeric
key, the resource's own relation link, then a lookup by the resource's
match key (customer name and email, plus the date for trainings). The first
address found is the one written to; a failed PUT or DELETE is reported,
never retried against another address.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import ValidationError

from personaltrainer.config import Settings, get_settings
from personaltrainer.models import CUSTOMER_FIELDS, Customer, Training
from personaltrainer.services.identity import (
    discriminating_attributes,
    find_by_attributes,
    is_addressable,
    qualify_address,
    relation_href,
    resolve_address,
    training_attributes,
)
from personaltrainer.services.normalizer import (
    normalize_collection,
    normalize_customer,
    normalize_one,
    normalize_training,
)
from personaltrainer.validators import CustomerBody, TrainingBody

logger = logging.getLogger(__name__)

# Operation outcomes
CREATED = "created"
UPDATED = "updated"
UPSERTED = "upserted"  # an update that had to be re-sent as a create
DELETED = "deleted"
RESET = "reset"
FAILED = "failed"
NOT_FOUND = "not_found"
UNADDRESSABLE = "unaddressable"
INVALID = "invalid"


@dataclass
class OperationResult:
    """Outcome of a write against the backend."""

    ok: bool
    outcome: str
    address: str | None = None
    payload: Any = None

    def __bool__(self) -> bool:
        return self.ok


def field_value(entity: Any, name: str) -> Any:
    if isinstance(entity, dict):
        return entity.get(name)
    return getattr(entity, name, None)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _created_address(resp: httpx.Response) -> str | None:
    location = resp.headers.get("location")
    if location:
        return location
    try:
        return relation_href(resp.json(), "self") or None
    except ValueError:
        return None



class ResourceClient(ABC):
    """CRUD operations on one backend collection."""

    RESOURCE: str = ""
    ALTERNATE_RELATION: str = ""

    def __init__(self, settings: Settings, http: httpx.AsyncClient):
        self.settings = settings
        self.http = http

    @property
    @abstractmethod
    def collection_url(self) -> str:
        """Address that POSTs go to and keys are joined onto."""

    @property
    def list_url(self) -> str:
        return self.collection_url

    @abstractmethod
    def parse(self, raw: dict[str, Any]) -> Any:
        """Shape one raw JSON object into an entity."""

    @abstractmethod
    def build_body(self, entity: Any) -> dict[str, Any]:
        """Request body for POST/PUT. May raise ValueError."""

    def match_key(self, entity: Any) -> tuple | None:
        """Attributes that pick out one record when no key or link is known."""
        return discriminating_attributes(entity)

    def resolve(self, entity: Any) -> str | None:
        return resolve_address(
            entity,
            self.collection_url,
            alternate=self.ALTERNATE_RELATION,
            base_url=self.settings.api_root,
        )

    def _context(self, outcome: str, address: str | None = None) -> dict[str, Any]:
        return {"ctx_resource": self.RESOURCE, "ctx_address": address, "ctx_outcome": outcome}

    async def _send(self, method: str, url: str, body: dict[str, Any] | None = None) -> httpx.Response | None:
        try:
            return await self.http.request(method, url, json=body)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("%s %s failed: %s", method, url, e, extra=self._context(FAILED, url))
            return None

    async def list(self) -> list[Any]:
        """Fetch the whole collection; any failure yields ``[]``."""
        resp = await self._send("GET", self.list_url)
        if resp is None:
            return []
        if not resp.is_success:
            logger.warning("Failed to fetch %s: %d", self.RESOURCE, resp.status_code)
            return []
        try:
            payload = resp.json()
        except ValueError:
            logger.warning("Undecodable %s listing from %s", self.RESOURCE, self.list_url)
            return []
        return normalize_collection(payload, self.RESOURCE, self.parse)

    async def get(self, ref: Any) -> Any | None:
        """Fetch a single resource by address, key or entity."""
        address = self.resolve(ref)
        if address is None:
            return None
        resp = await self._send("GET", address)
        if resp is None or not resp.is_success:
            return None
        try:
            return normalize_one(resp.json(), self.parse)
        except (ValueError, TypeError):
            logger.warning("Undecodable %s at %s", self.RESOURCE, address)
            return None

    async def locate(self, entity: Any) -> str | None:
        """Find the server-side address of an entity by its ``match_key``."""
        if self.match_key(entity) is None:
            return None
        match = find_by_attributes(entity, await self.list(), key=self.match_key)
        if match is None:
            return None
        return self.resolve(match)

    def _body_or_none(self, entity: Any, **overrides: Any) -> dict[str, Any] | None:
        try:
            return self.build_body(entity, **overrides)
        except (ValidationError, ValueError) as e:
            logger.warning("Invalid %s payload: %s", self.RESOURCE, e, extra=self._context(INVALID))
            return None

    async def prepare_body(self, entity: Any) -> dict[str, Any] | None:
        """Request body for POST/PUT, or ``None`` if the entity cannot be written."""
        return self._body_or_none(entity)

    async def create(self, entity: Any) -> OperationResult:
        """POST a new resource. Only ``201 Created`` counts as success."""
        body = await self.prepare_body(entity)
        if body is None:
            return OperationResult(False, INVALID)
        resp = await self._send("POST", self.collection_url, body)
        if resp is None:
            return OperationResult(False, FAILED)
        if resp.status_code != 201:
            logger.warning(
                "Create %s rejected: %d", self.RESOURCE, resp.status_code,
                extra=self._context(FAILED, self.collection_url),
            )
            return OperationResult(False, FAILED)
        address = _created_address(resp)
        logger.info("Created %s at %s", self.RESOURCE, address, extra=self._context(CREATED, address))
        return OperationResult(True, CREATED, address, body)

    async def update(self, entity: Any) -> OperationResult:
        """PUT the entity to its resolved address.

        An entity with no key, no link and no ``match_key`` fails without
        touching the network. One that has a match key but no server-side
        match is re-sent as a create when
        ``settings.update_falls_back_to_create`` is on; the result then
        carries the ``upserted`` outcome.
        """
        if isinstance(entity, (str, int)):
            # A bare reference carries no attributes to write
            return OperationResult(False, INVALID)
        if not is_addressable(entity, self.ALTERNATE_RELATION, self.match_key):
            logger.warning(
                "Cannot update %s: entity has no identity", self.RESOURCE,
                extra=self._context(UNADDRESSABLE),
            )
            return OperationResult(False, UNADDRESSABLE)
        body = await self.prepare_body(entity)
        if body is None:
            return OperationResult(False, INVALID)

        address = self.resolve(entity) or await self.locate(entity)
        if address is not None:
            resp = await self._send("PUT", address, body)
            if resp is None or not resp.is_success:
                if resp is not None:
                    logger.warning(
                        "Update %s at %s rejected: %d", self.RESOURCE, address, resp.status_code,
                        extra=self._context(FAILED, address),
                    )
                return OperationResult(False, FAILED, address)
            logger.info("Updated %s at %s", self.RESOURCE, address, extra=self._context(UPDATED, address))
            return OperationResult(True, UPDATED, address, body)

        if not self.settings.update_falls_back_to_create:
            logger.warning("Cannot update %s: no matching record", self.RESOURCE, extra=self._context(NOT_FOUND))
            return OperationResult(False, NOT_FOUND)
        logger.warning(
            "Update of %s found no matching record; inserting instead", self.RESOURCE,
            extra=self._context(UPSERTED),
        )
        created = await self.create(entity)
        if not created.ok:
            return created
        return OperationResult(True, UPSERTED, created.address, created.payload)

    async def delete(self, entity: Any) -> OperationResult:
        """DELETE the entity. Never falls back to guessing a target."""
        if isinstance(entity, (str, int)):
            address = self.resolve(entity)
        elif is_addressable(entity, self.ALTERNATE_RELATION, self.match_key):
            address = self.resolve(entity) or await self.locate(entity)
        else:
            address = None
        if address is None:
            logger.warning(
                "Cannot delete %s: entity is not addressable", self.RESOURCE,
                extra=self._context(UNADDRESSABLE),
            )
            return OperationResult(False, UNADDRESSABLE)
        resp = await self._send("DELETE", address)
        if resp is None:
            return OperationResult(False, FAILED, address)
        if resp.status_code == 404:
            logger.info("%s at %s already gone", self.RESOURCE, address, extra=self._context(NOT_FOUND, address))
            return OperationResult(False, NOT_FOUND, address)
        if not resp.is_success:
            logger.warning(
                "Delete %s at %s rejected: %d", self.RESOURCE, address, resp.status_code,
                extra=self._context(FAILED, address),
            )
            return OperationResult(False, FAILED, address)
        logger.info("Deleted %s at %s", self.RESOURCE, address, extra=self._context(DELETED, address))
        return OperationResult(True, DELETED, address)


class CustomerClient(ResourceClient):
    RESOURCE = "customers"
    ALTERNATE_RELATION = "customer"

    @property
    def collection_url(self) -> str:
        return self.settings.customers_url

    def parse(self, raw: dict[str, Any]) -> Customer:
        return normalize_customer(raw)

    def build_body(self, entity: Any) -> dict[str, Any]:
        values = {name: _text(field_value(entity, name)) for name in CUSTOMER_FIELDS}
        return CustomerBody(**values).model_dump()


class TrainingClient(ResourceClient):
    RESOURCE = "trainings"
    ALTERNATE_RELATION = "training"

    @property
    def collection_url(self) -> str:
        return self.settings.trainings_url

    @property
    def list_url(self) -> str:
        # /gettrainings embeds each training's customer
        return self.settings.gettrainings_url

    def parse(self, raw: dict[str, Any]) -> Training:
        return normalize_training(raw)

    def match_key(self, entity: Any) -> tuple | None:
        return training_attributes(entity)

    def _is_customer_address(self, address: str) -> bool:
        return address.startswith(self.settings.customers_url + "/")

    def customer_address(self, training: Any) -> str | None:
        """Fully-qualified address of the training's customer, if any can be derived.

        A ``customer`` relation link only counts when it already points into
        the customer collection; HAL association links
        (``/trainings/{id}/customer``) are resolved by ``follow_customer_link``.
        """
        ref = field_value(training, "customer")
        if isinstance(ref, (Customer, dict)):
            address = resolve_address(
                ref,
                self.settings.customers_url,
                alternate="customer",
                base_url=self.settings.api_root,
            )
        else:
            address = qualify_address(ref, self.settings.customers_url, self.settings.api_root)
        if address:
            return address
        link = relation_href(training, "customer")
        if link:
            address = qualify_address(link, self.settings.customers_url, self.settings.api_root)
            if address and self._is_customer_address(address):
                return address
        return None

    async def follow_customer_link(self, training: Any) -> str | None:
        """GET the training's ``customer`` relation and return that customer's own address."""
        link = relation_href(training, "customer")
        if not link:
            return None
        link = qualify_address(link, self.settings.customers_url, self.settings.api_root)
        resp = await self._send("GET", link)
        if resp is None or not resp.is_success:
            return None
        try:
            customer = normalize_one(resp.json(), normalize_customer)
        except (ValueError, TypeError):
            logger.warning("Undecodable customer at %s", link)
            return None
        address = resolve_address(
            customer,
            self.settings.customers_url,
            alternate="customer",
            base_url=self.settings.api_root,
        )
        if address and self._is_customer_address(address):
            return address
        return None

    def build_body(self, entity: Any, customer: str | None = None) -> dict[str, Any]:
        customer = customer or self.customer_address(entity)
        if customer is None:
            raise ValueError("training has no customer reference")
        return TrainingBody(
            date=_text(field_value(entity, "date")),
            duration=field_value(entity, "duration") or 0,
            activity=_text(field_value(entity, "activity")),
            customer=customer,
        ).model_dump()

    async def prepare_body(self, entity: Any) -> dict[str, Any] | None:
        customer = self.customer_address(entity)
        if customer is None and relation_href(entity, "customer"):
            customer = await self.follow_customer_link(entity)
            if customer is None:
                logger.warning(
                    "Cannot resolve customer of %s", relation_href(entity, "self") or "training",
                    extra=self._context(INVALID),
                )
                return None
        return self._body_or_none(entity, customer=customer)


class TrainerApi:
    """Entry point bundling the customer and training clients over one connection pool."""

    def __init__(self, settings: Settings | None = None, http: httpx.AsyncClient | None = None):
        self.settings = settings or get_settings()
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(
            timeout=self.settings.request_timeout,
            headers={"Accept": "application/json"},
        )
        self.customers = CustomerClient(self.settings, self.http)
        self.trainings = TrainingClient(self.settings, self.http)

    async def reset(self) -> OperationResult:
        """Restore the backend's default dataset."""
        try:
            resp = await self.http.post(self.settings.reset_url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("Dataset reset failed: %s", e)
            return OperationResult(False, FAILED)
        if not resp.is_success:
            logger.warning("Dataset reset rejected: %d", resp.status_code)
            return OperationResult(False, FAILED)
        logger.info("Dataset reset")
        return OperationResult(True, RESET, self.settings.reset_url)

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def __aenter__(self) -> TrainerApi:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
