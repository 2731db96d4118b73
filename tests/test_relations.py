"""Tests for the relation lazy-loader and the pure display helpers."""

from __future__ import annotations

import asyncio

import pytest

from personaltrainer.models import Customer, Training
from personaltrainer.services.client import TrainerApi
from personaltrainer.services.relations import (
    LOADING_LABEL,
    NO_CUSTOMER_LABEL,
    RelationLoader,
    customer_display_name,
    merge_relation,
    missing_relations,
)
from tests.fake_backend import BASE_URL, FakeBackend, make_settings


def _hal_training(tid: int, with_link: bool = True) -> Training:
    return Training(
        date="2024-01-01T10:00:00Z",
        duration=45,
        activity="Yoga",
        links={
            "self": f"{BASE_URL}/trainings/{tid}",
            "training": f"{BASE_URL}/trainings/{tid}",
            "customer": f"{BASE_URL}/trainings/{tid}/customer" if with_link else "",
        },
    )


class _GatedFetch:
    """Fetch stub whose responses are released by the test."""

    def __init__(self):
        self.calls: list[str] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.results: dict[str, object] = {}

    async def __call__(self, address: str):
        self.calls.append(address)
        gate = self.gates.setdefault(address, asyncio.Event())
        await gate.wait()
        return self.results.get(address)

    def release(self, address: str, result) -> None:
        self.results[address] = result
        self.gates.setdefault(address, asyncio.Event()).set()


# ── Pure derivation ───────────────────────────────────────────────────────

class TestCustomerDisplayName:
    def test_embedded_customer(self):
        t = _hal_training(1)
        t.customer = Customer(firstname="Ada", lastname="Lovelace")
        assert customer_display_name(t) == "Ada Lovelace"

    def test_link_only_is_loading(self):
        assert customer_display_name(_hal_training(1)) == LOADING_LABEL

    def test_nothing_is_no_customer(self):
        assert customer_display_name(_hal_training(1, with_link=False)) == NO_CUSTOMER_LABEL

    def test_customer_without_name(self):
        t = _hal_training(1, with_link=False)
        t.customer = Customer()
        assert customer_display_name(t) == NO_CUSTOMER_LABEL


def test_missing_relations():
    loaded = _hal_training(1)
    loaded.customer = Customer(firstname="Ada")
    pending = _hal_training(2)
    unlinked = _hal_training(3, with_link=False)
    assert missing_relations([loaded, pending, unlinked], "customer") == [pending]


def test_merge_relation_matches_parent_address():
    parent = _hal_training(1)
    copy = _hal_training(1)
    other = _hal_training(2)
    customer = Customer(firstname="Ada")
    merged = merge_relation(parent, "customer", customer, [copy, other])
    assert merged == 1
    assert parent.customer is customer
    assert copy.customer is customer
    assert other.customer is None


# ── Loader ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_repeated_ensure_issues_one_request():
    fetch = _GatedFetch()
    loader = RelationLoader(fetch)
    training = _hal_training(1)
    collection = [training]

    first = loader.ensure_relation(training, "customer", collection)
    second = loader.ensure_relation(training, "customer", collection)
    assert first is second
    assert loader.in_flight == 1

    fetch.release(training.links["customer"], Customer(firstname="Ada", lastname="Lovelace"))
    await first
    assert fetch.calls == [training.links["customer"]]
    assert customer_display_name(training) == "Ada Lovelace"
    assert loader.in_flight == 0
    assert loader.ensure_relation(training, "customer", collection) is None


@pytest.mark.asyncio
async def test_rederived_copies_share_one_request():
    fetch = _GatedFetch()
    loader = RelationLoader(fetch)
    collection = [_hal_training(1)]
    loader.ensure_relation(collection[0], "customer", collection)
    # A re-render produced a fresh object for the same training
    collection[0] = _hal_training(1)
    task = loader.ensure_relation(collection[0], "customer", collection)
    fetch.release(f"{BASE_URL}/trainings/1/customer", Customer(firstname="Ada"))
    await task
    assert len(fetch.calls) == 1
    assert collection[0].customer.firstname == "Ada"


@pytest.mark.asyncio
async def test_embedded_or_unlinked_parent_is_skipped():
    fetch = _GatedFetch()
    loader = RelationLoader(fetch)
    loaded = _hal_training(1)
    loaded.customer = Customer(firstname="Ada")
    assert loader.ensure_relation(loaded, "customer", [loaded]) is None
    unlinked = _hal_training(2, with_link=False)
    assert loader.ensure_relation(unlinked, "customer", [unlinked]) is None
    assert fetch.calls == []


@pytest.mark.asyncio
async def test_failed_fetch_leaves_relation_absent():
    async def failing(address):
        raise RuntimeError("boom")

    loader = RelationLoader(failing)
    training = _hal_training(1)
    task = loader.ensure_relation(training, "customer", [training])
    await task
    assert training.customer is None
    assert customer_display_name(training) == LOADING_LABEL
    # Settled: no retry storm on re-derivation
    assert loader.ensure_relation(training, "customer", [training]) is None


@pytest.mark.asyncio
async def test_none_result_leaves_relation_absent_until_forget():
    calls = []

    async def empty(address):
        calls.append(address)
        return None

    loader = RelationLoader(empty)
    training = _hal_training(1)
    await loader.ensure_relation(training, "customer", [training])
    assert loader.ensure_relation(training, "customer", [training]) is None
    loader.forget()
    await loader.ensure_relation(training, "customer", [training])
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_arrival_order_does_not_change_final_state():
    fetch = _GatedFetch()
    loader = RelationLoader(fetch)
    collection = [_hal_training(1), _hal_training(2)]
    ada = Customer(firstname="Ada")
    grace = Customer(firstname="Grace")

    tasks = [loader.ensure_relation(t, "customer", collection) for t in collection]
    fetch.release(f"{BASE_URL}/trainings/2/customer", grace)
    fetch.release(f"{BASE_URL}/trainings/1/customer", ada)
    await asyncio.gather(*tasks)
    assert [t.customer.firstname for t in collection] == ["Ada", "Grace"]


@pytest.mark.asyncio
async def test_load_missing_against_backend():
    backend = FakeBackend()
    ada = backend.add_customer(firstname="Ada", lastname="Lovelace")
    grace = backend.add_customer(firstname="Grace", lastname="Hopper")
    t1 = backend.add_training(ada)
    t2 = backend.add_training(grace)
    api = TrainerApi(make_settings(), http=backend.client())
    loader = RelationLoader(api.customers.get)

    collection = [
        api.trainings.parse(backend.hal_training(t1)),
        api.trainings.parse(backend.hal_training(t2)),
    ]
    await loader.load_missing(collection, "customer")
    await loader.load_missing(collection, "customer")

    assert [customer_display_name(t) for t in collection] == ["Ada Lovelace", "Grace Hopper"]
    assert len(backend.requests_for("GET")) == 2


@pytest.mark.asyncio
async def test_load_missing_offline_keeps_placeholder():
    backend = FakeBackend()
    backend.offline = True
    api = TrainerApi(make_settings(), http=backend.client())
    loader = RelationLoader(api.customers.get)
    collection = [_hal_training(1)]
    await loader.load_missing(collection, "customer")
    assert collection[0].customer is None
