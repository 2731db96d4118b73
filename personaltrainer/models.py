"""In-memory entity shapes shared by the resolver, normalizer and client.

Entities arrive from two API surfaces: the HAL collection endpoints carry
relation links but no numeric key, while ``/gettrainings`` returns flat
records with an ``id`` and no links. Both shapes end up in the same
dataclasses; either identity channel may be empty.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

CUSTOMER_RELATIONS: tuple[str, ...] = ("self", "customer", "trainings")
TRAINING_RELATIONS: tuple[str, ...] = ("self", "training", "customer")

# Attributes that single out one customer when no key or link is known.
DISCRIMINATING_FIELDS: tuple[str, ...] = ("firstname", "lastname", "email")

CUSTOMER_FIELDS: tuple[str, ...] = (
    "firstname",
    "lastname",
    "streetaddress",
    "postcode",
    "city",
    "email",
    "phone",
)
TRAINING_FIELDS: tuple[str, ...] = ("date", "duration", "activity")


def empty_links(relations: tuple[str, ...]) -> dict[str, str]:
    return {name: "" for name in relations}


@dataclass
class Customer:
    """A trainer's client."""

    firstname: str = ""
    lastname: str = ""
    streetaddress: str = ""
    postcode: str = ""
    city: str = ""
    email: str = ""
    phone: str = ""
    id: int | None = None
    links: dict[str, str] = field(default_factory=lambda: empty_links(CUSTOMER_RELATIONS))

    @property
    def full_name(self) -> str:
        return f"{self.firstname} {self.lastname}".strip()

    def domain_attributes(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in CUSTOMER_FIELDS}


@dataclass
class Training:
    """A single scheduled training session."""

    date: str = ""  # ISO-8601 timestamp
    duration: int = 0  # minutes
    activity: str = ""
    id: int | None = None
    customer: Customer | None = None
    links: dict[str, str] = field(default_factory=lambda: empty_links(TRAINING_RELATIONS))

    def domain_attributes(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in TRAINING_FIELDS}
