"""Pydantic models for the request bodies sent to the backend."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class CustomerBody(BaseModel):
    firstname: str = ""
    lastname: str = ""
    streetaddress: str = ""
    postcode: str = ""
    city: str = ""
    email: str = ""
    phone: str = ""


class TrainingBody(BaseModel):
    date: str = Field(min_length=1)
    duration: int = Field(ge=0)
    activity: str = Field(min_length=1)
    customer: str

    @field_validator("customer")
    @classmethod
    def absolute_customer_address(cls, v):
        # The backend rejects bare ids; the reference must be a full address.
        if not v.startswith(("http://", "https://")):
            raise ValueError("customer must be a fully-qualified address")
        return v
