"""FHIR Address type."""

from typing import TypedDict


class Address(TypedDict):
    use: str
    type: str
    text: str
