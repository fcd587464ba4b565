"""FHIR Bundle resource."""

from typing import NotRequired, TypedDict

from fhir.patient import Patient


class BundleEntry(TypedDict):
    fullUrl: NotRequired[str]
    resource: Patient


class Bundle(TypedDict):
    resourceType: str
    id: NotRequired[str]
    type: str
    total: NotRequired[int]
    entry: NotRequired[list[BundleEntry]]
