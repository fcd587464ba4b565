"""FHIR Patient resource."""

from typing import NotRequired, TypedDict

from fhir.address import Address
from fhir.contact_point import ContactPoint
from fhir.human_name import HumanName


class Patient(TypedDict):
    resourceType: str
    id: NotRequired[str]
    active: NotRequired[bool]
    name: list[HumanName]
    gender: NotRequired[str]
    birthDate: NotRequired[str]
    telecom: NotRequired[list[ContactPoint]]
    address: NotRequired[list[Address]]
