"""FHIR data types and resources."""

from fhir.address import Address
from fhir.bundle import Bundle, BundleEntry
from fhir.contact_point import ContactPoint
from fhir.human_name import HumanName
from fhir.operation_outcome import OperationOutcome, OperationOutcomeIssue
from fhir.patient import Patient

__all__ = [
    "Address",
    "Bundle",
    "BundleEntry",
    "ContactPoint",
    "HumanName",
    "OperationOutcome",
    "OperationOutcomeIssue",
    "Patient",
]
