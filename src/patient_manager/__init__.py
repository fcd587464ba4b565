"""Client-side manager for FHIR Patient resources."""

from patient_manager.builder import ResourceBuilder
from patient_manager.fhir_client import ExternalServiceError, FhirClient
from patient_manager.session import PatientSession

__all__ = ["ExternalServiceError", "FhirClient", "PatientSession", "ResourceBuilder"]
