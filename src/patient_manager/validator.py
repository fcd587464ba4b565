"""
Post-hoc checks for a Patient resource already in hand.

Unlike :class:`patient_manager.builder.ResourceBuilder`, this collects every
problem rather than stopping at the first one, and it never gates a request.
It is a pragmatic subset of FHIR rules, not a conformance validator.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field

from patient_manager.builder import ISO_DATE_PATTERN

GENDERS = frozenset({"male", "female", "other", "unknown"})


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


def validate_patient_resource(patient: Mapping[str, object]) -> ValidationResult:
    """
    Check a Patient resource against a small set of structural rules.

    * ``resourceType`` must be ``"Patient"``
    * at least one ``name`` entry must be present
    * ``gender``, if present, must be one of the strings male/female/other/unknown
    * ``birthDate``, if present, must be in ``YYYY-MM-DD`` form

    :param patient: The resource to check, e.g. one returned by the server.
    :returns: A :class:`ValidationResult`; ``errors`` keeps the order above.
    """
    errors: list[str] = []

    if patient.get("resourceType") != "Patient":
        errors.append('Resource type must be "Patient"')

    if not patient.get("name"):
        errors.append("Patient must have at least one name")

    gender = patient.get("gender")
    if gender and (not isinstance(gender, str) or gender not in GENDERS):
        errors.append("Invalid gender value")

    birth_date = patient.get("birthDate")
    if birth_date and not ISO_DATE_PATTERN.fullmatch(str(birth_date)):
        errors.append("Birth date must be in YYYY-MM-DD format")

    return ValidationResult(is_valid=not errors, errors=errors)
