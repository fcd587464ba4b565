"""
Builds Patient resources from raw form input.

Validation is fail-fast: checks run in a fixed order and the first failing
check is returned as a :class:`~patient_manager.outcome.ValidationFailure`.
"""

from __future__ import annotations

import re
from datetime import date
from typing import TYPE_CHECKING

from patient_manager.common.common import RawFields, read_raw_fields
from patient_manager.outcome import ValidationFailure

if TYPE_CHECKING:
    from fhir.contact_point import ContactPoint
    from fhir.patient import Patient

ISO_DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}", re.ASCII)
EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
PHONE_PATTERN = re.compile(r"\+?[1-9]\d{0,15}", re.ASCII)
PHONE_SEPARATORS = re.compile(r"[\s\-()]")

REQUIRED_FIELDS: tuple[tuple[str, str], ...] = (
    ("firstName", "First name cannot be null or empty"),
    ("lastName", "Last name cannot be null or empty"),
    ("gender", "Gender cannot be null or empty"),
    ("birthDate", "Birth date cannot be null or empty"),
)


def parse_birth_date(value: str) -> date | None:
    """
    Parse a ``YYYY-MM-DD`` calendar date.

    :param value: Candidate date string. Surrounding whitespace is ignored.
    :returns: The parsed date, or ``None`` if the value is not a real date in
        that form (e.g. ``"2023-02-30"``).
    """
    value = value.strip()
    if not ISO_DATE_PATTERN.fullmatch(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def is_valid_email(value: str) -> bool:
    return EMAIL_PATTERN.fullmatch(value.strip()) is not None


def is_valid_phone(value: str) -> bool:
    """
    Check a phone number after removing whitespace, hyphens and parentheses.

    An optional leading ``+`` is followed by a non-zero digit and at most
    fifteen further digits.
    """
    return PHONE_PATTERN.fullmatch(PHONE_SEPARATORS.sub("", value)) is not None


class ResourceBuilder:
    """
    Validates raw fields and assembles a normalized Patient resource.

    Usage:

        result = ResourceBuilder().build(
            {
                "firstName": "Ada",
                "lastName": "Lovelace",
                "gender": "female",
                "birthDate": "1815-12-10",
            }
        )

        if isinstance(result, ValidationFailure):
            print(result.message)
    """

    def build(
        self, raw: RawFields, today: date | None = None
    ) -> Patient | ValidationFailure:
        """
        Validate ``raw`` and build a Patient resource from it.

        Checks, in order:
            1-4. firstName, lastName, gender and birthDate are non-blank
            5.   birthDate is a valid ``YYYY-MM-DD`` calendar date
            6.   birthDate is not after ``today`` (a birth date of today is fine)
            7.   email, if given, looks like ``local@domain.tld``
            8.   phone, if given, is a plausible international number

        :param raw: Field name to value. Absent or ``None`` values count as blank.
        :param today: Optional date override (for testing); defaults to today's date.
        :returns: The built Patient (never carrying an ``id``), or the first
            :class:`ValidationFailure` encountered.
        """
        fields = read_raw_fields(raw)

        failure = self._validate(fields, today)
        if failure is not None:
            return failure

        return self._assemble(fields)

    def _validate(
        self, fields: dict[str, str], today: date | None
    ) -> ValidationFailure | None:
        for name, message in REQUIRED_FIELDS:
            if not fields[name].strip():
                return ValidationFailure(message=message, field=name)

        birth_date = parse_birth_date(fields["birthDate"])
        if birth_date is None:
            return ValidationFailure(
                message="Birth date must be a valid date", field="birthDate"
            )

        if today is None:
            today = date.today()
        if birth_date > today:
            return ValidationFailure(
                message="Birth date cannot be in the future", field="birthDate"
            )

        email = fields["email"]
        if email.strip() and not is_valid_email(email):
            return ValidationFailure(
                message="Email must be in valid format (example@domain.com)",
                field="email",
            )

        phone = fields["phone"]
        if phone.strip() and not is_valid_phone(phone):
            return ValidationFailure(
                message=(
                    "Phone number must contain only digits and valid "
                    "formatting characters"
                ),
                field="phone",
            )

        return None

    @staticmethod
    def _assemble(fields: dict[str, str]) -> Patient:
        telecom: list[ContactPoint] = []

        phone = fields["phone"].strip()
        if phone:
            telecom.append({"system": "phone", "value": phone, "use": "home"})

        email = fields["email"].strip()
        if email:
            telecom.append({"system": "email", "value": email, "use": "home"})

        patient: Patient = {
            "resourceType": "Patient",
            "active": True,
            "name": [
                {
                    "use": "official",
                    "family": fields["lastName"],
                    "given": [fields["firstName"]],
                }
            ],
            "gender": fields["gender"],
            "birthDate": fields["birthDate"],
            "telecom": telecom,
        }

        address = fields["address"].strip()
        if address:
            patient["address"] = [{"use": "home", "type": "both", "text": address}]

        return patient

