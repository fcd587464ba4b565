"""
Shared lightweight types and helpers used across the patient manager.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from typing import Protocol, TypeAlias, cast

from fhir.patient import Patient

# Export helpers hand back JSON bodies as strings.
# The alias is used to make intent clearer in function signatures.
json_str: TypeAlias = str

# Raw, untrusted input as supplied by a form or other UI surface.
RawFields: TypeAlias = Mapping[str, str | None]

FIELD_NAMES: tuple[str, ...] = (
    "firstName",
    "lastName",
    "gender",
    "birthDate",
    "phone",
    "email",
    "address",
)


class FieldSource(Protocol):
    """
    Anything that can supply a named string field, e.g. a submitted form.
    """

    def get(self, name: str) -> str | None: ...


@dataclass
class PatientDemographics:
    """
    Display-ready summary of a Patient resource.

    :param name: Display name (given names then family name).
    :param gender: Gender with the first letter capitalised.
    :param birth_date: Birth date as stored on the resource.
    :param id: Server-assigned identifier.
    :param telecom: Contact points joined as ``"system: value"`` pairs.
    :param age: Age in whole years, if the birth date can be parsed.
    """

    name: str
    gender: str
    birth_date: str
    id: str
    telecom: str
    age: int | None = None


def read_raw_fields(source: FieldSource | Mapping[str, object]) -> dict[str, str]:
    """
    Copy the known patient fields out of a field source.

    Fields that are absent, or present with a ``None`` value, are read as empty
    strings. Other non-string values (e.g. numbers in a JSON body) are converted
    with :func:`str`. Unknown fields are ignored.

    :param source: A :class:`FieldSource` or plain mapping of field name to value.
    :returns: A new dict containing every name in :data:`FIELD_NAMES`.
    """
    fields: dict[str, str] = {}
    for name in FIELD_NAMES:
        value = source.get(name)
        fields[name] = "" if value is None else str(value)
    return fields


def get_patient_name(patient: Mapping[str, object]) -> str:
    """
    Build the display name for a Patient resource.

    Uses the first ``name`` entry, joining its given names and family name.

    :param patient: Patient resource.
    :returns: The display name, or ``"Unknown"`` if none can be built.
    """
    names = _objects(patient.get("name"))
    if not names:
        return "Unknown"

    name = names[0]
    given = " ".join(_strings(name.get("given")))
    family = _text(name.get("family"))
    return f"{given} {family}".strip() or "Unknown"


def format_patient_demographics(
    patient: Mapping[str, object], today: date | None = None
) -> PatientDemographics:
    """
    Summarise a Patient resource for display.

    :param patient: Patient resource.
    :param today: Optional date override used for the age (for testing).
    :returns: A :class:`PatientDemographics` with ``"Unknown"`` for missing values.
    """
    gender = str(patient.get("gender") or "")
    birth_date = str(patient.get("birthDate") or "")
    telecom = _objects(patient.get("telecom"))

    return PatientDemographics(
        name=get_patient_name(patient),
        gender=gender[:1].upper() + gender[1:] if gender else "Unknown",
        birth_date=birth_date or "Unknown",
        id=str(patient.get("id") or "Unknown"),
        telecom=", ".join(f"{t.get('system')}: {t.get('value')}" for t in telecom),
        age=calculate_age(birth_date, today),
    )


def calculate_age(birth_date: str, today: date | None = None) -> int | None:
    """
    Calculate age in whole years from an ISO birth date.

    :param birth_date: Birth date in ``YYYY-MM-DD`` form.
    :param today: Optional date override (for testing); defaults to today's date.
    :returns: Age in years, or ``None`` if the birth date is empty or unparseable.
    """
    if not birth_date:
        return None

    try:
        born = date.fromisoformat(birth_date)
    except ValueError:
        return None

    if today is None:
        today = date.today()

    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age


def fields_from_patient(patient: Patient) -> dict[str, str]:
    """
    Recover form fields from a Patient resource, e.g. to repopulate a form
    before an update.

    Only the first given name, the first phone and email contact points and the
    first address text are recovered.

    :param patient: Patient resource.
    :returns: A dict keyed by every name in :data:`FIELD_NAMES`.
    """
    fields = dict.fromkeys(FIELD_NAMES, "")

    names = _objects(patient.get("name"))
    if names:
        given = _strings(names[0].get("given"))
        if given:
            fields["firstName"] = given[0]
        fields["lastName"] = _text(names[0].get("family"))

    fields["gender"] = _text(patient.get("gender"))
    fields["birthDate"] = _text(patient.get("birthDate"))

    for contact in _objects(patient.get("telecom")):
        if contact.get("system") == "phone" and not fields["phone"]:
            fields["phone"] = _text(contact.get("value"))
        elif contact.get("system") == "email" and not fields["email"]:
            fields["email"] = _text(contact.get("value"))

    addresses = _objects(patient.get("address"))
    if addresses:
        fields["address"] = _text(addresses[0].get("text"))

    return fields


# Server resources are read defensively: values of the wrong JSON type read as
# absent.


def _objects(value: object) -> list[dict[str, object]]:
    if not isinstance(value, list):
        return []
    return [
        cast("dict[str, object]", item) for item in value if isinstance(item, dict)
    ]


def _strings(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _text(value: object) -> str:
    return value if isinstance(value, str) else ""


def export_patient(patient: Patient) -> tuple[str, json_str]:
    """
    Serialise a Patient resource for download.

    :param patient: Patient resource.
    :returns: Tuple of (file name, pretty-printed JSON).
    """
    filename = f"patient_{patient.get('id') or 'unknown'}.json"
    return filename, json.dumps(patient, indent=2)
