"""
Result values returned by :class:`patient_manager.session.PatientSession`.

Every session operation returns exactly one :class:`Outcome`. Failures are
values too; nothing here is raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fhir.patient import Patient


class Severity(StrEnum):
    INFO = "info"
    ERROR = "error"
    SUCCESS = "success"


class SubmitMode(StrEnum):
    """Which request the next form submission is routed to."""

    CREATE = "create"
    UPDATE = "update"


@dataclass(frozen=True)
class Outcome:
    """Base class for every session outcome."""

    severity = Severity.SUCCESS

    @property
    def ok(self) -> bool:
        return self.severity is not Severity.ERROR


@dataclass(frozen=True)
class Created(Outcome):
    resource: Patient


@dataclass(frozen=True)
class Found(Outcome):
    resource: Patient


@dataclass(frozen=True)
class Loaded(Outcome):
    """
    A patient was fetched and is now selected for update.

    :param resource: The fetched Patient.
    :param fields: Form fields recovered from the resource, for repopulating
        the caller's input surface.
    """

    resource: Patient
    fields: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Results(Outcome):
    resources: list[Patient] = field(default_factory=list)


@dataclass(frozen=True)
class Updated(Outcome):
    resource: Patient


@dataclass(frozen=True)
class Deleted(Outcome):
    resource_id: str


@dataclass(frozen=True)
class Connected(Outcome):
    software_name: str = "Unknown"
    software_version: str = "Unknown"


@dataclass(frozen=True)
class NotFound(Outcome):
    """The server answered 404 for the requested identifier."""

    resource_id: str

    severity = Severity.ERROR


@dataclass(frozen=True)
class Failed(Outcome):
    """Base class for failures other than :class:`NotFound`."""

    message: str

    severity = Severity.ERROR

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class ValidationFailure(Failed):
    """
    Raw input was rejected before any request was made.

    :param message: Human-readable reason.
    :param field: Name of the offending input field.
    """

    field: str = ""


@dataclass(frozen=True)
class PreconditionFailure(Failed):
    """An operation was invoked without a selection, identifier or search term."""


@dataclass(frozen=True)
class TransportFailure(Failed):
    """
    The request failed at the HTTP or network level.

    :param message: Human-readable reason.
    :param status_code: HTTP status code, or ``None`` if no response was received.
    :param body: Raw response body or error text, when available.
    """

    status_code: int | None = None
    body: str | None = None
