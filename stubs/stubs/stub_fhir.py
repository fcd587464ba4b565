"""
In-memory FHIR R4 server stub for the Patient endpoints.

The stub does **not** implement the full FHIR REST API, nor FHIR validation.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class StubResponse:
    """
    Minimal response object returned by :class:`FhirServerStub`.

    :param status_code: HTTP-like status code for the response.
    :param headers: HTTP-like response headers.
    :param json: Parsed JSON response body, or ``None`` for an empty body.
    """

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    json: dict[str, Any] | None = None


class FhirServerStub:
    """
    Minimal in-memory stub of a FHIR server, implementing:

    * ``POST /Patient`` (server assigns the id, answers ``201``)
    * ``GET /Patient/{id}``
    * ``GET /Patient?name=`` (case-insensitive substring match on any name part)
    * ``PUT /Patient/{id}`` (update, or create with a client-chosen id)
    * ``DELETE /Patient/{id}`` (``204``, or ``404`` if unknown)
    * ``GET /metadata``

    ``ETag`` follows ``W/"<version>"`` and corresponds to ``Patient.meta.versionId``.
    """

    SOFTWARE_NAME = "FHIR Server Stub"
    SOFTWARE_VERSION = "4.0.1"

    def __init__(self) -> None:
        # Internal store: patient_id -> (patient_resource, version_id_int)
        self._patients: dict[str, tuple[dict[str, Any], int]] = {}
        self._next_id = 1

    # ---------------------------
    # Public API for tests
    # ---------------------------

    def upsert_patient(
        self,
        patient_id: str,
        patient: dict[str, Any] | None = None,
        version_id: int = 1,
    ) -> None:
        """
        Insert or replace a patient record in the stub store.

        :param patient_id: Logical id the record is stored under.
        :param patient: Patient resource dictionary. If ``None``, an empty Patient
            dict is created and populated with required keys.
        :param version_id: Version recorded into ``patient["meta"]["versionId"]``.
        """
        patient = copy.deepcopy(patient) if patient is not None else {}
        patient.setdefault("resourceType", "Patient")
        patient["id"] = patient_id
        patient.setdefault("meta", {})
        patient["meta"]["versionId"] = str(version_id)
        patient["meta"].setdefault("lastUpdated", self._now_fhir_instant())

        self._patients[patient_id] = (patient, version_id)

    def patient_ids(self) -> list[str]:
        return list(self._patients)

    def create_patient(self, body: dict[str, Any] | None) -> StubResponse:
        """Implements ``POST /Patient``."""
        if not body or body.get("resourceType") != "Patient":
            return self._operation_outcome(
                400, "invalid", "Expected a Patient resource"
            )

        while str(self._next_id) in self._patients:
            self._next_id += 1
        patient_id = str(self._next_id)
        self._next_id += 1

        self.upsert_patient(patient_id, body)
        return self._patient_response(201, patient_id)

    def get_patient(self, patient_id: str) -> StubResponse:
        """Implements ``GET /Patient/{id}``."""
        if patient_id not in self._patients:
            return self._not_found(patient_id)
        return self._patient_response(200, patient_id)

    def search_patients(self, name: str | None = None) -> StubResponse:
        """Implements ``GET /Patient`` with an optional ``name`` parameter."""
        matches = [
            patient
            for patient, _ in self._patients.values()
            if name is None or self._name_matches(patient, name)
        ]
        bundle = {
            "resourceType": "Bundle",
            "type": "searchset",
            "total": len(matches),
            "entry": [
                {
                    "fullUrl": f"Patient/{patient['id']}",
                    "resource": copy.deepcopy(patient),
                    "search": {"mode": "match"},
                }
                for patient in matches
            ],
        }
        if not matches:
            # Real servers omit the entry list entirely when nothing matched.
            del bundle["entry"]
        return StubResponse(status_code=200, json=bundle)

    def update_patient(
        self, patient_id: str, body: dict[str, Any] | None
    ) -> StubResponse:
        """Implements ``PUT /Patient/{id}``."""
        if not body or body.get("resourceType") != "Patient":
            return self._operation_outcome(
                400, "invalid", "Expected a Patient resource"
            )
        if body.get("id") != patient_id:
            return self._operation_outcome(
                400, "invalid", "Resource id must match the id in the URL"
            )

        if patient_id in self._patients:
            _, version_id = self._patients[patient_id]
            self.upsert_patient(patient_id, body, version_id=version_id + 1)
            return self._patient_response(200, patient_id)

        self.upsert_patient(patient_id, body)
        return self._patient_response(201, patient_id)

    def delete_patient(self, patient_id: str) -> StubResponse:
        """Implements ``DELETE /Patient/{id}``."""
        if patient_id not in self._patients:
            return self._not_found(patient_id)
        del self._patients[patient_id]
        return StubResponse(status_code=204)

    def get_metadata(self) -> StubResponse:
        """Implements ``GET /metadata``."""
        return StubResponse(
            status_code=200,
            json={
                "resourceType": "CapabilityStatement",
                "status": "active",
                "fhirVersion": "4.0.1",
                "software": {
                    "name": self.SOFTWARE_NAME,
                    "version": self.SOFTWARE_VERSION,
                },
            },
        )

    # ---------------------------
    # Internal helpers
    # ---------------------------

    def _patient_response(self, status_code: int, patient_id: str) -> StubResponse:
        patient, version_id = self._patients[patient_id]
        return StubResponse(
            status_code=status_code,
            headers={
                "ETag": f'W/"{version_id}"',
                "Location": f"Patient/{patient_id}/_history/{version_id}",
            },
            json=copy.deepcopy(patient),
        )

    @staticmethod
    def _name_matches(patient: dict[str, Any], term: str) -> bool:
        term = term.lower()
        for name in patient.get("name", []):
            parts = [name.get("family", ""), *name.get("given", [])]
            if any(term in part.lower() for part in parts):
                return True
        return False

    @staticmethod
    def _now_fhir_instant() -> str:
        """
        Generate a FHIR instant timestamp in UTC with seconds precision.

        :return: Timestamp string in the format ``YYYY-MM-DDTHH:MM:SSZ``.
        """
        return (
            datetime.now(timezone.utc)
            .replace(microsecond=0)
            .isoformat()
            .replace("+00:00", "Z")
        )

    def _not_found(self, patient_id: str) -> StubResponse:
        return self._operation_outcome(
            404, "not-found", f"Resource Patient/{patient_id} is not known"
        )

    @staticmethod
    def _operation_outcome(
        status_code: int, code: str, diagnostics: str
    ) -> StubResponse:
        """
        Construct an OperationOutcome response body.

        :param status_code: HTTP-like status code.
        :param code: FHIR issue type code.
        :param diagnostics: Human-readable diagnostics message.
        :return: A :class:`StubResponse` containing an OperationOutcome JSON body.
        """
        body = {
            "resourceType": "OperationOutcome",
            "issue": [
                {
                    "severity": "error",
                    "code": code,
                    "diagnostics": diagnostics,
                }
            ],
        }
        return StubResponse(status_code=status_code, json=body)
