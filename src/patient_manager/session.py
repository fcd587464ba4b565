"""
Session layer for orchestrating Patient requests against a FHIR server
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, cast

from patient_manager.builder import ResourceBuilder
from patient_manager.common.common import (
    RawFields,
    fields_from_patient,
    get_patient_name,
)
from patient_manager.fhir_client import ExternalServiceError, FhirClient
from patient_manager.outcome import (
    Connected,
    Created,
    Deleted,
    Found,
    Loaded,
    NotFound,
    Outcome,
    PreconditionFailure,
    Results,
    Severity,
    SubmitMode,
    TransportFailure,
    Updated,
    ValidationFailure,
)
from patient_manager.sink import LoggingSink, ResultSink
from patient_manager.validator import validate_patient_resource

if TYPE_CHECKING:
    import requests
    from fhir.bundle import Bundle
    from fhir.operation_outcome import OperationOutcome
    from fhir.patient import Patient

logger = logging.getLogger(__name__)

NO_SELECTION_MESSAGE = "No patient selected for update. Please load a patient first."


def _is_success(response: requests.Response) -> bool:
    return 200 <= response.status_code < 300


def _diagnostics(response: requests.Response) -> str:
    """Join the issue diagnostics of an OperationOutcome error body, if any."""
    try:
        body = response.json()
    except ValueError:
        return ""
    if not isinstance(body, dict) or body.get("resourceType") != "OperationOutcome":
        return ""

    outcome = cast("OperationOutcome", body)
    return "; ".join(
        issue["diagnostics"]
        for issue in outcome.get("issue", [])
        if issue.get("diagnostics")
    )


class PatientSession:
    """
    Tracks the currently selected Patient and orchestrates requests for it.

    The session has two states: *idle* (nothing selected, so the next
    submission creates a patient) and *editing* (a patient is selected, so the
    next submission updates it). The selection is only ever changed by a
    confirmed success; a failed operation leaves the session exactly as it was.

    Entry points:
        - ``create(raw) -> Outcome``
        - ``fetch_by_id(patient_id) -> Outcome``
        - ``search_by_name(term) -> Outcome``
        - ``load_for_update(patient_id) -> Outcome``
        - ``update_selected(raw) -> Outcome``
        - ``delete_selected(patient_id) -> Outcome``
        - ``submit(raw) -> Outcome`` (create or update, depending on the mode)

    Operations are serialised with a re-entrant lock, so one session may be
    shared between threads.
    """

    def __init__(
        self,
        client: FhirClient,
        sink: ResultSink | None = None,
        builder: ResourceBuilder | None = None,
    ) -> None:
        """
        Create a session instance.

        :param client: Transport used for every request.
        :param sink: Destination for outcome messages. Defaults to a
            :class:`~patient_manager.sink.LoggingSink`.
        :param builder: Builder used to turn raw fields into a Patient.
        """
        self.client = client
        self.sink: ResultSink = sink or LoggingSink()
        self.builder = builder or ResourceBuilder()
        self._selected: Patient | None = None
        self._lock = threading.RLock()

    # ---------------------------
    # Selection state
    # ---------------------------

    @property
    def selected(self) -> Patient | None:
        """A copy of the selected Patient, or ``None`` when idle."""
        return copy.deepcopy(self._selected)

    @property
    def mode(self) -> SubmitMode:
        return SubmitMode.CREATE if self._selected is None else SubmitMode.UPDATE

    @property
    def base_url(self) -> str:
        return self.client.base_url

    def set_base_url(self, base_url: str) -> None:
        """Point the session at a different FHIR server."""
        with self._lock:
            self.client.base_url = base_url
            logger.info("FHIR Server URL updated to: %s", self.client.base_url)

    def clear_selection(self) -> None:
        """Drop the selection so that the next submission creates a patient."""
        with self._lock:
            if self._selected is not None:
                self.sink.report(
                    f"Cleared selected patient: {get_patient_name(self._selected)}",
                    Severity.INFO,
                )
            self._deselect()

    @contextmanager
    def reporting_to(self, sink: ResultSink) -> Iterator[PatientSession]:
        """
        Hold the session and send its messages to ``sink`` for the duration.

        Lets a caller collect exactly the messages produced by its own
        operations while other threads wait.
        """
        with self._lock:
            previous = self.sink
            self.sink = sink
            try:
                yield self
            finally:
                self.sink = previous

    def _deselect(self) -> None:
        if self._selected is not None:
            logger.info(
                "Cleared selected patient: %s", get_patient_name(self._selected)
            )
        self._selected = None

    def _select(self, patient: Patient) -> None:
        # Outcomes hand the same resource to the caller; keep a private copy.
        self._selected = copy.deepcopy(patient)
        logger.info(
            "Selected patient set: %s (ID: %s)",
            get_patient_name(patient),
            patient.get("id"),
        )

    # ---------------------------
    # Operations
    # ---------------------------

    def submit(self, raw: RawFields) -> Outcome:
        """
        Route a form submission to :meth:`create` or :meth:`update_selected`.

        :param raw: Raw form fields.
        :returns: The outcome of whichever operation the current mode selects.
        """
        with self._lock:
            if self.mode is SubmitMode.UPDATE:
                return self.update_selected(raw)
            return self.create(raw)

    def create(self, raw: RawFields) -> Outcome:
        """
        Build a Patient from ``raw`` and POST it to the server.

        On success the created Patient (as returned by the server, with its new
        ``id``) becomes the selection.

        :param raw: Raw form fields.
        :returns: :class:`Created`, the builder's :class:`ValidationFailure`
            (no request is made), or a :class:`TransportFailure`.
        """
        with self._lock:
            self._report("Creating patient...")

            patient = self.builder.build(raw)
            if isinstance(patient, ValidationFailure):
                return self._finish(patient)

            action = "create patient"
            try:
                response = self.client.create_patient(patient)
                if not _is_success(response):
                    return self._http_failure(action, response, detail=response.text)
                created = cast("Patient", self.client.parse_json(response))
            except ExternalServiceError as err:
                return self._service_failure(action, err)

            self._select(created)
            return self._finish(
                Created(created),
                f"Patient created successfully: {get_patient_name(created)} "
                f"(ID: {created.get('id')})",
            )

    def fetch_by_id(self, patient_id: str) -> Outcome:
        """
        Read a single Patient. The selection is not changed.

        :param patient_id: Server identifier of the Patient.
        :returns: :class:`Found`, :class:`NotFound` on a 404,
            :class:`PreconditionFailure` for a blank id, or
            :class:`TransportFailure`.
        """
        with self._lock:
            patient_id = (patient_id or "").strip()
            self._report(f"Fetching patient with ID: {patient_id}")
            if not patient_id:
                return self._finish(PreconditionFailure("Please enter a patient ID"))

            result = self._read(patient_id, action="fetch patient")
            if isinstance(result, Outcome):
                return result

            return self._finish(
                Found(result), f"Patient found: {get_patient_name(result)}"
            )

    def load_for_update(self, patient_id: str) -> Outcome:
        """
        Read a single Patient and select it, switching the session to update mode.

        :param patient_id: Server identifier of the Patient.
        :returns: :class:`Loaded` carrying the resource and the form fields
            recovered from it, or the same failures as :meth:`fetch_by_id`.
        """
        with self._lock:
            patient_id = (patient_id or "").strip()
            self._report(f"Loading patient {patient_id} for update...")
            if not patient_id:
                return self._finish(
                    PreconditionFailure("Please enter a patient ID to update")
                )

            result = self._read(patient_id, action="load patient")
            if isinstance(result, Outcome):
                return result

            self._select(result)
            return self._finish(
                Loaded(result, fields_from_patient(result)),
                f"Patient loaded for update: {get_patient_name(result)}",
            )

    def search_by_name(self, term: str) -> Outcome:
        """
        Search Patients by name. The selection is not changed.

        :param term: Search term, sent as the ``name`` query parameter.
        :returns: :class:`Results` (possibly empty), :class:`PreconditionFailure`
            for a blank term, or :class:`TransportFailure`.
        """
        with self._lock:
            self._report(f"Searching for patients with name: {term}")
            if not (term or "").strip():
                return self._finish(PreconditionFailure("Please enter a search term"))

            return self._search({"name": term}, action="search patients")

    def get_all_patients(self) -> Outcome:
        """List Patients without a filter (the server decides the page size)."""
        with self._lock:
            self._report("Fetching all patients...")
            return self._search(None, action="fetch patients")

    def update_selected(self, raw: RawFields) -> Outcome:
        """
        Rebuild the selected Patient from ``raw`` and PUT it to the server.

        The selection's ``id`` is carried over to the rebuilt resource. Anything
        else the server holds but the builder does not produce (``meta`` etc.) is
        not sent.

        :param raw: Raw form fields.
        :returns: :class:`Updated`, :class:`PreconditionFailure` if nothing is
            selected (no request is made), the builder's
            :class:`ValidationFailure`, or :class:`TransportFailure`.
        """
        with self._lock:
            selected = self._selected
            if selected is None:
                self._report("Updating patient...")
                return self._finish(PreconditionFailure(NO_SELECTION_MESSAGE))

            patient_id = str(selected.get("id") or "")
            self._report(f"Updating patient {patient_id}...")
            if not patient_id:
                return self._finish(
                    PreconditionFailure("Selected patient has no server ID")
                )

            patient = self.builder.build(raw)
            if isinstance(patient, ValidationFailure):
                return self._finish(patient)
            patient["id"] = patient_id

            action = "update patient"
            try:
                response = self.client.update_patient(patient_id, patient)
                if not _is_success(response):
                    return self._http_failure(action, response, detail=response.text)
                updated = cast("Patient", self.client.parse_json(response))
            except ExternalServiceError as err:
                return self._service_failure(action, err)

            self._select(updated)
            return self._finish(
                Updated(updated),
                f"Patient updated successfully: {get_patient_name(updated)}",
            )

    def delete_selected(self, patient_id: str) -> Outcome:
        """
        Delete a Patient by explicit id and clear the selection.

        The selection is cleared on success whatever its id; callers are
        expected to have confirmed the deletion with the user beforehand.

        :param patient_id: Server identifier of the Patient to delete.
        :returns: :class:`Deleted`, :class:`NotFound` on a 404,
            :class:`PreconditionFailure` for a blank id, or
            :class:`TransportFailure`.
        """
        with self._lock:
            patient_id = (patient_id or "").strip()
            self._report(f"Deleting patient with ID: {patient_id}")
            if not patient_id:
                return self._finish(
                    PreconditionFailure("Please enter a patient ID to delete")
                )

            action = "delete patient"
            try:
                response = self.client.delete_patient(patient_id)
            except ExternalServiceError as err:
                return self._service_failure(action, err)

            if response.status_code == 404:
                return self._not_found(patient_id)
            if not _is_success(response):
                return self._http_failure(action, response)

            self._deselect()
            return self._finish(
                Deleted(patient_id), f"Patient {patient_id} deleted successfully"
            )

    def test_connection(self) -> Outcome:
        """
        Check the server is reachable by reading its CapabilityStatement.

        :returns: :class:`Connected` with the server software name and version,
            or :class:`TransportFailure`.
        """
        with self._lock:
            self._report("Testing connection to FHIR server...")

            action = "connect"
            try:
                response = self.client.get_metadata()
                if not _is_success(response):
                    return self._http_failure(action, response)
                metadata = self.client.parse_json(response)
            except ExternalServiceError as err:
                return self._service_failure(action, err)

            software = metadata.get("software")
            if not isinstance(software, dict):
                software = {}
            outcome = Connected(
                software_name=str(software.get("name") or "Unknown"),
                software_version=str(software.get("version") or "Unknown"),
            )
            return self._finish(
                outcome,
                f"Connected to FHIR server: {outcome.software_name} "
                f"v{outcome.software_version}",
            )

    # ---------------------------
    # Internal helpers
    # ---------------------------

    def _read(self, patient_id: str, action: str) -> Patient | Outcome:
        try:
            response = self.client.read_patient(patient_id)
            if response.status_code == 404:
                return self._not_found(patient_id)
            if not _is_success(response):
                return self._http_failure(action, response)
            patient = cast("Patient", self.client.parse_json(response))
        except ExternalServiceError as err:
            return self._service_failure(action, err)

        self._check(patient)
        return patient

    def _search(self, params: dict[str, str] | None, action: str) -> Outcome:
        try:
            response = self.client.search_patients(params)
            if not _is_success(response):
                return self._http_failure(action, response)
            body = self.client.parse_json(response)
            resources = self._resources_from_body(body, response.status_code)
        except ExternalServiceError as err:
            return self._service_failure(action, err)

        if not resources:
            self.sink.report(
                "No patients found matching your search criteria.", Severity.INFO
            )
            return Results([])

        return self._finish(
            Results(resources), f"Found {len(resources)} patient(s)"
        )

    @staticmethod
    def _resources_from_body(body: dict[str, Any], status_code: int) -> list[Patient]:
        """
        Pull Patient resources out of a search response.

        Servers answer with a Bundle whose ``entry`` list wraps each resource;
        a bare Patient body is treated as a single result. Entries without a
        resource object are skipped.

        :raises ExternalServiceError: If ``entry`` is not a list of objects.
        """
        if body.get("resourceType") == "Patient":
            return [cast("Patient", body)]

        entries = cast("Bundle", body).get("entry") or []
        if not isinstance(entries, list) or not all(
            isinstance(entry, dict) for entry in entries
        ):
            raise ExternalServiceError(
                f"Malformed search Bundle (HTTP {status_code})",
                status_code=status_code,
            )

        return [
            cast("Patient", entry["resource"])
            for entry in entries
            if isinstance(entry.get("resource"), dict) and entry["resource"]
        ]

    @staticmethod
    def _check(patient: Patient) -> None:
        result = validate_patient_resource(patient)
        for error in result.errors:
            logger.warning("Patient %s: %s", patient.get("id"), error)

    def _report(self, message: str) -> None:
        self.sink.report(message, Severity.INFO)

    def _finish(self, outcome: Outcome, message: str | None = None) -> Outcome:
        """Report the terminal message for ``outcome`` and return it."""
        self.sink.report(message or str(outcome), outcome.severity)
        return outcome

    def _not_found(self, patient_id: str) -> Outcome:
        return self._finish(
            NotFound(patient_id), f"Patient with ID {patient_id} not found"
        )

    def _http_failure(
        self, action: str, response: requests.Response, detail: str | None = None
    ) -> Outcome:
        detail = (detail or _diagnostics(response))[:200] or response.reason or ""
        return self._finish(
            TransportFailure(
                message=f"Failed to {action}: HTTP {response.status_code}: {detail}",
                status_code=response.status_code,
                body=response.text,
            )
        )

    def _service_failure(self, action: str, err: ExternalServiceError) -> Outcome:
        return self._finish(
            TransportFailure(
                message=f"Failed to {action}: {err}",
                status_code=err.status_code,
                body=str(err),
            )
        )
