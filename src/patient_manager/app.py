"""
Web front end for the patient manager.

A small JSON API over a single :class:`PatientSession`. Every response carries
the outcome of one session operation plus the messages reported while it ran.
"""

import dataclasses
import logging
import os
from typing import Any, cast

from flask import Flask, Response, current_app, jsonify, request

from patient_manager.common.common import (
    export_patient,
    format_patient_demographics,
    read_raw_fields,
)
from patient_manager.config import Settings
from patient_manager.fhir_client import FhirClient
from patient_manager.outcome import (
    Created,
    Found,
    NotFound,
    Outcome,
    PreconditionFailure,
    TransportFailure,
    ValidationFailure,
)
from patient_manager.session import PatientSession
from patient_manager.sink import CollectingSink
from patient_manager.validator import validate_patient_resource

SESSION_KEY = "patient_session"

_STATUS_CODES: dict[type[Outcome], int] = {
    Created: 201,
    NotFound: 404,
    ValidationFailure: 400,
    PreconditionFailure: 400,
    TransportFailure: 502,
}


def create_app(
    session: PatientSession | None = None, settings: Settings | None = None
) -> Flask:
    """
    Build the Flask application around a single :class:`PatientSession`.

    :param session: Session to serve. If omitted, one is created from
        ``settings``.
    :param settings: Configuration used when no session is supplied. Defaults
        to :meth:`Settings.from_env`.
    :returns: The configured application.
    """
    if session is None:
        settings = settings or Settings.from_env()
        session = PatientSession(
            FhirClient(settings.fhir_server_url, timeout=settings.fhir_timeout)
        )

    app = Flask(__name__)
    app.extensions[SESSION_KEY] = session

    app.add_url_rule("/health", view_func=health_check, methods=["GET"])
    app.add_url_rule("/metadata", view_func=check_connection, methods=["GET"])
    app.add_url_rule("/server", view_func=set_server_url, methods=["PUT"])
    app.add_url_rule("/patient", view_func=submit_patient, methods=["POST"])
    app.add_url_rule("/patient", view_func=search_patients, methods=["GET"])
    app.add_url_rule("/patient/$clear", view_func=clear_form, methods=["POST"])
    app.add_url_rule("/patient/$validate", view_func=validate, methods=["POST"])
    app.add_url_rule("/patient/<patient_id>", view_func=get_patient, methods=["GET"])
    app.add_url_rule(
        "/patient/<patient_id>", view_func=delete_patient, methods=["DELETE"]
    )
    app.add_url_rule(
        "/patient/<patient_id>/$load", view_func=load_patient, methods=["POST"]
    )
    app.add_url_rule(
        "/patient/<patient_id>/$export", view_func=export, methods=["GET"]
    )
    return app


def _session() -> PatientSession:
    return cast("PatientSession", current_app.extensions[SESSION_KEY])


def _request_fields() -> dict[str, str]:
    body = request.get_json(silent=True)
    if isinstance(body, dict):
        return read_raw_fields(body)
    return read_raw_fields(request.form)


def _outcome_body(outcome: Outcome) -> dict[str, Any]:
    body: dict[str, Any] = {
        "outcome": type(outcome).__name__,
        "severity": str(outcome.severity),
    }
    body.update(dataclasses.asdict(outcome))
    if "resources" in body:
        body["summaries"] = [
            dataclasses.asdict(format_patient_demographics(resource))
            for resource in body["resources"]
        ]
    return body


def _call(operation: str, *args: Any) -> tuple[Outcome, dict[str, Any]]:
    """
    Run one session operation and build the JSON body for its outcome.

    The session is held for the whole call so that the body's log only holds
    messages from this request.
    """
    session = _session()
    sink = CollectingSink(forward=session.sink)
    with session.reporting_to(sink):
        outcome: Outcome = getattr(session, operation)(*args)
        body = _outcome_body(outcome)
        body["mode"] = str(session.mode)

    body["log"] = [str(entry) for entry in sink.entries]
    return outcome, body


def _run(operation: str, *args: Any) -> tuple[Response, int]:
    outcome, body = _call(operation, *args)
    return jsonify(body), _STATUS_CODES.get(type(outcome), 200)



def health_check() -> tuple[Response, int]:
    return jsonify({"status": "healthy"}), 200


def check_connection() -> tuple[Response, int]:
    return _run("test_connection")


def set_server_url() -> tuple[Response, int]:
    body = request.get_json(silent=True) or {}
    base_url = str(body.get("baseUrl") or "").strip()
    if not base_url:
        return jsonify({"error": "baseUrl is required"}), 400

    session = _session()
    session.set_base_url(base_url)
    return jsonify({"baseUrl": session.base_url}), 200


def submit_patient() -> tuple[Response, int]:
    return _run("submit", _request_fields())


def search_patients() -> tuple[Response, int]:
    name = request.args.get("name")
    if name is None:
        return _run("get_all_patients")
    return _run("search_by_name", name)


def get_patient(patient_id: str) -> tuple[Response, int]:
    return _run("fetch_by_id", patient_id)


def load_patient(patient_id: str) -> tuple[Response, int]:
    return _run("load_for_update", patient_id)


def delete_patient(patient_id: str) -> tuple[Response, int]:
    return _run("delete_selected", patient_id)


def clear_form() -> tuple[Response, int]:
    session = _session()
    sink = CollectingSink(forward=session.sink)
    with session.reporting_to(sink):
        session.clear_selection()
        mode = str(session.mode)
    return jsonify({"mode": mode, "log": [str(e) for e in sink.entries]}), 200


def validate() -> tuple[Response, int]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400

    result = validate_patient_resource(body)
    return jsonify(dataclasses.asdict(result)), 200


def export(patient_id: str) -> Response | tuple[Response, int]:
    outcome, body = _call("fetch_by_id", patient_id)
    if not isinstance(outcome, Found):
        return jsonify(body), _STATUS_CODES.get(type(outcome), 200)

    filename, content = export_patient(outcome.resource)
    return Response(
        content,
        mimetype="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def get_app_host() -> str:
    host = os.getenv("FLASK_HOST")
    if host is None:
        raise RuntimeError("FLASK_HOST environment variable is not set.")
    return host


def get_app_port() -> int:
    port = os.getenv("FLASK_PORT")
    if port is None:
        raise RuntimeError("FLASK_PORT environment variable is not set.")
    return int(port)


def main() -> None:
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level, format="%(levelname)s | %(name)s | %(message)s"
    )
    create_app(settings=settings).run(host=get_app_host(), port=get_app_port())


if __name__ == "__main__":
    main()
