"""Pytest configuration and shared fixtures for patient manager acceptance tests."""

import json
from collections import deque
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any

import pytest
import requests
from patient_manager.fhir_client import FhirClient
from patient_manager.session import PatientSession
from patient_manager.sink import CollectingSink

FHIR_BASE_URL = "https://fhir.example.test/fhir"


def make_response(
    status_code: int, body: dict[str, Any] | None = None
) -> requests.Response:
    """
    Build a real :class:`requests.Response` carrying a FHIR JSON body.

    :param status_code: HTTP status code.
    :param body: JSON body, or ``None`` for an empty body.
    """
    response = requests.Response()
    response.status_code = status_code
    response.reason = HTTPStatus(status_code).phrase
    response.encoding = "utf-8"
    if body is None:
        response._content = b""
    else:
        response._content = json.dumps(body).encode("utf-8")
        response.headers["Content-Type"] = "application/fhir+json"
    return response


@dataclass
class Exchange:
    method: str
    url: str
    params: Any = None
    json: Any = None


@dataclass
class ScriptedServer:
    """
    Stands in for the FHIR server by answering requests from a queue.

    Each scripted response is used for exactly one request; a request with
    nothing queued fails the test.
    """

    responses: deque[requests.Response] = field(default_factory=deque)
    exchanges: list[Exchange] = field(default_factory=list)

    def will_answer(self, status_code: int, body: dict[str, Any] | None = None) -> None:
        self.responses.append(make_response(status_code, body))

    def handler(self, method: str) -> Any:
        def _handle(url: str, **kwargs: Any) -> requests.Response:
            self.exchanges.append(
                Exchange(method, url, kwargs.get("params"), kwargs.get("json"))
            )
            if not self.responses:
                raise AssertionError(f"No response scripted for {method.upper()} {url}")
            return self.responses.popleft()

        return _handle


@pytest.fixture
def fhir_server(monkeypatch: pytest.MonkeyPatch) -> ScriptedServer:
    server = ScriptedServer()
    for method in ("get", "post", "put", "delete"):
        monkeypatch.setattr(requests, method, server.handler(method))
    return server


@pytest.fixture
def messages() -> CollectingSink:
    return CollectingSink()


@pytest.fixture
def patient_session(
    fhir_server: ScriptedServer, messages: CollectingSink
) -> PatientSession:
    return PatientSession(FhirClient(FHIR_BASE_URL), sink=messages)
