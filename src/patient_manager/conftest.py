"""Pytest configuration and shared fixtures for patient manager tests."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any
from urllib.parse import unquote

import pytest
import requests
from stubs.stub_fhir import FhirServerStub, StubResponse

from patient_manager.fhir_client import FhirClient
from patient_manager.session import PatientSession
from patient_manager.sink import CollectingSink

BASE_URL = "https://example.test/fhir"


@dataclass
class FakeResponse:
    """
    Minimal substitute for :class:`requests.Response` used by tests.

    Only the attributes accessed by :class:`patient_manager.fhir_client.FhirClient`
    and :class:`patient_manager.session.PatientSession` are implemented.

    :param status_code: HTTP status code.
    :param headers: Response headers.
    :param _json: Parsed JSON body returned by :meth:`json`, or ``None`` for an
        empty body.
    :param _text: Raw body, used instead of ``_json`` when set (e.g. for
        malformed bodies).
    """

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    _json: Any = None
    _text: str | None = None

    @property
    def reason(self) -> str:
        try:
            return HTTPStatus(self.status_code).phrase
        except ValueError:
            return ""

    @property
    def text(self) -> str:
        if self._text is not None:
            return self._text
        return "" if self._json is None else json.dumps(self._json)

    def json(self) -> Any:
        """
        Return the response JSON body.

        :raises requests.JSONDecodeError: If the body is empty or not JSON.
        """
        if self._text is not None or self._json is None:
            raise requests.JSONDecodeError("Expecting value", self.text, 0)
        return self._json

    @classmethod
    def from_stub(cls, stub_response: StubResponse) -> FakeResponse:
        return cls(
            status_code=stub_response.status_code,
            headers=dict(stub_response.headers),
            _json=stub_response.json,
        )


@dataclass
class RequestLog:
    """Every request the client made, oldest first."""

    calls: list[dict[str, Any]] = field(default_factory=list)

    @property
    def last(self) -> dict[str, Any]:
        return self.calls[-1]

    def __len__(self) -> int:
        return len(self.calls)


_PATIENT_URL = re.compile(r"^(?P<base>.+)/Patient(?:/(?P<id>[^/?]+))?$")


@pytest.fixture
def stub() -> FhirServerStub:
    return FhirServerStub()


@pytest.fixture
def mock_requests(monkeypatch: pytest.MonkeyPatch, stub: FhirServerStub) -> RequestLog:
    """
    Patch ``requests.get/post/put/delete`` so calls are routed into the stub.

    :param monkeypatch: Pytest monkeypatch fixture.
    :param stub: Stub backend used to serve requests.
    :return: A :class:`RequestLog` recording method, url, headers, params, json
        body and timeout of every call.
    """
    log = RequestLog()

    def _route(method: str, url: str, params: Any, body: Any) -> StubResponse:
        if url.endswith("/metadata") and method == "get":
            return stub.get_metadata()

        m = _PATIENT_URL.match(url)
        if not m:
            raise AssertionError(f"Unexpected URL called by client: {url}")

        patient_id = unquote(m.group("id")) if m.group("id") else None
        if patient_id is None:
            if method == "post":
                return stub.create_patient(body)
            if method == "get":
                return stub.search_patients((params or {}).get("name"))
        elif method == "get":
            return stub.get_patient(patient_id)
        elif method == "put":
            return stub.update_patient(patient_id, body)
        elif method == "delete":
            return stub.delete_patient(patient_id)

        raise AssertionError(f"Unexpected {method.upper()} {url}")

    def _make_fake(method: str) -> Any:
        def _fake(
            url: str,
            headers: dict[str, str] | None = None,
            params: Any = None,
            json: Any = None,
            timeout: Any = None,
        ) -> FakeResponse:
            log.calls.append(
                {
                    "method": method,
                    "url": url,
                    "headers": dict(headers or {}),
                    "params": params,
                    "json": json,
                    "timeout": timeout,
                }
            )
            return FakeResponse.from_stub(_route(method, url, params, json))

        return _fake

    for method in ("get", "post", "put", "delete"):
        monkeypatch.setattr(requests, method, _make_fake(method))

    return log


@pytest.fixture
def respond_with(monkeypatch: pytest.MonkeyPatch) -> Any:
    """
    Return a helper that makes every ``requests`` call answer with one response.

    The helper returns a :class:`RequestLog` of the calls made.
    """

    def _install(response: FakeResponse | Exception) -> RequestLog:
        log = RequestLog()

        def _fake(url: str, **kwargs: Any) -> FakeResponse:
            log.calls.append({"url": url, **kwargs})
            if isinstance(response, Exception):
                raise response
            return response

        for method in ("get", "post", "put", "delete"):
            monkeypatch.setattr(requests, method, _fake)
        return log

    return _install


@pytest.fixture
def client() -> FhirClient:
    return FhirClient(base_url=BASE_URL + "/")


@pytest.fixture
def sink() -> CollectingSink:
    return CollectingSink()


@pytest.fixture
def session(client: FhirClient, sink: CollectingSink) -> PatientSession:
    return PatientSession(client, sink=sink)


@pytest.fixture
def ada_fields() -> dict[str, str]:
    return {
        "firstName": "Ada",
        "lastName": "Lovelace",
        "gender": "female",
        "birthDate": "1815-12-10",
    }


@pytest.fixture
def full_fields() -> dict[str, str]:
    return {
        "firstName": "Grace",
        "lastName": "Hopper",
        "gender": "female",
        "birthDate": "1906-12-09",
        "phone": "+1 (555) 123-4567",
        "email": "grace@navy.mil",
        "address": "1 Harbor Way, Arlington",
    }
