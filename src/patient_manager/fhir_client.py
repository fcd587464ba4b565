"""
HTTP transport for the Patient endpoints of a FHIR R4 server.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import requests

if TYPE_CHECKING:
    from fhir.patient import Patient


class ExternalServiceError(Exception):
    """
    Raised when the FHIR server cannot be reached, or its response body cannot
    be decoded.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """
        :param message: Human-readable error message.
        :param status_code: HTTP status code, if a response was received.
        """
        super().__init__(message)
        self.status_code = status_code


class FhirClient:
    """
    Simple client for the Patient endpoints of a FHIR R4 server.

    The client only issues requests; it does not interpret status codes. Every
    method returns the :class:`requests.Response` so the caller can tell a 404
    apart from other failures.

    Usage:

        client = FhirClient(base_url="https://hapi.fhir.org/baseR4/")

        response = client.search_patients({"name": "Smith"})
        bundle = client.parse_json(response)
    """

    DEFAULT_URL = "https://fhir-bootcamp.medblocks.com/fhir"
    MEDIA_TYPE = "application/fhir+json"
    RESOURCE = "Patient"

    def __init__(
        self,
        base_url: str = DEFAULT_URL,
        *,
        timeout: int | None = 10,
    ) -> None:
        """
        :param base_url: Base URL of the FHIR server. A trailing slash is removed.
        :param timeout: Timeout in seconds for HTTP calls, or ``None`` to wait
            indefinitely.
        """
        self.base_url = base_url
        self.timeout = timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    @base_url.setter
    def base_url(self, value: str) -> None:
        self._base_url = value.rstrip("/")

    def _build_headers(self, *, with_body: bool = False) -> dict[str, str]:
        headers = {"Accept": self.MEDIA_TYPE}
        if with_body:
            headers["Content-Type"] = self.MEDIA_TYPE
        return headers

    def _patient_url(self, patient_id: str | None = None) -> str:
        url = f"{self.base_url}/{self.RESOURCE}"
        if patient_id is not None:
            url = f"{url}/{quote(patient_id, safe='')}"
        return url

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """
        Issue a single request through the module-level ``requests`` helpers.

        :raises ExternalServiceError: If no response was received (connection
            refused, DNS failure, timeout, ...).
        """
        send = getattr(requests, method)
        try:
            response: requests.Response = send(url, timeout=self.timeout, **kwargs)
        except requests.RequestException as err:
            raise ExternalServiceError(
                f"{method.upper()} {url} failed: {err}"
            ) from err
        return response

    def create_patient(self, patient: Patient) -> requests.Response:
        """POST /Patient"""
        return self._send(
            "post",
            self._patient_url(),
            headers=self._build_headers(with_body=True),
            json=patient,
        )

    def read_patient(self, patient_id: str) -> requests.Response:
        """GET /Patient/{id}"""
        return self._send(
            "get", self._patient_url(patient_id), headers=self._build_headers()
        )

    def search_patients(
        self, params: dict[str, str] | None = None
    ) -> requests.Response:
        """
        GET /Patient with optional search parameters.

        Parameter values are percent-encoded by :mod:`requests`.
        """
        return self._send(
            "get",
            self._patient_url(),
            headers=self._build_headers(),
            params=params,
        )

    def update_patient(self, patient_id: str, patient: Patient) -> requests.Response:
        """PUT /Patient/{id}"""
        return self._send(
            "put",
            self._patient_url(patient_id),
            headers=self._build_headers(with_body=True),
            json=patient,
        )

    def delete_patient(self, patient_id: str) -> requests.Response:
        """DELETE /Patient/{id}"""
        return self._send(
            "delete", self._patient_url(patient_id), headers=self._build_headers()
        )

    def get_metadata(self) -> requests.Response:
        """GET /metadata (the server's CapabilityStatement)"""
        return self._send(
            "get", f"{self.base_url}/metadata", headers=self._build_headers()
        )

    @staticmethod
    def parse_json(response: requests.Response) -> dict[str, Any]:
        """
        Decode a JSON object from a response body.

        :raises ExternalServiceError: If the body is not a JSON object.
        """
        try:
            body = response.json()
        except ValueError as err:
            raise ExternalServiceError(
                f"Malformed response body (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from err

        if not isinstance(body, dict):
            raise ExternalServiceError(
                f"Expected a JSON object in response (HTTP {response.status_code})",
                status_code=response.status_code,
            )
        return body
