"""Configuration settings."""

from __future__ import annotations

import os
from dataclasses import dataclass

from patient_manager.fhir_client import FhirClient


@dataclass
class Settings:
    """Configuration for the patient manager."""

    fhir_server_url: str = FhirClient.DEFAULT_URL
    fhir_timeout: int | None = 10
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Settings:
        """
        Load configuration from environment variables.

        ``FHIR_TIMEOUT=0`` disables the transport timeout.

        :raises RuntimeError: If ``FHIR_TIMEOUT`` is not an integer.
        """
        timeout_str = os.getenv("FHIR_TIMEOUT", "10")
        try:
            timeout = int(timeout_str)
        except ValueError as err:
            raise RuntimeError(
                f"FHIR_TIMEOUT must be a whole number of seconds, got {timeout_str!r}"
            ) from err

        return cls(
            fhir_server_url=os.getenv("FHIR_SERVER_URL", FhirClient.DEFAULT_URL),
            fhir_timeout=timeout or None,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
