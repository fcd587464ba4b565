from dataclasses import dataclass

import pytest
from patient_manager.outcome import Outcome


@dataclass
class OutcomeContext:
    """Carries the outcome of the ``When`` step to the ``Then`` steps."""

    outcome: Outcome | None = None


@pytest.fixture
def outcome_context() -> OutcomeContext:
    return OutcomeContext()
