from __future__ import annotations

import pytest

from kirana_assistant.escalation import EscalationWorkflow
from kirana_assistant.session_manager import MemoryTabStorage, SessionIdentityManager
from kirana_assistant.tests.fakes import FakeBackend


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def storage() -> MemoryTabStorage:
    return MemoryTabStorage()


@pytest.fixture()
def sessions(storage) -> SessionIdentityManager:
    return SessionIdentityManager(storage)


@pytest.fixture()
def workflow(backend) -> EscalationWorkflow:
    return EscalationWorkflow(backend, agent_viewing_delay=0.05)
