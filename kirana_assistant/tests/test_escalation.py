from __future__ import annotations

from typing import List

import pytest

from kirana_assistant.backend_client import BackendError
from kirana_assistant.enums import EscalationAction, EscalationPhase, TicketPriority
from kirana_assistant.escalation import CANCEL_RESOLUTION, EscalationWorkflow, phase_for_ticket, sla_wait
from kirana_assistant.models import EscalationTicket, EscalationView
from kirana_assistant.tests.fakes import settle


def _ticket(status: str, ticket_id: int = 42) -> EscalationTicket:
    return EscalationTicket(id=ticket_id, priority=TicketPriority.URGENT, status=status)


def test_sla_table():
    assert sla_wait(TicketPriority.URGENT) == "< 2 min"
    assert sla_wait(TicketPriority.HIGH) == "< 5 min"
    assert sla_wait(TicketPriority.MEDIUM) == "< 10 min"
    assert sla_wait(TicketPriority.LOW) == "< 15 min"


def test_ticket_without_id_is_still_connecting():
    assert phase_for_ticket(EscalationTicket(id=None, status="pending")) is EscalationPhase.CONNECTING
    assert phase_for_ticket(EscalationTicket(id=3, status="weird")) is EscalationPhase.CONNECTING
    assert phase_for_ticket(_ticket("assigned")) is EscalationPhase.ASSIGNED


@pytest.mark.asyncio
async def test_full_lifecycle(workflow):
    views: List[EscalationView] = []
    workflow.on_change = views.append

    assert workflow.begin()
    assert workflow.phase is EscalationPhase.CONNECTING
    assert workflow.available_actions() == (EscalationAction.CANCEL,)

    workflow.apply_ticket(_ticket("pending"))
    assert workflow.phase is EscalationPhase.PENDING
    assert set(workflow.available_actions()) == {EscalationAction.CANCEL, EscalationAction.ASSIGN_TO_ME}

    workflow.apply_ticket(_ticket("assigned"))
    assert workflow.phase is EscalationPhase.ASSIGNED
    assert workflow.available_actions() == ()

    workflow.apply_ticket(_ticket("resolved"))
    assert workflow.phase is EscalationPhase.RESOLVED
    assert [v.phase for v in views] == [
        EscalationPhase.CONNECTING, EscalationPhase.PENDING, EscalationPhase.ASSIGNED, EscalationPhase.RESOLVED,
    ]


@pytest.mark.asyncio
async def test_resolved_is_terminal(workflow, backend):
    workflow.begin()
    workflow.apply_ticket(_ticket("resolved"))
    assert workflow.phase is EscalationPhase.RESOLVED
    assert workflow.available_actions() == ()

    assert await workflow.cancel() is False
    assert await workflow.assign_to_me(7) is False
    assert workflow.apply_ticket(_ticket("pending")) is False
    assert backend.count("update_ticket") == 0

    workflow.reset()
    assert workflow.phase is EscalationPhase.IDLE


@pytest.mark.asyncio
async def test_stale_status_never_moves_backwards(workflow):
    workflow.begin()
    workflow.apply_ticket(_ticket("assigned"))
    assert workflow.apply_ticket(_ticket("pending")) is False
    assert workflow.phase is EscalationPhase.ASSIGNED


@pytest.mark.asyncio
async def test_other_ticket_is_ignored(workflow):
    workflow.begin()
    workflow.apply_ticket(_ticket("pending", ticket_id=1))
    assert workflow.apply_ticket(_ticket("assigned", ticket_id=2)) is False
    assert workflow.ticket.id == 1
    workflow.close()


@pytest.mark.asyncio
async def test_agent_viewing_indicator_appears_after_delay(workflow):
    workflow.begin()
    workflow.apply_ticket(_ticket("pending"))
    assert workflow.view().agent_viewing is False

    await settle(0.1)
    assert workflow.phase is EscalationPhase.PENDING
    assert workflow.view().agent_viewing is True


@pytest.mark.asyncio
async def test_viewing_timer_is_cancelled_when_phase_moves_on(workflow):
    views: List[EscalationView] = []
    workflow.begin()
    workflow.apply_ticket(_ticket("pending"))
    workflow.apply_ticket(_ticket("assigned"))
    workflow.on_change = views.append

    await settle(0.1)
    assert views == []
    assert workflow.view().agent_viewing is False


@pytest.mark.asyncio
async def test_cancel_notifies_backend_and_returns_to_ai_mode(workflow, backend):
    workflow.begin()
    workflow.apply_ticket(_ticket("pending"))

    assert await workflow.cancel() is True
    assert workflow.phase is EscalationPhase.IDLE
    assert workflow.ticket is None
    assert backend.args_for("update_ticket") == [
        {"id": 42, "status": "resolved", "assigned_to": None, "resolution": CANCEL_RESOLUTION},
    ]
    # late status for the withdrawn ticket
    assert workflow.apply_ticket(_ticket("assigned")) is False
    assert workflow.phase is EscalationPhase.IDLE


@pytest.mark.asyncio
async def test_cancel_survives_backend_failure(backend):
    backend.update_error = BackendError("HTTP 500", endpoint="/customer-service/tickets/42", status=500)
    workflow = EscalationWorkflow(backend, agent_viewing_delay=0.05)
    workflow.begin()
    workflow.apply_ticket(_ticket("pending"))
    assert await workflow.cancel() is True
    assert workflow.phase is EscalationPhase.IDLE


@pytest.mark.asyncio
async def test_cancel_without_notification(backend):
    workflow = EscalationWorkflow(backend, agent_viewing_delay=0.05, notify_backend_on_cancel=False)
    workflow.begin()
    workflow.apply_ticket(_ticket("pending"))
    await workflow.cancel()
    assert backend.count("update_ticket") == 0


@pytest.mark.asyncio
async def test_assign_to_me(workflow, backend):
    workflow.begin()
    workflow.apply_ticket(_ticket("pending"))
    assert await workflow.assign_to_me(7) is True
    assert workflow.phase is EscalationPhase.ASSIGNED
    assert workflow.ticket.assigned_to == 7


@pytest.mark.asyncio
async def test_assign_failure_keeps_phase(workflow, backend):
    backend.update_error = BackendError("HTTP 409", endpoint="/customer-service/tickets/42", status=409)
    workflow.begin()
    workflow.apply_ticket(_ticket("pending"))
    assert await workflow.assign_to_me(7) is False
    assert workflow.phase is EscalationPhase.PENDING
    workflow.close()


def test_failed_creation_offers_retry(workflow):
    workflow.begin()
    workflow.fail()
    view = workflow.view()
    assert view.phase is EscalationPhase.IDLE
    assert view.retry_available
    assert workflow.begin()
    assert not workflow.view().retry_available
