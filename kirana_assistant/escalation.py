"""
Human-handoff workflow.

    IDLE ──begin()──▶ CONNECTING ──ticket with id──▶ PENDING ──assigned──▶ ASSIGNED ──resolved──▶ RESOLVED
      ▲                   │                            │
      └──────cancel()─────┴────────────────────────────┘

Phases only move forward; RESOLVED is terminal until `reset()` (new
conversation). Entering PENDING arms a cosmetic "agent is viewing" indicator
after a fixed delay; it is not a state transition.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Optional, Tuple

from .backend_client import AssistantBackendClient, BackendError
from .enums import EscalationAction, EscalationPhase, TicketPriority, TicketStatus
from .models import EscalationTicket, EscalationView
from .utils.smart_logger import get_smart_logger

log = logging.getLogger(__name__)
smart_log = get_smart_logger("escalation")

PRIORITY_DISPLAY: Dict[TicketPriority, Dict[str, str]] = {
    TicketPriority.URGENT: {"icon": "🚨", "wait": "< 2 min"},
    TicketPriority.HIGH: {"icon": "⚡", "wait": "< 5 min"},
    TicketPriority.MEDIUM: {"icon": "📞", "wait": "< 10 min"},
    TicketPriority.LOW: {"icon": "💬", "wait": "< 15 min"},
}

_ORDER = {
    EscalationPhase.IDLE: 0,
    EscalationPhase.CONNECTING: 1,
    EscalationPhase.PENDING: 2,
    EscalationPhase.ASSIGNED: 3,
    EscalationPhase.RESOLVED: 4,
}

CANCEL_RESOLUTION = "Cancelled by customer"


def sla_wait(priority: TicketPriority) -> str:
    return PRIORITY_DISPLAY[priority]["wait"]


def phase_for_ticket(ticket: EscalationTicket) -> EscalationPhase:
    """Ticket without id, or with an unknown status, is still being created."""
    status = ticket.ticket_status
    if ticket.id is None or status is None:
        return EscalationPhase.CONNECTING
    return {
        TicketStatus.PENDING: EscalationPhase.PENDING,
        TicketStatus.ASSIGNED: EscalationPhase.ASSIGNED,
        TicketStatus.RESOLVED: EscalationPhase.RESOLVED,
    }[status]


class EscalationWorkflow:
    def __init__(self, client: AssistantBackendClient, *, agent_viewing_delay: float = 3.0,
                 notify_backend_on_cancel: bool = True,
                 on_change: Optional[Callable[[EscalationView], None]] = None):
        self.client = client
        self.agent_viewing_delay = agent_viewing_delay
        self.notify_backend_on_cancel = notify_backend_on_cancel
        self.on_change = on_change
        self._phase = EscalationPhase.IDLE
        self._ticket: Optional[EscalationTicket] = None
        self._agent_viewing = False
        self._retry_available = False
        self._viewing_timer: Optional[asyncio.TimerHandle] = None
        self._withdrawn: set[int] = set()

    # ────────────────────────────────────────────────────────
    # Read side
    # ────────────────────────────────────────────────────────
    @property
    def phase(self) -> EscalationPhase:
        return self._phase

    @property
    def ticket(self) -> Optional[EscalationTicket]:
        return self._ticket

    @property
    def is_active(self) -> bool:
        return self._phase is not EscalationPhase.IDLE

    @property
    def withdrawn(self) -> frozenset:
        return frozenset(self._withdrawn)

    def available_actions(self) -> Tuple[EscalationAction, ...]:
        if self._phase is EscalationPhase.CONNECTING:
            return (EscalationAction.CANCEL,)
        if self._phase is EscalationPhase.PENDING:
            return (EscalationAction.CANCEL, EscalationAction.ASSIGN_TO_ME)
        return ()

    def view(self) -> EscalationView:
        return EscalationView(
            phase=self._phase,
            ticket=self._ticket,
            agent_viewing=self._agent_viewing,
            actions=self.available_actions(),
            retry_available=self._retry_available,
        )

    # ────────────────────────────────────────────────────────
    # Transitions
    # ────────────────────────────────────────────────────────
    def begin(self) -> bool:
        """Escalation triggered; no ticket confirmed yet."""
        if self._phase is not EscalationPhase.IDLE:
            return False
        self._retry_available = False
        self._move(EscalationPhase.CONNECTING, reason="triggered")
        return True

    def apply_ticket(self, ticket: EscalationTicket) -> bool:
        """Apply a ticket descriptor from a chat reply, escalation call or push."""
        target = phase_for_ticket(ticket)
        if ticket.id is not None and ticket.id in self._withdrawn:
            log.info(f"ESCALATION_IGNORED | ticket={ticket.id} | reason=withdrawn")
            return False
        if self._phase is EscalationPhase.RESOLVED:
            log.info(f"ESCALATION_IGNORED | ticket={ticket.id} | reason=resolved_is_terminal")
            return False
        if self._ticket is not None and ticket.id is not None and self._ticket.id not in (None, ticket.id):
            log.warning(f"ESCALATION_IGNORED | ticket={ticket.id} | active={self._ticket.id} | reason=other_ticket")
            return False
        if _ORDER[target] < _ORDER[self._phase]:
            log.warning(f"ESCALATION_STALE_STATUS | ticket={ticket.id} | phase={self._phase.value} | status={ticket.status}")
            return False

        self._ticket = ticket
        self._retry_available = False
        if target is self._phase:
            self._emit()
        else:
            self._move(target, reason=f"status={ticket.status or 'none'}")
        return True

    def fail(self) -> None:
        """Ticket creation failed: back to AI-only with a retry affordance."""
        if self._phase is not EscalationPhase.CONNECTING:
            return
        self._ticket = None
        self._retry_available = True
        self._move(EscalationPhase.IDLE, reason="creation_failed")

    async def cancel(self) -> bool:
        """Client-local return to AI-only mode; optionally withdraws the server ticket."""
        if EscalationAction.CANCEL not in self.available_actions():
            return False
        ticket = self._ticket
        self._ticket = None
        if ticket is not None and ticket.id is not None:
            self._withdrawn.add(ticket.id)
        self._move(EscalationPhase.IDLE, reason="cancelled")

        if ticket is not None and ticket.id is not None:
            await self._notify_cancel(ticket.id)
        return True

    async def withdraw(self, ticket: EscalationTicket) -> None:
        """A ticket was created for an escalation the customer already cancelled."""
        if ticket.id is None or ticket.id in self._withdrawn:
            return
        self._withdrawn.add(ticket.id)
        log.info(f"ESCALATION_WITHDRAWN | ticket={ticket.id}")
        await self._notify_cancel(ticket.id)

    async def assign_to_me(self, agent_id: int) -> bool:
        if EscalationAction.ASSIGN_TO_ME not in self.available_actions() or self._ticket is None:
            return False
        ticket_id = self._ticket.id
        try:
            updated = await self.client.update_ticket(ticket_id, status=TicketStatus.ASSIGNED.value,
                                                      assigned_to=agent_id)
        except BackendError as e:
            smart_log.error_occurred(None, "BackendError", "assign_ticket", str(e))
            return False
        return self.apply_ticket(updated)

    def reset(self) -> None:
        """New conversation: forget any ticket, including a resolved one."""
        self._ticket = None
        self._retry_available = False
        if self._phase is not EscalationPhase.IDLE:
            self._move(EscalationPhase.IDLE, reason="reset")

    def close(self) -> None:
        self._cancel_viewing_timer()

    # ────────────────────────────────────────────────────────
    # Internals
    # ────────────────────────────────────────────────────────
    def _move(self, target: EscalationPhase, *, reason: str) -> None:
        previous = self._phase
        self._phase = target
        self._cancel_viewing_timer()
        self._agent_viewing = False
        if target is EscalationPhase.PENDING:
            loop = asyncio.get_running_loop()
            self._viewing_timer = loop.call_later(self.agent_viewing_delay, self._show_agent_viewing)
        ticket_id = self._ticket.id if self._ticket else None
        smart_log.escalation_transition(ticket_id, previous.value, target.value, reason)
        self._emit()

    async def _notify_cancel(self, ticket_id: int) -> None:
        if not self.notify_backend_on_cancel:
            return
        try:
            await self.client.update_ticket(ticket_id, status=TicketStatus.RESOLVED.value,
                                            resolution=CANCEL_RESOLUTION)
        except BackendError as e:
            log.warning(f"ESCALATION_CANCEL_NOTIFY_FAILED | ticket={ticket_id} | error={e}")

    def _show_agent_viewing(self) -> None:
        self._viewing_timer = None
        if self._phase is EscalationPhase.PENDING:
            self._agent_viewing = True
            self._emit()

    def _cancel_viewing_timer(self) -> None:
        if self._viewing_timer is not None:
            self._viewing_timer.cancel()
            self._viewing_timer = None

    def _emit(self) -> None:
        if self.on_change is not None:
            self.on_change(self.view())
