"""
Conversation Store & Message Dispatch
=====================================

Single source of truth for the chat UI. Both surfaces (floating widget and
full-page chat) subscribe to the same instance and receive an immutable
`ConversationSnapshot` after every change.

Dispatch protocol (`send_message`):
1. synchronous: append the user turn, enter SENDING, clear the error
2. one request with the full history + the session id active at issue time
3. success: append the assistant turn, unpack structured payloads, follow a
   server-side session rotation
4. failure: inline error + a fallback assistant turn (every user turn gets a reply)
5. always: back to IDLE

A send while SENDING is a no-op; nothing is queued.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Tuple

from .backend_client import AssistantBackendClient, BackendError
from .enums import DispatchState, EscalationPhase, Role
from .escalation import EscalationWorkflow
from .feedback import SatisfactionSurvey
from .models import (
    CartPreview, Category, ChatReply, ConversationSnapshot, CustomerServiceReply,
    EscalationTicket, EscalationView, Message, OrderStatus, Product, SurveyView,
)
from .session_manager import SessionIdentityManager
from .utils.helpers import now_ms, validate_message
from .utils.smart_logger import get_smart_logger

log = logging.getLogger(__name__)
smart_log = get_smart_logger("conversation_store")

DISPATCH_ERROR = "Failed to send message. Please try again."
FALLBACK_REPLY = "Sorry, I encountered an error. Please try again."
ESCALATION_ERROR = "Failed to connect to human support. Please try again."
ORDER_LOOKUP_ERROR = "Could not find that order. Please check the order number."

Subscriber = Callable[[ConversationSnapshot], None]


class ConversationStore:
    def __init__(self, client: AssistantBackendClient, sessions: SessionIdentityManager, *,
                 escalation: Optional[EscalationWorkflow] = None,
                 survey_after_messages: int = 10,
                 survey_dismiss_delay: float = 3.0,
                 max_message_length: int = 1000,
                 use_rule_based_triage: bool = False,
                 notify_backend_on_clear: bool = True):
        self.client = client
        self.sessions = sessions
        self.escalation = escalation or EscalationWorkflow(client)
        self.escalation.on_change = self._on_escalation_change
        self.survey_after_messages = survey_after_messages
        self.survey_dismiss_delay = survey_dismiss_delay
        self.max_message_length = max_message_length
        self.use_rule_based_triage = use_rule_based_triage
        self.notify_backend_on_clear = notify_backend_on_clear

        self._messages: List[Message] = []
        self._state = DispatchState.IDLE
        self._suggestions: Tuple[str, ...] = ()
        self._recommendations: Tuple[Product, ...] = ()
        self._categories: Tuple[Category, ...] = ()
        self._cart_preview: Optional[CartPreview] = None
        self._order_status: Optional[OrderStatus] = None
        self._error: Optional[str] = None
        self._last_sentiment: Optional[str] = None
        self._user_turns = 0
        self._escalating = False
        self._survey: Optional[SatisfactionSurvey] = None
        self._subscribers: List[Subscriber] = []

    # ────────────────────────────────────────────────────────
    # Read side
    # ────────────────────────────────────────────────────────
    @property
    def is_loading(self) -> bool:
        return self._state is DispatchState.SENDING

    @property
    def dispatch_state(self) -> DispatchState:
        return self._state

    @property
    def session_id(self) -> str:
        return self.sessions.get_or_create_session_id()

    @property
    def survey(self) -> Optional[SatisfactionSurvey]:
        return self._survey

    def snapshot(self) -> ConversationSnapshot:
        return ConversationSnapshot(
            session_id=self.session_id,
            messages=tuple(self._messages),
            dispatch_state=self._state,
            suggestions=self._suggestions,
            recommendations=self._recommendations,
            categories=self._categories,
            cart_preview=self._cart_preview,
            order_status=self._order_status,
            error=self._error,
            last_sentiment=self._last_sentiment,
            escalation=self.escalation.view(),
            survey=self._survey.view() if self._survey is not None else None,
        )

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # ────────────────────────────────────────────────────────
    # Lifecycle
    # ────────────────────────────────────────────────────────
    async def start(self) -> None:
        session_id = self.sessions.get_or_create_session_id()
        await self.load_suggestions(session_id)

    async def load_suggestions(self, session_id: str) -> None:
        try:
            suggestions = await self.client.get_follow_up_suggestions(session_id)
        except BackendError as e:
            log.warning(f"SUGGESTIONS_LOAD_FAILED | session={session_id} | error={e}")
            return
        if session_id != self.sessions.current:
            smart_log.stale_discarded(session_id, self.sessions.current or "")
            return
        self._suggestions = tuple(suggestions)
        self._publish()

    # ────────────────────────────────────────────────────────
    # Dispatch
    # ────────────────────────────────────────────────────────
    async def send_message(self, content: str) -> None:
        text = (content or "").strip()
        if not text:
            return
        if self.is_loading:
            smart_log.flow_decision(self.sessions.current, "send_ignored", reason="dispatch_in_flight")
            return
        if not validate_message(text, self.max_message_length):
            raise ValueError(f"message longer than {self.max_message_length} characters")

        session_id = self.session_id
        user_message = Message(role=Role.USER, content=text, timestamp=now_ms())
        self._messages.append(user_message)
        self._state = DispatchState.SENDING
        self._error = None
        self._user_turns += 1
        history = tuple(self._messages)
        smart_log.dispatch_start(session_id, text, len(history))
        self._publish()

        loop = asyncio.get_running_loop()
        started = loop.time()
        outcome = "ok"
        try:
            handled = False
            if self.use_rule_based_triage:
                handled = await self._try_rule_based(text, session_id)
            if not handled:
                reply = await self.client.send_chat(history, session_id)
                self._apply_reply(reply, session_id)
        except BackendError as e:
            outcome = "failed"
            smart_log.error_occurred(session_id, "BackendError", "send_message", str(e))
            self._error = DISPATCH_ERROR
            self._append(Role.ASSISTANT, FALLBACK_REPLY)
        finally:
            self._state = DispatchState.IDLE
            smart_log.dispatch_settled(session_id, outcome, loop.time() - started)
            self._maybe_open_survey()
            self._publish()

    async def _try_rule_based(self, text: str, session_id: str) -> bool:
        try:
            cs: CustomerServiceReply = await self.client.process_customer_service(text, session_id)
        except BackendError as e:
            log.warning(f"TRIAGE_FAILED | session={session_id} | error={e} | falling_back=chat")
            return False
        if not (cs.is_rule_based and cs.response):
            return False
        smart_log.flow_decision(session_id, "rule_based_reply", reason=cs.intent or None)
        self._append(Role.ASSISTANT, cs.response)
        if cs.sentiment:
            self._last_sentiment = cs.sentiment
        if cs.should_escalate and cs.escalation_ticket is not None:
            self._apply_escalation_signal(cs.escalation_ticket)
        return True

    def _apply_reply(self, reply: ChatReply, session_id: str) -> None:
        self._append(Role.ASSISTANT, reply.response)
        if reply.suggestions:
            self._suggestions = reply.suggestions
        if reply.recommendations:
            self._recommendations = reply.recommendations
        if reply.categories:
            self._categories = reply.categories
        if reply.cart_preview is not None:
            self._cart_preview = reply.cart_preview
        if reply.order_status is not None:
            self._order_status = reply.order_status
        if reply.sentiment:
            self._last_sentiment = reply.sentiment
        if reply.session_id and reply.session_id != session_id:
            self.sessions.adopt_session_id(reply.session_id)
        if reply.escalation_ticket is not None:
            self._apply_escalation_signal(reply.escalation_ticket)

    def _apply_escalation_signal(self, ticket: EscalationTicket) -> bool:
        if self.escalation.phase is EscalationPhase.IDLE and ticket.id not in self.escalation.withdrawn:
            self.escalation.begin()
        return self.escalation.apply_ticket(ticket)

    def clear_chat(self) -> bool:
        """Start over: empty log, fresh session id, new conversation starters."""
        if self.is_loading:
            smart_log.flow_decision(self.sessions.current, "clear_ignored", reason="dispatch_in_flight")
            return False
        old_session = self.sessions.current
        self._messages = []
        self._recommendations = ()
        self._categories = ()
        self._cart_preview = None
        self._order_status = None
        self._error = None
        self._last_sentiment = None
        self._user_turns = 0
        self._close_survey()
        self.escalation.reset()
        new_session = self.sessions.rotate_session_id()
        self._publish()

        loop = asyncio.get_running_loop()
        if self.notify_backend_on_clear and old_session:
            loop.create_task(self._forget_session(old_session))
        loop.create_task(self.load_suggestions(new_session))
        return True

    async def _forget_session(self, session_id: str) -> None:
        try:
            await self.client.clear_session(session_id)
        except BackendError as e:
            log.info(f"CLEAR_SESSION_NOTIFY_FAILED | session={session_id} | error={e}")

    # ────────────────────────────────────────────────────────
    # Catalogue helpers
    # ────────────────────────────────────────────────────────
    async def load_trending(self, limit: int = 5) -> None:
        try:
            products = await self.client.get_trending(limit)
        except BackendError as e:
            log.warning(f"TRENDING_LOAD_FAILED | error={e}")
            return
        self._recommendations = tuple(products)
        self._publish()

    async def load_recommendations(self) -> None:
        try:
            products = await self.client.get_recommendations()
        except BackendError as e:
            log.warning(f"RECOMMENDATIONS_LOAD_FAILED | error={e}")
            return
        self._recommendations = tuple(products)
        self._publish()

    async def lookup_order(self, order_id: int) -> Optional[OrderStatus]:
        try:
            order = await self.client.get_order_status(order_id)
        except BackendError as e:
            log.warning(f"ORDER_LOOKUP_FAILED | order={order_id} | error={e}")
            self._error = ORDER_LOOKUP_ERROR
            self._publish()
            return None
        self._order_status = order
        self._error = None
        self._publish()
        return order

    # ────────────────────────────────────────────────────────
    # Human handoff
    # ────────────────────────────────────────────────────────
    async def request_escalation(self, reason: Optional[str] = None) -> bool:
        if self._escalating or self.escalation.is_active:
            return False
        self._escalating = True
        session_id = self.session_id
        self._error = None
        self.escalation.begin()
        try:
            ticket = await self.client.escalate_to_human(session_id, reason)
        except BackendError as e:
            smart_log.error_occurred(session_id, "BackendError", "request_escalation", str(e))
            self._error = ESCALATION_ERROR
            self.escalation.fail()
            self._publish()
            return False
        finally:
            self._escalating = False

        if self.escalation.phase is not EscalationPhase.CONNECTING:
            # cancelled while the ticket was being created
            await self.escalation.withdraw(ticket)
            return False
        if not self.escalation.apply_ticket(ticket):
            self._error = ESCALATION_ERROR
            self.escalation.fail()
            self._publish()
            return False
        if ticket.id is not None:
            self._append(Role.ASSISTANT,
                         f"🎫 Support ticket #{ticket.id} created. A human agent will be with you shortly.")
        self._publish()
        return True

    async def cancel_escalation(self) -> bool:
        return await self.escalation.cancel()

    async def assign_escalation(self, agent_id: int) -> bool:
        return await self.escalation.assign_to_me(agent_id)

    def push_ticket(self, ticket: EscalationTicket) -> bool:
        """Ticket status pushed from outside a chat reply (agent console, webhook)."""
        if ticket.id is None:
            return False
        return self._apply_escalation_signal(ticket)

    def _on_escalation_change(self, view: EscalationView) -> None:
        self._publish()

    # ────────────────────────────────────────────────────────
    # Satisfaction survey
    # ────────────────────────────────────────────────────────
    def open_survey(self) -> SatisfactionSurvey:
        if self._survey is None:
            session_id = self.session_id
            self._survey = SatisfactionSurvey(
                self.client, session_id,
                dismiss_delay=self.survey_dismiss_delay,
                on_change=self._on_survey_change,
                on_dismiss=self.dismiss_survey,
            )
            self.sessions.set_flag(f"survey_shown_{session_id}")
            smart_log.feedback_event(session_id, "survey_opened")
            self._publish()
        return self._survey

    def dismiss_survey(self) -> None:
        if self._close_survey():
            self._publish()

    def _close_survey(self) -> bool:
        survey, self._survey = self._survey, None
        if survey is None:
            return False
        survey.on_dismiss = None
        survey.close()
        return True

    def _maybe_open_survey(self) -> None:
        if self._survey is not None or self.escalation.is_active:
            return
        if self._user_turns < self.survey_after_messages:
            return
        if self.sessions.has_flag(f"survey_shown_{self.session_id}"):
            return
        self.open_survey()

    def _on_survey_change(self, view: SurveyView) -> None:
        self._publish()

    # ────────────────────────────────────────────────────────
    # Internals
    # ────────────────────────────────────────────────────────
    def _append(self, role: Role, content: str) -> None:
        self._messages.append(Message(role=role, content=content, timestamp=now_ms()))

    def _publish(self) -> None:
        if not self._subscribers:
            return
        snap = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snap)
            except Exception as e:  # noqa: BLE001
                log.error(f"SUBSCRIBER_ERROR | callback={getattr(callback, '__name__', callback)} | error={e}",
                          exc_info=True)
