"""
Async client for the storefront's assistant, search and customer-service APIs.

One lazily created aiohttp session per client; it must be used from a single
event loop (the runtime loop). Every failure mode (transport, timeout, non-2xx,
bad JSON, `success: false`) surfaces as `BackendError`.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

import aiohttp

from .config import BaseConfig
from .models import (
    ChatReply, CustomerServiceReply, EscalationTicket, Message, OrderStatus,
    Product, SuggestionResult,
)
from .utils.smart_logger import get_smart_logger

log = logging.getLogger(__name__)
smart_log = get_smart_logger("backend_client")

T = TypeVar("T")


class BackendError(Exception):
    def __init__(self, message: str, *, endpoint: str = "", status: Optional[int] = None):
        super().__init__(message)
        self.endpoint = endpoint
        self.status = status

    def __str__(self) -> str:
        base = super().__str__()
        if self.status is not None:
            return f"{base} (endpoint={self.endpoint}, status={self.status})"
        return f"{base} (endpoint={self.endpoint})"


def _products(raw: Any) -> List[Product]:
    return [Product.from_dict(p) for p in raw or [] if isinstance(p, dict)]


class AssistantBackendClient:
    def __init__(self, base_url: str, *, auth_token: str = "", timeout: float = 15.0,
                 session: aiohttp.ClientSession | None = None):
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_config(cls, cfg: BaseConfig) -> "AssistantBackendClient":
        return cls(cfg.ASSISTANT_API_URL, auth_token=cfg.ASSISTANT_API_TOKEN,
                   timeout=cfg.BACKEND_TIMEOUT_SECONDS)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.auth_token)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Content-Type": "application/json"}
            if self.auth_token:
                headers["Authorization"] = f"Bearer {self.auth_token}"
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers=headers,
            )
            self._owns_session = True
        return self._session

    async def aclose(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

    async def _request(self, method: str, path: str, *, json: Any = None,
                       params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        started = time.perf_counter()
        smart_log.api_call("backend", f"{method} {path}")
        try:
            async with self._get_session().request(method, url, json=json, params=params) as resp:
                try:
                    body = await resp.json(content_type=None)
                except ValueError:
                    body = None
                if not 200 <= resp.status < 300:
                    message = body.get("message") if isinstance(body, dict) else None
                    raise BackendError(message or f"HTTP {resp.status}", endpoint=path, status=resp.status)
        except asyncio.TimeoutError as e:
            smart_log.api_call("backend", f"{method} {path}", status="timeout")
            raise BackendError("request timed out", endpoint=path) from e
        except aiohttp.ClientError as e:
            smart_log.api_call("backend", f"{method} {path}", status="error")
            raise BackendError(f"{type(e).__name__}: {e}", endpoint=path) from e

        if not isinstance(body, dict):
            raise BackendError("response is not a JSON object", endpoint=path, status=resp.status)
        if body.get("success") is False:
            raise BackendError(str(body.get("message") or "request was not successful"),
                               endpoint=path, status=resp.status)
        smart_log.api_call("backend", f"{method} {path}", status="success",
                           duration_ms=(time.perf_counter() - started) * 1000)
        return body

    @staticmethod
    def _parse(path: str, build: Callable[..., T], *args: Any) -> T:
        """Build a model from a response body; bad field values become `BackendError`."""
        try:
            return build(*args)
        except (TypeError, ValueError, AttributeError) as e:
            smart_log.error_occurred(None, type(e).__name__, f"parse {path}", str(e))
            raise BackendError(f"malformed response: {e}", endpoint=path) from e

    # ────────────────────────────────────────────────────────
    # Assistant
    # ────────────────────────────────────────────────────────
    async def send_chat(self, messages: Sequence[Message], session_id: str) -> ChatReply:
        endpoint = "/chatbot/chat/user" if self.is_authenticated else "/chatbot/chat"
        body = await self._request("POST", endpoint, json={
            "messages": [m.to_wire() for m in messages],
            "sessionId": session_id,
        })
        return self._parse(endpoint, ChatReply.from_payload, body)

    async def get_follow_up_suggestions(self, session_id: Optional[str] = None) -> List[str]:
        params = {"sessionId": session_id} if session_id else None
        body = await self._request("GET", "/chatbot/suggestions", params=params)
        raw = body.get("suggestions")
        return [str(s) for s in raw] if isinstance(raw, list) else []

    async def clear_session(self, session_id: str) -> None:
        await self._request("POST", "/chatbot/clear-session", json={"sessionId": session_id})

    async def get_trending(self, limit: int = 10) -> List[Product]:
        body = await self._request("GET", "/chatbot/trending", params={"limit": limit})
        return self._parse("/chatbot/trending", _products, body.get("trending"))

    async def get_recommendations(self) -> List[Product]:
        body = await self._request("GET", "/chatbot/recommendations")
        return self._parse("/chatbot/recommendations", _products, body.get("recommendations"))

    # ────────────────────────────────────────────────────────
    # Smart search
    # ────────────────────────────────────────────────────────
    async def get_search_suggestions(self, query: str) -> SuggestionResult:
        body = await self._request("GET", "/search/suggestions", params={"q": query})
        data = body.get("data")
        return self._parse("/search/suggestions", SuggestionResult.from_payload,
                           data if isinstance(data, dict) else {})

    # ────────────────────────────────────────────────────────
    # Customer service
    # ────────────────────────────────────────────────────────
    async def process_customer_service(self, message: str, session_id: str) -> CustomerServiceReply:
        endpoint = "/customer-service/process/user" if self.is_authenticated else "/customer-service/process"
        body = await self._request("POST", endpoint, json={"message": message, "sessionId": session_id})
        return self._parse(endpoint, CustomerServiceReply.from_payload, body)

    async def escalate_to_human(self, session_id: str, reason: Optional[str] = None) -> EscalationTicket:
        body = await self._request("POST", "/customer-service/escalate",
                                   json={"sessionId": session_id, "reason": reason})
        ticket = body.get("ticket")
        if not isinstance(ticket, dict):
            raise BackendError("escalation response carried no ticket", endpoint="/customer-service/escalate")
        return self._parse("/customer-service/escalate", EscalationTicket.from_dict, ticket)

    async def update_ticket(self, ticket_id: int, *, status: Optional[str] = None,
                            assigned_to: Optional[int] = None,
                            resolution: Optional[str] = None) -> EscalationTicket:
        payload: Dict[str, Any] = {}
        if status is not None:
            payload["status"] = status
        if assigned_to is not None:
            payload["assignedTo"] = assigned_to
        if resolution is not None:
            payload["resolution"] = resolution
        path = f"/customer-service/tickets/{ticket_id}"
        body = await self._request("PUT", path, json=payload)
        ticket = body.get("ticket")
        if not isinstance(ticket, dict):
            raise BackendError("ticket update carried no ticket", endpoint=path)
        return self._parse(path, EscalationTicket.from_dict, ticket)

    async def get_order_status(self, order_id: int) -> OrderStatus:
        path = f"/customer-service/order-status/{order_id}"
        body = await self._request("GET", path)
        order = body.get("order")
        if not isinstance(order, dict):
            raise BackendError("order lookup carried no order", endpoint=path)
        return self._parse(path, OrderStatus.from_dict, order)

    async def submit_feedback(self, session_id: str, rating: int, comment: Optional[str] = None) -> str:
        body = await self._request("POST", "/customer-service/feedback", json={
            "sessionId": session_id,
            "rating": rating,
            "comment": comment,
        })
        return str(body.get("message") or "")
