from __future__ import annotations

from typing import Any, Dict, List

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from kirana_assistant.backend_client import AssistantBackendClient, BackendError
from kirana_assistant.enums import Role, TicketPriority
from kirana_assistant.models import Message


class StorefrontStub:
    """Tiny aiohttp app speaking the storefront's wire format."""

    def __init__(self) -> None:
        self.requests: List[Dict[str, Any]] = []
        self.app = web.Application()
        self.app.router.add_post("/chatbot/chat", self.chat)
        self.app.router.add_post("/chatbot/chat/user", self.chat)
        self.app.router.add_get("/search/suggestions", self.suggestions)
        self.app.router.add_post("/customer-service/escalate", self.escalate)
        self.app.router.add_put("/customer-service/tickets/{ticket_id}", self.update_ticket)
        self.app.router.add_get("/customer-service/order-status/{order_id}", self.order)
        self.app.router.add_post("/customer-service/feedback", self.feedback)
        self.app.router.add_get("/chatbot/trending", self.broken)

    async def _record(self, request: web.Request) -> Dict[str, Any]:
        body = await request.json() if request.can_read_body else None
        entry = {"path": request.path, "query": dict(request.query), "body": body,
                 "auth": request.headers.get("Authorization")}
        self.requests.append(entry)
        return entry

    async def chat(self, request: web.Request) -> web.Response:
        await self._record(request)
        return web.json_response({
            "success": True,
            "response": "Here you go",
            "suggestions": ["More snacks"],
            "recommendations": [
                {"id": "p1", "title": "Top title", "price": 99,
                 "metadata": {"title": "Meta title", "price": 80, "mrp": 100, "stock": 3, "productId": "m1"}},
            ],
            "cartPreview": {"items": [{"id": "c1", "name": "Atta", "quantity": 2, "price": 150}],
                            "itemCount": 2, "total": 300},
            "sessionId": "session_server_1",
            "escalationTicket": {"id": 11, "priority": "urgent", "status": "pending"},
            "sentiment": {"sentiment": "negative", "score": -0.6},
        })

    async def suggestions(self, request: web.Request) -> web.Response:
        await self._record(request)
        return web.json_response({"success": True, "data": {
            "correctedQuery": "rice", "suggestions": ["rice 5kg", "rice basmati"], "intent": "product_search",
        }})

    async def escalate(self, request: web.Request) -> web.Response:
        await self._record(request)
        return web.json_response({"success": False, "message": "No agents configured"})

    async def update_ticket(self, request: web.Request) -> web.Response:
        entry = await self._record(request)
        return web.json_response({"success": True, "ticket": {
            "id": int(request.match_info["ticket_id"]), "priority": "high", **entry["body"],
        }})

    async def order(self, request: web.Request) -> web.Response:
        await self._record(request)
        return web.json_response({"success": False, "message": "Order not found"}, status=404)

    async def feedback(self, request: web.Request) -> web.Response:
        await self._record(request)
        return web.json_response({"success": True, "message": "Thank you for your feedback!"})

    async def broken(self, request: web.Request) -> web.Response:
        return web.Response(text="<html>oops</html>", status=200, content_type="text/html")


async def _client(stub: StorefrontStub, token: str = ""):
    server = TestServer(stub.app)
    await server.start_server()
    client = AssistantBackendClient(str(server.make_url("")), auth_token=token, timeout=5)
    return server, client


@pytest.mark.asyncio
async def test_chat_round_trip_parses_every_payload():
    stub = StorefrontStub()
    server, client = await _client(stub)
    try:
        history = [Message(role=Role.USER, content="snacks", timestamp=1)]
        reply = await client.send_chat(history, "session_1_abcdefghi")
    finally:
        await client.aclose()
        await server.close()

    sent = stub.requests[0]
    assert sent["path"] == "/chatbot/chat"
    assert sent["body"] == {"messages": [{"role": "user", "content": "snacks", "timestamp": 1}],
                            "sessionId": "session_1_abcdefghi"}
    assert sent["auth"] is None

    assert reply.response == "Here you go"
    assert reply.suggestions == ("More snacks",)
    product = reply.recommendations[0]
    assert (product.id, product.title, product.price, product.mrp) == ("m1", "Meta title", 80.0, 100.0)
    assert reply.cart_preview.total == 300.0
    assert reply.cart_preview.items[0].line_total == 300.0
    assert reply.session_id == "session_server_1"
    assert reply.escalation_ticket.id == 11
    assert reply.escalation_ticket.priority is TicketPriority.URGENT
    assert reply.sentiment == "negative"


@pytest.mark.asyncio
async def test_authenticated_chat_uses_user_endpoint():
    stub = StorefrontStub()
    server, client = await _client(stub, token="tkn")
    try:
        await client.send_chat([], "s")
    finally:
        await client.aclose()
        await server.close()
    assert stub.requests[0]["path"] == "/chatbot/chat/user"
    assert stub.requests[0]["auth"] == "Bearer tkn"


@pytest.mark.asyncio
async def test_search_suggestions_unwraps_data():
    stub = StorefrontStub()
    server, client = await _client(stub)
    try:
        result = await client.get_search_suggestions("ric")
    finally:
        await client.aclose()
        await server.close()
    assert stub.requests[0]["query"] == {"q": "ric"}
    assert result.corrected_query == "rice"
    assert result.suggestions == ("rice 5kg", "rice basmati")
    assert result.intent == "product_search"


@pytest.mark.asyncio
async def test_update_ticket_sends_camel_case():
    stub = StorefrontStub()
    server, client = await _client(stub)
    try:
        ticket = await client.update_ticket(42, status="assigned", assigned_to=7)
    finally:
        await client.aclose()
        await server.close()
    assert stub.requests[0]["body"] == {"status": "assigned", "assignedTo": 7}
    assert ticket.id == 42
    assert ticket.assigned_to == 7


@pytest.mark.asyncio
async def test_feedback_message():
    stub = StorefrontStub()
    server, client = await _client(stub)
    try:
        message = await client.submit_feedback("s", 2, "slow")
    finally:
        await client.aclose()
        await server.close()
    assert message == "Thank you for your feedback!"
    assert stub.requests[0]["body"] == {"sessionId": "s", "rating": 2, "comment": "slow"}


@pytest.mark.asyncio
async def test_failures_become_backend_errors():
    stub = StorefrontStub()
    server, client = await _client(stub)
    try:
        with pytest.raises(BackendError) as unsuccessful:
            await client.escalate_to_human("s", "help")
        with pytest.raises(BackendError) as not_found:
            await client.get_order_status(5)
        with pytest.raises(BackendError) as not_json:
            await client.get_trending(3)
    finally:
        await client.aclose()
        await server.close()

    assert "No agents configured" in str(unsuccessful.value)
    assert not_found.value.status == 404
    assert not_found.value.endpoint == "/customer-service/order-status/5"
    assert not_json.value.endpoint == "/chatbot/trending"


@pytest.mark.asyncio
async def test_unreachable_backend_is_a_backend_error():
    client = AssistantBackendClient("http://127.0.0.1:9", timeout=1)
    try:
        with pytest.raises(BackendError):
            await client.get_follow_up_suggestions("s")
    finally:
        await client.aclose()


def _malformed_app() -> web.Application:
    async def chat(request: web.Request) -> web.Response:
        return web.json_response({"success": True, "response": "hi",
                                  "escalationTicket": {"id": "TCK-9", "priority": "high", "status": "pending"}})

    async def suggestions(request: web.Request) -> web.Response:
        return web.json_response({"success": True, "data": ["rice"]})

    async def trending(request: web.Request) -> web.Response:
        return web.json_response({"success": True, "trending": [
            {"id": "p1", "title": "Poha", "price": 45, "metadata": "n/a", "category": ["staples"]},
        ]})

    app = web.Application()
    app.router.add_post("/chatbot/chat", chat)
    app.router.add_get("/search/suggestions", suggestions)
    app.router.add_get("/chatbot/trending", trending)
    return app


@pytest.mark.asyncio
async def test_unparseable_reply_is_a_backend_error():
    server = TestServer(_malformed_app())
    await server.start_server()
    client = AssistantBackendClient(str(server.make_url("")), timeout=5)
    try:
        with pytest.raises(BackendError) as bad_ticket:
            await client.send_chat([], "s")
        result = await client.get_search_suggestions("ric")
        trending = await client.get_trending(5)
    finally:
        await client.aclose()
        await server.close()

    assert "malformed response" in str(bad_ticket.value)
    assert bad_ticket.value.endpoint == "/chatbot/chat"
    assert result.suggestions == ()
    assert [(p.id, p.title, p.price, p.category_name) for p in trending] == [("p1", "Poha", 45.0, None)]
