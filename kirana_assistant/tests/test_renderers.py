from __future__ import annotations

import json
from datetime import datetime

import pytest

from kirana_assistant.enums import (
    DispatchState, EscalationAction, EscalationPhase, FeedbackPhase, Role, TicketPriority,
)
from kirana_assistant.models import (
    CartItem, CartPreview, Category, ConversationSnapshot, EscalationTicket, EscalationView,
    Message, OrderStatus, Product, SearchState, SurveyView,
)
from kirana_assistant.renderers import (
    build_view, order_progress, render_cart_preview, render_escalation_card, render_product_card,
    render_search_state, render_survey_card,
)
from kirana_assistant.tests.fakes import make_products
from kirana_assistant.utils.helpers import format_price, format_timestamp

NOW = 1_700_000_000_000


def _snapshot(**kwargs) -> ConversationSnapshot:
    kwargs.setdefault("session_id", "session_1_abcdefghi")
    return ConversationSnapshot(**kwargs)


def test_helpers():
    assert format_price(1200) == "Rs 1,200"
    assert format_price(99.5) == "Rs 99.50"
    assert format_timestamp(NOW - 10_000, NOW) == "Just now"
    assert format_timestamp(NOW - 5 * 60_000, NOW) == "5m ago"
    assert format_timestamp(NOW - 2 * 3_600_000, NOW) == "2h ago"
    assert format_timestamp(NOW - 3 * 86_400_000, NOW) == "3d ago"


def test_product_card_discount():
    card = render_product_card(Product(id="1", title="Chips", price=80.0, mrp=100.0, stock=0))
    assert card["price"] == "Rs 80"
    assert card["mrp"] == "Rs 100"
    assert card["discount_percent"] == 20
    assert card["in_stock"] is False

    plain = render_product_card(Product(id="2", title="Salt", price=20.0))
    assert plain["mrp"] is None and plain["discount_percent"] is None


def test_cart_preview_actions():
    cart = CartPreview(items=(CartItem(id="1", name="Atta", quantity=2, price=150.0),), item_count=2, total=300.0)
    view = render_cart_preview(cart)
    assert view["items"][0]["line_total"] == "Rs 300"
    assert view["total"] == "Rs 300"
    assert [a["send"] for a in view["actions"]] == ["clear cart", "checkout"]


def test_order_progress():
    assert order_progress("pending") == 0
    assert order_progress("SHIPPED") == 3
    assert order_progress("cancelled") == -1


def test_escalation_card():
    assert render_escalation_card(EscalationView()) is None

    view = EscalationView(
        phase=EscalationPhase.PENDING,
        ticket=EscalationTicket(id=42, priority=TicketPriority.HIGH, status="pending"),
        agent_viewing=True,
        actions=(EscalationAction.CANCEL, EscalationAction.ASSIGN_TO_ME),
    )
    card = render_escalation_card(view)
    assert card["status_line"] == "Waiting for an agent..."
    assert card["priority"] == {"level": "high", "label": "High Priority", "icon": "⚡", "wait": "< 5 min"}
    assert card["actions"] == ["cancel", "assign_to_me"]

    resolved = render_escalation_card(EscalationView(
        phase=EscalationPhase.RESOLVED, ticket=EscalationTicket(id=42, status="resolved"),
    ))
    assert resolved["actions"] == []

    retry = render_escalation_card(EscalationView(retry_available=True))
    assert retry["actions"] == ["retry"]


def test_survey_card():
    card = render_survey_card(SurveyView(phase=FeedbackPhase.RATING_SELECTED, rating=2, comment_enabled=True))
    assert card["selected_label"] == "Fair"
    assert card["options"][4] == {"value": 5, "label": "Excellent", "emoji": "🤩"}
    assert card["can_submit"] and card["comment_enabled"]
    assert render_survey_card(SurveyView(phase=FeedbackPhase.DISMISSED)) is None


def test_search_state_hides_suggestions_when_closed():
    state = SearchState(raw_query="ric", corrected_query="rice", suggestions=("rice 5kg",), is_open=False)
    view = render_search_state(state)
    assert view["suggestions"] == []
    assert view["did_you_mean"] == "rice"


def test_empty_conversation_gets_a_greeting():
    view = build_view(_snapshot(suggestions=("Show me snacks",)), "page", now=NOW,
                      clock=datetime(2024, 1, 1, 9, 0))
    assert view["greeting"] == "शुभ प्रभात (Good Morning)"
    assert view["suggestions"] == ["Show me snacks"]
    assert view["messages"] == []


def test_structured_blocks_hidden_while_loading():
    snapshot = _snapshot(
        messages=(Message(role=Role.USER, content="snacks", timestamp=NOW),),
        dispatch_state=DispatchState.SENDING,
        recommendations=make_products(3),
        suggestions=("more",),
    )
    view = build_view(snapshot, "widget", now=NOW)
    assert view["is_loading"] is True
    assert view["blocks"] == []
    assert view["suggestions"] == []
    assert view["greeting"] is None


def test_surfaces_share_content_but_widget_is_compact():
    snapshot = _snapshot(
        messages=(Message(role=Role.ASSISTANT, content="Here you go", timestamp=NOW - 120_000),),
        recommendations=make_products(6),
        categories=(Category(id="c", name="Snacks"),),
        order_status=OrderStatus(id="7", status="processing"),
    )
    page = build_view(snapshot, "page", now=NOW)
    widget = build_view(snapshot, "widget", now=NOW)

    assert page["messages"] == widget["messages"]
    assert page["messages"][0]["time"] == "2m ago"
    assert len(page["blocks"][0]["items"]) == 6
    assert len(widget["blocks"][0]["items"]) == 4
    assert page["blocks"][1]["items"][0]["send"] == "Show me items in Snacks"
    order = page["blocks"][2]
    assert order["type"] == "order"
    assert [s["done"] for s in order["steps"]] == [True, True, True, False, False]
    json.dumps(page)


def test_unknown_surface_rejected():
    with pytest.raises(ValueError):
        build_view(_snapshot(), "sidebar")
