"""
Presentation renderers: snapshot -> JSON-safe view envelope.

Stateless. Both UI surfaces call `build_view` on the same snapshot; the only
difference between them is how much of each block they show.
"""
from __future__ import annotations

from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .enums import EscalationPhase, FeedbackPhase, Role, Surface
from .escalation import PRIORITY_DISPLAY
from .feedback import RATING_EMOJIS, RATING_LABELS
from .models import (
    CartPreview, Category, ConversationSnapshot, EscalationView, Message,
    OrderStatus, Product, SearchState, SurveyView,
)
from .utils.helpers import calculate_discount, format_price, format_timestamp, now_ms, time_based_greeting

ORDER_STEPS = ("pending", "confirmed", "processing", "shipped", "delivered")

ESCALATION_STATUS_LINES = {
    EscalationPhase.CONNECTING: "Connecting to Support...",
    EscalationPhase.PENDING: "Waiting for an agent...",
    EscalationPhase.ASSIGNED: "Agent connected!",
    EscalationPhase.RESOLVED: "Ticket resolved",
}

# widget is the compact floating panel
_PRODUCT_LIMIT = {Surface.WIDGET: 4, Surface.PAGE: None}
_CATEGORY_LIMIT = {Surface.WIDGET: 6, Surface.PAGE: None}

_ROLE_LABELS = {Role.USER: "You", Role.ASSISTANT: "Assistant", Role.SYSTEM: "System"}


def _to_json_safe(obj: Any) -> Any:
    try:
        if isinstance(obj, Enum):
            return obj.value
        if is_dataclass(obj):
            return _to_json_safe(asdict(obj))
        if isinstance(obj, dict):
            return {k: _to_json_safe(v) for k, v in obj.items()}
        if isinstance(obj, (list, tuple, set)):
            return [_to_json_safe(v) for v in obj]
        if hasattr(obj, "isoformat"):
            return obj.isoformat()
        return obj
    except (TypeError, ValueError):
        return str(obj)


# ─────────────────────────────────────────────────────────────
# Blocks
# ─────────────────────────────────────────────────────────────
def render_message(message: Message, now: Optional[int] = None) -> Dict[str, Any]:
    return {
        "role": message.role.value,
        "label": _ROLE_LABELS[message.role],
        "content": message.content,
        "timestamp": message.timestamp,
        "time": format_timestamp(message.timestamp, now),
    }


def render_product_card(product: Product) -> Dict[str, Any]:
    discount = calculate_discount(product.mrp, product.price)
    return {
        "id": product.id,
        "title": product.title,
        "price": format_price(product.price),
        "mrp": format_price(product.mrp) if discount else None,
        "discount_percent": discount or None,
        "rating": round(product.avg_rating, 1) if product.avg_rating else None,
        "category": product.category_name,
        "in_stock": product.is_available and product.stock > 0,
        "href": f"/product/{product.slug}" if product.slug else None,
    }


def render_category_chip(category: Category) -> Dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "image": category.image,
        "send": f"Show me items in {category.name}",
    }


def render_cart_preview(cart: CartPreview) -> Dict[str, Any]:
    return {
        "item_count": cart.item_count,
        "items": [
            {
                "id": item.id,
                "name": item.name,
                "quantity": item.quantity,
                "price": format_price(item.price),
                "line_total": format_price(item.line_total),
                "image": item.image,
            }
            for item in cart.items
        ],
        "total": format_price(cart.total),
        "actions": [
            {"label": "Clear Cart", "send": "clear cart"},
            {"label": "Checkout", "send": "checkout"},
        ],
    }


def order_progress(status: str) -> int:
    """Index into ORDER_STEPS, -1 for statuses off the happy path (cancelled, returned)."""
    try:
        return ORDER_STEPS.index(status.lower())
    except ValueError:
        return -1


def render_order_card(order: OrderStatus) -> Dict[str, Any]:
    current = order_progress(order.status)
    return {
        "id": order.id,
        "status": order.status,
        "status_message": order.status_message,
        "steps": [
            {"name": step, "done": current >= i, "current": current == i}
            for i, step in enumerate(ORDER_STEPS)
        ],
        "off_track": current < 0,
        "total": format_price(order.total),
        "item_count": order.item_count,
        "items": [
            {"name": i.name, "quantity": i.quantity, "price": format_price(i.price)}
            for i in order.items
        ],
        "payment": {"status": order.payment_status, "method": order.payment_method},
        "estimated_delivery": order.estimated_delivery,
        "city": order.city,
        "can_cancel": order.can_cancel,
    }


def render_escalation_card(view: EscalationView) -> Optional[Dict[str, Any]]:
    if not view.is_active:
        if view.retry_available:
            return {"phase": view.phase.value, "retry_available": True, "actions": ["retry"]}
        return None

    ticket = view.ticket
    card: Dict[str, Any] = {
        "phase": view.phase.value,
        "status_line": ESCALATION_STATUS_LINES[view.phase],
        "ticket_id": ticket.id if ticket else None,
        "agent_viewing": view.agent_viewing,
        "actions": [a.value for a in view.actions],
        "retry_available": False,
    }
    if ticket is not None:
        display = PRIORITY_DISPLAY[ticket.priority]
        card["priority"] = {
            "level": ticket.priority.value,
            "label": f"{ticket.priority.value.title()} Priority",
            "icon": display["icon"],
            "wait": display["wait"],
        }
        card["assigned_to"] = ticket.assigned_to
    return card


def render_survey_card(view: SurveyView) -> Optional[Dict[str, Any]]:
    if view.phase is FeedbackPhase.DISMISSED:
        return None
    return {
        "phase": view.phase.value,
        "rating": view.rating,
        "options": [
            {"value": i + 1, "label": label, "emoji": RATING_EMOJIS[i]}
            for i, label in enumerate(RATING_LABELS)
        ],
        "selected_label": RATING_LABELS[view.rating - 1] if view.rating else None,
        "comment_enabled": view.comment_enabled,
        "comment": view.comment,
        "can_submit": view.phase is FeedbackPhase.RATING_SELECTED,
        "message": view.response_message or None,
    }


def render_search_state(state: SearchState) -> Dict[str, Any]:
    return {
        "query": state.raw_query,
        "suggestions": list(state.suggestions) if state.is_open else [],
        "did_you_mean": state.corrected_query if state.show_did_you_mean else None,
        "intent_badge": state.intent_badge,
        "is_loading": state.is_loading,
        "is_open": state.is_open,
    }


# ─────────────────────────────────────────────────────────────
# Envelope
# ─────────────────────────────────────────────────────────────
def build_view(snapshot: ConversationSnapshot, surface: Surface | str = Surface.PAGE, *,
               now: Optional[int] = None, clock: Optional[datetime] = None) -> Dict[str, Any]:
    """Render the whole chat panel for one surface."""
    surface = Surface(surface)
    now = now if now is not None else now_ms()

    blocks: List[Dict[str, Any]] = []
    if not snapshot.is_loading:
        products = list(snapshot.recommendations)[:_PRODUCT_LIMIT[surface]]
        if products:
            blocks.append({"type": "products", "items": [render_product_card(p) for p in products]})
        categories = list(snapshot.categories)[:_CATEGORY_LIMIT[surface]]
        if categories:
            blocks.append({"type": "categories", "items": [render_category_chip(c) for c in categories]})
        if snapshot.cart_preview is not None:
            blocks.append({"type": "cart", **render_cart_preview(snapshot.cart_preview)})
        if snapshot.order_status is not None:
            blocks.append({"type": "order", **render_order_card(snapshot.order_status)})

    view = {
        "surface": surface.value,
        "session_id": snapshot.session_id,
        "is_loading": snapshot.is_loading,
        "error": snapshot.error,
        "greeting": time_based_greeting(clock) if not snapshot.messages else None,
        "messages": [render_message(m, now) for m in snapshot.messages],
        "suggestions": [] if snapshot.is_loading else list(snapshot.suggestions),
        "blocks": blocks,
        "escalation": render_escalation_card(snapshot.escalation),
        "survey": render_survey_card(snapshot.survey) if snapshot.survey is not None else None,
        "sentiment": snapshot.last_sentiment,
    }
    return _to_json_safe(view)
