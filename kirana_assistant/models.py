"""
Dataclass models for the assistant: conversation turns, the structured payloads
a reply can carry, and the immutable snapshots published to UI surfaces.

Wire payloads use the storefront's camelCase names; `from_dict` accepts them,
`to_dict` emits snake_case for views.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple

from .enums import (
    DispatchState, EscalationAction, EscalationPhase, FeedbackPhase, Role,
    TicketPriority, TicketStatus,
)


def _num(value: Any, default: float = 0) -> float:
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None and str(v).strip()]


@dataclass(frozen=True)
class Message:
    role: Role
    content: str
    timestamp: int  # epoch millis

    def to_wire(self) -> Dict[str, Any]:
        return {"role": self.role.value, "content": self.content, "timestamp": self.timestamp}

    def to_dict(self) -> Dict[str, Any]:
        return self.to_wire()


@dataclass(frozen=True)
class Product:
    id: str
    title: str
    price: float
    mrp: Optional[float] = None
    stock: int = 0
    slug: str = ""
    category_name: Optional[str] = None
    avg_rating: float = 0.0
    is_available: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Product":
        """Nested `metadata` (vector-search hits) wins over top-level fields."""
        meta = _dict(data.get("metadata"))
        category = _dict(data.get("category"))
        stock = int(_num(meta.get("stock") or data.get("stock"), 0))
        mrp = meta.get("mrp") or data.get("mrp")
        return cls(
            id=str(meta.get("productId") or data.get("id") or ""),
            title=str(meta.get("title") or data.get("title") or meta.get("name") or ""),
            price=_num(meta.get("price") or data.get("price")),
            mrp=_num(mrp) if mrp is not None else None,
            stock=stock,
            slug=str(data.get("slug") or ""),
            category_name=meta.get("categoryName") or category.get("name"),
            avg_rating=_num(meta.get("avgRating") or data.get("avgRating"), 0.0),
            is_available=bool(meta.get("isAvailable", stock > 0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    image: Optional[str] = None
    slug: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Category":
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            image=data.get("image"),
            slug=str(data.get("slug") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CartItem:
    id: str
    name: str
    quantity: int
    price: float
    image: Optional[str] = None

    @property
    def line_total(self) -> float:
        return self.price * self.quantity


@dataclass(frozen=True)
class CartPreview:
    items: Tuple[CartItem, ...]
    item_count: int
    total: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartPreview":
        items = tuple(
            CartItem(
                id=str(i.get("id") or ""),
                name=str(i.get("name") or ""),
                quantity=int(_num(i.get("quantity"), 1)),
                price=_num(i.get("price")),
                image=i.get("image"),
            )
            for i in (data.get("items") or [])
            if isinstance(i, dict)
        )
        return cls(
            items=items,
            item_count=int(_num(data.get("itemCount"), len(items))),
            total=_num(data.get("total"), sum(i.line_total for i in items)),
        )


@dataclass(frozen=True)
class OrderItem:
    id: str
    name: str
    quantity: int
    price: float
    image: Optional[str] = None


@dataclass(frozen=True)
class OrderStatus:
    id: str
    status: str
    status_message: str = ""
    payment_status: str = ""
    payment_method: str = ""
    total: float = 0.0
    item_count: int = 0
    items: Tuple[OrderItem, ...] = ()
    estimated_delivery: Optional[str] = None
    can_cancel: bool = False
    city: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderStatus":
        items = tuple(
            OrderItem(
                id=str(i.get("id") or ""),
                name=str(i.get("name") or ""),
                quantity=int(_num(i.get("quantity"), 1)),
                price=_num(i.get("price")),
                image=i.get("image"),
            )
            for i in (data.get("items") or [])
            if isinstance(i, dict)
        )
        address = _dict(data.get("shippingAddress"))
        return cls(
            id=str(data.get("id") or ""),
            status=str(data.get("status") or "pending").lower(),
            status_message=str(data.get("statusMessage") or ""),
            payment_status=str(data.get("paymentStatus") or ""),
            payment_method=str(data.get("paymentMethod") or ""),
            total=_num(data.get("total")),
            item_count=int(_num(data.get("itemCount"), len(items))),
            items=items,
            estimated_delivery=data.get("estimatedDelivery"),
            can_cancel=bool(data.get("canCancel", False)),
            city=address.get("city"),
        )


@dataclass(frozen=True)
class EscalationTicket:
    id: Optional[int]
    priority: TicketPriority = TicketPriority.MEDIUM
    status: str = TicketStatus.PENDING.value
    reason: Optional[str] = None
    assigned_to: Optional[int] = None

    @property
    def ticket_status(self) -> Optional[TicketStatus]:
        try:
            return TicketStatus(self.status)
        except ValueError:
            return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EscalationTicket":
        raw_id = data.get("id")
        try:
            priority = TicketPriority(str(data.get("priority") or "medium").lower())
        except ValueError:
            priority = TicketPriority.MEDIUM
        return cls(
            id=int(raw_id) if raw_id is not None else None,
            priority=priority,
            status=str(data.get("status") or "").lower(),
            reason=data.get("reason"),
            assigned_to=data.get("assignedTo"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "priority": self.priority.value,
            "status": self.status,
            "reason": self.reason,
            "assigned_to": self.assigned_to,
        }


def _sentiment_label(raw: Any) -> Optional[str]:
    if isinstance(raw, dict):
        return raw.get("sentiment")
    return raw if isinstance(raw, str) else None


@dataclass(frozen=True)
class ChatReply:
    """One assistant round-trip result: text plus optional structured payloads."""
    response: str
    suggestions: Tuple[str, ...] = ()
    recommendations: Tuple[Product, ...] = ()
    categories: Tuple[Category, ...] = ()
    cart_preview: Optional[CartPreview] = None
    order_status: Optional[OrderStatus] = None
    session_id: Optional[str] = None
    escalation_ticket: Optional[EscalationTicket] = None
    sentiment: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ChatReply":
        ticket = data.get("escalationTicket") or data.get("escalation")
        cart = data.get("cartPreview")
        order = data.get("orderStatus")
        return cls(
            response=str(data.get("response") or ""),
            suggestions=tuple(_str_list(data.get("suggestions"))),
            recommendations=tuple(
                Product.from_dict(p) for p in (data.get("recommendations") or []) if isinstance(p, dict)
            ),
            categories=tuple(
                Category.from_dict(c) for c in (data.get("categories") or []) if isinstance(c, dict)
            ),
            cart_preview=CartPreview.from_dict(cart) if isinstance(cart, dict) else None,
            order_status=OrderStatus.from_dict(order) if isinstance(order, dict) else None,
            session_id=data.get("sessionId") or None,
            escalation_ticket=EscalationTicket.from_dict(ticket) if isinstance(ticket, dict) else None,
            sentiment=_sentiment_label(data.get("sentiment")),
        )


@dataclass(frozen=True)
class CustomerServiceReply:
    response: str
    is_rule_based: bool
    intent: str = ""
    sentiment: Optional[str] = None
    should_escalate: bool = False
    escalation_ticket: Optional[EscalationTicket] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "CustomerServiceReply":
        ticket = data.get("escalationTicket")
        return cls(
            response=str(data.get("response") or ""),
            is_rule_based=bool(data.get("isRuleBased")),
            intent=str(data.get("intent") or ""),
            sentiment=_sentiment_label(data.get("sentiment")),
            should_escalate=bool(data.get("shouldEscalate")),
            escalation_ticket=EscalationTicket.from_dict(ticket) if isinstance(ticket, dict) else None,
        )


@dataclass(frozen=True)
class SuggestionResult:
    corrected_query: str = ""
    suggestions: Tuple[str, ...] = ()
    intent: str = ""

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "SuggestionResult":
        return cls(
            corrected_query=str(data.get("correctedQuery") or ""),
            suggestions=tuple(_str_list(data.get("suggestions"))),
            intent=str(data.get("intent") or ""),
        )


# ─────────────────────────────────────────────────────────────
# Published state (immutable views)
# ─────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class SearchState:
    raw_query: str = ""
    debounced_query: str = ""
    corrected_query: str = ""
    suggestions: Tuple[str, ...] = ()
    intent: str = ""
    is_loading: bool = False
    is_open: bool = False

    @property
    def show_did_you_mean(self) -> bool:
        return bool(self.corrected_query) and self.corrected_query.lower() != self.raw_query.lower()

    @property
    def intent_badge(self) -> Optional[str]:
        if not self.intent or self.intent == "general_search":
            return None
        return self.intent.replace("_", " ")

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["suggestions"] = list(self.suggestions)
        data["show_did_you_mean"] = self.show_did_you_mean
        data["intent_badge"] = self.intent_badge
        return data


@dataclass(frozen=True)
class SearchNavigation:
    query: str
    path: str


@dataclass(frozen=True)
class EscalationView:
    phase: EscalationPhase = EscalationPhase.IDLE
    ticket: Optional[EscalationTicket] = None
    agent_viewing: bool = False
    actions: Tuple[EscalationAction, ...] = ()
    retry_available: bool = False

    @property
    def is_active(self) -> bool:
        return self.phase is not EscalationPhase.IDLE


@dataclass(frozen=True)
class SurveyView:
    phase: FeedbackPhase = FeedbackPhase.IDLE
    rating: int = 0
    comment: str = ""
    comment_enabled: bool = False
    response_message: str = ""


@dataclass(frozen=True)
class ConversationSnapshot:
    session_id: str
    messages: Tuple[Message, ...] = ()
    dispatch_state: DispatchState = DispatchState.IDLE
    suggestions: Tuple[str, ...] = ()
    recommendations: Tuple[Product, ...] = ()
    categories: Tuple[Category, ...] = ()
    cart_preview: Optional[CartPreview] = None
    order_status: Optional[OrderStatus] = None
    error: Optional[str] = None
    last_sentiment: Optional[str] = None
    escalation: EscalationView = field(default_factory=EscalationView)
    survey: Optional[SurveyView] = None

    @property
    def is_loading(self) -> bool:
        return self.dispatch_state is DispatchState.SENDING
