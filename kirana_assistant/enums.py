# kirana_assistant/enums.py
from enum import Enum


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class DispatchState(str, Enum):
    """Conversation dispatch: Idle -> Sending -> Idle."""
    IDLE = "idle"
    SENDING = "sending"


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    RESOLVED = "resolved"


class EscalationPhase(str, Enum):
    IDLE = "idle"                  # AI-only mode
    CONNECTING = "connecting"      # escalation triggered, no ticket id yet
    PENDING = "pending"            # waiting for a human
    ASSIGNED = "assigned"          # agent connected
    RESOLVED = "resolved"          # terminal


class EscalationAction(str, Enum):
    CANCEL = "cancel"
    ASSIGN_TO_ME = "assign_to_me"


class FeedbackPhase(str, Enum):
    IDLE = "idle"
    RATING_SELECTED = "rating_selected"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    DISMISSED = "dismissed"


class Surface(str, Enum):
    """The two mount points of the chat UI."""
    WIDGET = "widget"
    PAGE = "page"
