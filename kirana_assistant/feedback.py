"""
End-of-session satisfaction capture.

IDLE (rating=0) -> RATING_SELECTED -> SUBMITTING -> SUBMITTED -> DISMISSED

Submission never fails from the user's point of view: a backend error still
lands in SUBMITTED with a local thank-you, and SUBMITTED always dismisses
itself after a fixed delay.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from .backend_client import AssistantBackendClient, BackendError
from .enums import FeedbackPhase
from .models import SurveyView
from .utils.smart_logger import get_smart_logger

log = logging.getLogger(__name__)
smart_log = get_smart_logger("feedback")

FALLBACK_THANKS = "Thank you for your feedback!"
RATING_LABELS = ("Poor", "Fair", "Good", "Great", "Excellent")
RATING_EMOJIS = ("😞", "😐", "🙂", "😊", "🤩")


def comment_enabled_for(rating: int) -> bool:
    """Ask for a comment on low scores only."""
    return 1 <= rating <= 3


async def submit_feedback(client: AssistantBackendClient, session_id: str, rating: int,
                          comment: Optional[str] = None) -> str:
    try:
        message = await client.submit_feedback(session_id, rating, comment)
    except BackendError as e:
        log.warning(f"FEEDBACK_SUBMIT_FAILED | rating={rating} | error={e}")
        return FALLBACK_THANKS
    return message or FALLBACK_THANKS


class SatisfactionSurvey:
    def __init__(self, client: AssistantBackendClient, session_id: str, *,
                 dismiss_delay: float = 3.0,
                 on_change: Optional[Callable[[SurveyView], None]] = None,
                 on_dismiss: Optional[Callable[[], None]] = None):
        self.client = client
        self.session_id = session_id
        self.dismiss_delay = dismiss_delay
        self.on_change = on_change
        self.on_dismiss = on_dismiss
        self._phase = FeedbackPhase.IDLE
        self._rating = 0
        self._comment = ""
        self._response_message = ""
        self._dismiss_timer: Optional[asyncio.TimerHandle] = None

    @property
    def phase(self) -> FeedbackPhase:
        return self._phase

    @property
    def rating(self) -> int:
        return self._rating

    @property
    def comment_enabled(self) -> bool:
        return comment_enabled_for(self._rating)

    def view(self) -> SurveyView:
        return SurveyView(
            phase=self._phase,
            rating=self._rating,
            comment=self._comment if self.comment_enabled else "",
            comment_enabled=self.comment_enabled,
            response_message=self._response_message,
        )

    def select_rating(self, rating: int) -> None:
        if not isinstance(rating, int) or isinstance(rating, bool) or not 1 <= rating <= 5:
            raise ValueError(f"rating must be an integer from 1 to 5, got {rating!r}")
        if self._phase not in (FeedbackPhase.IDLE, FeedbackPhase.RATING_SELECTED):
            return
        self._rating = rating
        self._phase = FeedbackPhase.RATING_SELECTED
        self._emit()

    def set_comment(self, comment: str) -> None:
        if self._phase is not FeedbackPhase.RATING_SELECTED:
            return
        self._comment = comment or ""
        self._emit()

    async def submit(self) -> Optional[str]:
        if self._phase is not FeedbackPhase.RATING_SELECTED:
            return None
        self._phase = FeedbackPhase.SUBMITTING
        self._emit()

        comment = self._comment.strip() if self.comment_enabled else ""
        message = await submit_feedback(self.client, self.session_id, self._rating, comment or None)
        if self._phase is not FeedbackPhase.SUBMITTING:
            # dismissed while the request was in flight
            return message

        self._response_message = message
        self._phase = FeedbackPhase.SUBMITTED
        smart_log.feedback_event(self.session_id, "submitted", rating=self._rating)
        self._emit()
        self._dismiss_timer = asyncio.get_running_loop().call_later(self.dismiss_delay, self.dismiss)
        return message

    def dismiss(self) -> None:
        if self._phase is FeedbackPhase.DISMISSED:
            return
        self.close()
        self._phase = FeedbackPhase.DISMISSED
        smart_log.feedback_event(self.session_id, "dismissed", rating=self._rating or None)
        self._emit()
        if self.on_dismiss is not None:
            self.on_dismiss()

    def close(self) -> None:
        if self._dismiss_timer is not None:
            self._dismiss_timer.cancel()
            self._dismiss_timer = None

    def _emit(self) -> None:
        if self.on_change is not None:
            self.on_change(self.view())
