# kirana_assistant/routes/support.py
"""
Human handoff + satisfaction survey endpoints.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

from flask import Blueprint, jsonify, request

from ..conversation_store import ConversationStore
from ..models import EscalationTicket
from ..renderers import build_view
from . import get_rt

log = logging.getLogger(__name__)
bp = Blueprint("support", __name__)


class NoSurveyOpen(LookupError):
    pass


def _view() -> Any:
    rt = get_rt()
    return build_view(rt.invoke(rt.store.snapshot), request.args.get("surface") or "page")


@bp.errorhandler(ValueError)
def handle_bad_request(error: ValueError) -> Tuple[Any, int]:
    return jsonify({"error": str(error)}), 400


@bp.errorhandler(NoSurveyOpen)
def handle_no_survey(error: NoSurveyOpen) -> Tuple[Any, int]:
    return jsonify({"error": "No survey is open"}), 409


# ─────────────────────────────────────────────────────────────
# Escalation
# ─────────────────────────────────────────────────────────────
async def _escalate(store: ConversationStore, reason: Optional[str]) -> str:
    if store.escalation.is_active:
        return "conflict"
    return "created" if await store.request_escalation(reason) else "failed"


@bp.post("/support/escalate")
def support_escalate() -> Tuple[Any, int]:
    data = request.get_json(silent=True) or {}
    reason = data.get("reason") or None
    rt = get_rt()
    outcome = rt.run(_escalate(rt.store, reason))
    status = {"created": 201, "conflict": 409, "failed": 502}[outcome]
    return jsonify({"outcome": outcome, "view": _view()}), status


@bp.post("/support/cancel")
def support_cancel() -> Tuple[Any, int]:
    rt = get_rt()
    if not rt.run(rt.store.cancel_escalation()):
        return jsonify({"error": "Nothing to cancel", "view": _view()}), 409
    return jsonify({"view": _view()}), 200


@bp.post("/support/assign")
def support_assign() -> Tuple[Any, int]:
    data = request.get_json(silent=True) or {}
    try:
        agent_id = int(data["agent_id"])
    except (KeyError, TypeError, ValueError):
        return jsonify({"error": "agent_id is required"}), 400
    rt = get_rt()
    if not rt.run(rt.store.assign_escalation(agent_id)):
        return jsonify({"error": "Ticket cannot be assigned", "view": _view()}), 409
    return jsonify({"view": _view()}), 200


@bp.post("/support/ticket")
def support_ticket() -> Tuple[Any, int]:
    """Realtime push of a ticket descriptor."""
    data = request.get_json(silent=True) or {}
    raw = data.get("ticket", data)
    if not isinstance(raw, dict) or raw.get("id") is None:
        return jsonify({"error": "ticket with an id is required"}), 400
    ticket = EscalationTicket.from_dict(raw)
    rt = get_rt()
    applied = rt.invoke(rt.store.push_ticket, ticket)
    return jsonify({"applied": applied, "view": _view()}), 200


# ─────────────────────────────────────────────────────────────
# Satisfaction survey
# ─────────────────────────────────────────────────────────────
def _survey_call(store: ConversationStore, op: str, *args: Any) -> Any:
    if store.survey is None:
        raise NoSurveyOpen()
    return getattr(store.survey, op)(*args)


async def _survey_submit(store: ConversationStore) -> Optional[str]:
    if store.survey is None:
        raise NoSurveyOpen()
    return await store.survey.submit()


@bp.post("/support/survey/open")
def survey_open() -> Tuple[Any, int]:
    rt = get_rt()
    rt.invoke(rt.store.open_survey)
    return jsonify(_view()), 200


@bp.post("/support/survey/rating")
def survey_rating() -> Tuple[Any, int]:
    data = request.get_json(silent=True) or {}
    rating = data.get("rating")
    rt = get_rt()
    rt.invoke(_survey_call, rt.store, "select_rating", rating)
    return jsonify(_view()), 200


@bp.post("/support/survey/comment")
def survey_comment() -> Tuple[Any, int]:
    data = request.get_json(silent=True) or {}
    rt = get_rt()
    rt.invoke(_survey_call, rt.store, "set_comment", str(data.get("comment") or ""))
    return jsonify(_view()), 200


@bp.post("/support/survey/submit")
def survey_submit() -> Tuple[Any, int]:
    rt = get_rt()
    message = rt.run(_survey_submit(rt.store))
    if message is None:
        return jsonify({"error": "Select a rating first", "view": _view()}), 409
    return jsonify({"message": message, "view": _view()}), 200


@bp.post("/support/survey/dismiss")
def survey_dismiss() -> Tuple[Any, int]:
    rt = get_rt()
    rt.invoke(rt.store.dismiss_survey)
    return jsonify(_view()), 200
