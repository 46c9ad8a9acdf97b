# kirana_assistant/routes/chat.py
"""
Chat endpoints for both UI surfaces (floating widget + full-page chat).

Every response carries the rendered view of the ONE shared store, so switching
surfaces never loses the conversation.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Tuple

from flask import Blueprint, jsonify, request

from ..conversation_store import ConversationStore
from ..enums import Surface
from ..renderers import build_view
from ..utils.helpers import validate_message
from . import get_rt

log = logging.getLogger(__name__)
bp = Blueprint("chat", __name__)


def _surface() -> str:
    raw = request.args.get("surface") or (request.get_json(silent=True) or {}).get("surface") or "page"
    return Surface(str(raw).lower()).value


def _view(surface: str) -> Dict[str, Any]:
    rt = get_rt()
    return build_view(rt.invoke(rt.store.snapshot), surface)


@bp.errorhandler(ValueError)
def handle_bad_request(error: ValueError) -> Tuple[Any, int]:
    return jsonify({"error": str(error)}), 400


async def _dispatch(store: ConversationStore, message: str) -> bool:
    # check + synchronous append happen in one loop step, so two surfaces can't both get in
    if store.is_loading:
        return False
    await store.send_message(message)
    return True


# ─────────────────────────────────────────────────────────────
# View
# ─────────────────────────────────────────────────────────────
@bp.get("/chat/view")
def chat_view() -> Tuple[Any, int]:
    return jsonify(_view(_surface())), 200


# ─────────────────────────────────────────────────────────────
# Dispatch
# ─────────────────────────────────────────────────────────────
@bp.post("/chat/message")
def chat_message() -> Tuple[Any, int]:
    data = request.get_json(silent=True) or {}
    surface = _surface()

    message = str(data.get("message") or "").strip()
    rt = get_rt()
    if not message:
        return jsonify({"error": "message is required"}), 400
    if not validate_message(message, rt.cfg.MAX_MESSAGE_LENGTH):
        return jsonify({"error": f"message must be at most {rt.cfg.MAX_MESSAGE_LENGTH} characters"}), 400

    accepted = rt.run(_dispatch(rt.store, message))
    if not accepted:
        log.info(f"CHAT_MESSAGE_REJECTED | reason=dispatch_in_flight | surface={surface}")
        return jsonify({"error": "A message is already being sent", "view": _view(surface)}), 409
    return jsonify(_view(surface)), 200


@bp.post("/chat/clear")
def chat_clear() -> Tuple[Any, int]:
    rt = get_rt()
    if not rt.invoke(rt.store.clear_chat):
        return jsonify({"error": "Cannot clear while a message is being sent"}), 409
    return jsonify(_view(_surface())), 200


# ─────────────────────────────────────────────────────────────
# Catalogue helpers
# ─────────────────────────────────────────────────────────────
@bp.post("/chat/trending")
def chat_trending() -> Tuple[Any, int]:
    data = request.get_json(silent=True) or {}
    try:
        limit = int(data.get("limit", 5))
    except (TypeError, ValueError):
        return jsonify({"error": "limit must be an integer"}), 400
    rt = get_rt()
    rt.run(rt.store.load_trending(limit))
    return jsonify(_view(_surface())), 200


@bp.post("/chat/recommendations")
def chat_recommendations() -> Tuple[Any, int]:
    rt = get_rt()
    rt.run(rt.store.load_recommendations())
    return jsonify(_view(_surface())), 200


@bp.get("/chat/orders/<int:order_id>")
def chat_order(order_id: int) -> Tuple[Any, int]:
    rt = get_rt()
    order = rt.run(rt.store.lookup_order(order_id))
    view = _view(_surface())
    if order is None:
        return jsonify({"error": view["error"], "view": view}), 404
    return jsonify(view), 200
