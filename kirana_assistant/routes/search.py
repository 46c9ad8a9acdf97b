# kirana_assistant/routes/search.py
"""
Smart search bar endpoints.

`/search/input` is a keystroke: it returns immediately with the live query;
suggestions show up in `/search/state` once the debounce settles.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from flask import Blueprint, jsonify, request

from ..models import SearchNavigation
from ..renderers import render_search_state
from . import get_rt

log = logging.getLogger(__name__)
bp = Blueprint("search", __name__)


def _state() -> Dict[str, Any]:
    rt = get_rt()
    return render_search_state(rt.invoke(lambda: rt.search.state))


def _navigation(nav: Optional[SearchNavigation]) -> Tuple[Any, int]:
    if nav is None:
        return jsonify({"error": "query is empty", "search": _state()}), 400
    return jsonify({"navigate": {"query": nav.query, "path": nav.path}, "search": _state()}), 200


@bp.post("/search/input")
def search_input() -> Tuple[Any, int]:
    data = request.get_json(silent=True) or {}
    rt = get_rt()
    rt.invoke(rt.search.set_query, str(data.get("query") or ""))
    return jsonify(_state()), 200


@bp.get("/search/state")
def search_state() -> Tuple[Any, int]:
    return jsonify(_state()), 200


@bp.post("/search/focus")
def search_focus() -> Tuple[Any, int]:
    rt = get_rt()
    rt.invoke(rt.search.focus)
    return jsonify(_state()), 200


@bp.post("/search/close")
def search_close() -> Tuple[Any, int]:
    rt = get_rt()
    rt.invoke(rt.search.close_dropdown)
    return jsonify(_state()), 200


@bp.post("/search/clear")
def search_clear() -> Tuple[Any, int]:
    rt = get_rt()
    rt.invoke(rt.search.clear)
    return jsonify(_state()), 200


@bp.post("/search/submit")
def search_submit() -> Tuple[Any, int]:
    rt = get_rt()
    return _navigation(rt.invoke(rt.search.submit))


@bp.post("/search/select")
def search_select() -> Tuple[Any, int]:
    data = request.get_json(silent=True) or {}
    rt = get_rt()
    return _navigation(rt.invoke(rt.search.select_suggestion, str(data.get("suggestion") or "")))


@bp.post("/search/correction")
def search_correction() -> Tuple[Any, int]:
    rt = get_rt()
    return _navigation(rt.invoke(rt.search.accept_correction))
