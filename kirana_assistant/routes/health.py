# kirana_assistant/routes/health.py
"""
Simple readiness/liveness probe.

Returns HTTP 200 if:
• the assistant loop is running
• tab storage is reachable

Otherwise 500 (so the orchestrator can restart the pod).
"""

from __future__ import annotations

import logging
from typing import Any, Tuple

from flask import Blueprint, jsonify

from . import get_rt

log = logging.getLogger(__name__)
bp = Blueprint("health", __name__)


@bp.get("/health")
def health_check() -> Tuple[Any, int]:
    rt = get_rt()
    storage_ok = rt.storage.ping()
    body = {
        "service": "kirana-assistant",
        "runtime": "running" if rt.is_running else "stopped",
        "storage": "connected" if storage_ok else "disconnected",
    }
    if rt.is_running and storage_ok:
        return jsonify({"status": "healthy", **body}), 200
    log.warning(f"HEALTH_CHECK_FAILED | runtime={body['runtime']} | storage={body['storage']}")
    return jsonify({"status": "unhealthy", **body}), 500
