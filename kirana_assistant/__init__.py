"""
Kirana Assistant Application Factory
====================================

HTTP surface over the assistant runtime:
- one shared ConversationStore for the floating widget and the full-page chat
- smart search bar (debounced suggestions)
- human handoff + satisfaction survey
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from flask import Flask
from flask_cors import CORS

from .config import get_config
from .runtime import AssistantRuntime, get_runtime

log = logging.getLogger(__name__)


def create_app(config_name: Optional[str] = None, runtime: Optional[AssistantRuntime] = None) -> Flask:
    """
    App factory.

    INITIALIZATION ORDER:
    1. Config
    2. Assistant runtime (event loop thread + shared store)
    3. Register routes
    4. Error handlers
    """
    cfg = get_config(config_name)
    app = Flask(__name__)
    app.config.from_object(cfg)

    cors_origins_env = (cfg.CORS_ALLOW_ORIGINS or "").strip()
    if cors_origins_env:
        allowed_origins = [o.strip() for o in cors_origins_env.split(",") if o.strip()]
    else:
        allowed_origins = ["*"]

    CORS(
        app,
        resources={r"/rs/*": {
            "origins": allowed_origins,
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
        }},
        supports_credentials=False,
    )

    # ────────────────────────────────────────────────────────
    # STEP 1: Assistant runtime
    # ────────────────────────────────────────────────────────
    try:
        rt = runtime.start() if runtime is not None else get_runtime()
        app.extensions["runtime"] = rt
        log.info(f"INIT_RUNTIME_SUCCESS | session_storage={cfg.SESSION_STORAGE}")
    except Exception as e:
        log.error(f"INIT_RUNTIME_ERROR | error={e}", exc_info=True)
        raise RuntimeError(f"Failed to initialize assistant runtime: {e}")

    # ────────────────────────────────────────────────────────
    # STEP 2: Register Routes
    # ────────────────────────────────────────────────────────
    from .routes import register_routes
    register_routes(app)

    # ────────────────────────────────────────────────────────
    # STEP 3: Error Handlers
    # ────────────────────────────────────────────────────────
    @app.errorhandler(500)
    def handle_internal_error(error):
        log.error(f"INTERNAL_ERROR | error={error}", exc_info=True)
        return {
            "error": "Internal server error",
            "timestamp": datetime.now().isoformat(),
            "details": str(error) if app.debug else "Contact support",
        }, 500

    @app.errorhandler(404)
    def handle_not_found(error):
        return {
            "error": "Endpoint not found",
            "timestamp": datetime.now().isoformat(),
        }, 404

    log.info(f"APP_INIT_COMPLETE | blueprints={list(app.blueprints.keys())}")
    return app
