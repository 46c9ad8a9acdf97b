# kirana_assistant/routes/__init__.py
"""
Blueprint auto-registration.

Put any flask.Blueprint in `kirana_assistant/routes/<name>.py` with the
variable name **bp** and it will be discovered & registered under `/rs` when
`register_routes(app)` is called.

The app factory stores the shared `AssistantRuntime` in
`app.extensions["runtime"]`; route modules reach it through `get_rt()`.
"""

from __future__ import annotations

import importlib
import logging
import pkgutil
from types import ModuleType

from flask import Blueprint, Flask, current_app

from ..runtime import AssistantRuntime

log = logging.getLogger(__name__)

URL_PREFIX = "/rs"


def get_rt() -> AssistantRuntime:
    return current_app.extensions["runtime"]


def register_routes(app: Flask) -> None:
    for _, name, _ in pkgutil.iter_modules(__path__):
        module: ModuleType = importlib.import_module(f"{__name__}.{name}")
        bp: Blueprint | None = getattr(module, "bp", None)
        if isinstance(bp, Blueprint):
            app.register_blueprint(bp, url_prefix=URL_PREFIX)
            log.info(f"REGISTER_ROUTES_SUCCESS | blueprint={bp.name} | prefix={URL_PREFIX}")
