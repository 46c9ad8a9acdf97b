#!/usr/bin/env python3
"""
Kirana Assistant entry point.

`python run.py` starts the Flask dev server; `gunicorn run:app` imports the
module and gets a ready app. Either way there is one assistant runtime (and
so one conversation store) per process.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Dict

from dotenv import load_dotenv
from flask import Flask, request

# .env must be loaded before the package reads its config
load_dotenv()

from kirana_assistant import create_app
from kirana_assistant.config import get_config
from kirana_assistant.utils.smart_logger import LogLevel, init_process_logging, python_level

log = logging.getLogger("run")

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def missing_settings() -> Dict[str, str]:
    """Env vars the runtime cannot do without, mapped to what needs them."""
    needed = {"ASSISTANT_API_URL": "storefront assistant backend"}
    if os.getenv("SESSION_STORAGE", "redis").lower() == "redis":
        needed["REDIS_HOST"] = "tab-scoped session storage"
    return {name: why for name, why in needed.items() if not os.getenv(name)}


def check_settings(fail_hard: bool) -> None:
    missing = missing_settings()
    if not missing:
        return
    summary = ", ".join(f"{name} ({why})" for name, why in missing.items())
    if fail_hard:
        print(f"Error: missing environment variables: {summary}")
        sys.exit(1)
    # under gunicorn keep serving so /rs/health can report the problem
    log.warning(f"ENV_INCOMPLETE | missing={summary}")


def build_app(fail_hard: bool = False) -> Flask:
    level = init_process_logging()
    check_settings(fail_hard)

    app = create_app()
    app.logger.handlers.clear()
    app.logger.propagate = True
    app.logger.setLevel(python_level(level))

    @app.before_request
    def _trace_request():
        app.logger.info("→ %s %s", request.method, request.path)

    return app


def _debug_enabled() -> bool:
    flag = os.getenv("FLASK_DEBUG", "").lower()
    if flag in _TRUTHY:
        return True
    if flag in _FALSY:
        return False
    return bool(getattr(get_config(), "DEBUG", False))


def _banner(host: str, port: int, debug: bool, level: LogLevel) -> None:
    base = f"http://{host}:{port}"
    rows = [
        ("Server", base),
        ("Health", f"{base}/rs/health"),
        ("Chat", f"{base}/rs/chat/view?surface=page"),
        ("Backend", get_config().ASSISTANT_API_URL),
        ("Env", os.getenv("APP_ENV", "development")),
        ("Debug", debug),
        ("Log level", level.name),
        ("PID", os.getpid()),
    ]
    print("🛒 Kirana Assistant")
    print("-" * 48)
    for label, value in rows:
        print(f"{label + ':':<11} {value}")
    print("-" * 48)


def main() -> None:
    app = build_app(fail_hard=True)
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8080"))
    debug = _debug_enabled()
    _banner(host, port, debug, init_process_logging())

    try:
        # the reloader would fork a second runtime loop
        app.run(host=host, port=port, debug=debug, use_reloader=False, threaded=True)
    except KeyboardInterrupt:
        print("\nStopping...")
    finally:
        app.extensions["runtime"].shutdown()


if __name__ == "__main__":
    main()
else:
    app = build_app()
