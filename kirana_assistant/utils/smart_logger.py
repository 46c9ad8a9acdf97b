# kirana_assistant/utils/smart_logger.py
"""
Smart, modular logging for the assistant runtime.
Provides clean, contextual flow logs with configurable verbosity levels.
"""

import logging
import os
import sys
from enum import Enum
from typing import Any, Dict, Optional


class LogLevel(Enum):
    MINIMAL = 1      # Only critical flow events
    STANDARD = 2     # Key decisions and state changes
    DETAILED = 3     # Include payload sizes and timing
    DEBUG = 4        # Everything including API calls


def _short(session_id: Optional[str]) -> str:
    return session_id[-9:] if session_id else "none"


class SmartLogger:
    def __init__(self, name: str, level: LogLevel = LogLevel.STANDARD):
        self.logger = logging.getLogger(name)
        self.level = level

    def set_level(self, level: LogLevel):
        """Change logging verbosity at runtime"""
        self.level = level

    def _should_log(self, required_level: LogLevel) -> bool:
        return self.level.value >= required_level.value

    def _clean_log(self, level: str, emoji: str, category: str, message: str, **kwargs):
        details = " | ".join([f"{k}={v}" for k, v in kwargs.items() if v is not None])
        if details:
            full_message = f"{emoji} {category} | {message} | {details}"
        else:
            full_message = f"{emoji} {category} | {message}"

        getattr(self.logger, level.lower())(full_message)

    # ═══════════════════════════════════════════════════════════
    # HIGH-LEVEL FLOW EVENTS
    # ═══════════════════════════════════════════════════════════

    def dispatch_start(self, session_id: str, content: str, history_len: int):
        if not self._should_log(LogLevel.MINIMAL):
            return
        preview = content[:50] + "..." if len(content) > 50 else content
        self._clean_log("info", "🚀", "DISPATCH_START", f"'{preview}'",
                        session=_short(session_id), history=history_len)

    def dispatch_settled(self, session_id: str, outcome: str, elapsed_time: float = None, payloads: str = None):
        if not self._should_log(LogLevel.MINIMAL):
            return
        extras = {"session": _short(session_id), "payloads": payloads}
        if elapsed_time is not None:
            extras["time"] = f"{elapsed_time:.3f}s"
        self._clean_log("info", "✅" if outcome == "ok" else "⚠️", "DISPATCH_SETTLED", outcome, **extras)

    def flow_decision(self, session_id: str, decision: str, reason: str = None):
        if not self._should_log(LogLevel.MINIMAL):
            return
        self._clean_log("info", "🎯", "FLOW", decision, session=_short(session_id), reason=reason)

    def session_rotated(self, old_id: Optional[str], new_id: str, reason: str):
        if not self._should_log(LogLevel.STANDARD):
            return
        self._clean_log("info", "🔄", "SESSION", "rotated",
                        old=_short(old_id), new=_short(new_id), reason=reason)

    def suggestions_applied(self, query: str, count: int, intent: str = None, corrected: str = None):
        if not self._should_log(LogLevel.STANDARD):
            return
        self._clean_log("info", "🔍", "SUGGESTIONS", f"'{query}'", count=count, intent=intent or None,
                        corrected=corrected or None)

    def stale_discarded(self, query: str, current: str):
        if not self._should_log(LogLevel.DETAILED):
            return
        self._clean_log("debug", "🗑️", "STALE_RESPONSE", f"'{query}'", current=f"'{current}'")

    def escalation_transition(self, ticket_id: Any, from_phase: str, to_phase: str, reason: str = None):
        if not self._should_log(LogLevel.MINIMAL):
            return
        self._clean_log("info", "🎫", "ESCALATION", f"{from_phase}→{to_phase}", ticket=ticket_id, reason=reason)

    def feedback_event(self, session_id: str, event: str, rating: int = None):
        if not self._should_log(LogLevel.STANDARD):
            return
        self._clean_log("info", "⭐", "FEEDBACK", event, session=_short(session_id), rating=rating)

    # ═══════════════════════════════════════════════════════════
    # DETAILED / DEBUG EVENTS
    # ═══════════════════════════════════════════════════════════

    def api_call(self, service: str, operation: str, status: str = "started", duration_ms: float = None):
        if not self._should_log(LogLevel.DEBUG):
            return
        emoji = "📡" if status == "started" else "✅" if status == "success" else "❌"
        self._clean_log("debug", emoji, "API", f"{service}.{operation}", status=status,
                        duration_ms=f"{duration_ms:.1f}" if duration_ms is not None else None)

    def error_occurred(self, session_id: Optional[str], error_type: str, operation: str, error_msg: str = None):
        """Errors are always logged regardless of level"""
        self._clean_log("error", "❌", "ERROR", f"{error_type} in {operation}",
                        session=_short(session_id), msg=error_msg)


# ═══════════════════════════════════════════════════════════════════════════════
# GLOBAL LOGGER INSTANCES AND CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════

_loggers: Dict[str, SmartLogger] = {}


def get_smart_logger(module_name: str, level: LogLevel = None) -> SmartLogger:
    """Get or create a smart logger for a module"""
    if module_name not in _loggers:
        default_level = getattr(LogLevel, os.getenv('BOT_LOG_LEVEL', 'STANDARD').upper(), LogLevel.STANDARD)
        _loggers[module_name] = SmartLogger(module_name, level or default_level)

    if level:
        _loggers[module_name].set_level(level)

    return _loggers[module_name]


def configure_logging(level: LogLevel = LogLevel.STANDARD,
                      format_string: str = None,
                      silence_external: bool = True):
    """Configure the entire logging system"""
    if not format_string:
        format_string = '%(asctime)s | %(message)s'

    logging.basicConfig(
        level=logging.DEBUG if level == LogLevel.DEBUG else logging.INFO,
        format=format_string,
        datefmt='%H:%M:%S',
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    if silence_external:
        logging.getLogger('aiohttp').setLevel(logging.WARNING)
        logging.getLogger('asyncio').setLevel(logging.WARNING)
        logging.getLogger('redis').setLevel(logging.WARNING)
        logging.getLogger('werkzeug').setLevel(logging.WARNING)
        logging.getLogger('urllib3').setLevel(logging.WARNING)

    for smart_logger in _loggers.values():
        smart_logger.set_level(level)


def level_from_env(var: str = "BOT_LOG_LEVEL") -> LogLevel:
    """Read the verbosity from the environment, falling back to STANDARD on typos."""
    raw = os.getenv(var, "STANDARD").strip().upper()
    if raw in LogLevel.__members__:
        return LogLevel[raw]
    print(f"Warning: unknown {var}={raw!r}; using STANDARD (choose from {', '.join(LogLevel.__members__)})")
    return LogLevel.STANDARD


def python_level(level: LogLevel) -> int:
    return logging.DEBUG if level in (LogLevel.DETAILED, LogLevel.DEBUG) else logging.INFO


_process_configured = False


def init_process_logging() -> LogLevel:
    """Configure root logging once per process; later calls only report the level."""
    global _process_configured
    level = level_from_env()
    if not _process_configured and not logging.getLogger().handlers:
        configure_logging(level=level,
                          format_string="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    _process_configured = True
    return level
