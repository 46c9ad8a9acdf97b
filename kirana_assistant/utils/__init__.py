# kirana_assistant/utils/__init__.py
"""
Expose helpers at package-level for convenience:

    from kirana_assistant.utils import generate_session_id
"""

from .helpers import (  # noqa: F401
    calculate_discount,
    format_price,
    format_timestamp,
    generate_session_id,
    now_ms,
    search_path,
    time_based_greeting,
    validate_message,
)

__all__ = [
    "calculate_discount",
    "format_price",
    "format_timestamp",
    "generate_session_id",
    "now_ms",
    "search_path",
    "time_based_greeting",
    "validate_message",
]
