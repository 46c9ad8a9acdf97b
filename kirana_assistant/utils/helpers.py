"""
Utility helpers
"""

from __future__ import annotations

import random
import string
import time
from datetime import datetime
from typing import Optional
from urllib.parse import quote

_SESSION_ALPHABET = string.ascii_lowercase + string.digits


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_session_id() -> str:
    """`session_<epoch-millis>_<9 base36 chars>`."""
    suffix = "".join(random.choices(_SESSION_ALPHABET, k=9))
    return f"session_{now_ms()}_{suffix}"


def validate_message(message: str, max_length: int = 1000) -> bool:
    trimmed = (message or "").strip()
    return 0 < len(trimmed) <= max_length


def format_price(price: float) -> str:
    return f"Rs {price:,.0f}" if float(price).is_integer() else f"Rs {price:,.2f}"


def calculate_discount(mrp: Optional[float], price: float) -> int:
    if not mrp or mrp <= price:
        return 0
    return round((mrp - price) / mrp * 100)


def format_timestamp(timestamp_ms: int, now: Optional[int] = None) -> str:
    diff = (now if now is not None else now_ms()) - timestamp_ms
    minutes = diff // 60000
    hours = diff // 3600000
    days = diff // 86400000
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    return f"{days}d ago"


def time_based_greeting(at: Optional[datetime] = None) -> str:
    hour = (at or datetime.now()).hour
    if hour < 12:
        return "शुभ प्रभात (Good Morning)"
    if hour < 17:
        return "नमस्कार (Good Afternoon)"
    return "शुभ साँझ (Good Evening)"


def search_path(query: str) -> str:
    return f"/search?q={quote(query.strip(), safe='')}"

