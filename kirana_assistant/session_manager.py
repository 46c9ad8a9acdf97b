"""
Session Identity Manager
========================

Owns the one active conversation session id for a tab. The id lives in
tab-scoped storage so it survives navigations within the tab:

- `RedisTabStorage`  keys `tab:{tab_id}:{name}` with a TTL standing in for the
                     tab lifetime
- `MemoryTabStorage` process-local, used in tests and `SESSION_STORAGE=memory`

Storage failures never surface: they are logged and the in-memory id is still
returned so the UI keeps working.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Dict, Optional

import redis
from redis.exceptions import RedisError

from .config import BaseConfig
from .utils.helpers import generate_session_id
from .utils.smart_logger import get_smart_logger

log = logging.getLogger(__name__)
smart_log = get_smart_logger("session_manager")

SESSION_KEY = "chatbot_session_id"


class TabStorage:
    """sessionStorage-like key/value store scoped to one tab."""

    def get(self, name: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, name: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, name: str) -> None:
        raise NotImplementedError

    def ping(self) -> bool:
        return True


class MemoryTabStorage(TabStorage):
    def __init__(self) -> None:
        self._items: Dict[str, str] = {}

    def get(self, name: str) -> Optional[str]:
        return self._items.get(name)

    def set(self, name: str, value: str) -> None:
        self._items[name] = value

    def delete(self, name: str) -> None:
        self._items.pop(name, None)


class RedisTabStorage(TabStorage):
    def __init__(self, tab_id: str, client: redis.Redis | None = None, *,
                 ttl_seconds: int = 86400, cfg: BaseConfig | None = None):
        if client is None:
            if cfg is None:
                raise ValueError("RedisTabStorage needs a client or a config")
            client = redis.Redis(
                host=cfg.REDIS_HOST,
                port=cfg.REDIS_PORT,
                db=cfg.REDIS_DB,
                decode_responses=cfg.REDIS_DECODE_RESPONSES,
                socket_timeout=5,
                socket_connect_timeout=5,
                retry_on_timeout=True,
            )
        self.redis: redis.Redis = client
        self.tab_id = tab_id
        self.ttl = timedelta(seconds=ttl_seconds)

    def _key(self, name: str) -> str:
        return f"tab:{self.tab_id}:{name}"

    def get(self, name: str) -> Optional[str]:
        value = self.redis.get(self._key(name))
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    def set(self, name: str, value: str) -> None:
        self.redis.setex(self._key(name), self.ttl, value)

    def delete(self, name: str) -> None:
        self.redis.delete(self._key(name))

    def ping(self) -> bool:
        try:
            return bool(self.redis.ping())
        except RedisError as e:
            log.warning(f"TAB_STORAGE_PING_FAILED | tab={self.tab_id} | error={e}")
            return False


def build_tab_storage(cfg: BaseConfig) -> TabStorage:
    if cfg.SESSION_STORAGE == "memory":
        log.info("TAB_STORAGE | backend=memory")
        return MemoryTabStorage()
    log.info(f"TAB_STORAGE | backend=redis | host={cfg.REDIS_HOST} | tab={cfg.TAB_ID}")
    return RedisTabStorage(cfg.TAB_ID, ttl_seconds=cfg.TAB_TTL_SECONDS, cfg=cfg)


class SessionIdentityManager:
    """Exactly one active session id per tab; requests are tagged with it at issue time."""

    def __init__(self, storage: TabStorage):
        self.storage = storage
        self._current: Optional[str] = None

    @property
    def current(self) -> Optional[str]:
        return self._current

    def get_or_create_session_id(self) -> str:
        if self._current:
            return self._current
        stored = self._read(SESSION_KEY)
        if stored:
            self._current = stored
            log.info(f"SESSION_RESTORED | session={stored}")
            return stored
        return self._replace(generate_session_id(), reason="created")

    def rotate_session_id(self) -> str:
        """Always a fresh id (explicit clear)."""
        return self._replace(generate_session_id(), reason="rotated")

    def adopt_session_id(self, session_id: str) -> str:
        """Server-authoritative rotation: persist the id the backend answered with."""
        if session_id == self._current:
            return session_id
        return self._replace(session_id, reason="server")

    def has_flag(self, name: str) -> bool:
        return bool(self._read(name))

    def set_flag(self, name: str) -> None:
        self._write(name, "true")

    # ────────────────────────────────────────────────────────
    # Internals
    # ────────────────────────────────────────────────────────
    def _replace(self, session_id: str, *, reason: str) -> str:
        old = self._current
        self._current = session_id
        self._write(SESSION_KEY, session_id)
        smart_log.session_rotated(old, session_id, reason)
        return session_id

    def _read(self, name: str) -> Optional[str]:
        try:
            return self.storage.get(name)
        except (RedisError, OSError) as e:
            log.warning(f"TAB_STORAGE_READ_FAILED | key={name} | error={e}")
            return None

    def _write(self, name: str, value: str) -> None:
        try:
            self.storage.set(name, value)
        except (RedisError, OSError) as e:
            log.warning(f"TAB_STORAGE_WRITE_FAILED | key={name} | error={e}")
