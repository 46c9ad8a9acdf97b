"""
Assistant runtime: one event loop, one store, shared by every UI surface.

The loop runs in a daemon thread and plays the role of the browser's UI
thread: every store / fetcher / escalation / survey call executes on it, so
no locks guard core state. Synchronous callers (Flask request threads, the
CLI) hand work over with `run()` / `invoke()`.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .backend_client import AssistantBackendClient
from .config import BaseConfig, get_config
from .conversation_store import ConversationStore
from .escalation import EscalationWorkflow
from .search_fetcher import DebouncedSuggestionFetcher
from .session_manager import SessionIdentityManager, TabStorage, build_tab_storage

log = logging.getLogger(__name__)

T = TypeVar("T")


class AssistantRuntime:
    def __init__(self, cfg: Optional[BaseConfig] = None, *,
                 client: Optional[AssistantBackendClient] = None,
                 storage: Optional[TabStorage] = None):
        self.cfg = cfg or get_config()
        self.client = client or AssistantBackendClient.from_config(self.cfg)
        self.storage = storage or build_tab_storage(self.cfg)
        self.sessions = SessionIdentityManager(self.storage)
        self.escalation = EscalationWorkflow(
            self.client,
            agent_viewing_delay=self.cfg.AGENT_VIEWING_DELAY_MS / 1000,
            notify_backend_on_cancel=self.cfg.NOTIFY_BACKEND_ON_ESCALATION_CANCEL,
        )
        self.store = ConversationStore(
            self.client,
            self.sessions,
            escalation=self.escalation,
            survey_after_messages=self.cfg.SURVEY_AFTER_MESSAGES,
            survey_dismiss_delay=self.cfg.FEEDBACK_DISMISS_MS / 1000,
            max_message_length=self.cfg.MAX_MESSAGE_LENGTH,
            use_rule_based_triage=self.cfg.USE_RULE_BASED_TRIAGE,
            notify_backend_on_clear=self.cfg.NOTIFY_BACKEND_ON_CLEAR,
        )
        self.search = DebouncedSuggestionFetcher(
            self.client,
            delay=self.cfg.SEARCH_DEBOUNCE_MS / 1000,
            min_length=self.cfg.SEARCH_MIN_QUERY_LENGTH,
        )
        self.loop = asyncio.new_event_loop()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "AssistantRuntime":
        if self.is_running:
            return self
        self._thread = threading.Thread(target=self._run_loop, name="assistant-loop", daemon=True)
        self._thread.start()
        # conversation starters load in the background; a slow backend must not block startup
        asyncio.run_coroutine_threadsafe(self.store.start(), self.loop)
        log.info(f"RUNTIME_STARTED | storage={type(self.storage).__name__} | backend={self.client.base_url}")
        return self

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def run(self, coro: Awaitable[T], timeout: Optional[float] = None) -> T:
        """Run a coroutine on the runtime loop and wait for its result."""
        if not self.is_running:
            raise RuntimeError("assistant runtime is not running")
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout if timeout is not None else self.cfg.BACKEND_TIMEOUT_SECONDS + 5)

    def invoke(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a plain callable on the runtime loop (timers it arms belong to that loop)."""
        async def _call() -> T:
            return fn(*args, **kwargs)

        return self.run(_call())

    def shutdown(self) -> None:
        if not self.is_running:
            return
        try:
            self.run(self._aclose(), timeout=5)
        except Exception as e:  # noqa: BLE001
            log.warning(f"RUNTIME_SHUTDOWN_CLEANUP_FAILED | error={e}")
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=5)
        self._thread = None
        log.info("RUNTIME_STOPPED")

    async def _aclose(self) -> None:
        await self.search.aclose()
        self.escalation.close()
        self.store.dismiss_survey()
        await self.client.aclose()


# ─────────────────────────────────────────────────────────────
# Process-wide instance shared by both UI surfaces
# ─────────────────────────────────────────────────────────────
_singleton: Optional[AssistantRuntime] = None


def get_runtime() -> AssistantRuntime:
    global _singleton
    if _singleton is None:
        _singleton = AssistantRuntime().start()
    return _singleton
