"""
Smart search bar: debounced, race-safe suggestion fetching.

Keystrokes update `raw_query` immediately and restart a quiet-period timer.
Only when the timer fires does `debounced_query` settle and a suggestion
request go out. Each request carries a generation number; a response is
applied only if its generation is still the newest and its query still equals
`debounced_query`. Superseded in-flight tasks are also cancelled.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Callable, Optional

from .backend_client import AssistantBackendClient, BackendError
from .models import SearchNavigation, SearchState, SuggestionResult
from .utils.helpers import search_path
from .utils.smart_logger import get_smart_logger

log = logging.getLogger(__name__)
smart_log = get_smart_logger("search_fetcher")


class DebouncedSuggestionFetcher:
    def __init__(self, client: AssistantBackendClient, *, delay: float = 0.4, min_length: int = 2,
                 on_change: Optional[Callable[[SearchState], None]] = None,
                 on_navigate: Optional[Callable[[SearchNavigation], None]] = None):
        self.client = client
        self.delay = delay
        self.min_length = min_length
        self.on_change = on_change
        self.on_navigate = on_navigate
        self._state = SearchState()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._generation = 0

    @property
    def state(self) -> SearchState:
        return self._state

    # ────────────────────────────────────────────────────────
    # Input events
    # ────────────────────────────────────────────────────────
    def set_query(self, text: str) -> None:
        """Keystroke: show it now, fetch later."""
        self._update(raw_query=text or "")
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().call_later(self.delay, self._settle)

    def focus(self) -> None:
        if len(self._state.raw_query) >= self.min_length and not self._state.is_open:
            self._update(is_open=True)

    def close_dropdown(self) -> None:
        if self._state.is_open:
            self._update(is_open=False)

    def clear(self) -> None:
        self._cancel_timer()
        self._invalidate()
        self._update(raw_query="", debounced_query="", suggestions=(), corrected_query="",
                     intent="", is_loading=False, is_open=False)

    def submit(self) -> Optional[SearchNavigation]:
        """Enter key or search icon: prefer the spelling-corrected query."""
        state = self._state
        target = state.corrected_query if state.show_did_you_mean else state.raw_query
        return self._navigate(target)

    def select_suggestion(self, suggestion: str) -> Optional[SearchNavigation]:
        return self._navigate(suggestion)

    def accept_correction(self) -> Optional[SearchNavigation]:
        return self._navigate(self._state.corrected_query)

    async def aclose(self) -> None:
        self._cancel_timer()
        task = self._task
        self._invalidate()
        if task is not None and not task.done():
            try:
                await task
            except asyncio.CancelledError:
                pass

    # ────────────────────────────────────────────────────────
    # Debounce + fetch
    # ────────────────────────────────────────────────────────
    def _settle(self) -> None:
        self._timer = None
        query = self._state.raw_query
        self._invalidate()
        if len(query) < self.min_length:
            self._update(debounced_query=query, suggestions=(), is_open=False, is_loading=False)
            return

        self._update(debounced_query=query, is_loading=True)
        generation = self._generation
        self._task = asyncio.get_running_loop().create_task(self._fetch(query, generation))

    async def _fetch(self, query: str, generation: int) -> None:
        try:
            result: SuggestionResult = await self.client.get_search_suggestions(query)
        except BackendError as e:
            # non-fatal: keep whatever suggestions are already showing
            log.warning(f"SUGGESTION_FETCH_FAILED | query='{query}' | error={e}")
            if generation == self._generation:
                self._update(is_loading=False)
            return

        if generation != self._generation or query != self._state.debounced_query:
            smart_log.stale_discarded(query, self._state.debounced_query)
            return

        smart_log.suggestions_applied(query, len(result.suggestions), result.intent, result.corrected_query)
        self._update(suggestions=result.suggestions, corrected_query=result.corrected_query,
                     intent=result.intent, is_loading=False, is_open=True)

    def _invalidate(self) -> None:
        """Bump the generation and abort whatever request is still in flight."""
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _navigate(self, query: str) -> Optional[SearchNavigation]:
        query = (query or "").strip()
        if not query:
            return None
        self._cancel_timer()
        self._invalidate()
        self._update(raw_query=query, is_open=False, is_loading=False)
        nav = SearchNavigation(query=query, path=search_path(query))
        log.info(f"SEARCH_NAVIGATE | query='{query}' | path={nav.path}")
        if self.on_navigate is not None:
            self.on_navigate(nav)
        return nav

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _update(self, **changes) -> None:
        self._state = replace(self._state, **changes)
        if self.on_change is not None:
            self.on_change(self._state)
