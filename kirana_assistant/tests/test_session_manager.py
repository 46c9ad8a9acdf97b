from __future__ import annotations

import re
from unittest.mock import MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

from kirana_assistant.session_manager import (
    SESSION_KEY, MemoryTabStorage, RedisTabStorage, SessionIdentityManager,
)
from kirana_assistant.tests.fakes import FailingStorage

SESSION_RE = re.compile(r"^session_\d{13}_[a-z0-9]{9}$")


def test_get_or_create_is_stable_within_a_tab(sessions):
    first = sessions.get_or_create_session_id()
    second = sessions.get_or_create_session_id()
    assert first == second
    assert SESSION_RE.match(first)


def test_session_survives_navigation(storage):
    original = SessionIdentityManager(storage).get_or_create_session_id()
    # a new manager on the same tab storage is a page navigation
    assert SessionIdentityManager(storage).get_or_create_session_id() == original


def test_rotate_always_generates_and_persists_a_new_id(sessions, storage):
    before = sessions.get_or_create_session_id()
    after = sessions.rotate_session_id()
    assert after != before
    assert storage.get(SESSION_KEY) == after
    assert sessions.get_or_create_session_id() == after


def test_adopt_persists_server_value(sessions, storage):
    sessions.get_or_create_session_id()
    sessions.adopt_session_id("session_server_123")
    assert sessions.current == "session_server_123"
    assert storage.get(SESSION_KEY) == "session_server_123"


def test_storage_failures_are_swallowed():
    sessions = SessionIdentityManager(FailingStorage())
    first = sessions.get_or_create_session_id()
    assert SESSION_RE.match(first)
    assert sessions.get_or_create_session_id() == first
    assert sessions.rotate_session_id() != first
    assert sessions.has_flag("survey_shown_x") is False
    sessions.set_flag("survey_shown_x")


def test_flags_are_tab_scoped():
    storage = MemoryTabStorage()
    sessions = SessionIdentityManager(storage)
    assert not sessions.has_flag("survey_shown_abc")
    sessions.set_flag("survey_shown_abc")
    assert sessions.has_flag("survey_shown_abc")
    assert not SessionIdentityManager(MemoryTabStorage()).has_flag("survey_shown_abc")


def test_redis_storage_keys_and_ttl():
    client = MagicMock()
    client.get.return_value = b"session_1_abcdefghi"
    storage = RedisTabStorage("tab_1", client=client, ttl_seconds=60)

    assert storage.get(SESSION_KEY) == "session_1_abcdefghi"
    client.get.assert_called_with("tab:tab_1:chatbot_session_id")

    storage.set(SESSION_KEY, "session_2_abcdefghi")
    key, ttl, value = client.setex.call_args[0]
    assert key == "tab:tab_1:chatbot_session_id"
    assert ttl.total_seconds() == 60
    assert value == "session_2_abcdefghi"


def test_redis_errors_fall_back_to_memory_id():
    client = MagicMock()
    client.get.side_effect = RedisConnectionError("down")
    client.setex.side_effect = RedisConnectionError("down")
    client.ping.side_effect = RedisConnectionError("down")
    storage = RedisTabStorage("tab_1", client=client)
    sessions = SessionIdentityManager(storage)

    session_id = sessions.get_or_create_session_id()
    assert SESSION_RE.match(session_id)
    assert sessions.get_or_create_session_id() == session_id
    assert storage.ping() is False
