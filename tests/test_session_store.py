"""Tests for the in-memory session store and message serialization."""

from __future__ import annotations

from mizmaster.chat.message_model import ConversationMessage, Source, TokenUsage
from mizmaster.chat.session_store import InMemorySessionStore


def test_unknown_session_has_empty_history() -> None:
    assert InMemorySessionStore().load_history("missing") == []


def test_save_is_idempotent_and_replaces_history() -> None:
    store = InMemorySessionStore()
    first = [ConversationMessage(role="user", text="hello")]
    second = first + [ConversationMessage(role="model", text="hi")]

    store.save_history("s1", first)
    store.save_history("s1", second)
    store.save_history("s1", second)

    assert [message.text for message in store.load_history("s1")] == ["hello", "hi"]
    assert store.session_ids() == ("s1",)


def test_messages_survive_round_trip_with_metadata() -> None:
    store = InMemorySessionStore()
    message = ConversationMessage(
        role="model",
        text="Use SPAWN:New.",
        sources=(Source(uri="https://example.test", title="Example"),),
        model_id="gemini-2.5-flash",
        verified_model_id="gemini-2.5-flash-001",
        token_usage=TokenUsage(prompt_tokens=3, response_tokens=4, total_tokens=7),
        elapsed_ms=120,
    )

    store.save_history("s1", [message])
    (loaded,) = store.load_history("s1")

    assert loaded == message


def test_stored_history_is_a_copy() -> None:
    store = InMemorySessionStore()
    history = [ConversationMessage(role="user", text="hello")]
    store.save_history("s1", history)

    history.append(ConversationMessage(role="user", text="later"))

    assert len(store.load_history("s1")) == 1
