"""Tests for ContextWindowManager token estimation and trimming."""

from __future__ import annotations

import dataclasses
import random

import pytest

from agent_runtime.core.context_window import ContextWindowManager, TrimResult
from agent_runtime.core.types import ChatMessage, FunctionCall, ToolCall

from conftest import assert_calls_answered


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def call(call_id: str, name: str = "search", arguments: str = "{}") -> ToolCall:
    return ToolCall(id=call_id, function=FunctionCall(name=name, arguments=arguments))


def assert_no_orphans(messages: list[ChatMessage]) -> None:
    issued = {c.id for m in messages if m.role == "assistant" for c in m.tool_calls}
    for m in messages:
        if m.role == "tool":
            assert m.tool_call_id in issued, f"orphaned tool result {m.tool_call_id}"


def random_history(rng: random.Random, with_system: bool) -> list[ChatMessage]:
    messages: list[ChatMessage] = [ChatMessage.system("system " * rng.randint(1, 20))] if with_system else []
    call_no = 0
    for _ in range(rng.randint(1, 8)):
        messages.append(ChatMessage.user("question " * rng.randint(1, 30)))
        for _ in range(rng.randint(0, 3)):
            calls = []
            for _ in range(rng.randint(1, 3)):
                call_no += 1
                calls.append(call(f"call_{call_no}", arguments='{"q": "%s"}' % ("x" * rng.randint(0, 80))))
            messages.append(ChatMessage.assistant("", calls))
            for c in calls:
                messages.append(ChatMessage.tool(c.id, "result " * rng.randint(1, 40)))
        messages.append(ChatMessage.assistant("answer " * rng.randint(1, 30)))
    return messages


# ---------------------------------------------------------------------------
# Estimation
# ---------------------------------------------------------------------------

def test_estimate_plain_message() -> None:
    manager = ContextWindowManager()
    assert manager.estimate_tokens(ChatMessage.user("12345678")) == 2 + 4
    assert manager.estimate_tokens(ChatMessage.user("123456789")) == 3 + 4
    assert manager.estimate_tokens(ChatMessage.user("")) == 4


def test_estimate_tool_result_adds_fixed_overhead() -> None:
    manager = ContextWindowManager()
    assert manager.estimate_tokens(ChatMessage.tool("call_1", "1234")) == 1 + 10 + 4


def test_estimate_assistant_counts_serialized_tool_calls() -> None:
    manager = ContextWindowManager()
    plain = manager.estimate_tokens(ChatMessage.assistant("hi"))
    with_calls = manager.estimate_tokens(ChatMessage.assistant("hi", [call("call_1", arguments='{"q": "long query"}')]))
    assert with_calls > plain


def test_estimate_is_memoized_per_message_identity() -> None:
    manager = ContextWindowManager()
    first = ChatMessage.user("same text")
    second = ChatMessage.user("same text")
    assert first == second
    assert first.message_id != second.message_id

    manager.estimate_tokens(first)
    manager.estimate_tokens(second)
    assert {first.message_id, second.message_id} <= set(manager._token_cache)


def test_replacing_a_message_gives_it_a_new_identity() -> None:
    original = ChatMessage.user("short")
    edited = dataclasses.replace(original, content="a much longer replacement text")
    assert edited.message_id != original.message_id

    manager = ContextWindowManager()
    assert manager.estimate_tokens(edited) > manager.estimate_tokens(original)


def test_needs_trimming_and_should_summarize() -> None:
    manager = ContextWindowManager(max_tokens=100)
    messages = [ChatMessage.user("x" * 320)]  # 80 + 4 tokens
    assert manager.calculate_total_tokens(messages) == 84
    assert not manager.needs_trimming(messages)
    assert manager.should_summarize(messages)
    assert not manager.should_summarize([ChatMessage.user("x" * 100)])


def test_invalid_settings_rejected() -> None:
    with pytest.raises(ValueError):
        ContextWindowManager(max_tokens=0)
    with pytest.raises(ValueError):
        ContextWindowManager(protected_recent_turns=-1)


# ---------------------------------------------------------------------------
# Trimming
# ---------------------------------------------------------------------------

def test_trim_is_noop_within_budget() -> None:
    manager = ContextWindowManager(max_tokens=1_000)
    history = [ChatMessage.system("sys"), ChatMessage.user("hello"), ChatMessage.assistant("hi")]
    trimmed, result = manager.trim(history)
    assert trimmed == history
    assert result is None


@pytest.mark.parametrize("budget", [None, 0, -1])
def test_trim_empty_history(budget) -> None:
    manager = ContextWindowManager(max_tokens=10)
    assert manager.trim([], max_tokens=budget) == ([], None)


def test_trim_keeps_system_and_most_recent_turn() -> None:
    manager = ContextWindowManager(max_tokens=30, protected_recent_turns=1)
    history = [
        ChatMessage.system("S"),
        ChatMessage.user("old1"),
        ChatMessage.assistant("old2"),
        ChatMessage.user("old3"),
        ChatMessage.assistant("old4"),
        ChatMessage.user("recent1"),
        ChatMessage.assistant("recent2"),
    ]

    trimmed, result = manager.trim(history)

    assert [m.content for m in trimmed] == ["S", "old3", "old4", "recent1", "recent2"]
    assert trimmed[0].role == "system"
    assert result == TrimResult(original_count=7, trimmed_count=5, messages_removed=2, estimated_tokens=27)


def test_trim_keeps_protected_zone_even_over_budget() -> None:
    manager = ContextWindowManager(max_tokens=10, protected_recent_turns=1)
    history = [
        ChatMessage.system("sys"),
        ChatMessage.user("older question"),
        ChatMessage.assistant("older answer"),
        ChatMessage.user("x" * 200),
        ChatMessage.assistant("", [call("call_1")]),
        ChatMessage.tool("call_1", "y" * 200),
        ChatMessage.assistant("done"),
    ]

    trimmed, result = manager.trim(history)

    assert result is not None
    assert trimmed[0] is history[0]
    assert trimmed[1:] == history[3:]


def test_trim_drops_tool_result_whose_call_was_trimmed() -> None:
    manager = ContextWindowManager(max_tokens=40, protected_recent_turns=1)
    history = [
        ChatMessage.system("sys"),
        ChatMessage.user("q"),
        ChatMessage.assistant("", [call("call_1", arguments='{"q": "%s"}' % ("x" * 200))]),
        ChatMessage.tool("call_1", "result"),
        ChatMessage.user("recent"),
        ChatMessage.assistant("ok"),
    ]

    trimmed, _ = manager.trim(history)

    assert [m.content for m in trimmed] == ["sys", "recent", "ok"]
    assert_no_orphans(trimmed)


def test_trim_may_leave_only_system_message() -> None:
    manager = ContextWindowManager(max_tokens=6, protected_recent_turns=0)
    history = [ChatMessage.system("sys"), ChatMessage.user("x" * 100), ChatMessage.assistant("y" * 100)]

    trimmed, result = manager.trim(history)

    assert [m.role for m in trimmed] == ["system"]
    assert result.messages_removed == 2


def test_trim_without_system_never_returns_empty() -> None:
    manager = ContextWindowManager(max_tokens=5, protected_recent_turns=0)
    history = [
        ChatMessage.user("x" * 100),
        ChatMessage.assistant("", [call("call_1")]),
        ChatMessage.tool("call_1", "z" * 100),
    ]

    trimmed, _ = manager.trim(history)

    assert trimmed == history[1:]
    assert_no_orphans(trimmed)


def test_trim_protects_all_turns_when_fewer_than_requested() -> None:
    manager = ContextWindowManager(max_tokens=10, protected_recent_turns=5)
    history = [
        ChatMessage.system("sys"),
        ChatMessage.assistant("greeting " * 20),
        ChatMessage.user("only question"),
        ChatMessage.assistant("answer " * 20),
    ]

    trimmed, _ = manager.trim(history)

    assert [m.content for m in trimmed] == ["sys", "only question", history[3].content]


def test_trim_overrides_budget_per_call() -> None:
    manager = ContextWindowManager(max_tokens=10_000, protected_recent_turns=1)
    history = [ChatMessage.system("S"), ChatMessage.user("a" * 80), ChatMessage.user("b")]

    untouched, result = manager.trim(history)
    assert result is None

    trimmed, result = manager.trim(history, max_tokens=12)
    assert [m.content for m in trimmed] == ["S", "b"]


def test_trim_evicts_removed_messages_from_memo() -> None:
    manager = ContextWindowManager(max_tokens=30, protected_recent_turns=1)
    dropped = ChatMessage.user("x" * 200)
    history = [ChatMessage.system("S"), dropped, ChatMessage.user("recent")]

    manager.trim(history)

    assert dropped.message_id not in manager._token_cache
    assert history[2].message_id in manager._token_cache


@pytest.mark.parametrize("with_system", [True, False])
def test_trim_invariants_hold_for_random_histories(with_system: bool) -> None:
    rng = random.Random(1234)
    for _ in range(200):
        history = random_history(rng, with_system)
        budget = rng.randint(5, 600)
        turns = rng.randint(0, 3)
        manager = ContextWindowManager(max_tokens=budget, protected_recent_turns=turns)

        trimmed, _ = manager.trim(history)

        assert trimmed, "trim returned an empty history"
        if with_system:
            assert trimmed[0] is history[0]
        assert_no_orphans(trimmed)
        assert_calls_answered(trimmed)

        index_of = {m.message_id: i for i, m in enumerate(history)}
        positions = [index_of[m.message_id] for m in trimmed]
        assert positions == sorted(positions)

        if turns == 1:
            last_user = max(i for i, m in enumerate(history) if m.role == "user")
            assert trimmed[-(len(history) - last_user):] == history[last_user:]
