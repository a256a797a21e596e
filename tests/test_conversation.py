"""Tests for the conversation loop."""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from toolchat.actions import ActionRegistry, EmptyInput, action_from_model, register_builtin_actions
from toolchat.conversation import ChatOptions, Conversation, ConversationEvent, LoopState, Transcript
from toolchat.errors import InconsistentStream, TransportError, UnknownAction
from toolchat.schema import ChatCompletion, ChatRequest, Message, Role


def _line(delta: dict[str, Any], finish_reason: str | None = None, *, id: str = "chatcmpl-1") -> str:
    payload = {
        "id": id,
        "object": "chat.completion.chunk",
        "created": 1700000000,
        "model": "gpt-test",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }
    return "data: " + json.dumps(payload)


def _text_round(*chunks: str) -> list[str]:
    lines = [_line({"role": "assistant", "content": ""})]
    lines.extend(_line({"content": chunk}) for chunk in chunks)
    lines.append(_line({}, "stop"))
    lines.append("")
    lines.append("data: [DONE]")
    return lines


def _action_round(*calls: tuple[str, str, str]) -> list[str]:
    lines = [_line({"role": "assistant", "content": None})]
    for call_id, name, arguments in calls:
        head = {"index": 0, "id": call_id, "type": "function", "function": {"name": name, "arguments": ""}}
        lines.append(_line({"tool_calls": [head]}))
        middle = len(arguments) // 2
        for part in (arguments[:middle], arguments[middle:]):
            lines.append(_line({"tool_calls": [{"index": 0, "function": {"arguments": part}}]}))
    lines.append(_line({}, "tool_calls"))
    lines.append("data: [DONE]")
    return lines


@dataclass
class _FakeClient:
    rounds: list[Iterable[str]]
    completions: list[ChatCompletion] = field(default_factory=list)
    requests: list[ChatRequest] = field(default_factory=list)

    def chat_lines(self, request: ChatRequest) -> Iterator[str]:
        self.requests.append(request)
        return iter(self.rounds[len(self.requests) - 1])

    def complete(self, request: ChatRequest) -> ChatCompletion:
        self.requests.append(request)
        return self.completions[len(self.requests) - 1]


@pytest.fixture
def registry(tmp_path: Path) -> ActionRegistry:
    registry = ActionRegistry()
    register_builtin_actions(registry, workspace=tmp_path, jokes_file=tmp_path / "jokes.txt")
    return registry


def _transcript(question: str) -> Transcript:
    return Transcript(
        [
            Message(role=Role.SYSTEM, content="you are a helpful assistant."),
            Message(role=Role.USER, content=question),
        ]
    )


def _one_shot(client: _FakeClient, registry: ActionRegistry, transcript: Transcript, events: list) -> Conversation:
    return Conversation(
        client,
        registry,
        options=ChatOptions(model="gpt-test", one_shot=True),
        transcript=transcript,
        on_event=events.append,
    )


def test_action_round_trip_reaches_final_answer(registry: ActionRegistry) -> None:
    client = _FakeClient(
        rounds=[
            _action_round(("a1", "sum_numbers", '{"Summands":[2,2]}')),
            _text_round("4"),
        ]
    )
    events: list[ConversationEvent] = []
    conversation = _one_shot(client, registry, _transcript("what is 2+2?"), events)

    answer = conversation.run()

    assert answer == "4"
    assert conversation.state is LoopState.TERMINAL
    transcript = conversation.transcript
    assert [message.role for message in transcript] == [
        Role.SYSTEM,
        Role.USER,
        Role.ASSISTANT,
        Role.TOOL,
        Role.ASSISTANT,
    ]
    request_turn = transcript[2]
    assert request_turn.tool_calls[0].id == "a1"
    assert request_turn.tool_calls[0].function.arguments == '{"Summands":[2,2]}'
    result_turn = transcript[3]
    assert result_turn.content == "4.000000"
    assert result_turn.tool_call_id == "a1"
    assert result_turn.name == "sum_numbers"
    assert transcript[4].content == "4"

    assert len(client.requests) == 2
    first, second = client.requests
    assert len(first.messages) == 2
    assert second.messages[-1] == result_turn
    assert first.temperature == 0.7
    assert first.stream is True
    assert "sum_numbers" in [tool.function.name for tool in first.tools]
    assert [event.kind for event in events if event.kind != "fragment"] == ["action_call", "action_result", "answer"]


def test_results_follow_request_order(registry: ActionRegistry) -> None:
    client = _FakeClient(
        rounds=[
            _action_round(
                ("a1", "sort_numbers", '{"Lines":[3,1]}'),
                ("a2", "square_root", '{"Argument":16}'),
            ),
            _text_round("done"),
        ]
    )
    conversation = _one_shot(client, registry, _transcript("go"), [])

    conversation.run()

    results = [message for message in conversation.transcript if message.role is Role.TOOL]
    assert [message.tool_call_id for message in results] == ["a1", "a2"]
    assert json.loads(results[0].content) == [1.0, 3.0]
    assert results[1].content == "4.000000"


def test_unknown_action_aborts_without_results(registry: ActionRegistry) -> None:
    client = _FakeClient(
        rounds=[
            _action_round(
                ("a1", "sum_numbers", '{"Summands":[1]}'),
                ("a2", "summation", '{"Summands":[1]}'),
            ),
        ]
    )
    events: list[ConversationEvent] = []
    conversation = _one_shot(client, registry, _transcript("add"), events)

    with pytest.raises(UnknownAction) as exc_info:
        conversation.run()

    assert exc_info.value.name == "summation"
    assert conversation.state is LoopState.TERMINAL
    assert conversation.transcript[-1].role is Role.ASSISTANT
    assert not any(message.role is Role.TOOL for message in conversation.transcript)
    assert not any(event.kind == "action_call" for event in events)
    assert len(client.requests) == 1


def test_decode_failure_is_reported_to_the_model(registry: ActionRegistry) -> None:
    client = _FakeClient(
        rounds=[
            _action_round(("a1", "sum_numbers", '{"Summands": [1, ')),
            _text_round("sorry, ", "let me retry"),
        ]
    )
    conversation = _one_shot(client, registry, _transcript("add"), [])

    answer = conversation.run()

    assert answer == "sorry, let me retry"
    result_turn = conversation.transcript[3]
    assert result_turn.role is Role.TOOL
    assert result_turn.content.startswith("error: can't parse arguments of 'sum_numbers'")
    assert client.requests[1].messages[-1] == result_turn


def test_execution_failure_is_reported_to_the_model() -> None:
    def _explode(_params: EmptyInput) -> str:
        raise RuntimeError("boom")

    registry = ActionRegistry()
    registry.register(action_from_model(EmptyInput, _explode, name="explode", description="always fails"))
    client = _FakeClient(rounds=[_action_round(("a1", "explode", "")), _text_round("it failed")])
    events: list[ConversationEvent] = []
    conversation = _one_shot(client, registry, _transcript("try it"), events)

    assert conversation.run() == "it failed"
    assert conversation.transcript[3].content == "error: boom"
    results = [event for event in events if event.kind == "action_result"]
    assert results[0].payload["ok"] is False


def test_transport_error_aborts() -> None:
    class _BrokenClient(_FakeClient):
        def chat_lines(self, request: ChatRequest) -> Iterator[str]:
            raise TransportError("bad status: 401 Unauthorized", status=401, body='{"error": "bad key"}')

    conversation = _one_shot(_BrokenClient(rounds=[]), ActionRegistry(), _transcript("hi"), [])

    with pytest.raises(TransportError) as exc_info:
        conversation.run()

    assert exc_info.value.status == 401
    assert "bad key" in str(exc_info.value)
    assert conversation.state is LoopState.TERMINAL
    assert len(conversation.transcript) == 2


def test_inconsistent_stream_logs_raw_lines(monkeypatch) -> None:
    logged: list[str] = []

    def _capture(message: str, *args: object) -> None:
        logged.append(message)

    monkeypatch.setattr("toolchat.conversation.logger.error", _capture)
    lines = [_line({"role": "assistant", "content": "a"}), _line({"content": "b"}, "stop", id="chatcmpl-2")]
    conversation = _one_shot(_FakeClient(rounds=[lines]), ActionRegistry(), _transcript("hi"), [])

    with pytest.raises(InconsistentStream) as exc_info:
        conversation.run()

    assert exc_info.value.field == "id"
    assert logged.count("stream.line index={} {}") == 2
    assert len(conversation.transcript) == 2


def test_interactive_loop_reads_until_end_of_input(registry: ActionRegistry) -> None:
    inputs = iter(["", "   ", "hi there"])

    def _read() -> str:
        try:
            return next(inputs)
        except StopIteration:
            raise EOFError from None

    client = _FakeClient(rounds=[_text_round("hel", "lo")])
    conversation = Conversation(
        client,
        registry,
        options=ChatOptions(model="gpt-test"),
        transcript=Transcript([Message(role=Role.SYSTEM, content="sys")]),
        read_input=_read,
    )

    assert conversation.state is LoopState.AWAITING_INPUT
    answer = conversation.run()

    assert answer == "hello"
    assert conversation.state is LoopState.TERMINAL
    assert [message.role for message in conversation.transcript] == [Role.SYSTEM, Role.USER, Role.ASSISTANT]
    assert conversation.transcript[1].content == "hi there"
    assert len(client.requests) == 1


def test_interactive_conversation_requires_input_source(registry: ActionRegistry) -> None:
    with pytest.raises(ValueError):
        Conversation(_FakeClient(rounds=[]), registry, options=ChatOptions(model="gpt-test"))


def test_one_shot_without_actions_stops_after_one_round(registry: ActionRegistry) -> None:
    client = _FakeClient(rounds=[_text_round("just text")])
    events: list[ConversationEvent] = []
    conversation = _one_shot(client, registry, _transcript("hi"), events)

    assert conversation.run() == "just text"
    assert len(client.requests) == 1
    answers = [event for event in events if event.kind == "answer"]
    assert answers[0].payload == {"content": "just text", "streamed": True}


def test_step_runs_a_single_round(registry: ActionRegistry) -> None:
    client = _FakeClient(rounds=[_action_round(("a1", "square_root", '{"Argument":9}'))])
    conversation = _one_shot(client, registry, _transcript("root of 9"), [])

    combined = conversation.step()

    assert combined.finish_reason == "tool_calls"
    assert combined.tool_calls[0].function.name == "square_root"
    assert conversation.transcript[-1] == combined.message


def test_non_streamed_rounds_use_complete(registry: ActionRegistry) -> None:
    completions = [
        ChatCompletion.model_validate(
            {
                "id": "chatcmpl-1",
                "object": "chat.completion",
                "created": 1,
                "model": "gpt-test",
                "choices": [
                    {
                        "index": 0,
                        "message": {
                            "role": "assistant",
                            "content": None,
                            "tool_calls": [
                                {
                                    "id": "a1",
                                    "type": "function",
                                    "function": {"name": "multiply_numbers", "arguments": '{"Factors":[6,7]}'},
                                }
                            ],
                        },
                        "finish_reason": "tool_calls",
                    }
                ],
            }
        ),
        ChatCompletion.model_validate(
            {
                "id": "chatcmpl-2",
                "object": "chat.completion",
                "created": 2,
                "model": "gpt-test",
                "choices": [{"index": 0, "message": {"role": "assistant", "content": "42"}, "finish_reason": "stop"}],
            }
        ),
    ]
    client = _FakeClient(rounds=[], completions=completions)
    events: list[ConversationEvent] = []
    conversation = Conversation(
        client,
        registry,
        options=ChatOptions(model="gpt-test", one_shot=True, stream=False),
        transcript=_transcript("6 times 7"),
        on_event=events.append,
    )

    assert conversation.run() == "42"
    assert conversation.transcript[3].content == "42.000000"
    assert all(request.stream is False for request in client.requests)
    assert events[-1].payload == {"content": "42", "streamed": False}


def test_transcript_to_wire_keeps_action_fields() -> None:
    transcript = Transcript()
    transcript.append(Message(role=Role.USER, content="hi"))
    transcript.append(Message(role=Role.TOOL, content="4.000000", tool_call_id="a1", name="sum_numbers"))

    assert transcript.to_wire() == [
        {"role": "user", "content": "hi"},
        {"role": "tool", "content": "4.000000", "tool_call_id": "a1", "name": "sum_numbers"},
    ]
