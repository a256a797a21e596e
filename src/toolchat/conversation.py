"""Multi-round conversation loop over streamed completions."""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

from loguru import logger

from .actions.registry import ActionRegistry
from .errors import StreamError, UnknownAction
from .logging_utils import reset_current_conversation, set_current_conversation
from .schema import ChatCompletion, ChatRequest, Message, Role, ToolCall
from .stream.combiner import CombinedMessage, Finish, combine
from .stream.frames import FragmentStream


class LoopState(StrEnum):
    AWAITING_INPUT = "awaiting_input"
    AWAITING_MODEL = "awaiting_model"
    ACTION_DISPATCH = "action_dispatch"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class ConversationEvent:
    kind: str
    payload: dict[str, Any]


class CompletionClient(Protocol):
    def chat_lines(self, request: ChatRequest) -> Iterable[str]: ...

    def complete(self, request: ChatRequest) -> ChatCompletion: ...


class Transcript:
    """Append-only sequence of conversation turns."""

    def __init__(self, messages: Iterable[Message] = ()) -> None:
        self._messages: list[Message] = list(messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def __len__(self) -> int:
        return len(self._messages)

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def append(self, message: Message) -> None:
        self._messages.append(message)

    def to_wire(self) -> list[dict[str, Any]]:
        return [message.to_wire() for message in self._messages]


@dataclass(frozen=True)
class ChatOptions:
    """Per-conversation request settings."""

    model: str
    temperature: float = 0.7
    response_format: str | None = "text"
    one_shot: bool = False
    stream: bool = True
    max_tokens: int | None = None


@dataclass
class _RoundState:
    pending: list[ToolCall] = field(default_factory=list)
    rounds: int = 0


class Conversation:
    """State machine alternating model rounds and action dispatch.

    Interactive conversations start by reading user input; one-shot
    conversations start with a model round and stop at the first round that
    finishes without requesting actions. Rounds never overlap: the next
    request is only built once every requested action's result is in the
    transcript.
    """

    def __init__(
        self,
        client: CompletionClient,
        registry: ActionRegistry,
        *,
        options: ChatOptions,
        transcript: Transcript | None = None,
        read_input: Callable[[], str] | None = None,
        on_event: Callable[[ConversationEvent], None] | None = None,
    ) -> None:
        if not options.one_shot and read_input is None:
            raise ValueError("interactive conversations need read_input")
        self.id = uuid.uuid4().hex[:8]
        self._client = client
        self._registry = registry
        self._options = options
        self._transcript = transcript if transcript is not None else Transcript()
        self._read_input = read_input
        self._on_event = on_event
        self._round = _RoundState()
        self.state = LoopState.AWAITING_MODEL if options.one_shot else LoopState.AWAITING_INPUT
        self.answer = ""

    @property
    def transcript(self) -> Transcript:
        return self._transcript

    @property
    def options(self) -> ChatOptions:
        return self._options

    def run(self) -> str:
        """Drive the conversation to its terminal state and return the last answer."""
        token = set_current_conversation(self.id)
        try:
            while self.state is not LoopState.TERMINAL:
                if self.state is LoopState.AWAITING_INPUT:
                    self._await_input()
                elif self.state is LoopState.AWAITING_MODEL:
                    self._await_model()
                else:
                    self._dispatch_pending()
        except BaseException:
            self.state = LoopState.TERMINAL
            raise
        finally:
            reset_current_conversation(token)
        return self.answer

    def step(self) -> CombinedMessage:
        """Run one model round and append the assistant turn to the transcript."""
        self._round.rounds += 1
        request = self.build_request()
        logger.info(
            "conversation.round.start round={} model={} turns={}",
            self._round.rounds,
            request.model,
            len(request.messages),
        )
        if self._options.stream:
            combined = self._stream_round(request)
        else:
            combined = CombinedMessage.from_completion(self._client.complete(request))
        self._transcript.append(combined.message)
        logger.info(
            "conversation.round.finish round={} finish_reason={} actions={}",
            self._round.rounds,
            combined.finish_reason or "-",
            len(combined.tool_calls),
        )
        return combined

    def build_request(self) -> ChatRequest:
        return ChatRequest(
            model=self._options.model,
            messages=list(self._transcript),
            temperature=self._options.temperature,
            stream=self._options.stream,
            response_format=self._options.response_format,
            tools=self._registry.tool_definitions(),
            max_tokens=self._options.max_tokens,
        )

    def _await_input(self) -> None:
        assert self._read_input is not None
        try:
            text = self._read_input()
        except EOFError:
            logger.info("conversation.input.closed")
            self.state = LoopState.TERMINAL
            return
        text = text.strip()
        if not text:
            return
        self._transcript.append(Message(role=Role.USER, content=text))
        self.state = LoopState.AWAITING_MODEL

    def _await_model(self) -> None:
        combined = self.step()
        if combined.finish is Finish.ACTION_REQUESTED and combined.tool_calls:
            self._round.pending = list(combined.tool_calls)
            self.state = LoopState.ACTION_DISPATCH
            return
        self.answer = combined.message.content
        self._emit("answer", {"content": self.answer, "streamed": self._options.stream})
        self.state = LoopState.TERMINAL if self._options.one_shot else LoopState.AWAITING_INPUT

    def _stream_round(self, request: ChatRequest) -> CombinedMessage:
        stream = FragmentStream(self._client.chat_lines(request))
        fragments = []
        try:
            for fragment in stream:
                fragments.append(fragment)
                self._emit("fragment", {"fragment": fragment})
            return combine(fragments)
        except StreamError as exc:
            logger.error("stream.combine.error error={} lines={}", exc, len(stream.lines))
            for idx, line in enumerate(stream.lines):
                logger.error("stream.line index={} {}", idx, line)
            raise

    def _dispatch_pending(self) -> None:
        calls, self._round.pending = self._round.pending, []
        # Resolve every name first so an unknown action leaves no partial results behind.
        for call in calls:
            self._registry.get(call.function.name)
        for call in calls:
            self._transcript.append(self._dispatch(call))
        self.state = LoopState.AWAITING_MODEL

    def _dispatch(self, call: ToolCall) -> Message:
        name = call.function.name
        self._emit("action_call", {"call": call})
        ok = True
        try:
            content = self._registry.dispatch(call)
        except UnknownAction:
            raise
        except Exception as exc:
            # Action failures are reported to the model instead of ending the conversation.
            logger.warning("action.call.error name={} id={} error={}", name, call.id or "-", exc)
            content = f"error: {exc!s}"
            ok = False
        self._emit("action_result", {"call": call, "content": content, "ok": ok})
        return Message(role=Role.TOOL, tool_call_id=call.id, name=name, content=content)

    def _emit(self, kind: str, payload: dict[str, Any]) -> None:
        if self._on_event is not None:
            self._on_event(ConversationEvent(kind, payload))
