"""Reassembly of streamed fragments into one complete assistant turn."""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Hashable, Sequence
from dataclasses import dataclass
from enum import StrEnum

from ..errors import InconsistentStream, NoFragments
from ..schema import ChatCompletion, Fragment, FunctionCall, Message, Role, ToolCall

FINISH_TOOL_CALLS = "tool_calls"
FINISH_STOP = "stop"


class Finish(StrEnum):
    ACTION_REQUESTED = "action_requested"
    ENDED = "ended"
    OTHER = "other"

    @classmethod
    def from_reason(cls, reason: str) -> Finish:
        if reason == FINISH_TOOL_CALLS:
            return cls.ACTION_REQUESTED
        if reason == FINISH_STOP:
            return cls.ENDED
        return cls.OTHER


@dataclass(frozen=True)
class CombinedMessage:
    """One fully merged assistant turn plus its finish indicator."""

    id: str
    object: str
    created: int
    model: str
    index: int
    message: Message
    finish_reason: str

    @property
    def finish(self) -> Finish:
        return Finish.from_reason(self.finish_reason)

    @property
    def tool_calls(self) -> list[ToolCall]:
        return self.message.tool_calls

    @classmethod
    def from_completion(cls, completion: ChatCompletion) -> CombinedMessage:
        """Adapt a non-streamed completion, which must carry exactly one choice."""
        if len(completion.choices) != 1:
            raise InconsistentStream("len choices", {len(completion.choices): 1})
        choice = completion.choices[0]
        return cls(
            id=completion.id,
            object=completion.object,
            created=completion.created,
            model=completion.model,
            index=choice.index,
            message=choice.message,
            finish_reason=choice.finish_reason,
        )


def _check_unique(name: str, fragments: Sequence[Fragment], key: Callable[[Fragment], Hashable]) -> None:
    observed = Counter(key(fragment) for fragment in fragments)
    if len(observed) != 1:
        raise InconsistentStream(name, observed)


def _tool_call_cardinality(fragment: Fragment) -> int:
    # A fragment without an action-request piece counts like one with exactly one.
    return len(fragment.choices[0].delta.tool_calls) or 1


def _merge_tool_calls(fragments: Sequence[Fragment]) -> list[ToolCall]:
    """Group action-request pieces by correlation id, in first-seen order.

    Only the first piece of a request carries its id; continuation pieces
    arrive with an empty id and belong to the most recent id seen. Requests
    whose pieces interleave on the wire are not separated: every piece is
    attributed to the last id seen, so interleaving corrupts the result.
    """
    pieces_by_id: dict[str, list[ToolCall]] = {}
    cursor = ""
    for fragment in fragments:
        delta = fragment.choices[0].delta
        if not delta.tool_calls:
            continue
        piece = delta.tool_calls[0]
        if piece.id and piece.id != cursor:
            cursor = piece.id
        pieces_by_id.setdefault(cursor, []).append(piece)

    merged: list[ToolCall] = []
    for call_id, pieces in pieces_by_id.items():
        call_type = ""
        name = ""
        arguments: list[str] = []
        for piece in pieces:
            if piece.type:
                call_type = piece.type
            if piece.function.name:
                name = piece.function.name
            arguments.append(piece.function.arguments)
        merged.append(
            ToolCall(
                id=call_id,
                type=call_type or "function",
                function=FunctionCall(name=name, arguments="".join(arguments)),
            )
        )
    return merged


def combine(fragments: Sequence[Fragment]) -> CombinedMessage:
    """Merge the fragments of one streamed turn, in arrival order."""
    if not fragments:
        raise NoFragments("no fragments")

    _check_unique("id", fragments, lambda f: f.id)
    _check_unique("object", fragments, lambda f: f.object)
    _check_unique("model", fragments, lambda f: f.model)
    _check_unique("created", fragments, lambda f: f.created)
    _check_unique("len choices", fragments, lambda f: len(f.choices))
    first = fragments[0]
    if len(first.choices) != 1:
        raise InconsistentStream("len choices", {len(first.choices): len(fragments)})
    _check_unique("len tool_calls", fragments, _tool_call_cardinality)
    _check_unique("index", fragments, lambda f: f.choices[0].index)

    role = ""
    content: list[str] = []
    finish_reason = ""
    for fragment in fragments:
        choice = fragment.choices[0]
        if choice.delta.role:
            role = choice.delta.role
        content.append(choice.delta.content)
        if choice.finish_reason:
            finish_reason = choice.finish_reason

    message = Message(
        role=role or Role.ASSISTANT,
        content="".join(content),
        tool_calls=_merge_tool_calls(fragments),
    )
    return CombinedMessage(
        id=first.id,
        object=first.object,
        created=first.created,
        model=first.model,
        index=first.choices[0].index,
        message=message,
        finish_reason=finish_reason,
    )
