"""Decoding of server-sent event lines into completion fragments."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import StrEnum

from pydantic import ValidationError

from ..errors import ParseError
from ..schema import Fragment

DATA_PREFIX = "data: "
DONE_SENTINEL = DATA_PREFIX + "[DONE]"


class FrameKind(StrEnum):
    IGNORE = "ignore"
    TERMINATE = "terminate"
    FRAGMENT = "fragment"


@dataclass(frozen=True)
class Frame:
    """Outcome of decoding one wire line."""

    kind: FrameKind
    fragment: Fragment | None = None


IGNORED = Frame(FrameKind.IGNORE)
TERMINATED = Frame(FrameKind.TERMINATE)


def parse_line(line: str) -> Frame:
    """Decode one line of an event stream.

    Blank lines and anything that is not a ``data:`` event are ignored. The
    ``[DONE]`` sentinel terminates the stream. A data event whose payload is
    not a valid fragment raises :class:`ParseError`.
    """
    stripped = line.strip()
    if stripped.startswith(DONE_SENTINEL):
        return TERMINATED
    if not stripped.startswith(DATA_PREFIX):
        return IGNORED
    payload = stripped[len(DATA_PREFIX) :]
    try:
        fragment = Fragment.model_validate_json(payload)
    except ValidationError as exc:
        raise ParseError(f"invalid fragment: {exc}", line=stripped) from exc
    return Frame(FrameKind.FRAGMENT, fragment)


class FragmentStream:
    """Iterate the fragments of one streamed round.

    Every non-blank raw line is kept in :attr:`lines` for diagnostics.
    Iteration stops at the sentinel or when the underlying lines run out.
    """

    def __init__(self, lines: Iterable[str]) -> None:
        self._lines = lines
        self.lines: list[str] = []
        self.terminated = False

    def __iter__(self) -> Iterator[Fragment]:
        for raw in self._lines:
            stripped = raw.strip()
            if stripped:
                self.lines.append(stripped)
            frame = parse_line(stripped)
            if frame.kind is FrameKind.TERMINATE:
                self.terminated = True
                return
            if frame.fragment is not None:
                yield frame.fragment
