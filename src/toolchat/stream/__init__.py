"""Streamed response decoding and reassembly."""

from .combiner import CombinedMessage, Finish, combine
from .frames import DATA_PREFIX, DONE_SENTINEL, Frame, FragmentStream, FrameKind, parse_line

__all__ = [
    "DATA_PREFIX",
    "DONE_SENTINEL",
    "CombinedMessage",
    "Finish",
    "Frame",
    "FragmentStream",
    "FrameKind",
    "combine",
    "parse_line",
]
