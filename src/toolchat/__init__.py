"""toolchat - chat completions with locally executed actions."""

from .actions import ActionRegistry, ReplSessions
from .client import ChatClient
from .conversation import ChatOptions, Conversation, ConversationEvent, LoopState, Transcript
from .stream import CombinedMessage, FragmentStream, combine

__version__ = "0.1.0"

__all__ = [
    "ActionRegistry",
    "ChatClient",
    "ChatOptions",
    "CombinedMessage",
    "Conversation",
    "ConversationEvent",
    "FragmentStream",
    "LoopState",
    "ReplSessions",
    "Transcript",
    "combine",
]
