"""Ready-made registries and single-round helpers."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from .actions import ActionRegistry, ReplSessions, register_builtin_actions, register_repl_actions
from .config import DEFAULT_SYSTEM_PROMPT, Settings
from .conversation import CompletionClient
from .schema import ChatRequest, Message
from .stream import FragmentStream, combine

__all__ = ["DEFAULT_SYSTEM_PROMPT", "Reply", "standard_registry", "stream_completion"]


@dataclass(frozen=True)
class Reply:
    content: str
    finish_reason: str


def standard_registry(
    settings: Settings,
    sessions: ReplSessions,
    *,
    workspace: Path | None = None,
) -> ActionRegistry:
    """Registry holding every built-in action and the REPL actions bound to ``sessions``."""
    registry = ActionRegistry()
    register_builtin_actions(
        registry,
        workspace=workspace or Path.cwd(),
        jokes_file=settings.jokes_file,
    )
    register_repl_actions(registry, sessions)
    return registry


def stream_completion(
    client: CompletionClient,
    model: str,
    messages: Sequence[Message],
    out: TextIO,
    *,
    temperature: float = 0.7,
) -> Reply:
    """Stream one completion without actions, echoing content to ``out`` as it arrives."""
    request = ChatRequest(model=model, messages=list(messages), temperature=temperature, stream=True)
    fragments = []
    for fragment in FragmentStream(client.chat_lines(request)):
        fragments.append(fragment)
        for choice in fragment.choices:
            if choice.delta.content:
                out.write(choice.delta.content)
                out.flush()
    combined = combine(fragments)
    return Reply(content=combined.message.content, finish_reason=combined.finish_reason)
