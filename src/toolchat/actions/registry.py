"""Registry of actions available to the model."""

from __future__ import annotations

import time

from loguru import logger

from ..errors import DuplicateActionError, UnknownAction
from ..schema import ToolCall, ToolDefinition
from .base import Action, ActionSchema


def _shorten_text(text: str, width: int = 60, placeholder: str = "...") -> str:
    """Shorten text to width characters, cutting in the middle of words if needed."""
    if len(text) <= width:
        return text
    available = width - len(placeholder)
    if available <= 0:
        return placeholder
    return text[:available] + placeholder


class ActionRegistry:
    """Lookup of actions by name.

    Each action instance holds the arguments of at most one call, so the
    registry must not dispatch the same action concurrently.
    """

    def __init__(self) -> None:
        self._actions: dict[str, Action] = {}

    def __len__(self) -> int:
        return len(self._actions)

    def __contains__(self, name: object) -> bool:
        return name in self._actions

    def register(self, action: Action) -> Action:
        name = action.name
        if name in self._actions:
            raise DuplicateActionError(f"duplicate action: {name}")
        self._actions[name] = action
        logger.debug("action.registered name={}", name)
        return action

    def has(self, name: str) -> bool:
        return name in self._actions

    def get(self, name: str) -> Action:
        action = self._actions.get(name)
        if action is None:
            raise UnknownAction(name)
        return action

    def names(self) -> list[str]:
        return list(self._actions)

    def schemas(self) -> list[ActionSchema]:
        return [action.describe() for action in self._actions.values()]

    def tool_definitions(self) -> list[ToolDefinition]:
        return [schema.to_tool_definition() for schema in self.schemas()]

    def dispatch(self, call: ToolCall) -> str:
        """Reset, load and execute the action named by ``call``.

        Argument and execution errors propagate to the caller.
        """
        name = call.function.name
        action = self.get(name)
        logger.info(
            "action.call.start name={} id={} {{ {} }}",
            name,
            call.id or "-",
            _shorten_text(call.function.arguments),
        )
        start = time.monotonic()
        try:
            action.reset()
            action.load(call.function.arguments)
            return action.execute()
        finally:
            duration = time.monotonic() - start
            logger.info("action.call.end name={} duration={:.3f}ms", name, duration * 1000)
