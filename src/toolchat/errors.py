"""Application-level exception types for toolchat."""

from __future__ import annotations

from collections.abc import Mapping


class ToolchatError(Exception):
    """Base exception for toolchat."""


class ConfigurationError(ToolchatError):
    """Base exception for configuration and startup validation errors."""


class ApiKeyNotConfiguredError(ConfigurationError):
    """Raised when an API key is required but missing."""


class TransportError(ToolchatError):
    """Raised when a request cannot be sent or returns a non-success status."""

    def __init__(self, message: str, *, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body

    def __str__(self) -> str:
        message = super().__str__()
        if self.body:
            return f"{message}\n{self.body}"
        return message


class StreamError(ToolchatError):
    """Base exception for malformed or inconsistent response streams."""


class ParseError(StreamError):
    """Raised when a data line does not decode into a fragment."""

    def __init__(self, message: str, *, line: str = "") -> None:
        super().__init__(message)
        self.line = line


class InconsistentStream(StreamError):
    """Raised when fragments of one turn disagree on an identity field."""

    def __init__(self, field: str, observed: Mapping[object, int]) -> None:
        super().__init__(f"mismatched {field!r}: {dict(observed)}")
        self.field = field
        self.observed = dict(observed)


class NoFragments(StreamError):
    """Raised when a stream ends without producing any fragment."""


class ActionError(ToolchatError):
    """Base exception for action lookup and execution."""


class UnknownAction(ActionError):
    """Raised when the model requests an action that is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"unknown action: {name!r}")
        self.name = name


class DuplicateActionError(ActionError):
    """Raised when two actions register under the same name."""


class ArgumentDecodeError(ActionError):
    """Raised when argument text does not fit an action's parameters."""


class ActionNotLoadedError(ActionError):
    """Raised when an action is executed before its arguments are loaded."""


class ReplNotFoundError(ActionError):
    """Raised when a REPL session id is not known."""
