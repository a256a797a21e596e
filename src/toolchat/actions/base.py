"""Action contract and pydantic-model-backed actions."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel, ConfigDict, ValidationError

from ..errors import ActionNotLoadedError, ArgumentDecodeError
from ..schema import FunctionDefinition, ToolDefinition

P = TypeVar("P", bound=BaseModel)


class ActionInput(BaseModel):
    """Base for action argument models; accepts field names or their wire aliases."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class EmptyInput(ActionInput):
    """Empty input payload."""


@dataclass(frozen=True)
class ActionSchema:
    """What the model is told about one action."""

    name: str
    description: str
    parameters: dict[str, Any]

    def to_tool_definition(self) -> ToolDefinition:
        return ToolDefinition(
            function=FunctionDefinition(
                name=self.name,
                description=self.description,
                parameters=self.parameters,
            )
        )


@runtime_checkable
class Action(Protocol):
    """A named local capability the model may request."""

    @property
    def name(self) -> str: ...

    def describe(self) -> ActionSchema: ...

    def reset(self) -> None: ...

    def load(self, arguments: str) -> None: ...

    def execute(self) -> str: ...


def parameters_schema(model: type[BaseModel]) -> dict[str, Any]:
    """Reflect a pydantic model into a JSON-Schema object for the model API."""
    schema = model.model_json_schema()
    schema.pop("title", None)
    properties = schema.setdefault("properties", {})
    for prop in properties.values():
        if isinstance(prop, dict):
            prop.pop("title", None)
    schema["type"] = "object"
    return schema


class ModelAction(Generic[P]):
    """Action whose arguments are one pydantic model handed to a handler."""

    def __init__(
        self,
        model: type[P],
        handler: Callable[[P], str],
        *,
        name: str,
        description: str,
    ) -> None:
        self._model = model
        self._handler = handler
        self._name = name
        self._description = description
        self._params: P | None = None

    def __repr__(self) -> str:
        return f"ModelAction(name={self._name!r}, model={self._model.__name__})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def params(self) -> P | None:
        return self._params

    def describe(self) -> ActionSchema:
        return ActionSchema(
            name=self._name,
            description=self._description,
            parameters=parameters_schema(self._model),
        )

    def reset(self) -> None:
        self._params = None

    def load(self, arguments: str) -> None:
        raw = arguments if arguments.strip() else "{}"
        try:
            self._params = self._model.model_validate_json(raw)
        except ValidationError as exc:
            raise ArgumentDecodeError(f"can't parse arguments of {self._name!r}: {exc} --- {arguments}") from exc

    def execute(self) -> str:
        if self._params is None:
            raise ActionNotLoadedError(f"action {self._name!r} executed before its arguments were loaded")
        return self._handler(self._params)


def action_from_model(
    model: type[P],
    handler: Callable[[P], str],
    *,
    name: str,
    description: str,
) -> ModelAction[P]:
    """Build an action from an input model and a handler taking that model."""
    return ModelAction(model, handler, name=name, description=description)
