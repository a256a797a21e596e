"""Wire models for the chat completions API."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def _none_to_empty_str(value: Any) -> Any:
    return "" if value is None else value


def _none_to_empty_list(value: Any) -> Any:
    return [] if value is None else value


# Streamed payloads send explicit nulls for absent text and lists.
WireStr = Annotated[str, BeforeValidator(_none_to_empty_str)]


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class FunctionCall(_WireModel):
    name: WireStr = ""
    arguments: WireStr = ""


class ToolCall(_WireModel):
    """One action request; on the wire only the first fragment carries the id."""

    id: WireStr = ""
    type: WireStr = ""
    index: int | None = None
    function: FunctionCall = Field(default_factory=FunctionCall)

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type or "function",
            "function": {"name": self.function.name, "arguments": self.function.arguments},
        }


class Message(_WireModel):
    """One transcript turn."""

    role: Role
    content: WireStr = ""
    tool_calls: Annotated[list[ToolCall], BeforeValidator(_none_to_empty_list)] = Field(default_factory=list)
    tool_call_id: WireStr = ""
    name: WireStr = ""

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = [call.to_wire() for call in self.tool_calls]
        if self.tool_call_id:
            payload["tool_call_id"] = self.tool_call_id
        if self.name:
            payload["name"] = self.name
        return payload


class Delta(_WireModel):
    role: WireStr = ""
    content: WireStr = ""
    tool_calls: Annotated[list[ToolCall], BeforeValidator(_none_to_empty_list)] = Field(default_factory=list)


class StreamingChoice(_WireModel):
    index: int = 0
    delta: Delta = Field(default_factory=Delta)
    finish_reason: WireStr = ""


class Fragment(_WireModel):
    """One decoded ``data:`` event of a streamed completion."""

    id: str
    object: str
    created: int
    model: str
    choices: Annotated[list[StreamingChoice], BeforeValidator(_none_to_empty_list)] = Field(default_factory=list)


class Usage(_WireModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class Choice(_WireModel):
    index: int = 0
    message: Message
    finish_reason: WireStr = ""


class ChatCompletion(_WireModel):
    """Non-streamed completion response."""

    id: str
    object: str
    created: int
    model: str
    usage: Usage | None = None
    choices: list[Choice] = Field(default_factory=list)


class FunctionDefinition(_WireModel):
    name: str
    description: str = ""
    parameters: dict[str, Any]


class ToolDefinition(_WireModel):
    type: str = "function"
    function: FunctionDefinition


class ChatRequest(_WireModel):
    model: str
    messages: list[Message]
    temperature: float = 0.7
    stream: bool = False
    response_format: str | None = "text"
    tools: list[ToolDefinition] = Field(default_factory=list)
    max_tokens: int | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "temperature": self.temperature,
            "messages": [message.to_wire() for message in self.messages],
        }
        if self.stream:
            payload["stream"] = True
        if self.response_format:
            payload["response_format"] = {"type": self.response_format}
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        if self.tools:
            payload["tools"] = [tool.model_dump() for tool in self.tools]
        return payload


class ModelInfo(_WireModel):
    id: str
    object: str = "model"
    created: int = 0
    owned_by: WireStr = ""
