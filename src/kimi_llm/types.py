"""Provider-agnostic request models and the Kimi wire format."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["system", "user", "assistant"]


class TextPart(BaseModel):
    """Plain text content."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ImagePart(BaseModel):
    """Image content. The Kimi chat endpoint only receives text, so images are dropped."""

    model_config = ConfigDict(frozen=True)

    type: Literal["image"] = "image"
    source: str


MessagePart = Annotated[TextPart | ImagePart, Field(discriminator="type")]


class Message(BaseModel):
    """Single chat message."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str | tuple[MessagePart, ...] = ""

    def string_contents(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return "".join(part.text for part in self.content if isinstance(part, TextPart))


class ToolSpec(BaseModel):
    """Simple JSON-schema tool definition."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    json_schema: dict[str, Any] = Field(default_factory=dict)


class ForceTool(BaseModel):
    """Tool choice policy that forces the model to call one named tool."""

    model_config = ConfigDict(frozen=True)

    name: str


ToolChoice = Literal["auto"] | ForceTool


class ChatRequest(BaseModel):
    """Normalized request, immutable once built."""

    model_config = ConfigDict(frozen=True)

    messages: tuple[Message, ...] = ()
    tool: ToolSpec | None = None
    tool_choice: ToolChoice = "auto"
    stop: tuple[str, ...] = ()
    temperature: float = 1.0


# --- wire format (OpenAI compatible chat completions) ---


class WireMessage(BaseModel):
    role: Role
    content: str


class FunctionDefinition(BaseModel):
    name: str
    description: str | None = None
    parameters: dict[str, Any] | None = None


class ToolDefinition(BaseModel):
    type: Literal["function"] = "function"
    function: FunctionDefinition


class WireRequest(BaseModel):
    """Body of a streaming ``/chat/completions`` call."""

    model: str
    messages: list[WireMessage]
    stream: bool = True
    stop: list[str] = Field(default_factory=list)
    temperature: float = 1.0
    max_tokens: int | None = None
    tools: list[ToolDefinition] = Field(default_factory=list)
    tool_choice: Literal["auto", "none", "required"] | ToolDefinition | None = None

    def to_payload(self) -> dict[str, Any]:
        payload = self.model_dump(exclude_none=True)
        if not self.tools:
            payload.pop("tools", None)
        return payload


class StreamEvent(BaseModel):
    """Streaming update decoded from one server-sent event."""

    type: Literal["text_delta", "tool_delta", "done"]
    text: str | None = None
    tool_name: str | None = None
    tool_index: int | None = None
    arguments: str | None = None
    finish_reason: str | None = None
    # provider-specific payload kept for debugging or advanced use
    raw: dict[str, Any] | None = None


class CredentialSource(str, Enum):
    ENVIRONMENT = "environment"
    STORE = "store"
    UNSET = "unset"


class Credential(BaseModel):
    """An API key and where it came from."""

    model_config = ConfigDict(frozen=True)

    secret: str = Field(repr=False)
    source: CredentialSource


class ModelDescriptor(BaseModel):
    """Catalog entry for one chat model."""

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    max_tokens: int
    max_output_tokens: int | None = None
    is_custom: bool = False
