"""Maps provider-agnostic chat requests onto the Kimi wire format."""

from __future__ import annotations

from kimi_llm.types import (
    ChatRequest,
    ForceTool,
    FunctionDefinition,
    Message,
    ToolDefinition,
    ToolSpec,
    WireMessage,
    WireRequest,
)


def to_wire_request(
    request: ChatRequest,
    model_id: str,
    max_output_tokens: int | None = None,
) -> WireRequest:
    """Build a fresh streaming request body. Pure: no I/O and no shared state."""
    wire = WireRequest(
        model=model_id,
        messages=[_serialize_message(m) for m in request.messages],
        stop=list(request.stop),
        temperature=request.temperature,
        max_tokens=max_output_tokens,
    )

    if isinstance(request.tool_choice, ForceTool):
        tool = request.tool
        if tool is None or tool.name != request.tool_choice.name:
            tool = ToolSpec(name=request.tool_choice.name)
        # exactly one tool offered and named in tool_choice, so nothing else can be picked
        wire.tools = [_serialize_tool(tool)]
        wire.tool_choice = ToolDefinition(function=FunctionDefinition(name=tool.name))
    elif request.tool is not None:
        wire.tools = [_serialize_tool(request.tool)]
        wire.tool_choice = "auto"

    return wire


def _serialize_message(message: Message) -> WireMessage:
    return WireMessage(role=message.role, content=message.string_contents())


def _serialize_tool(tool: ToolSpec) -> ToolDefinition:
    return ToolDefinition(
        function=FunctionDefinition(
            name=tool.name,
            description=tool.description or None,
            parameters=tool.json_schema or None,
        )
    )
