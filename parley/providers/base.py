"""
AI Provider Interface
=====================

Vendor-agnostic contract for language-model backends. The orchestration
core only ever talks to an ``AIProvider``; concrete implementations live
next to this module and are picked by ``parley.providers.get_provider``.

A provider offers three capabilities:
    - ``generate_text``: prompt in, plain text out
    - ``generate_json``: prompt + ``JsonSchema`` in, parsed JSON out
    - ``generate_with_tools``: chat history + tool declarations in,
      either tool calls or final text out
"""

from __future__ import annotations

import abc
from typing import Any, Literal, Optional

from pydantic import BaseModel

from parley.models import ChatMessage, ProviderResponse


class JsonSchema(BaseModel):
    """
    Minimal JSON Schema subset used for structured output and tool parameters.

    Kept deliberately small so that every backend can express it.
    """

    type: Literal["object", "array", "string", "number", "integer", "boolean", "null"]
    description: Optional[str] = None
    properties: Optional[dict[str, JsonSchema]] = None
    required: Optional[list[str]] = None
    items: Optional[JsonSchema] = None
    enum: Optional[list[str]] = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


JsonSchema.model_rebuild()


class ToolDefinition(BaseModel):
    """A tool the model may call, described by name, purpose and parameters."""

    name: str
    description: str
    parameters: JsonSchema


class TextOptions(BaseModel):
    model: Optional[str] = None
    temperature: Optional[float] = None


class JsonOptions(TextOptions):
    # Some backends require a name for the response schema
    schema_name: Optional[str] = None


class AIProvider(abc.ABC):
    """
    Abstract base class for language-model backends.

    Implementations must be safe to call concurrently from several agent
    turns running on the same event loop.
    """

    name: str = "abstract"

    @abc.abstractmethod
    async def generate_text(
        self, prompt: str, options: Optional[TextOptions] = None
    ) -> str:
        """Generate a plain text response for a single prompt."""
        ...  # pragma: no cover

    @abc.abstractmethod
    async def generate_json(
        self,
        prompt: str,
        schema: JsonSchema,
        options: Optional[JsonOptions] = None,
    ) -> Any:
        """
        Generate a JSON value that conforms to ``schema``.

        Raises:
            ProviderError: If the backend's output cannot be parsed as JSON.
        """
        ...  # pragma: no cover

    @abc.abstractmethod
    async def generate_with_tools(
        self,
        history: list[ChatMessage],
        tools: list[ToolDefinition],
        system_instruction: str,
        options: Optional[TextOptions] = None,
    ) -> ProviderResponse:
        """
        Run one chat completion that may answer with tool calls.

        Args:
            history: Conversation so far, in causal order.
            tools: Tools the model is allowed to call.
            system_instruction: Persona and task instructions for this call.
            options: Model and sampling overrides.

        Returns:
            A ``ProviderResponse`` holding either tool calls or final text.
        """
        ...  # pragma: no cover

    async def close(self) -> None:
        """Release network resources held by the provider."""
