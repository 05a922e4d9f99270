"""
OpenAI-Compatible Provider
==========================

Implements ``AIProvider`` on top of the OpenAI SDK's chat completions API.
Both hosted OpenAI and local OpenAI-compatible servers (LM Studio) speak
this protocol, so the two concrete providers share this class and only
differ in how they are configured.

History conversion:
    - ``user`` messages become ``user`` turns
    - ``model`` messages become ``assistant`` turns; other agents' answers
      are prefixed with ``[Agent Name]:`` so the model can tell speakers apart
    - ``model`` messages with tool calls become ``assistant`` turns carrying
      ``tool_calls``
    - ``tool`` messages become ``tool`` turns keyed by ``tool_call_id``
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from openai import AsyncOpenAI

from parley.exceptions import ProviderError
from parley.models import ChatMessage, ProviderResponse, Role, ToolCall
from parley.providers.base import (
    AIProvider,
    JsonOptions,
    JsonSchema,
    TextOptions,
    ToolDefinition,
)

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider(AIProvider):
    """
    Async provider for any server implementing the OpenAI chat API.

    Attributes:
        base_url: API base URL, or None for the SDK default (api.openai.com)
        default_model: Model used when a call doesn't override it
        force_json: Request ``response_format=json_object`` for JSON calls
    """

    name = "openai_compatible"

    def __init__(
        self,
        api_key: str,
        default_model: str,
        base_url: Optional[str] = None,
        timeout: float = 120.0,
        force_json: bool = False,
    ):
        self.base_url = base_url
        self.default_model = default_model
        self.force_json = force_json
        self.openai_client = AsyncOpenAI(
            base_url=base_url,
            api_key=api_key,
            timeout=timeout,
        )

    async def close(self) -> None:
        await self.openai_client.close()

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _normalize_text(value: Any) -> str:
        """Best-effort conversion of OpenAI-compatible content shapes to plain text."""
        if value is None:
            return ""
        if isinstance(value, str):
            return value
        if isinstance(value, dict):
            text = value.get("text") or value.get("content") or value.get("value")
            return text if isinstance(text, str) else ""
        if isinstance(value, list):
            parts: list[str] = []
            for item in value:
                if isinstance(item, str):
                    parts.append(item)
                elif isinstance(item, dict):
                    # Content part objects like {"type":"text","text":"..."}
                    text = item.get("text") or item.get("content") or item.get("value")
                    if isinstance(text, str):
                        parts.append(text)
                else:
                    text = getattr(item, "text", None) or getattr(item, "content", None)
                    if isinstance(text, str):
                        parts.append(text)
            return "".join(parts)
        text = getattr(value, "text", None) or getattr(value, "content", None)
        return text if isinstance(text, str) else ""

    @staticmethod
    def _to_openai_messages(
        history: list[ChatMessage], system_instruction: str
    ) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})

        for msg in history:
            if msg.role == Role.USER:
                messages.append({"role": "user", "content": msg.content})
            elif msg.role == Role.MODEL and msg.tool_calls:
                messages.append({
                    "role": "assistant",
                    "content": msg.content or None,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {
                                "name": call.name,
                                "arguments": json.dumps(call.args),
                            },
                        }
                        for call in msg.tool_calls
                    ],
                })
            elif msg.role == Role.MODEL:
                content = msg.content
                if msg.persona:
                    content = f"[{msg.persona}]: {content}"
                messages.append({"role": "assistant", "content": content})
            elif msg.role == Role.TOOL:
                messages.append({
                    "role": "tool",
                    "tool_call_id": msg.answered_call_id(),
                    "content": msg.content,
                })
            else:
                messages.append({"role": "system", "content": msg.content})
        return messages

    @staticmethod
    def _to_openai_tools(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters.to_dict(),
                },
            }
            for tool in tools
        ]

    async def _prepare_model(self, model: str) -> None:
        """Hook for backends that need a model to be loaded before use."""

    # =========================================================================
    # AIProvider
    # =========================================================================

    async def generate_text(
        self, prompt: str, options: Optional[TextOptions] = None
    ) -> str:
        options = options or TextOptions()
        model = options.model or self.default_model
        await self._prepare_model(model)

        completion = await self.openai_client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": prompt}],
            temperature=options.temperature,
            stream=False,
        )
        if not completion.choices:
            return ""
        return self._normalize_text(completion.choices[0].message.content).strip()

    async def generate_json(
        self,
        prompt: str,
        schema: JsonSchema,
        options: Optional[JsonOptions] = None,
    ) -> Any:
        options = options or JsonOptions()
        model = options.model or self.default_model
        await self._prepare_model(model)

        json_prompt = (
            f"{prompt}\n\nYou MUST return a single JSON value that strictly matches "
            f"this JSON Schema: {json.dumps(schema.to_dict())}.\n"
            "Rules: Do not include any extra text. Do not leave any required fields empty."
        )
        request: dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": json_prompt}],
            "temperature": options.temperature,
            "stream": False,
        }
        if self.force_json:
            request["response_format"] = {"type": "json_object"}

        completion = await self.openai_client.chat.completions.create(**request)
        text = ""
        if completion.choices:
            text = self._normalize_text(completion.choices[0].message.content).strip()
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ProviderError(f"Model '{model}' returned invalid JSON: {e}") from e

    async def generate_with_tools(
        self,
        history: list[ChatMessage],
        tools: list[ToolDefinition],
        system_instruction: str,
        options: Optional[TextOptions] = None,
    ) -> ProviderResponse:
        options = options or TextOptions()
        model = options.model or self.default_model
        await self._prepare_model(model)

        request: dict[str, Any] = {
            "model": model,
            "messages": self._to_openai_messages(history, system_instruction),
            "temperature": options.temperature,
            "stream": False,
        }
        if tools:
            request["tools"] = self._to_openai_tools(tools)

        completion = await self.openai_client.chat.completions.create(**request)
        if not completion.choices:
            return ProviderResponse()

        message = completion.choices[0].message
        tool_calls: list[ToolCall] = []
        for call in message.tool_calls or []:
            raw_args = call.function.arguments or "{}"
            try:
                args = json.loads(raw_args)
            except json.JSONDecodeError as e:
                raise ProviderError(
                    f"Tool call '{call.function.name}' has malformed arguments: {raw_args!r}"
                ) from e
            tool_calls.append(ToolCall(id=call.id, name=call.function.name, args=args))

        if tool_calls:
            logger.debug(f"Model '{model}' requested tools: {[c.name for c in tool_calls]}")
            return ProviderResponse(tool_calls=tool_calls)

        return ProviderResponse(text=self._normalize_text(message.content).strip())


class OpenAIProvider(OpenAICompatibleProvider):
    """Hosted OpenAI (or any proxy configured through ``base_url``)."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        default_model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        timeout: float = 120.0,
        force_json: bool = False,
    ):
        # JSON mode is only guaranteed on api.openai.com
        if not base_url or "openai.com" in base_url:
            force_json = True
        super().__init__(
            api_key=api_key,
            default_model=default_model,
            base_url=base_url,
            timeout=timeout,
            force_json=force_json,
        )
