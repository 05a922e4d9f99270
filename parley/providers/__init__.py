"""
AI Providers
============

Interchangeable language-model backends behind the ``AIProvider`` interface.

Available providers:
    - ``OpenAIProvider``: Hosted OpenAI (or a compatible proxy)
    - ``LMStudioProvider``: A local LM Studio server

``get_provider`` picks one from configuration with this fallback order:
explicit provider name (config, then ``PARLEY_AI_PROVIDER``) > an OpenAI
key being present > LM Studio.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from parley.exceptions import ProviderConfigError
from parley.providers.base import (
    AIProvider,
    JsonOptions,
    JsonSchema,
    TextOptions,
    ToolDefinition,
)
from parley.providers.lm_studio import LMStudioProvider
from parley.providers.openai_compat import OpenAICompatibleProvider, OpenAIProvider

if TYPE_CHECKING:
    from parley.config import ProviderSettings

logger = logging.getLogger(__name__)

__all__ = [
    "AIProvider",
    "JsonOptions",
    "JsonSchema",
    "LMStudioProvider",
    "OpenAICompatibleProvider",
    "OpenAIProvider",
    "TextOptions",
    "ToolDefinition",
    "get_provider",
    "resolve_provider_name",
]


def resolve_provider_name(settings: ProviderSettings) -> str:
    """Decide which backend to use without constructing it."""
    explicit = (settings.name or os.environ.get("PARLEY_AI_PROVIDER") or "").strip().lower()
    if explicit:
        return explicit
    if settings.openai.api_key or os.environ.get("OPENAI_API_KEY"):
        return "openai"
    return "lm_studio"


def get_provider(settings: ProviderSettings) -> AIProvider:
    """
    Build the configured provider.

    Raises:
        ProviderConfigError: If the provider name is unknown or its
                             credentials are missing.
    """
    name = resolve_provider_name(settings)
    logger.info(f"Using AI provider: {name}")

    if name == "openai":
        api_key = settings.openai.api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ProviderConfigError("Missing required env for OpenAI API key (OPENAI_API_KEY)")
        return OpenAIProvider(
            api_key=api_key,
            default_model=settings.openai.model,
            base_url=settings.openai.base_url or os.environ.get("OPENAI_BASE_URL"),
            timeout=settings.timeout,
            force_json=settings.openai.force_json,
        )

    if name == "lm_studio":
        return LMStudioProvider(
            base_url=settings.lm_studio.base_url,
            default_model=settings.lm_studio.model,
            api_key=settings.lm_studio.api_key,
            timeout=settings.timeout,
        )

    raise ProviderConfigError(
        f"Unknown AI provider '{name}'. Available: ['openai', 'lm_studio']"
    )
