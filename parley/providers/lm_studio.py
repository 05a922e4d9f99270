"""
LM Studio Provider
==================

Runs agents against LM Studio's local server. LM Studio exposes an
OpenAI-compatible API on ``localhost:1234``, so completions go through the
shared OpenAI-compatible provider; this module adds the LM Studio-specific
model loading and health endpoints on a raw HTTP client.

Usage:
    >>> provider = LMStudioProvider("http://localhost:1234/v1", default_model="qwen2.5-7b-instruct")
    >>> await provider.health_check()
    True
    >>> text = await provider.generate_text("Say hi")
"""

from __future__ import annotations

import logging

import httpx

from parley.providers.openai_compat import OpenAICompatibleProvider

logger = logging.getLogger(__name__)


class LMStudioProvider(OpenAICompatibleProvider):
    """
    Provider backed by a local LM Studio server.

    Models are loaded on first use and remembered, so each model is only
    requested from LM Studio once per process.

    Attributes:
        base_url: Base URL for LM Studio API (e.g., "http://localhost:1234/v1")
        default_model: LM Studio model identifier used when a call doesn't override it
    """

    name = "lm_studio"

    def __init__(
        self,
        base_url: str = "http://localhost:1234/v1",
        default_model: str = "local-model",
        api_key: str = "lm-studio",
        timeout: float = 300.0,
    ):
        super().__init__(
            api_key=api_key,
            default_model=default_model,
            base_url=base_url,
            timeout=timeout,
            force_json=False,
        )

        # Raw HTTP client for model management endpoints
        # (model loading is LM Studio-specific, not part of the OpenAI API)
        self._server_base = base_url.replace("/v1", "")
        self._http_client = httpx.AsyncClient(
            base_url=self._server_base,
            timeout=httpx.Timeout(timeout, connect=10.0),
            headers={"Authorization": f"Bearer {api_key}"},
        )
        self._loaded_models: set[str] = set()

    async def close(self) -> None:
        """Clean up HTTP connections."""
        await self._http_client.aclose()
        await super().close()

    # =========================================================================
    # Model Management
    # =========================================================================

    async def load_model(self, model_identifier: str) -> bool:
        """
        Load a model into memory in LM Studio.

        Returns:
            True if the model is expected to be usable. Servers without the
            load endpoint auto-load on first request, so a non-200 answer is
            treated as success; only a connection failure returns False.
        """
        logger.info(f"Loading model: {model_identifier}")
        try:
            response = await self._http_client.post(
                "/v1/models/load",
                json={"model": model_identifier},
            )
        except httpx.ConnectError:
            logger.error("Cannot connect to LM Studio for model loading.")
            return False
        except httpx.HTTPError as e:
            logger.warning(f"Model load request for '{model_identifier}': {e}")
            return True

        if response.status_code == 200:
            logger.info(f"Model loaded successfully: {model_identifier}")
        else:
            logger.warning(
                f"Model load endpoint returned {response.status_code}. "
                f"Model may need to be loaded manually in LM Studio."
            )
        return True

    async def ensure_model_loaded(self, model_identifier: str) -> bool:
        if model_identifier in self._loaded_models:
            return True
        loaded = await self.load_model(model_identifier)
        if loaded:
            self._loaded_models.add(model_identifier)
        return loaded

    async def _prepare_model(self, model: str) -> None:
        await self.ensure_model_loaded(model)

    async def health_check(self) -> bool:
        """Check if LM Studio's server is running and accessible."""
        try:
            response = await self._http_client.get("/v1/models")
            return response.status_code == 200
        except httpx.HTTPError:
            return False
