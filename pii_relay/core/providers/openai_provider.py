"""
OpenAI / Azure OpenAI providers — native function-calling chat completions.
"""

from __future__ import annotations
import logging
import os
from typing import Any, Optional

from .base import BaseLLMProvider, ProviderFactory
from ..errors import ConfigError, ErrorCode, ModelProviderError
from ..models import ChatMessage, ModelResponse, ToolCallRequest, ToolSchema

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseLLMProvider):
    """OpenAI chat completions with tool calling."""

    def __init__(self, model: str = "gpt-4o", api_key: Optional[str] = None,
                 base_url: str = "https://api.openai.com/v1", client: Any = None, **kwargs):
        super().__init__(
            model=model,
            base_url=base_url,
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            **kwargs,
        )
        self._client = client

    def _create_client(self):
        from openai import AsyncOpenAI

        return AsyncOpenAI(api_key=self.api_key, base_url=self.base_url, timeout=self.timeout)

    @property
    def client(self):
        if self._client is None:
            if not self.api_key:
                raise ConfigError(f"{self.provider_name}: no API key configured")
            self._client = self._create_client()
        return self._client

    async def complete(
        self,
        model: str,
        messages: list[dict],
        tools: list[ToolSchema],
    ) -> ModelResponse:
        request: dict = {"model": model or self.model, "messages": messages}
        if tools:
            request["tools"] = [t.to_dict() for t in tools]
        if self.temperature is not None:
            request["temperature"] = self.temperature

        try:
            response = await self.client.chat.completions.create(**request)
        except ConfigError:
            raise
        except Exception as e:
            raise ModelProviderError(
                f"{self.provider_name} request failed: {type(e).__name__}: {e}"
            ) from e

        return self._parse_response(response)

    def _parse_response(self, response: Any) -> ModelResponse:
        if not getattr(response, "choices", None):
            raise ModelProviderError(
                f"{self.provider_name} returned no choices", ErrorCode.MODEL_EMPTY_RESPONSE
            )
        choice = response.choices[0]
        raw = choice.message

        tool_calls = None
        if getattr(raw, "tool_calls", None):
            tool_calls = [
                ToolCallRequest(
                    id=tc.id,
                    function_name=tc.function.name,
                    raw_arguments=tc.function.arguments or "",
                )
                for tc in raw.tool_calls
            ]

        # Some deployments report "stop" while still returning tool_calls
        finish_reason = choice.finish_reason or "stop"
        if tool_calls and finish_reason != "tool_calls":
            logger.debug(f"finish_reason={finish_reason!r} with tool_calls; treating as tool_calls")
            finish_reason = "tool_calls"

        usage = None
        if getattr(response, "usage", None):
            usage = {
                "input_tokens": getattr(response.usage, "prompt_tokens", 0),
                "output_tokens": getattr(response.usage, "completion_tokens", 0),
            }

        return ModelResponse(
            finish_reason=finish_reason,
            message=ChatMessage(
                role="assistant",
                content=raw.content,
                tool_calls=tool_calls,
            ),
            usage=usage,
        )


class AzureOpenAIProvider(OpenAIProvider):
    """Azure OpenAI deployment; ``model`` is the deployment name."""

    def __init__(self, model: str = "gpt-4o", api_key: Optional[str] = None,
                 endpoint: Optional[str] = None, api_version: str = "2024-05-01-preview",
                 client: Any = None, **kwargs):
        super().__init__(
            model=model,
            api_key=api_key or os.getenv("AZURE_OPENAI_API_KEY"),
            base_url=endpoint or os.getenv("AZURE_OPENAI_ENDPOINT"),
            client=client,
            **kwargs,
        )
        self.api_version = api_version

    def _create_client(self):
        from openai import AsyncAzureOpenAI

        if not self.base_url:
            raise ConfigError("Azure OpenAI endpoint is not configured")
        return AsyncAzureOpenAI(
            azure_endpoint=self.base_url,
            api_key=self.api_key,
            api_version=self.api_version,
            timeout=self.timeout,
        )


ProviderFactory.register("openai", OpenAIProvider)
ProviderFactory.register("azure", AzureOpenAIProvider)
