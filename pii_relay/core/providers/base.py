"""
Abstract base class for model collaborators.
Every provider receives an already-tokenized message snapshot.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Optional

from ..errors import ConfigError
from ..models import ModelResponse, ToolSchema


class BaseLLMProvider(ABC):
    """Abstract chat-completion provider interface."""

    def __init__(self, model: str, base_url: Optional[str] = None, api_key: Optional[str] = None, **kwargs):
        self.model = model
        self.base_url = base_url
        self._api_key = api_key
        self.temperature = kwargs.get("temperature")
        self.timeout = kwargs.get("timeout", 300)

    @property
    def api_key(self) -> Optional[str]:
        """Access the API key (property to avoid accidental logging)."""
        return self._api_key

    def __repr__(self) -> str:
        """Mask API key in repr to prevent accidental logging."""
        masked = f"***{self._api_key[-4:]}" if self._api_key and len(self._api_key) > 4 else "***"
        return (
            f"{self.__class__.__name__}(model={self.model!r}, "
            f"api_key={masked!r})"
        )

    @abstractmethod
    async def complete(
        self,
        model: str,
        messages: list[dict],
        tools: list[ToolSchema],
    ) -> ModelResponse:
        """
        Send one chat-completion request.

        Args:
            model: Model / deployment id to use for this request
            messages: Ordered transport-shaped secure-message snapshot
            tools: Tool schemas the model may call

        Raises:
            ModelProviderError: on any failure; no retries are attempted.
        """

    @property
    def provider_name(self) -> str:
        return self.__class__.__name__


class ProviderFactory:
    """Create a model provider from config."""

    _providers: dict[str, type[BaseLLMProvider]] = {}

    @classmethod
    def register(cls, name: str, provider_class: type[BaseLLMProvider]):
        cls._providers[name] = provider_class

    @classmethod
    def available(cls) -> list[str]:
        return list(cls._providers.keys())

    @classmethod
    def create(cls, config: dict) -> BaseLLMProvider:
        """
        Create provider from config dict.

        Config structure:
            llm:
              provider: "azure"
              model: "gpt-4o"
            providers:
              azure:
                endpoint: "https://<resource>.openai.azure.com/"
                api_version: "2024-05-01-preview"
        """
        llm_config = config.get("llm", {}) or {}
        provider_name = llm_config.get("provider", "azure")
        provider_config = (config.get("providers", {}) or {}).get(provider_name, {}) or {}

        if provider_name not in cls._providers:
            raise ConfigError(
                f"Unknown provider: {provider_name}. "
                f"Available: {list(cls._providers.keys())}"
            )

        provider_class = cls._providers[provider_name]
        kwargs = dict(provider_config)
        if llm_config.get("temperature") is not None:
            kwargs["temperature"] = llm_config["temperature"]
        return provider_class(model=llm_config.get("model", "gpt-4o"), **kwargs)
