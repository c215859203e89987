"""Language-model providers behind one completion + liveness capability."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage

from crossdoc.config import ProviderEndpoint
from crossdoc.types import ProviderKind

logger = logging.getLogger(__name__)


class ChatProvider(ABC):
    """A backend able to complete chat messages.

    Routing switches on `kind`; nothing else about a provider is inspected.
    """

    def __init__(self, name: str, kind: ProviderKind) -> None:
        self.name = name
        self.kind = kind

    @abstractmethod
    async def chat_complete(
        self,
        messages: list[BaseMessage],
        model_id: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Return the completion text for `messages`."""

    @abstractmethod
    async def is_available(self) -> bool:
        """Liveness check. Must not raise."""


class LangChainChatProvider(ChatProvider):
    """Provider backed by LangChain chat models, one instance per model id."""

    def __init__(
        self,
        name: str,
        kind: ProviderKind,
        model_factory: Callable[[str], BaseChatModel],
        *,
        availability_probe: Callable[[], Awaitable[bool]] | None = None,
    ) -> None:
        super().__init__(name, kind)
        self._model_factory = model_factory
        self._availability_probe = availability_probe
        self._models: dict[str, BaseChatModel] = {}

    async def chat_complete(
        self,
        messages: list[BaseMessage],
        model_id: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        model = self._models.get(model_id)
        if model is None:
            model = self._model_factory(model_id)
            self._models[model_id] = model

        kwargs: dict[str, Any] = {}
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        response = await model.ainvoke(messages, **kwargs)
        text = message_text(response)
        if not text.strip():
            raise RuntimeError(f"No content in {self.name} response")
        return text

    async def is_available(self) -> bool:
        if self._availability_probe is None:
            return True
        try:
            return bool(await self._availability_probe())
        except Exception as exc:
            logger.warning("%s availability check failed: %s", self.name, exc)
            return False


def message_text(message: Any) -> str:
    """Flatten a chat model reply into plain text."""

    content = getattr(message, "content", message)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            elif isinstance(item, str):
                parts.append(item)
        return " ".join(parts).strip()
    return str(content)


def build_openai_compatible_provider(
    endpoint: ProviderEndpoint,
    kind: ProviderKind,
    *,
    temperature: float = 0.7,
    probe_timeout_s: float = 5.0,
) -> LangChainChatProvider:
    """Provider for any OpenAI-compatible endpoint (Ollama `/v1`, Mistral, ...).

    Liveness lists the endpoint's models; an endpoint without an API key is
    reported unavailable without a network call.
    """

    from langchain_openai import ChatOpenAI
    from openai import AsyncOpenAI

    def _factory(model_id: str) -> BaseChatModel:
        return ChatOpenAI(
            model=model_id,
            base_url=endpoint.base_url,
            api_key=endpoint.api_key,
            timeout=endpoint.request_timeout_s,
            max_retries=0,
            temperature=temperature,
        )

    async def _probe() -> bool:
        if not endpoint.api_key:
            logger.info("%s API key not provided, provider unavailable", endpoint.name)
            return False
        client = AsyncOpenAI(
            base_url=endpoint.base_url,
            api_key=endpoint.api_key,
            timeout=probe_timeout_s,
            max_retries=0,
        )
        try:
            page = await client.models.list()
            return bool(page.data)
        finally:
            await client.close()

    return LangChainChatProvider(
        endpoint.name,
        kind,
        _factory,
        availability_probe=_probe,
    )
