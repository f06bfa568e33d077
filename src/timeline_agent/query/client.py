"""
Completion Client
=================

Streaming chat-completion clients.

    - CompletionClient: protocol used by the query engine
    - OpenAICompletionClient: any OpenAI-compatible endpoint (OpenAI,
      Ollama, LM Studio, ...) through the openai SDK

Cancellation is cooperative: cancelling the consuming task closes the
underlying HTTP stream.
"""

import logging
from typing import AsyncIterator, List, Optional, Protocol

from openai import AsyncOpenAI


logger = logging.getLogger(__name__)


class CompletionClient(Protocol):
    """Streams text deltas for a list of role-tagged messages."""

    def stream(self, messages: List[dict]) -> AsyncIterator[str]:
        ...


class OpenAICompletionClient:
    """
    OpenAI-compatible streaming client.

    The SDK client is built lazily so a missing API key only fails the
    query that needs it, not service startup.

    Attributes:
        model: Model identifier sent with every request
        base_url: Endpoint override (None = api.openai.com)
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.model = model
        self.base_url = base_url or None
        self._api_key = api_key or None
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key, base_url=self.base_url)
            logger.info(
                f"Completion client ready: model={self.model}, "
                f"base_url={self.base_url or 'default'}"
            )
        return self._client

    async def stream(self, messages: List[dict]) -> AsyncIterator[str]:
        stream = await self._get_client().chat.completions.create(
            model=self.model,
            messages=messages,
            stream=True,
        )
        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        finally:
            await stream.close()
