"""OpenAI completion service.

Uses the Chat Completions API for both schema-constrained extraction
(``response_format`` of type ``json_schema``) and the chat endpoint.

API key: https://platform.openai.com/
"""

from __future__ import annotations

from typing import Any

from loguru import logger
from openai import AsyncOpenAI

from smartcare.providers.base import CompletionService, Message


class OpenAICompletion(CompletionService):
    """OpenAI Chat Completions service.

    Args:
        api_key: OpenAI API key.
        model: Model used for structured extraction (default: "gpt-4o-mini").
        chat_model: Model used for the chat endpoint (defaults to ``model``).
        timeout: Per-request timeout in seconds.
        max_retries: Max API retries (default: 2).
        base_url: Optional custom API base URL.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        chat_model: str | None = None,
        timeout: float = 30.0,
        max_retries: int = 2,
        base_url: str | None = None,
    ):
        self._model_name = model
        self._chat_model = chat_model or model
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )

    async def complete_json(
        self,
        system_prompt: str,
        user_content: str,
        schema_name: str,
        schema: dict[str, Any],
    ) -> str | None:
        logger.debug(f"OpenAI structured request: model={self._model_name}, schema={schema_name}")
        response = await self._client.chat.completions.create(
            model=self._model_name,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            response_format={
                "type": "json_schema",
                "json_schema": {"name": schema_name, "schema": schema},
            },
        )
        if not response.choices:
            return None
        return response.choices[0].message.content

    async def chat(self, messages: list[Message]) -> str:
        oai_messages = self._convert_messages(messages)
        logger.debug(f"OpenAI chat request: model={self._chat_model}, messages={len(messages)}")
        response = await self._client.chat.completions.create(
            model=self._chat_model,
            messages=oai_messages,
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def close(self) -> None:
        """Close the OpenAI client."""
        await self._client.close()

    @property
    def name(self) -> str:
        return "openai"

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _convert_messages(self, messages: list[Message]) -> list[dict[str, Any]]:
        """Convert Message objects to OpenAI format."""
        oai_messages = []

        for msg in messages:
            if msg.image_url:
                content: Any = [{"type": "image_url", "image_url": {"url": msg.image_url}}]
                if msg.content:
                    content.insert(0, {"type": "text", "text": msg.content})
                oai_messages.append({"role": msg.role, "content": content})
            else:
                oai_messages.append({"role": msg.role, "content": msg.content})

        return oai_messages
