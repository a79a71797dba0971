"""
Text-generation collaborator used by query expansion.

The planner only depends on the ``TextGenerator`` protocol; the OpenAI
implementation below is what the container wires in when an API key is set.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from openai import AsyncOpenAI, OpenAIError

from hanui_search.shared.exceptions import ExpansionError

logger = logging.getLogger(__name__)


@runtime_checkable
class TextGenerator(Protocol):
    """Anything that turns a prompt into text."""

    async def generate(self, prompt: str, system_instruction: str | None = None) -> str: ...


class OpenAITextGenerator:
    """Chat-completions backed generator."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        temperature: float = 0.2,
        timeout: float = 15.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._model = model
        self._temperature = temperature
        self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)

    async def generate(self, prompt: str, system_instruction: str | None = None) -> str:
        messages = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.append({"role": "user", "content": prompt})

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=self._temperature,
            )
        except OpenAIError as e:
            raise ExpansionError(f"Text generation failed: {e}") from e

        if not response.choices:
            raise ExpansionError("Text generation returned no choices")
        text = response.choices[0].message.content or ""
        logger.debug(f"LLM ({self._model}) returned {len(text)} chars")
        return text

    async def close(self) -> None:
        await self._client.close()
