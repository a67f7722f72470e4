"""OpenAI completion gateway used by every component of the engine."""

import base64
import logging
import os
import time
from typing import Any, Protocol

from openai import AsyncOpenAI

from knowledge_router.models import ImageInput

logger = logging.getLogger(__name__)


class CompletionGateway(Protocol):
    """Anything that turns a prompt (and optional images) into text."""

    async def complete(
        self,
        prompt: str,
        images: list[ImageInput] | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.7,
        top_p: float = 1.0,
    ) -> str: ...


class OpenAIClient:
    """Async text (and image+text) completion client."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        vision_model: str = "gpt-4o",
    ):
        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OPENAI_API_KEY environment variable is required")

        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model
        self.vision_model = vision_model

    def _build_message_content(
        self, prompt: str, images: list[ImageInput] | None
    ) -> str | list[dict[str, Any]]:
        """Plain string for text-only prompts, content blocks when images are attached."""
        if not images:
            return prompt

        blocks: list[dict[str, Any]] = []
        for image in images:
            encoded = base64.b64encode(image.data).decode("ascii")
            blocks.append(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{image.media_type};base64,{encoded}"},
                }
            )
        blocks.append({"type": "text", "text": prompt})
        return blocks

    async def complete(
        self,
        prompt: str,
        images: list[ImageInput] | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.7,
        top_p: float = 1.0,
        model: str | None = None,
    ) -> str:
        """Return the generated text for a single user prompt."""
        effective_model = model or self.model
        if images and model is None:
            logger.info("Switching to vision model %s for image input", self.vision_model)
            effective_model = self.vision_model

        t_start = time.perf_counter()
        response = await self.client.chat.completions.create(
            model=effective_model,
            messages=[
                {"role": "user", "content": self._build_message_content(prompt, images)},
            ],
            max_tokens=max_tokens,
            temperature=temperature,
            top_p=top_p,
        )

        if response.usage:
            logger.debug(
                "completion model=%s input=%d output=%d time=%.3fs",
                effective_model,
                response.usage.prompt_tokens,
                response.usage.completion_tokens,
                time.perf_counter() - t_start,
            )

        if not response.choices:
            return ""
        return (response.choices[0].message.content or "").strip()
