"""
AI text generation

Gemini through its OpenAI-compatible endpoint, so the OpenAI SDK is the only
client library needed.
"""

import logging
import os
from typing import Optional

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
DEFAULT_MODEL = "gemini-2.0-flash"


class AIClient:
    """
    Example:
        client = AIClient(api_key=user.gemini_api_key)
        text = await client.generate_content("Write a two-line intro for Luigi's")
    """

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        base_url: str = GEMINI_OPENAI_BASE_URL,
    ):
        if not api_key:
            raise ValueError("AI API key is required")
        self.model = model or os.getenv("GEMINI_MODEL", DEFAULT_MODEL)
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url)

    async def generate_content(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
    ) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        response = await self.client.chat.completions.create(
            model=model or self.model,
            messages=messages,
        )
        text = response.choices[0].message.content or ""
        logger.info(f"AI generated {len(text)} chars with {model or self.model}")
        return text.strip()
