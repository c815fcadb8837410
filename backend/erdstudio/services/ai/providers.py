"""LLM backends that turn a composed prompt into a JSON object.

Providers are plain objects built once at startup (``build_registry``) and
handed to the orchestrator; their SDK clients are created on first use so a
missing API key only fails the requests that need it.
"""
from __future__ import annotations

import json
import logging
import os
import re
import time
from typing import Any, Dict, Optional

from google import genai
from google.genai import types
from openai import AsyncOpenAI

from ... import config
from .prompt import SYSTEM_PROMPT

logger = logging.getLogger(__name__)

FENCE_PATTERN = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class ProviderError(Exception):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def upstream_status(exc: BaseException) -> Optional[int]:
    """HTTP status of an SDK error, whichever attribute the SDK uses for it."""
    for attr in ("status_code", "status", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def extract_json(text: str) -> Dict[str, Any]:
    cleaned = FENCE_PATTERN.sub("", text.strip())
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start < 0 or end <= start:
            raise ProviderError("Model did not return valid JSON")
        try:
            parsed = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError as exc:
            raise ProviderError("Model did not return valid JSON") from exc
    if not isinstance(parsed, dict):
        raise ProviderError("Model returned JSON that is not an object")
    return parsed


class ERDProvider:
    name = "base"

    async def generate(self, prompt: str, model: str) -> Dict[str, Any]:
        raise NotImplementedError


class OpenAIProvider(ERDProvider):
    name = "openai"

    def __init__(self, api_key: Optional[str] = None, max_tokens: int = config.OPENAI_MAX_TOKENS):
        self._api_key = api_key
        self._client: Optional[AsyncOpenAI] = None
        self.max_tokens = max_tokens

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            api_key = self._api_key or os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ProviderError("OPENAI_API_KEY is not configured")
            self._client = AsyncOpenAI(api_key=api_key)
        return self._client

    async def generate(self, prompt: str, model: str) -> Dict[str, Any]:
        started = time.monotonic()
        response = await self.client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            response_format={"type": "json_object"},
            max_completion_tokens=self.max_tokens,
        )
        text = ""
        if response.choices:
            text = response.choices[0].message.content or ""
        logger.debug("OpenAI %s answered in %.2fs (%d chars)", model, time.monotonic() - started, len(text))
        if not text.strip():
            raise ProviderError("Empty response from OpenAI")
        return extract_json(text)


class GeminiProvider(ERDProvider):
    name = "gemini"

    def __init__(self, api_key: Optional[str] = None):
        self._api_key = api_key
        self._client: Optional[genai.Client] = None

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            api_key = self._api_key or os.getenv("GEMINI_API_KEY")
            if not api_key:
                raise ProviderError("GEMINI_API_KEY is not configured")
            self._client = genai.Client(api_key=api_key)
        return self._client

    async def generate(self, prompt: str, model: str) -> Dict[str, Any]:
        started = time.monotonic()
        response = await self.client.aio.models.generate_content(
            model=model,
            contents=prompt,
            config=types.GenerateContentConfig(
                system_instruction=SYSTEM_PROMPT,
                response_mime_type="application/json",
                temperature=0,
            ),
        )
        text = response.text or ""
        logger.debug("Gemini %s answered in %.2fs (%d chars)", model, time.monotonic() - started, len(text))
        if not text.strip():
            raise ProviderError("Empty response from Gemini")
        return extract_json(text)


class ProviderRegistry:
    """Maps canonical model ids to providers by prefix."""

    def __init__(self, openai: ERDProvider, gemini: ERDProvider):
        self.openai = openai
        self.gemini = gemini

    def for_model(self, model: str) -> ERDProvider:
        return self.gemini if model.startswith("gemini-") else self.openai


def build_registry() -> ProviderRegistry:
    return ProviderRegistry(openai=OpenAIProvider(), gemini=GeminiProvider())
