"""
LLM "complete chat" adapter.

The engine only needs one capability: send a prompt (optionally with a JSON
output schema hint) and get text back. ChatCompletionClient is that
contract; GeminiChatClient implements it on google-genai. Every failure is
raised as LLMError so callers can fall back uniformly.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Protocol

from google import genai
from google.genai import types

from smb_context.errors import LLMError, LLMOutputError

logger = logging.getLogger(__name__)


class ChatCompletionClient(Protocol):
    async def complete_chat(
        self,
        prompt: str,
        *,
        output_schema: Optional[Dict[str, Any]] = None,
        system_instruction: Optional[str] = None,
    ) -> str:
        ...


class GeminiChatClient:
    """ChatCompletionClient backed by the Gemini API."""

    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-2.0-flash",
        *,
        temperature: float = 0.4,
        max_output_tokens: int = 2048,
        max_retries: int = 0,
        retry_delay: float = 1.0,
    ):
        if not api_key:
            raise ValueError("Gemini API key required")
        self.client = genai.Client(api_key=api_key)
        self.model_name = model_name
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        logger.info(f"Initialized Gemini chat client with {self.model_name}")

    async def complete_chat(
        self,
        prompt: str,
        *,
        output_schema: Optional[Dict[str, Any]] = None,
        system_instruction: Optional[str] = None,
    ) -> str:
        config = types.GenerateContentConfig(
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
            system_instruction=system_instruction,
            response_mime_type="application/json" if output_schema is not None else None,
        )

        attempt = 0
        while True:
            try:
                response = await self.client.aio.models.generate_content(
                    model=self.model_name,
                    contents=prompt,
                    config=config,
                )
                text = response.text
                if not text or not text.strip():
                    raise LLMError("Gemini returned an empty completion")
                return text
            except LLMError:
                raise
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if attempt >= self.max_retries:
                    raise LLMError(f"Gemini call failed: {e}") from e
                attempt += 1
                logger.warning(f"Gemini call failed ({e}), retry {attempt}/{self.max_retries}")
                await asyncio.sleep(self.retry_delay * attempt)


def parse_json_output(text: str) -> Any:
    """Parse a JSON completion, tolerating markdown code fences around it."""
    if text is None:
        raise LLMOutputError("No completion to parse")
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    cleaned = cleaned.strip()

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.debug(f"Raw LLM response (first 500 chars): {cleaned[:500]}")
        raise LLMOutputError(f"Failed to parse LLM JSON response: {e}") from e
