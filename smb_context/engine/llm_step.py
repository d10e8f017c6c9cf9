"""
Shared plumbing for LLM-dependent derivation steps.

Every step calls the LLM through `_complete`, which enforces the step's own
timeout and turns a timeout or a missing client into an LLMError. Steps
catch LLMError (and malformed output) and return their fallback value.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from smb_context.errors import LLMError, LLMNotConfiguredError
from smb_context.llm_client import ChatCompletionClient

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 20.0


class LLMStep:
    name = "llm_step"

    def __init__(self, llm: Optional[ChatCompletionClient], *, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS):
        self.llm = llm
        self.timeout_seconds = timeout_seconds

    async def _complete(
        self,
        prompt: str,
        *,
        output_schema: Optional[Dict[str, Any]] = None,
        system_instruction: Optional[str] = None,
    ) -> str:
        if self.llm is None:
            raise LLMNotConfiguredError("No LLM client configured")
        try:
            return await asyncio.wait_for(
                self.llm.complete_chat(prompt, output_schema=output_schema, system_instruction=system_instruction),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise LLMError(f"{self.name} timed out after {self.timeout_seconds}s") from e

    def _log_degradation(self, error: Exception) -> None:
        if isinstance(error, LLMNotConfiguredError):
            logger.debug(f"{self.name}: LLM not configured, using fallback")
        else:
            logger.warning(f"{self.name} degraded to fallback: {error}")
