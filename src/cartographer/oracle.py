"""Text-completion boundary used for screen classification and plan synthesis.

Only the clients (``screen_analyzer`` and ``path_planner``) know the response
schemas. Anything that can turn a prompt into text satisfies
:class:`CompletionOracle`: a hosted model, a rule engine, or a test fixture.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

from openai import AsyncOpenAI

from .config import OPENAI_MODEL, ORACLE_MAX_ATTEMPTS
from .robustness import with_retries

logger = logging.getLogger(__name__)


class OracleError(RuntimeError):
    """Raised when the oracle is unreachable or returns nothing usable."""


class CompletionOracle(Protocol):
    async def complete(self, prompt: str, *, system: Optional[str] = None) -> str:
        ...


class OpenAIOracle:
    """Chat-completions oracle with retry and linear backoff."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI],
        model: str = OPENAI_MODEL,
        *,
        max_attempts: int = ORACLE_MAX_ATTEMPTS,
        backoffs_ms: Optional[Sequence[int]] = None,
        temperature: float = 0.1,
    ) -> None:
        self.client = client
        self.model = model
        self.max_attempts = max_attempts
        self.backoffs_ms = backoffs_ms
        self.temperature = temperature

    async def complete(self, prompt: str, *, system: Optional[str] = None) -> str:
        if not self.client:
            raise OracleError("OpenAI client is not configured")

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        async def attempt() -> str:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
            )
            raw = response.choices[0].message.content if response.choices else ""
            if not raw or not raw.strip():
                raise OracleError("Oracle returned an empty completion")
            return raw

        logger.debug("Oracle prompt: %s", prompt)
        try:
            raw = await with_retries(attempt, self.max_attempts, self.backoffs_ms, label="oracle request")
        except OracleError:
            raise
        except Exception as exc:  # noqa: BLE001 - any transport failure is an oracle failure
            raise OracleError(f"Oracle request failed after {self.max_attempts} attempts: {exc}") from exc
        logger.debug("Oracle raw response: %s", raw)
        return raw


def extract_json_payload(content: Optional[str], opening: str = "{") -> str:
    """Strip code fences and prose around the first JSON object (or array) in ``content``."""
    if not content:
        return ""
    closing = "}" if opening == "{" else "]"
    trimmed = content.strip()
    trimmed = _remove_code_fences(trimmed)
    trimmed = _strip_json_prefix(trimmed)
    if trimmed.startswith(opening) and trimmed.endswith(closing):
        return trimmed
    start = trimmed.find(opening)
    end = trimmed.rfind(closing)
    if start != -1 and end != -1 and end > start:
        return trimmed[start : end + 1]
    return trimmed


def _remove_code_fences(text: str) -> str:
    if "```" not in text:
        return text
    fence = text.split("```")
    if len(fence) >= 3:
        return fence[1].strip()
    return text.replace("```", "").strip()


def _strip_json_prefix(text: str) -> str:
    if not text:
        return ""
    lowered = text.lower()
    if lowered.startswith("json"):
        return text[4:].lstrip(": \n\t")
    return text


__all__ = ["CompletionOracle", "OpenAIOracle", "OracleError", "extract_json_payload"]
