"""
Generation capability: prompt in, parsed JSON object out.

Stages depend only on the Generator interface. Failures are returned as
(None, error) so every stage can fall back locally.
"""
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from app.llm.config import LLMConfig, get_llm_config
from app.llm.providers import PROVIDER_CALLS

logger = logging.getLogger(__name__)


class Generator(ABC):
    """Abstract structured-output generator."""

    @abstractmethod
    async def generate_json(
        self,
        system_prompt: str,
        user_prompt: str,
    ) -> tuple[Optional[dict[str, Any]], Optional[str]]:
        """Return (object, None) on success or (None, error)."""


class DisabledGenerator(Generator):
    """Used when no provider is configured; always reports why."""

    def __init__(self, reason: str = "LLM not configured"):
        self.reason = reason

    async def generate_json(self, system_prompt, user_prompt):
        return None, self.reason


class ProviderGenerator(Generator):
    """Calls the configured provider and parses its JSON reply."""

    def __init__(self, config: LLMConfig):
        self.config = config

    async def generate_json(
        self,
        system_prompt: str,
        user_prompt: str,
    ) -> tuple[Optional[dict[str, Any]], Optional[str]]:
        call = PROVIDER_CALLS.get(self.config.provider or "")
        if call is None:
            return None, f"Unknown provider: {self.config.provider}"

        text, error = await call(self.config, system_prompt, user_prompt)
        if error:
            return None, error
        return parse_json_object(text)


def _strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json ... ``` block if the model added one."""
    lines = text.strip().split("\n")
    if not lines or not lines[0].startswith("```"):
        return text.strip()
    body = []
    for line in lines[1:]:
        if line.startswith("```"):
            break
        body.append(line)
    return "\n".join(body)


def parse_json_object(text: Optional[str]) -> tuple[Optional[dict[str, Any]], Optional[str]]:
    """Parse model output into a JSON object."""
    if not text:
        return None, "Empty LLM response"
    try:
        data = json.loads(_strip_code_fence(text))
    except json.JSONDecodeError as e:
        logger.warning("llm_parse_error type=json")
        return None, f"Invalid JSON: {str(e)[:100]}"
    if not isinstance(data, dict):
        logger.warning("llm_parse_error type=not_object")
        return None, "LLM response is not a JSON object"
    return data, None


def get_generator(config: Optional[LLMConfig] = None) -> Generator:
    """Factory: a provider-backed generator, or a disabled one with the reason."""
    config = config or get_llm_config()
    if not config.llm_enabled:
        reason = config.disabled_reason or "LLM not configured"
        logger.info(f"llm_disabled reason={reason}")
        return DisabledGenerator(reason)
    return ProviderGenerator(config)
