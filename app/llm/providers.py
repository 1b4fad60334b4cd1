"""
Provider calls over httpx: OpenAI, Anthropic, Ollama.

Each call returns (response_text, error_message) and never raises for HTTP,
network or decoding failures. NEVER logs API keys, prompts or response bodies.
"""
import json
import logging
from typing import Any, Callable, Optional

import httpx

from app.llm.config import LLMConfig

logger = logging.getLogger(__name__)

OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
DEFAULT_OLLAMA_BASE_URL = "http://127.0.0.1:11434"

DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "anthropic": "claude-3-5-sonnet-latest",
    "ollama": "llama3.1",
}

PROVIDER_LABELS = {"openai": "OpenAI", "anthropic": "Anthropic", "ollama": "Ollama"}


def _openai_text(data: dict[str, Any]) -> str:
    return data.get("choices", [{}])[0].get("message", {}).get("content", "") or ""


def _anthropic_text(data: dict[str, Any]) -> str:
    return "".join(
        block.get("text", "")
        for block in data.get("content", [])
        if block.get("type") == "text"
    )


def _ollama_text(data: dict[str, Any]) -> str:
    return data.get("message", {}).get("content", "") or ""


async def _post(
    provider: str,
    config: LLMConfig,
    url: str,
    headers: dict[str, str],
    payload: dict[str, Any],
    extract: Callable[[dict[str, Any]], str],
) -> tuple[Optional[str], Optional[str]]:
    label = PROVIDER_LABELS[provider]
    try:
        async with httpx.AsyncClient(timeout=config.timeout_s) as client:
            logger.info(f"llm_call provider={provider} model={payload.get('model')}")
            response = await client.post(url, headers=headers, json=payload)

            if response.status_code != 200:
                logger.warning(f"llm_error provider={provider} status={response.status_code}")
                return None, f"{label} API error: status {response.status_code}"

            try:
                text = extract(response.json())
                if text is not None and not isinstance(text, str):
                    raise TypeError(type(text).__name__)
            except (KeyError, IndexError, AttributeError, TypeError):
                logger.warning(f"llm_malformed_response provider={provider}")
                return None, f"Malformed response from {label}"
            if not text:
                return None, f"Empty response from {label}"

            logger.info(f"llm_success provider={provider}")
            return text, None

    except httpx.TimeoutException:
        logger.warning(f"llm_timeout provider={provider} timeout={config.timeout_s}s")
        return None, f"{label} API timeout after {config.timeout_s}s"
    except httpx.RequestError as e:
        logger.warning(f"llm_network_error provider={provider} error_type={type(e).__name__}")
        return None, f"Network error: {type(e).__name__}"
    except json.JSONDecodeError:
        logger.warning(f"llm_json_error provider={provider}")
        return None, f"Invalid JSON response from {label}"


async def call_openai(
    config: LLMConfig,
    system_prompt: str,
    user_prompt: str,
) -> tuple[Optional[str], Optional[str]]:
    """Chat completion in JSON mode."""
    if not config.api_key:
        return None, "OpenAI API key not configured"

    payload = {
        "model": config.model or DEFAULT_MODELS["openai"],
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        "max_tokens": config.max_tokens,
        "temperature": 0.2,
        "response_format": {"type": "json_object"},
    }
    headers = {
        "Authorization": f"Bearer {config.api_key}",
        "Content-Type": "application/json",
    }
    return await _post("openai", config, OPENAI_API_URL, headers, payload, _openai_text)


async def call_anthropic(
    config: LLMConfig,
    system_prompt: str,
    user_prompt: str,
) -> tuple[Optional[str], Optional[str]]:
    """Messages API call; the system prompt asks for bare JSON."""
    if not config.api_key:
        return None, "Anthropic API key not configured"

    payload = {
        "model": config.model or DEFAULT_MODELS["anthropic"],
        "max_tokens": config.max_tokens,
        "system": system_prompt,
        "messages": [{"role": "user", "content": user_prompt}],
    }
    headers = {
        "x-api-key": config.api_key,
        "Content-Type": "application/json",
        "anthropic-version": "2023-06-01",
    }
    return await _post("anthropic", config, ANTHROPIC_API_URL, headers, payload, _anthropic_text)


async def call_ollama(
    config: LLMConfig,
    system_prompt: str,
    user_prompt: str,
) -> tuple[Optional[str], Optional[str]]:
    """Local /api/chat call with JSON output format."""
    base_url = (config.base_url or DEFAULT_OLLAMA_BASE_URL).rstrip("/")
    payload = {
        "model": config.model or DEFAULT_MODELS["ollama"],
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        "stream": False,
        "format": "json",
        "options": {"temperature": 0.2, "num_predict": config.max_tokens},
    }
    return await _post("ollama", config, f"{base_url}/api/chat", {}, payload, _ollama_text)


PROVIDER_CALLS = {
    "openai": call_openai,
    "anthropic": call_anthropic,
    "ollama": call_ollama,
}
