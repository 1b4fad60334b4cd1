"""
LLM configuration from environment variables.
All settings are optional; without a provider every stage runs its local fallback.
"""
import os
from dataclasses import dataclass
from typing import Literal, Optional

Provider = Literal["openai", "anthropic", "ollama"]
PROVIDERS = ("openai", "anthropic", "ollama")


@dataclass(frozen=True)
class LLMConfig:
    """LLM configuration (immutable)."""
    provider: Optional[Provider] = None
    api_key: Optional[str] = None  # Never logged
    model: Optional[str] = None
    base_url: Optional[str] = None  # For Ollama: http://127.0.0.1:11434
    max_tokens: int = 2000
    timeout_s: int = 60

    @property
    def llm_enabled(self) -> bool:
        """Check if a provider is usable."""
        if not self.provider:
            return False
        # Ollama runs locally and needs no key
        if self.provider == "ollama":
            return True
        return bool(self.api_key)

    @property
    def disabled_reason(self) -> Optional[str]:
        """Why generation is unavailable, or None when it is enabled."""
        if not self.provider:
            return "LLM_PROVIDER not set"
        if self.provider != "ollama" and not self.api_key:
            return "LLM_API_KEY not set"
        return None


def get_llm_config() -> LLMConfig:
    """Load LLM configuration from environment."""
    provider = os.getenv("LLM_PROVIDER", "").lower() or None
    if provider == "local":
        provider = "ollama"
    if provider and provider not in PROVIDERS:
        provider = None

    return LLMConfig(
        provider=provider,  # type: ignore
        api_key=os.getenv("LLM_API_KEY"),
        model=os.getenv("LLM_MODEL"),
        base_url=os.getenv("LLM_BASE_URL"),
        max_tokens=int(os.getenv("LLM_MAX_TOKENS", "2000")),
        timeout_s=int(os.getenv("LLM_TIMEOUT_S", "60")),
    )
