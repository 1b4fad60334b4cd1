"""LLM integration: the structured-output generation capability."""
from app.llm.client import DisabledGenerator, Generator, ProviderGenerator, get_generator

__all__ = ["get_generator", "Generator", "DisabledGenerator", "ProviderGenerator"]
