"""LLM provider abstraction."""

from casechat.providers.base import LLMProvider, LLMResponse

__all__ = ["LLMProvider", "LLMResponse"]
