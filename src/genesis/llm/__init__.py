"""LLM provider interfaces using LiteLLM."""

from src.genesis.llm.provider import LLMConfig, LLMProvider, LLMResponse

__all__ = ["LLMProvider", "LLMConfig", "LLMResponse"]
