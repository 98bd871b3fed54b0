"""LiteLLM completions for the subconscious processor.

The processor needs exactly one thing from a model: a single reply to a
single prompt. Routing is by model name; credentials come from the config or
from `<ENV>_API_KEY` / `<ENV>_BASE_URL`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

import litellm
from litellm import acompletion
from loguru import logger

from src.genesis.errors import UpstreamError


@dataclass(frozen=True)
class ProviderRoute:
    """How model names of one provider are recognised and passed to LiteLLM."""
    name: str
    model_prefixes: tuple[str, ...]
    env: str
    litellm_prefix: str = ""

    def matches(self, model: str) -> bool:
        return model.lower().startswith(self.model_prefixes)


ROUTES = (
    ProviderRoute("anthropic", ("claude-",), "ANTHROPIC"),
    ProviderRoute("openai", ("gpt-", "o1-", "o3-", "o4-"), "OPENAI"),
    ProviderRoute("dashscope", ("qwen-", "qwen/", "qwen2", "qwen3"), "DASHSCOPE", "openai/"),
    ProviderRoute("deepseek", ("deepseek-", "deepseek/"), "DEEPSEEK"),
    ProviderRoute("ollama", ("ollama/",), "OLLAMA"),
)
FALLBACK_ROUTE = ROUTES[1]


def route_for(model: str) -> ProviderRoute:
    return next((r for r in ROUTES if r.matches(model)), FALLBACK_ROUTE)


@dataclass
class LLMConfig:
    """Model and credentials for proposal generation."""
    model: str = "claude-haiku-4-5-20251001"
    temperature: float = 0.2       # Low: proposals should be repeatable
    max_tokens: int = 1024

    api_key: str | None = None     # None = read from the environment
    api_base: str | None = None

    num_retries: int = 2
    timeout: float = 60.0


@dataclass
class LLMResponse:
    content: str | None = None
    finish_reason: str = "stop"
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class LLMProvider:
    """One-shot chat completions through LiteLLM."""

    def __init__(self, config: LLMConfig | None = None):
        self.config = config or LLMConfig()
        self.route = route_for(self.config.model)

        litellm.drop_params = True

        self.api_key = self.config.api_key or os.getenv(f"{self.route.env}_API_KEY")
        self.api_base = (
            self.config.api_base
            or os.getenv(f"{self.route.env}_BASE_URL")
            or os.getenv(f"{self.route.env}_API_BASE")
        )

    @property
    def provider(self) -> str:
        return self.route.name

    @property
    def model_name(self) -> str:
        """Model id as LiteLLM expects it."""
        prefix = self.route.litellm_prefix
        model = self.config.model
        return model if not prefix or model.startswith(prefix) else prefix + model

    def request_params(self, messages: list[dict]) -> dict:
        params = dict(
            model=self.model_name,
            messages=messages,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            timeout=self.config.timeout,
            num_retries=self.config.num_retries,
        )
        for key, value in (("api_key", self.api_key), ("api_base", self.api_base)):
            if value:
                params[key] = value
        return params

    async def complete(self, messages: list[dict]) -> LLMResponse:
        """Single completion. Any provider failure becomes UpstreamError."""
        try:
            response = await acompletion(**self.request_params(messages))
        except Exception as e:
            logger.error(f"[LLM] {self.config.model} via {self.provider} failed: {e}")
            raise UpstreamError(
                f"LLM completion failed: {e}",
                {"model": self.config.model, "provider": self.provider},
            ) from e

        choice = response.choices[0]
        usage = getattr(response, "usage", None)
        reply = LLMResponse(
            content=choice.message.content,
            finish_reason=choice.finish_reason or "stop",
        )
        if usage:
            reply.prompt_tokens = usage.prompt_tokens
            reply.completion_tokens = usage.completion_tokens
            reply.total_tokens = usage.total_tokens
        logger.debug(f"[LLM] {self.model_name}: {reply.total_tokens} tokens, {reply.finish_reason}")
        return reply

    def get_provider_info(self) -> dict:
        return {
            "provider": self.provider,
            "model": self.config.model,
            "api_base": self.api_base or "(default)",
            "has_api_key": bool(self.api_key),
        }
