import logging
import os
from abc import ABC, abstractmethod
from typing import List, Dict, Optional
from groq import Groq, APIError as GroqAPIError
from openai import OpenAI, APIError as OpenAIAPIError
from anthropic import Anthropic, APIError as AnthropicAPIError
from .errors import UpstreamError, ValidationError
from .models import Completion, TenantConfig

logger = logging.getLogger(__name__)

DEFAULT_GROQ_MODEL = "llama-3.3-70b-versatile"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_ANTHROPIC_MODEL = "claude-3-5-haiku-latest"


class ChatProvider(ABC):
    """A single chat-completion capability."""

    name = "base"

    @abstractmethod
    def generate(
        self,
        system_prompt: str,
        messages: List[Dict[str, str]],
        max_tokens: int = 500,
        temperature: float = 0.7,
        timeout: Optional[float] = None,
    ) -> Completion:
        raise NotImplementedError

    def _messages(self, system_prompt: str, messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
        return [{"role": "system", "content": system_prompt}] + [
            {"role": m["role"], "content": m["content"]} for m in messages
        ]


class GroqProvider(ChatProvider):
    name = "groq"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client=None):
        api_key = api_key or os.getenv("GROQ_API_KEY")
        if not api_key and client is None:
            logger.error("GROQ_API_KEY missing")
        self.model = model or os.getenv("LLM_MODEL", DEFAULT_GROQ_MODEL)
        self.client = client or Groq(api_key=api_key)

    def generate(self, system_prompt, messages, max_tokens=500, temperature=0.7, timeout=None) -> Completion:
        try:
            chat_completion = self.client.chat.completions.create(
                model=self.model,
                messages=self._messages(system_prompt, messages),
                temperature=temperature,
                max_tokens=max_tokens,
                **_timeout_kwargs(timeout),
            )
        except GroqAPIError as e:
            logger.error(f"Groq completion failed ({self.model}): {e}")
            raise UpstreamError("Language model request failed") from e
        return _to_completion(chat_completion, self.name)


class OpenAIProvider(ChatProvider):
    name = "openai"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client=None):
        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key and client is None:
            logger.error("OPENAI_API_KEY missing")
        self.model = model or os.getenv("LLM_MODEL", DEFAULT_OPENAI_MODEL)
        self.client = client or OpenAI(api_key=api_key)

    def generate(self, system_prompt, messages, max_tokens=500, temperature=0.7, timeout=None) -> Completion:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=self._messages(system_prompt, messages),
                temperature=temperature,
                max_tokens=max_tokens,
                **_timeout_kwargs(timeout),
            )
        except OpenAIAPIError as e:
            logger.error(f"OpenAI completion failed ({self.model}): {e}")
            raise UpstreamError("Language model request failed") from e
        return _to_completion(response, self.name)


class AnthropicProvider(ChatProvider):
    """Messages API: the system prompt travels separately and only the user
    and assistant roles are accepted, so anything else is sent as user."""

    name = "anthropic"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client=None):
        api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not api_key and client is None:
            logger.error("ANTHROPIC_API_KEY missing")
        self.model = model or os.getenv("LLM_MODEL", DEFAULT_ANTHROPIC_MODEL)
        self.client = client or Anthropic(api_key=api_key)

    def generate(self, system_prompt, messages, max_tokens=500, temperature=0.7, timeout=None) -> Completion:
        try:
            response = self.client.messages.create(
                model=self.model,
                system=system_prompt,
                messages=[
                    {"role": "assistant" if m["role"] == "assistant" else "user", "content": m["content"]}
                    for m in messages
                ],
                temperature=temperature,
                max_tokens=max_tokens,
                **_timeout_kwargs(timeout),
            )
        except AnthropicAPIError as e:
            logger.error(f"Anthropic completion failed ({self.model}): {e}")
            raise UpstreamError("Language model request failed") from e

        text = "".join(getattr(block, "text", "") for block in response.content or [])
        if not text:
            raise UpstreamError(f"Empty reply from {self.name}")
        usage = response.usage
        return Completion(content=text, tokens_used=(usage.input_tokens or 0) + (usage.output_tokens or 0))


def _timeout_kwargs(timeout: Optional[float]) -> Dict[str, float]:
    # None would disable the SDK default timeout, so only pass a real value
    return {"timeout": timeout} if timeout is not None else {}


def _to_completion(response, provider: str) -> Completion:
    choices = getattr(response, "choices", None) or []
    content = choices[0].message.content if choices else None
    if not content:
        raise UpstreamError(f"Empty reply from {provider}")
    usage = getattr(response, "usage", None)
    return Completion(content=content, tokens_used=getattr(usage, "total_tokens", 0) or 0)


PROVIDERS = {
    GroqProvider.name: GroqProvider,
    OpenAIProvider.name: OpenAIProvider,
    AnthropicProvider.name: AnthropicProvider,
}


def build_provider(tenant: TenantConfig) -> ChatProvider:
    """Pick the provider implementation for a tenant once, up front."""
    provider_cls = PROVIDERS.get((tenant.llm_provider or "").lower())
    if provider_cls is None:
        raise ValidationError(f"Unsupported LLM provider: {tenant.llm_provider}")
    logger.info(f"Using {provider_cls.name} for {tenant.shop}")
    return provider_cls(api_key=tenant.llm_api_key, model=tenant.llm_model)
