# tests/test_llm_gateway.py
from types import SimpleNamespace

import anthropic
import groq
import httpx
import openai
import pytest

from shop_assistant.errors import UpstreamError, ValidationError
from shop_assistant.llm_gateway import AnthropicProvider, GroqProvider, OpenAIProvider, build_provider


class FakeCompletions:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error:
            raise self.error
        return self.response


def _client(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def _response(content, total_tokens=17):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(total_tokens=total_tokens),
    )


def test_groq_provider_sends_system_prompt_first():
    completions = FakeCompletions(_response("Hello!"))
    provider = GroqProvider(model="llama-test", client=_client(completions))

    completion = provider.generate("SYSTEM", [{"role": "user", "content": "hi"}], max_tokens=100, temperature=0.1)

    assert completion.content == "Hello!"
    assert completion.tokens_used == 17
    assert completions.kwargs["messages"][0] == {"role": "system", "content": "SYSTEM"}
    assert completions.kwargs["messages"][1] == {"role": "user", "content": "hi"}
    assert completions.kwargs["model"] == "llama-test"
    assert "timeout" not in completions.kwargs


def test_timeout_is_forwarded_when_given():
    completions = FakeCompletions(_response("ok"))
    OpenAIProvider(model="gpt-test", client=_client(completions)).generate("S", [], timeout=3.0)
    assert completions.kwargs["timeout"] == 3.0


def test_groq_api_errors_become_upstream_errors():
    request = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")
    completions = FakeCompletions(error=groq.APIConnectionError(request=request))
    provider = GroqProvider(model="llama-test", client=_client(completions))

    with pytest.raises(UpstreamError):
        provider.generate("S", [{"role": "user", "content": "hi"}])


def test_openai_api_errors_become_upstream_errors():
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    completions = FakeCompletions(error=openai.APITimeoutError(request=request))
    provider = OpenAIProvider(model="gpt-test", client=_client(completions))

    with pytest.raises(UpstreamError):
        provider.generate("S", [{"role": "user", "content": "hi"}])


def test_empty_reply_is_an_upstream_error():
    provider = GroqProvider(model="llama-test", client=_client(FakeCompletions(_response(""))))
    with pytest.raises(UpstreamError):
        provider.generate("S", [])


@pytest.mark.parametrize("name, cls", [("groq", GroqProvider), ("OpenAI", OpenAIProvider), ("anthropic", AnthropicProvider)])
def test_build_provider_selects_implementation(tenant, name, cls):
    config = tenant.model_copy(update={"llm_provider": name, "llm_api_key": "test-key", "llm_model": "m"})
    provider = build_provider(config)
    assert isinstance(provider, cls)
    assert provider.model == "m"


def test_build_provider_rejects_unknown_provider(tenant):
    with pytest.raises(ValidationError):
        build_provider(tenant.model_copy(update={"llm_provider": "carrier-pigeon"}))


class FakeMessages:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error:
            raise self.error
        return self.response


def test_anthropic_provider_sends_system_separately():
    response = SimpleNamespace(
        content=[SimpleNamespace(type="text", text="Hi there")],
        usage=SimpleNamespace(input_tokens=30, output_tokens=12),
    )
    messages = FakeMessages(response)
    provider = AnthropicProvider(model="claude-test", client=SimpleNamespace(messages=messages))

    completion = provider.generate(
        "SYSTEM",
        [{"role": "system", "content": "Welcome"}, {"role": "user", "content": "hi"},
         {"role": "assistant", "content": "hello"}],
        max_tokens=64,
    )

    assert completion.content == "Hi there"
    assert completion.tokens_used == 42
    assert messages.kwargs["system"] == "SYSTEM"
    assert [m["role"] for m in messages.kwargs["messages"]] == ["user", "user", "assistant"]
    assert messages.kwargs["max_tokens"] == 64


def test_anthropic_api_errors_become_upstream_errors():
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    messages = FakeMessages(error=anthropic.APIConnectionError(request=request))
    provider = AnthropicProvider(model="claude-test", client=SimpleNamespace(messages=messages))

    with pytest.raises(UpstreamError):
        provider.generate("S", [{"role": "user", "content": "hi"}])
