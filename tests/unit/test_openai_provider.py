"""
Unit tests for OpenAICompatibleProvider against a mocked HTTP transport.
"""
import json

import httpx
import pytest

from pdf_translator.config import PipelineConfig
from pdf_translator.core.exceptions import (
    ConfigurationError,
    ProviderAuthenticationError,
    ProviderConnectionError,
    ProviderError,
    ProviderRateLimitError,
    ProviderResponseError,
    RetryExhaustedError,
)
from pdf_translator.core.models import TranslationOptions
from pdf_translator.core.retry_manager import RetryConfig, RetryManager
from pdf_translator.providers.openai_compatible import OpenAICompatibleProvider

LOCAL_ENDPOINT = "http://localhost:8080/v1/chat/completions"


def completion(content):
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5},
    }


def make_provider(handler, **kwargs):
    kwargs.setdefault('api_endpoint', LOCAL_ENDPOINT)
    kwargs.setdefault('api_key', None)
    return OpenAICompatibleProvider(
        model="gpt-4o-mini",
        transport=httpx.MockTransport(handler),
        retry_manager=RetryManager(
            default_config=RetryConfig(max_attempts=1, initial_delay=0.0, jitter=0.0),
            inherit_defaults=False
        ),
        **kwargs
    )


async def complete(provider):
    return await provider._complete("system", "Hello", TranslationOptions())


class TestRequests:
    """Tests for the outgoing request and successful responses."""

    @pytest.mark.asyncio
    async def test_payload_and_content(self):
        seen = {}

        def handler(request):
            seen['body'] = json.loads(request.content)
            seen['auth'] = request.headers.get("authorization")
            return httpx.Response(200, json=completion("Bonjour"))

        provider = make_provider(handler)
        try:
            assert await complete(provider) == "Bonjour"
        finally:
            await provider.close()

        assert seen['body']['model'] == "gpt-4o-mini"
        assert seen['body']['messages'][0] == {"role": "system", "content": "system"}
        assert seen['body']['messages'][1] == {"role": "user", "content": "Hello"}
        assert seen['body']['stream'] is False
        assert seen['auth'] is None

    @pytest.mark.asyncio
    async def test_bearer_token_sent(self):
        seen = {}

        def handler(request):
            seen['auth'] = request.headers.get("authorization")
            return httpx.Response(200, json=completion("Bonjour"))

        provider = make_provider(handler, api_key="sk-test")
        try:
            await complete(provider)
        finally:
            await provider.close()

        assert seen['auth'] == "Bearer sk-test"

    @pytest.mark.asyncio
    async def test_translate_batch_end_to_end(self):
        def handler(request):
            return httpx.Response(200, json=completion("Un\nDeux"))

        provider = make_provider(handler)
        try:
            assert await provider.translate_batch(["One", "Two"], "en", "fr") == ["Un", "Deux"]
        finally:
            await provider.close()


class TestErrorMapping:
    """Tests for mapping HTTP failures to provider errors."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_errors(self, status):
        provider = make_provider(lambda request: httpx.Response(status, text="denied"))
        try:
            with pytest.raises(ProviderAuthenticationError) as exc_info:
                await complete(provider)
        finally:
            await provider.close()

        assert not exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_rate_limit_reads_retry_after(self):
        provider = make_provider(
            lambda request: httpx.Response(429, text="slow down", headers={"retry-after": "7"})
        )
        try:
            with pytest.raises(ProviderRateLimitError) as exc_info:
                await complete(provider)
        finally:
            await provider.close()

        assert exc_info.value.retry_after == 7.0
        assert exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_server_error_is_recoverable(self):
        provider = make_provider(lambda request: httpx.Response(503, text="unavailable"))
        try:
            with pytest.raises(ProviderConnectionError):
                await complete(provider)
        finally:
            await provider.close()

    @pytest.mark.asyncio
    async def test_context_overflow_not_recoverable(self):
        provider = make_provider(
            lambda request: httpx.Response(400, text="This model's maximum context length is 8192")
        )
        try:
            with pytest.raises(ProviderError) as exc_info:
                await complete(provider)
        finally:
            await provider.close()

        assert "Context overflow" in exc_info.value.message
        assert not exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        provider = make_provider(handler)
        try:
            with pytest.raises(ProviderConnectionError):
                await complete(provider)
        finally:
            await provider.close()

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        provider = make_provider(handler)
        try:
            with pytest.raises(ProviderConnectionError):
                await complete(provider)
        finally:
            await provider.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, json=completion("   ")),
    ])
    async def test_bad_responses(self, response):
        provider = make_provider(lambda request: response)
        try:
            with pytest.raises(ProviderResponseError):
                await complete(provider)
        finally:
            await provider.close()

    @pytest.mark.asyncio
    async def test_retry_wraps_recoverable_errors(self):
        provider = make_provider(lambda request: httpx.Response(500, text="boom"))
        try:
            with pytest.raises(RetryExhaustedError):
                await provider.translate("Hello", "en", "fr")
        finally:
            await provider.close()


class TestConfiguration:
    """Tests for API key requirements."""

    def test_openai_endpoint_requires_key(self):
        with pytest.raises(ConfigurationError):
            OpenAICompatibleProvider(
                api_endpoint="https://api.openai.com/v1/chat/completions",
                api_key=None
            )

    def test_local_endpoint_needs_no_key(self):
        provider = OpenAICompatibleProvider(api_endpoint=LOCAL_ENDPOINT, api_key=None)

        assert not provider.requires_api_key

    def test_cost_uses_default_pricing_for_unknown_model(self):
        provider = OpenAICompatibleProvider(
            api_endpoint=LOCAL_ENDPOINT, api_key=None, model="local-llama"
        )
        cost = provider.estimate_cost(1_000_000, 1_000_000)

        assert cost.total_cost_minor_units == pytest.approx(75.0)
        assert cost.breakdown.provider == "openai"


class TestFromConfig:
    """Tests for building a provider from a PipelineConfig."""

    @pytest.mark.asyncio
    async def test_connection_fields_used(self, tmp_path):
        seen = {}

        def handler(request):
            seen['url'] = str(request.url)
            seen['auth'] = request.headers.get("authorization")
            seen['model'] = json.loads(request.content)['model']
            return httpx.Response(200, json=completion("Bonjour"))

        config = PipelineConfig(
            recovery_dir=str(tmp_path),
            api_endpoint=LOCAL_ENDPOINT,
            model="local-llama",
            api_key="sk-local",
            timeout=12,
        )
        provider = OpenAICompatibleProvider.from_config(
            config, transport=httpx.MockTransport(handler)
        )
        try:
            assert await provider.translate("Hello", "en", "fr") == "Bonjour"
        finally:
            await provider.close()

        assert provider.timeout == 12
        assert seen == {
            'url': LOCAL_ENDPOINT,
            'auth': "Bearer sk-local",
            'model': "local-llama",
        }

    @pytest.mark.asyncio
    async def test_retry_budget_from_config(self, tmp_path):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503, text="unavailable")

        config = PipelineConfig(
            recovery_dir=str(tmp_path),
            api_endpoint=LOCAL_ENDPOINT,
            api_key=None,
            max_attempts=2,
            retry_delay=0.0,
        )
        provider = OpenAICompatibleProvider.from_config(
            config, transport=httpx.MockTransport(handler)
        )
        try:
            with pytest.raises(RetryExhaustedError) as exc_info:
                await provider.translate("Hello", "en", "fr")
        finally:
            await provider.close()

        assert provider.retry_manager.default_config.max_attempts == 2
        assert exc_info.value.attempts == 2
        assert len(calls) == 2

    def test_explicit_retry_manager_wins(self, tmp_path):
        manager = RetryManager(inherit_defaults=False)
        config = PipelineConfig(recovery_dir=str(tmp_path), api_endpoint=LOCAL_ENDPOINT, api_key=None)

        provider = OpenAICompatibleProvider.from_config(config, retry_manager=manager)

        assert provider.retry_manager is manager
