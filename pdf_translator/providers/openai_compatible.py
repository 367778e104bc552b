"""
OpenAI-compatible provider implementation.

Talks to any chat-completions endpoint that follows the OpenAI wire format
(OpenAI itself, llama.cpp, LM Studio, vLLM, ...). HTTP failures are mapped
onto the provider exception hierarchy so that the retry manager can tell
transient failures from permanent ones.
"""

import json
import logging
from typing import Callable, Optional

import httpx

from pdf_translator.config import (
    API_ENDPOINT,
    DEFAULT_MODEL,
    OPENAI_API_KEY,
    REQUEST_TIMEOUT,
    PipelineConfig,
)
from pdf_translator.core.exceptions import (
    ProviderAuthenticationError,
    ProviderConnectionError,
    ProviderError,
    ProviderRateLimitError,
    ProviderResponseError,
)
from pdf_translator.core.models import TranslationOptions
from pdf_translator.core.retry_manager import RetryConfig, RetryManager
from pdf_translator.providers.base import TranslationProvider

logger = logging.getLogger(__name__)

# Error fragments servers use when the prompt does not fit the model context
CONTEXT_OVERFLOW_KEYWORDS = [
    "context_length", "maximum context", "token limit",
    "too many tokens", "reduce the length",
]


class OpenAICompatibleProvider(TranslationProvider):
    """OpenAI-compatible chat-completions provider"""

    name = "openai-compatible"
    provider_id = "openai"

    PRICING = {
        'gpt-4o': (2.50, 10.00),
        'gpt-4o-mini': (0.15, 0.60),
        'gpt-4-turbo': (10.00, 30.00),
        'gpt-3.5-turbo': (0.50, 1.50),
    }
    DEFAULT_PRICING_MODEL = 'gpt-4o-mini'

    def __init__(
        self,
        api_endpoint: str = API_ENDPOINT,
        model: str = DEFAULT_MODEL,
        api_key: Optional[str] = OPENAI_API_KEY,
        timeout: int = REQUEST_TIMEOUT,
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
        retry_manager: Optional[RetryManager] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        log_callback: Optional[Callable[[str, str], None]] = None
    ):
        super().__init__(
            model=model,
            api_key=api_key,
            timeout=timeout,
            retry_manager=retry_manager,
            transport=transport,
            log_callback=log_callback,
        )
        self.api_endpoint = api_endpoint
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.validate_config()

    @classmethod
    def from_config(cls, config: PipelineConfig, **kwargs) -> 'OpenAICompatibleProvider':
        """
        Build a provider from the connection and retry fields of a PipelineConfig.

        Unless a ``retry_manager`` is passed in kwargs, one is created whose
        policy gives every provider error ``config.max_attempts`` attempts,
        starting at ``config.retry_delay`` seconds and growing exponentially.
        Remaining kwargs (transport, temperature, log_callback, ...) go to
        the constructor unchanged.
        """
        if 'retry_manager' not in kwargs:
            kwargs['retry_manager'] = RetryManager(
                default_config=RetryConfig(
                    max_attempts=config.max_attempts,
                    initial_delay=config.retry_delay
                ),
                inherit_defaults=False,
                log_callback=kwargs.get('log_callback')
            )
        return cls(
            api_endpoint=config.api_endpoint,
            model=config.model,
            api_key=config.api_key,
            timeout=config.timeout,
            **kwargs
        )

    @property
    def requires_api_key(self) -> bool:
        # Local servers (llama.cpp, LM Studio, vLLM) accept anonymous requests
        return "api.openai.com" in self.api_endpoint

    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        options: TranslationOptions
    ) -> str:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self.temperature,
            "stream": False,
        }
        if self.max_tokens:
            payload["max_tokens"] = self.max_tokens

        timeout = options.timeout or self.timeout
        client = await self._get_client()

        try:
            response = await client.post(
                self.api_endpoint,
                json=payload,
                headers=headers,
                timeout=timeout
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise ProviderConnectionError(
                f"Request timed out after {timeout}s",
                {'endpoint': self.api_endpoint}
            ) from e
        except httpx.HTTPStatusError as e:
            raise self._map_status_error(e.response) from e
        except httpx.TransportError as e:
            raise ProviderConnectionError(
                f"Could not reach provider: {e}",
                {'endpoint': self.api_endpoint}
            ) from e

        try:
            response_json = response.json()
        except json.JSONDecodeError as e:
            raise ProviderResponseError(f"Invalid JSON in response: {e}") from e

        try:
            content = response_json["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderResponseError(
                "Unexpected response structure",
                {'body': str(response_json)[:200]}
            ) from e

        if not content or not content.strip():
            raise ProviderResponseError("No translation returned from provider")

        usage = response_json.get("usage") or {}
        logger.debug(
            "Completion: %s prompt tokens, %s completion tokens",
            usage.get("prompt_tokens", "?"), usage.get("completion_tokens", "?")
        )
        return content

    def _map_status_error(self, response: httpx.Response) -> ProviderError:
        status = response.status_code
        body = response.text[:500]
        context = {'status_code': status, 'endpoint': self.api_endpoint}

        if status in (401, 403):
            return ProviderAuthenticationError(f"Authentication failed: {body}", context)

        if status == 429:
            retry_after = None
            header = response.headers.get("retry-after")
            if header:
                try:
                    retry_after = float(header)
                except ValueError:
                    retry_after = None
            return ProviderRateLimitError(f"Rate limited: {body}", retry_after, context)

        if any(keyword in body.lower() for keyword in CONTEXT_OVERFLOW_KEYWORDS):
            return ProviderError(f"Context overflow: {body}", context, recoverable=False)

        if status >= 500:
            return ProviderConnectionError(f"Server error {status}: {body}", context)

        return ProviderError(f"HTTP {status}: {body}", context, recoverable=False)
