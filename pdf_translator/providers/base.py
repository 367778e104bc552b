"""
Base class for translation providers.

A provider turns texts in one language into texts in another. Concrete
providers implement a single round-trip (``_complete``); this base class
builds the prompts, batches texts into numbered requests, falls back to
one-by-one translation when a batched answer cannot be aligned, wraps every
call with the retry manager, and estimates cost from a pricing table.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Tuple

import httpx

from pdf_translator.config import (
    MAX_TRANSLATION_ATTEMPTS,
    PROVIDER_CHUNK_SIZE,
    REQUEST_TIMEOUT,
    RETRY_DELAY_SECONDS,
)
from pdf_translator.core.batching.batch_builder import estimate_tokens
from pdf_translator.core.exceptions import ConfigurationError
from pdf_translator.core.models import (
    Cost,
    CostBreakdown,
    ProgressState,
    QualityTier,
    TranslationOptions,
    TranslationPhase,
)
from pdf_translator.core.retry_manager import RetryConfig, RetryManager, RetryStrategy

logger = logging.getLogger(__name__)

QUALITY_INSTRUCTIONS = {
    QualityTier.DRAFT: "Provide a quick, basic translation that conveys the general meaning.",
    QualityTier.STANDARD: "Provide an accurate translation that maintains the original meaning and tone.",
    QualityTier.PROFESSIONAL: (
        "Provide a high-quality, polished translation suitable for professional use. "
        "Pay careful attention to nuance, tone, and cultural adaptation."
    ),
}

# Leading "[3] " markers some models echo back from the numbered prompt
_NUMBER_MARKER = re.compile(r'^\s*\[\d+\]\s*')


class TranslationProvider(ABC):
    """Abstract base class for translation providers"""

    name = "base"
    provider_id = "generic"

    # model -> (USD per 1M input tokens, USD per 1M output tokens)
    PRICING: Dict[str, Tuple[float, float]] = {}
    DEFAULT_PRICING_MODEL: Optional[str] = None

    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        timeout: int = REQUEST_TIMEOUT,
        chunk_size: int = PROVIDER_CHUNK_SIZE,
        retry_manager: Optional[RetryManager] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        log_callback: Optional[Callable[[str, str], None]] = None
    ):
        """
        Args:
            model: Model name/identifier
            api_key: Credential, if the backend needs one
            timeout: Request timeout in seconds
            chunk_size: Texts per request inside translate_batch
            retry_manager: Retry policy (a default RetryManager if omitted)
            transport: Optional httpx transport (tests use httpx.MockTransport)
            log_callback: Optional (log_type, message) callback
        """
        if chunk_size < 1:
            raise ConfigurationError(f"chunk_size must be >= 1, got {chunk_size}")
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.retry_manager = retry_manager or RetryManager(
            default_config=RetryConfig(
                max_attempts=MAX_TRANSLATION_ATTEMPTS,
                initial_delay=RETRY_DELAY_SECONDS
            ),
            log_callback=log_callback
        )
        self.log_callback = log_callback
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def requires_api_key(self) -> bool:
        return True

    def validate_config(self) -> None:
        """Raises ConfigurationError if a required credential is missing."""
        if self.requires_api_key and not self.api_key:
            raise ConfigurationError(
                f"API key is required for {self.name} provider",
                {'provider': self.name, 'model': self.model}
            )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create a persistent HTTP client with connection pooling"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None

    @abstractmethod
    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        options: TranslationOptions
    ) -> str:
        """
        One request/response round-trip.

        Returns:
            The raw response text

        Raises:
            ProviderError: Or a subclass describing the failure
        """

    # ------------------------------------------------------------------
    # Prompts and estimates
    # ------------------------------------------------------------------

    def build_system_prompt(
        self,
        source_lang: str,
        target_lang: str,
        options: Optional[TranslationOptions] = None
    ) -> str:
        options = options or TranslationOptions()
        prompt = (
            f"You are a professional translator. Translate the following text from "
            f"{source_lang} to {target_lang}.\n\n"
            f"{QUALITY_INSTRUCTIONS[options.quality]}\n\n"
            "Important instructions:\n"
            "- Maintain the original formatting (line breaks, spacing, punctuation)\n"
            "- Preserve any special characters, numbers, or codes exactly as they appear\n"
            "- Do not add explanations or notes - return only the translation"
        )

        if options.preserve_formatting:
            prompt += "\n- Pay special attention to preserving all formatting elements"

        if options.glossary:
            prompt += "\n\nGlossary (use these specific translations for the following terms):"
            for term, translation in options.glossary.items():
                prompt += f'\n- "{term}" -> "{translation}"'

        return prompt

    @staticmethod
    def build_batch_prompt(texts: List[str], source_lang: str, target_lang: str) -> str:
        numbered = "\n\n".join(f"[{idx + 1}] {text}" for idx, text in enumerate(texts))
        return (
            f"Translate the following {len(texts)} texts from {source_lang} to {target_lang}.\n"
            "Return ONLY the translations, each on a new line, in the same order as provided.\n"
            "Do not include numbers, bullets, or any other formatting.\n\n"
            f"Texts to translate:\n{numbered}"
        )

    @staticmethod
    def parse_batch_response(response: str) -> List[str]:
        """Non-blank response lines, with echoed [n] markers removed."""
        return [
            _NUMBER_MARKER.sub('', line)
            for line in response.split('\n')
            if line.strip()
        ]

    def estimate_tokens(self, text: str) -> int:
        return estimate_tokens(text)

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> Cost:
        """
        Cost of a token count under this provider's pricing table.

        Unknown models fall back to DEFAULT_PRICING_MODEL; with no table at
        all the cost is zero.
        """
        pricing = self.PRICING.get(self.model)
        if pricing is None and self.DEFAULT_PRICING_MODEL:
            pricing = self.PRICING.get(self.DEFAULT_PRICING_MODEL)
        input_price, output_price = pricing or (0.0, 0.0)

        usd = (input_tokens / 1_000_000) * input_price + (output_tokens / 1_000_000) * output_price
        return Cost(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_cost_minor_units=usd * 100,
            currency="USD",
            breakdown=CostBreakdown(
                provider=self.provider_id,
                model=self.model,
                price_per_input_token=input_price / 1_000_000,
                price_per_output_token=output_price / 1_000_000,
            ),
        )

    # ------------------------------------------------------------------
    # Translation
    # ------------------------------------------------------------------

    def _retry_manager_for(self, options: TranslationOptions) -> RetryManager:
        """Retry policy honouring a per-request max_retries override."""
        if options.max_retries is None:
            return self.retry_manager
        attempts = max(1, options.max_retries)
        base = self.retry_manager
        return RetryManager(
            default_config=replace(base.default_config, max_attempts=attempts),
            custom_configs={
                exc_type: (
                    config if config.strategy == RetryStrategy.NONE
                    else replace(config, max_attempts=attempts)
                )
                for exc_type, config in base.custom_configs.items()
            },
            inherit_defaults=False,
            log_callback=base.log_callback,
        )

    async def _request(
        self,
        system_prompt: str,
        user_prompt: str,
        options: TranslationOptions,
        operation_id: str
    ) -> str:
        return await self._retry_manager_for(options).execute_with_retry(
            self._complete,
            system_prompt,
            user_prompt,
            options,
            operation_id=operation_id,
        )

    async def translate(
        self,
        text: str,
        source_lang: str,
        target_lang: str,
        options: Optional[TranslationOptions] = None
    ) -> str:
        """Translate a single text."""
        options = options or TranslationOptions()
        system_prompt = self.build_system_prompt(source_lang, target_lang, options)
        return await self._request(system_prompt, text, options, f"{self.name}.translate")

    async def translate_batch(
        self,
        texts: List[str],
        source_lang: str,
        target_lang: str,
        options: Optional[TranslationOptions] = None
    ) -> List[str]:
        """
        Translate texts, returning a list aligned index-for-index with the input.

        Texts are sent ``chunk_size`` at a time in one numbered prompt. When
        the answer for a chunk does not split into exactly one line per text,
        that chunk is translated again one text at a time. A matching line
        count does not prove alignment; it is only the trigger for the
        fallback.
        """
        options = options or TranslationOptions()
        system_prompt = self.build_system_prompt(source_lang, target_lang, options)
        results: List[str] = []

        for start in range(0, len(texts), self.chunk_size):
            chunk = texts[start:start + self.chunk_size]
            prompt = self.build_batch_prompt(chunk, source_lang, target_lang)
            response = await self._request(
                system_prompt, prompt, options, f"{self.name}.translate_batch[{start}]"
            )

            translations = self.parse_batch_response(response)
            if len(translations) != len(chunk):
                logger.warning(
                    "Batch response had %d lines for %d texts, translating individually",
                    len(translations), len(chunk)
                )
                if self.log_callback:
                    self.log_callback(
                        "batch_fallback",
                        f"Line count mismatch ({len(translations)}/{len(chunk)}), "
                        "falling back to individual translation"
                    )
                translations = [
                    await self.translate(text, source_lang, target_lang, options)
                    for text in chunk
                ]
            results.extend(translations)

            if options.on_progress:
                done = min(start + self.chunk_size, len(texts))
                options.on_progress(ProgressState(
                    current=done,
                    total=len(texts),
                    phase=TranslationPhase.TRANSLATING,
                    percentage=done / len(texts) * 100,
                ))

        return results
