"""
Shared fixtures: an in-memory provider, request builders and an isolated
recovery directory per test.
"""

import asyncio
import sys
from pathlib import Path
from typing import Callable, List, Optional, Set

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest

from pdf_translator.config import PipelineConfig
from pdf_translator.core.exceptions import ProviderConnectionError
from pdf_translator.core.models import Fragment, TranslationOptions, TranslationRequest
from pdf_translator.core.retry_manager import RetryConfig, RetryManager
from pdf_translator.persistence.recovery_manager import RecoveryManager
from pdf_translator.providers.base import TranslationProvider


def no_retry_manager() -> RetryManager:
    """Retry manager that gives up after the first failure, with no delays."""
    return RetryManager(
        default_config=RetryConfig(max_attempts=1, initial_delay=0.0, jitter=0.0),
        inherit_defaults=False
    )


class FakeProvider(TranslationProvider):
    """
    In-memory provider for pipeline tests.

    Translates by prefixing the text, and can be told to fail whole batches,
    return short answers, or return empty strings for chosen texts.
    """

    name = "fake"
    provider_id = "fake"
    PRICING = {'fake-model': (1.0, 2.0)}

    def __init__(self, prefix: str = "FR:", delay: float = 0.0):
        super().__init__(model='fake-model', retry_manager=no_retry_manager())
        self.prefix = prefix
        self.delay = delay
        self.fail_texts: Set[str] = set()
        self.short_texts: Set[str] = set()
        self.empty_texts: Set[str] = set()
        self.translate_fn: Optional[Callable[[str], str]] = None
        self.batch_calls: List[List[str]] = []
        self.single_calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def requires_api_key(self) -> bool:
        return False

    def _translate_one(self, text: str) -> str:
        if text in self.empty_texts:
            return ""
        if self.translate_fn:
            return self.translate_fn(text)
        return f"{self.prefix}{text}"

    async def _complete(self, system_prompt, user_prompt, options):
        return self._translate_one(user_prompt)

    async def translate_batch(self, texts, source_lang, target_lang, options=None):
        self.batch_calls.append(list(texts))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if any(text in self.fail_texts for text in texts):
                raise ProviderConnectionError("simulated outage")
            results = [self._translate_one(text) for text in texts]
            if any(text in self.short_texts for text in texts):
                results = results[:-1]
            return results
        finally:
            self.in_flight -= 1

    async def translate(self, text, source_lang, target_lang, options=None):
        self.single_calls.append(text)
        return self._translate_one(text)


def build_request(
    texts,
    source_lang: str = "en",
    target_lang: str = "fr",
    options: Optional[TranslationOptions] = None
) -> TranslationRequest:
    """Request with fragments f0, f1, ... carrying ``texts``."""
    fragments = {
        f"f{i}": Fragment(id=f"f{i}", text=text, metadata={'page': i // 10 + 1})
        for i, text in enumerate(texts)
    }
    return TranslationRequest(
        fragments=fragments,
        source_lang=source_lang,
        target_lang=target_lang,
        provider="fake",
        options=options or TranslationOptions(inter_batch_delay=0.0),
    )


@pytest.fixture
def fake_provider():
    """Fresh FakeProvider instance."""
    return FakeProvider()


@pytest.fixture
def make_request():
    """Factory building a TranslationRequest from a list of texts."""
    return build_request


@pytest.fixture
def recovery_dir(tmp_path):
    return tmp_path / "translation_recovery"


@pytest.fixture
def recovery_manager(recovery_dir):
    return RecoveryManager(str(recovery_dir), autosave_interval=30.0)


@pytest.fixture
def pipeline_config(recovery_dir):
    """Config isolated from the environment's recovery directory, no delays."""
    return PipelineConfig(
        recovery_dir=str(recovery_dir),
        inter_batch_delay=0.0,
        autosave_interval=30.0,
    )
