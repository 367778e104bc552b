"""
Translation pipeline core for extracted document text.

Deduplicates fragments, batches them for a translation provider, runs the
batches under bounded concurrency with progress tracking and heuristic
quality checks, and keeps resumable recovery sessions on disk.
"""
from pdf_translator.config import PipelineConfig
from pdf_translator.core.models import (
    Fragment,
    QualityTier,
    TranslationOptions,
    TranslationPhase,
    TranslationRequest,
    TranslationResult,
)
from pdf_translator.core.translation_service import TranslationService
from pdf_translator.persistence.recovery_manager import RecoveryManager
from pdf_translator.providers import OpenAICompatibleProvider, TranslationProvider

__version__ = "1.0.0"

__all__ = [
    'PipelineConfig',
    'Fragment',
    'QualityTier',
    'TranslationOptions',
    'TranslationPhase',
    'TranslationRequest',
    'TranslationResult',
    'TranslationService',
    'RecoveryManager',
    'OpenAICompatibleProvider',
    'TranslationProvider',
]
