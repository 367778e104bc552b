"""
Core translation pipeline modules
"""
from .exceptions import TranslationError
from .models import (
    Fragment,
    TranslationOptions,
    TranslationPhase,
    TranslationRequest,
    TranslationResult,
    QualityTier,
)

__all__ = [
    'TranslationError',
    'Fragment',
    'TranslationOptions',
    'TranslationPhase',
    'TranslationRequest',
    'TranslationResult',
    'QualityTier',
]
