"""
Translation providers.

TranslationProvider is the capability contract used by the pipeline;
OpenAICompatibleProvider implements it over any OpenAI-style endpoint.
"""
from pdf_translator.providers.base import TranslationProvider
from pdf_translator.providers.openai_compatible import OpenAICompatibleProvider

__all__ = ['TranslationProvider', 'OpenAICompatibleProvider']
