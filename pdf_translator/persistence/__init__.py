"""
Persistence module for resumable translation sessions
"""
from pdf_translator.persistence.recovery_manager import RecoveryManager
from pdf_translator.persistence.path_validator import PathValidator

__all__ = ['RecoveryManager', 'PathValidator']
