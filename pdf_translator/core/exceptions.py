"""
Exception hierarchy for the translation pipeline.

Every error raised by the pipeline derives from TranslationError, which
carries a context dictionary and a ``recoverable`` flag. The flag decides
whether a failed batch is reported as retryable and whether the retry
manager is allowed to try again.
"""

from typing import Optional, Dict, Any


class TranslationError(Exception):
    """Root of the pipeline error tree.

    Attributes:
        message: What went wrong, for humans
        context: Identifiers and values useful when reading logs
        recoverable: True when trying again later may succeed
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = False
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        text = f"{type(self).__name__}: {self.message}"
        if not self.context:
            return text
        details = ", ".join(f"{key}={value}" for key, value in self.context.items())
        return f"{text} ({details})"


# ============================================================================
# Setup / configuration errors
# ============================================================================

class ConfigurationError(TranslationError):
    """Invalid or missing setting; fixing it needs a code or environment change."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context, recoverable=False)


class NoTranslatableContentError(TranslationError):
    """Raised before any batch work when no fragment has text to translate."""

    def __init__(self, message: str, fragment_count: Optional[int] = None):
        ctx = {}
        if fragment_count is not None:
            ctx['fragment_count'] = fragment_count
        super().__init__(message, ctx, recoverable=False)


class InvalidPhaseTransitionError(TranslationError):
    """Raised when progress moves backwards or leaves the error phase."""

    def __init__(self, current_phase: str, requested_phase: str):
        super().__init__(
            f"Cannot move from phase '{current_phase}' to '{requested_phase}'",
            {'current_phase': current_phase, 'requested_phase': requested_phase},
            recoverable=False
        )


# ============================================================================
# Batch errors
# ============================================================================

class BatchTranslationError(TranslationError):
    """Raised when a whole batch cannot be translated.

    Attributes:
        batch_id: Identifier of the failed batch
    """

    def __init__(
        self,
        message: str,
        batch_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = True
    ):
        ctx = context or {}
        if batch_id is not None:
            ctx['batch_id'] = batch_id
        super().__init__(message, ctx, recoverable)
        self.batch_id = batch_id


class BatchCountMismatchError(BatchTranslationError):
    """Raised when the provider returns a different number of translations than texts sent."""

    def __init__(self, batch_id: str, expected: int, actual: int):
        super().__init__(
            f"Provider returned {actual} translations for {expected} texts",
            batch_id=batch_id,
            context={'expected': expected, 'actual': actual},
            recoverable=True
        )
        self.expected = expected
        self.actual = actual


# ============================================================================
# Provider (translation capability) errors
# ============================================================================

class ProviderError(TranslationError):
    """Base exception for translation provider errors."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = True
    ):
        super().__init__(message, context, recoverable)


class ProviderConnectionError(ProviderError):
    """Raised when the provider cannot be reached or times out."""
    pass


class ProviderRateLimitError(ProviderError):
    """Raised when the provider rejects a request because of rate limiting."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        ctx = context or {}
        if retry_after is not None:
            ctx['retry_after'] = retry_after
        super().__init__(message, ctx, recoverable=True)
        self.retry_after = retry_after


class ProviderAuthenticationError(ProviderError):
    """The provider refused the credentials (or none were sent)."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context, recoverable=False)


class ProviderResponseError(ProviderError):
    """Raised when the provider response is empty or unparseable."""
    pass


# ============================================================================
# Recovery errors
# ============================================================================

class RecoveryError(TranslationError):
    """Base exception for recovery session persistence errors."""
    pass


class RecoverySaveError(RecoveryError):
    """Raised when a recovery session cannot be written."""
    pass


class RecoveryLoadError(RecoveryError):
    """Raised when a recovery session exists but cannot be read."""
    pass


# ============================================================================
# Retry exhaustion
# ============================================================================

class RetryExhaustedError(TranslationError):
    """A retried call failed on its last allowed attempt.

    Attributes:
        original_error: Exception raised by the last attempt
        attempts: Attempts made in total
    """

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        attempts: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        ctx = context or {}
        if original_error:
            ctx['original_error'] = str(original_error)
            ctx['original_error_type'] = type(original_error).__name__
        if attempts is not None:
            ctx['attempts'] = attempts
        # A batch that exhausted its retries can still be retried on resume
        recoverable = getattr(original_error, 'recoverable', True)
        super().__init__(message, ctx, recoverable=recoverable)
        self.original_error = original_error
        self.attempts = attempts
