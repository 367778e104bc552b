"""
Translation orchestrator.

TranslationService drives one request through the pipeline:

    deduplicate -> batch -> translate (bounded concurrency) -> quality check
    -> record in the recovery session -> redistribute to every fragment

Failures are contained per batch: a batch that raises or returns the wrong
number of translations marks its own fragments as failed and the run goes
on. Only unexpected errors abort the run, after the session has been saved
in the error phase so that it can be resumed later.
"""

import logging
import time
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional

from pdf_translator.config import PipelineConfig
from pdf_translator.core.batching import (
    create_batches,
    deduplicate,
    estimate_tokens,
    redistribute,
    to_canonical_items,
)
from pdf_translator.core.events import (
    EventBus,
    create_batch_completed_event,
    create_batch_failed_event,
    create_quality_issue_event,
)
from pdf_translator.core.exceptions import (
    BatchCountMismatchError,
    NoTranslatableContentError,
    TranslationError,
)
from pdf_translator.core.models import (
    BATCH_COUNT_MISMATCH,
    BATCH_FAILED,
    TRANSLATION_FAILED,
    Batch,
    CanonicalItem,
    Cost,
    FragmentError,
    ProgressState,
    QualityIssue,
    QualityTier,
    ResultMetadata,
    SessionSummary,
    TranslationPhase,
    TranslationRequest,
    TranslationResult,
)
from pdf_translator.core.processor import BatchOutcome, BoundedBatchProcessor
from pdf_translator.core.progress import BatchProgressTracker
from pdf_translator.core.quality import QualityChecker
from pdf_translator.persistence.recovery_manager import RecoveryManager
from pdf_translator.providers.base import TranslationProvider

logger = logging.getLogger(__name__)


@dataclass
class _RunState:
    """Mutable accumulators shared by the batch workers of one run."""
    request: TranslationRequest
    session_id: str
    tracker: BatchProgressTracker
    translations: Dict[str, str] = field(default_factory=dict)
    errors: List[FragmentError] = field(default_factory=list)
    quality_issues: List[QualityIssue] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0


class TranslationService:
    """Translates fragment sets with deduplication, batching and recovery."""

    def __init__(
        self,
        provider: TranslationProvider,
        config: Optional[PipelineConfig] = None,
        recovery_manager: Optional[RecoveryManager] = None,
        quality_checker: Optional[QualityChecker] = None,
        log_callback: Optional[Callable[[str, str], None]] = None
    ):
        """
        Args:
            provider: Translation capability used for every batch
            config: Pipeline settings (environment defaults if omitted)
            recovery_manager: Session store (one in config.recovery_dir if omitted)
            quality_checker: Checker for the professional tier
            log_callback: Optional (log_type, message) callback for UI consumers
        """
        self.provider = provider
        self.config = config or PipelineConfig()
        self.recovery_manager = recovery_manager or RecoveryManager(
            self.config.recovery_dir, self.config.autosave_interval
        )
        self.quality_checker = quality_checker or QualityChecker(
            self.config.min_length_ratio, self.config.max_length_ratio
        )
        self.log_callback = log_callback
        self.event_bus = EventBus()

    def _log(self, log_type: str, message: str, level: int = logging.INFO):
        logger.log(level, message)
        if self.log_callback:
            self.log_callback(log_type, message)

    # ------------------------------------------------------------------
    # Translation
    # ------------------------------------------------------------------

    async def translate(self, request: TranslationRequest) -> TranslationResult:
        """
        Translate every fragment of ``request``.

        Returns:
            TranslationResult with per-fragment errors for anything that failed

        Raises:
            NoTranslatableContentError: If no fragment has non-blank text
        """
        start_time = time.monotonic()

        canonical, fragment_to_text = deduplicate(request.fragments.values())
        if not canonical:
            raise NoTranslatableContentError(
                "No translatable text in request",
                fragment_count=len(request.fragments)
            )

        tracker = BatchProgressTracker()
        listeners = []
        if request.options.on_progress:
            listeners.append(tracker.subscribe(request.options.on_progress))

        try:
            async with self.recovery_manager.session(request) as session_id:
                listeners.append(tracker.subscribe(
                    lambda progress: self.recovery_manager.update_progress(session_id, progress)
                ))
                state = _RunState(request=request, session_id=session_id, tracker=tracker)
                try:
                    return await self._run(state, canonical, fragment_to_text, start_time)
                except Exception as e:
                    tracker.set_phase(TranslationPhase.ERROR, f"Translation failed: {e}")
                    self._log("translation_error", f"Translation failed: {e}", logging.ERROR)
                    raise
        finally:
            for listener in listeners:
                tracker.unsubscribe(listener)

    async def _run(
        self,
        state: _RunState,
        canonical: Dict[str, List[str]],
        fragment_to_text: Dict[str, str],
        start_time: float
    ) -> TranslationResult:
        request = state.request
        options = request.options
        tracker = state.tracker

        tracker.set_phase(TranslationPhase.EXTRACTING, "Analyzing content...")
        items = to_canonical_items(canonical)
        self._log(
            "dedup_complete",
            f"{len(request.fragments)} fragments reduced to {len(items)} unique texts"
        )

        tracker.set_phase(TranslationPhase.PREPARING, "Preparing translation batches...")
        batches = create_batches(
            items,
            options.batch_size if options.batch_size is not None else self.config.max_batch_size,
            (
                options.max_tokens_per_batch
                if options.max_tokens_per_batch is not None
                else self.config.max_tokens_per_batch
            ),
        )
        for batch in batches:
            tracker.set_batch_size(batch.id, len(batch.items))

        processor = BoundedBatchProcessor(
            options.concurrency if options.concurrency is not None else self.config.concurrency,
            (
                options.inter_batch_delay
                if options.inter_batch_delay is not None
                else self.config.inter_batch_delay
            ),
        )

        tracker.set_phase(
            TranslationPhase.TRANSLATING,
            f"Translating {len(items)} unique texts in {len(batches)} batches..."
        )

        async def worker(batch: Batch) -> int:
            try:
                return await self._translate_batch(batch, state)
            finally:
                tracker.complete_batch(batch.id)

        outcomes = await processor.process(batches, worker)

        tracker.set_phase(TranslationPhase.VALIDATING, "Validating translations...")
        for outcome in outcomes:
            if not outcome.succeeded:
                await self._record_batch_failure(outcome, state)

        tracker.set_phase(TranslationPhase.APPLYING, "Applying translations...")
        translated_fragments = redistribute(state.translations, fragment_to_text, request.fragments)
        cost = self.provider.estimate_cost(state.input_tokens, state.output_tokens)

        tracker.set_phase(TranslationPhase.COMPLETED, "Translation completed!")
        await self.recovery_manager.complete(state.session_id)

        metadata = ResultMetadata(
            total_count=len(request.fragments),
            translated_count=len(translated_fragments),
            failed_count=len(state.errors),
            execution_time_ms=(time.monotonic() - start_time) * 1000,
            cost=cost,
            errors=state.errors,
            quality_issues=state.quality_issues,
            session_id=state.session_id,
        )
        self._log(
            "translation_complete",
            f"Translated {metadata.translated_count}/{metadata.total_count} fragments "
            f"({metadata.failed_count} failed) in {metadata.execution_time_ms:.0f}ms"
        )
        return TranslationResult(translated_fragments=translated_fragments, metadata=metadata)

    async def _translate_batch(self, batch: Batch, state: _RunState) -> int:
        """
        Translate one batch and record each item in the session.

        Returns:
            Number of items translated

        Raises:
            BatchCountMismatchError: If the provider answer is not index aligned
        """
        request = state.request
        texts = batch.texts
        batch_options = replace(
            request.options,
            on_progress=lambda progress: state.tracker.update_batch_progress(
                batch.id, progress.current
            )
        )

        translations = await self.provider.translate_batch(
            texts, request.source_lang, request.target_lang, batch_options
        )
        state.input_tokens += sum(estimate_tokens(text) for text in texts)

        if len(translations) != len(texts):
            raise BatchCountMismatchError(batch.id, len(texts), len(translations))

        translated_count = 0
        for item, translated in zip(batch.items, translations):
            if not translated or not translated.strip():
                await self._mark_item_failed(
                    item, state, "Translation failed: empty result", TRANSLATION_FAILED, True
                )
                continue

            if request.options.quality == QualityTier.PROFESSIONAL:
                translated = await self._check_quality(item, translated, state)

            state.output_tokens += estimate_tokens(translated)
            state.translations[item.text] = translated
            for fragment_id in item.fragment_ids:
                await self.recovery_manager.add_completed(
                    state.session_id,
                    fragment_id,
                    request.fragments[fragment_id].with_text(translated)
                )
            translated_count += 1

        self.event_bus.publish(create_batch_completed_event(
            batch.id, len(batch.items), len(batch.items) - translated_count
        ))
        logger.debug("Batch %s: %d/%d items translated", batch.id, translated_count, len(batch.items))
        return translated_count

    async def _check_quality(self, item: CanonicalItem, translated: str, state: _RunState) -> str:
        """
        Run the quality checker; optionally retranslate once and keep the
        higher-scoring translation.
        """
        request = state.request
        fragment_id = item.fragment_ids[0]
        result = self.quality_checker.check(
            item.text, translated, fragment_id, request.source_lang, request.target_lang
        )

        if not result.passed and request.options.retry_on_quality_error:
            try:
                retry = await self.provider.translate(
                    item.text,
                    request.source_lang,
                    request.target_lang,
                    replace(request.options, on_progress=None)
                )
            except TranslationError as e:
                logger.warning("Quality retry failed for %s: %s", fragment_id, e)
                retry = None

            if retry is not None:
                state.input_tokens += estimate_tokens(item.text)
            if retry and retry.strip():
                retry_result = self.quality_checker.check(
                    item.text, retry, fragment_id, request.source_lang, request.target_lang
                )
                if retry_result.score > result.score:
                    translated, result = retry, retry_result

        if result.issues:
            self._log(
                "quality_issues",
                f"Quality issues for {fragment_id} (score {result.score}): "
                + "; ".join(issue.description for issue in result.issues),
                logging.WARNING
            )
        for issue in result.issues:
            state.quality_issues.append(issue)
            self.event_bus.publish(create_quality_issue_event(issue))

        return translated

    async def _mark_item_failed(
        self,
        item: CanonicalItem,
        state: _RunState,
        message: str,
        code: str,
        retryable: bool
    ) -> None:
        for fragment_id in item.fragment_ids:
            state.errors.append(FragmentError(
                fragment_id=fragment_id,
                error=message,
                code=code,
                retryable=retryable,
            ))
            await self.recovery_manager.add_failed(state.session_id, fragment_id)

    async def _record_batch_failure(self, outcome: BatchOutcome, state: _RunState) -> None:
        batch: Batch = outcome.batch
        error = outcome.error
        code = BATCH_COUNT_MISMATCH if isinstance(error, BatchCountMismatchError) else BATCH_FAILED
        retryable = getattr(error, 'recoverable', True)

        self._log(
            "batch_failed",
            f"Batch {batch.id} failed ({len(batch.items)} texts): {error}",
            logging.WARNING
        )
        self.event_bus.publish(create_batch_failed_event(batch.id, len(batch.items), str(error)))

        for item in batch.items:
            await self._mark_item_failed(item, state, str(error), code, retryable)

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    async def resume_translation(
        self,
        session_id: str,
        on_progress: Optional[Callable[[ProgressState], None]] = None
    ) -> Optional[TranslationResult]:
        """
        Continue a saved session.

        Fragments not yet completed (including failed ones) are translated
        in a new session and merged over the saved translations.

        Args:
            session_id: Id of the session to resume
            on_progress: Observer for the resumed run (not persisted in sessions)

        Returns:
            Merged result, or None if the session cannot be found
        """
        session = await self.recovery_manager.load_state(session_id)
        if session is None:
            self._log("resume_not_found", f"Recovery session {session_id} not found", logging.WARNING)
            return None

        original_total = len(session.original_request.fragments)
        remaining = {
            fid: fragment
            for fid, fragment in RecoveryManager.get_resumable_fragments(session).items()
            if fragment.text.strip()
        }

        if not remaining:
            self._log("resume_nothing_left", f"Session {session_id} has nothing left to translate")
            return TranslationResult(
                translated_fragments=dict(session.translated_fragments),
                metadata=ResultMetadata(
                    total_count=original_total,
                    translated_count=len(session.translated_fragments),
                    failed_count=0,
                    execution_time_ms=0.0,
                    cost=Cost(),
                    session_id=session.id,
                ),
            )

        self._log(
            "resume_start",
            f"Resuming {session_id}: {len(remaining)} of {original_total} fragments remaining"
        )
        options = replace(session.original_request.options, on_progress=on_progress)
        resume_request = replace(
            session.original_request.with_fragments(remaining), options=options
        )
        result = await self.translate(resume_request)

        merged = {**session.translated_fragments, **result.translated_fragments}
        metadata = replace(
            result.metadata,
            total_count=original_total,
            translated_count=len(merged),
        )

        if not result.metadata.errors:
            await self.recovery_manager.delete_session(session.id)

        return TranslationResult(translated_fragments=merged, metadata=metadata)

    async def list_sessions(self) -> List[SessionSummary]:
        return await self.recovery_manager.list_sessions()

    async def delete_session(self, session_id: str) -> bool:
        return await self.recovery_manager.delete_session(session_id)

    async def cleanup_old_sessions(self, days: Optional[int] = None) -> int:
        return await self.recovery_manager.cleanup(
            days if days is not None else self.config.recovery_max_age_days
        )

    async def close(self) -> None:
        """Stop background autosave tasks and close the provider client."""
        await self.recovery_manager.close()
        await self.provider.close()
