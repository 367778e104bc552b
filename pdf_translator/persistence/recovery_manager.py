"""
Recovery manager for resumable translation sessions.

Each translation run owns a session record: the original request, the
latest progress snapshot, and the ids that have completed or failed so far.
Records are written as one JSON file per session in the recovery directory,
on creation, on every autosave tick and on completion, so that a run killed
half-way can be resumed from its last save.

Persistence problems are logged and swallowed: losing a save must never
cost the translation itself.
"""

import asyncio
import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional

import aiofiles
import aiofiles.os

from pdf_translator.config import AUTOSAVE_INTERVAL_SECONDS, RECOVERY_DIR, RECOVERY_MAX_AGE_DAYS
from pdf_translator.core.events import Event, EventBus, EventType
from pdf_translator.core.exceptions import RecoveryLoadError, RecoverySaveError
from pdf_translator.core.models import (
    Fragment,
    ProgressState,
    RecoverySession,
    SessionSummary,
    TranslationPhase,
    TranslationRequest,
)
from pdf_translator.persistence.path_validator import PathValidator

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class _ActiveSession:
    session: RecoverySession
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    autosave_task: Optional[asyncio.Task] = None


class RecoveryManager:
    """
    Manages recovery sessions on disk.

    All mutable state is keyed by session id, so one manager can serve any
    number of concurrent translations.
    """

    def __init__(
        self,
        recovery_dir: str = RECOVERY_DIR,
        autosave_interval: float = AUTOSAVE_INTERVAL_SECONDS,
        event_bus: Optional[EventBus] = None
    ):
        """
        Args:
            recovery_dir: Directory holding one <session id>.json per session
            autosave_interval: Seconds between background saves of an active session
            event_bus: Optional bus receiving SESSION_SAVED events
        """
        self.recovery_dir = Path(recovery_dir)
        self.autosave_interval = autosave_interval
        self.event_bus = event_bus
        self._sessions: Dict[str, _ActiveSession] = {}

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> bool:
        """
        Create the recovery directory if needed.

        Returns:
            False if the directory cannot be created; sessions then live in
            memory only and every save is logged as failed
        """
        try:
            await aiofiles.os.makedirs(self.recovery_dir, exist_ok=True)
        except OSError as e:
            logger.error("Recovery directory %s is unusable: %s", self.recovery_dir, e)
            return False
        return True

    async def create_session(self, request: TranslationRequest) -> str:
        """
        Start a new session for ``request``, persist it and start autosave.

        Returns:
            The new session id (``recovery_<epoch ms>_<random>``)
        """
        await self.initialize()

        now = _now_ms()
        session_id = f"recovery_{now}_{uuid.uuid4().hex[:9]}"
        session = RecoverySession(
            id=session_id,
            timestamp=now,
            original_request=request,
            progress=ProgressState(
                current=0,
                total=len(request.fragments),
                phase=TranslationPhase.INITIALIZING,
            ),
        )
        active = _ActiveSession(session=session)
        self._sessions[session_id] = active

        await self.save_state(session_id)
        active.autosave_task = asyncio.create_task(self._autosave_loop(session_id))

        logger.info("Recovery session %s created (%d fragments)", session_id, len(request.fragments))
        return session_id

    @asynccontextmanager
    async def session(self, request: TranslationRequest) -> AsyncIterator[str]:
        """
        Scoped session: yields the id, records the error phase if the body
        raises or is cancelled, and always stops the autosave task on exit.
        """
        session_id = await self.create_session(request)
        try:
            yield session_id
        except asyncio.CancelledError:
            # Work completed since the last autosave is written before unwinding
            await asyncio.shield(self.mark_error(session_id, "Translation cancelled"))
            raise
        except Exception as e:
            await self.mark_error(session_id, str(e))
            raise
        finally:
            await self._stop_autosave(session_id)

    def is_active(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get_session(self, session_id: str) -> Optional[RecoverySession]:
        """In-memory record of an active session."""
        active = self._sessions.get(session_id)
        return active.session if active else None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_progress(self, session_id: str, progress: ProgressState) -> None:
        """
        Record the latest progress snapshot.

        A single reference swap, so it is safe to call from synchronous event
        listeners; it never interleaves with a save in progress.
        """
        active = self._sessions.get(session_id)
        if not active:
            return
        active.session.progress = progress
        active.session.timestamp = _now_ms()

    async def add_completed(
        self,
        session_id: str,
        fragment_id: str,
        translated_fragment: Fragment
    ) -> None:
        active = self._sessions.get(session_id)
        if not active:
            return
        async with active.lock:
            session = active.session
            if fragment_id not in session.completed_fragment_ids:
                session.completed_fragment_ids.append(fragment_id)
            session.translated_fragments[fragment_id] = translated_fragment
            session.timestamp = _now_ms()

    async def add_failed(self, session_id: str, fragment_id: str) -> None:
        active = self._sessions.get(session_id)
        if not active:
            return
        async with active.lock:
            session = active.session
            if fragment_id not in session.failed_fragment_ids:
                session.failed_fragment_ids.append(fragment_id)
            session.timestamp = _now_ms()

    async def complete(self, session_id: str) -> None:
        """Stop autosave, record the completed phase, save, and forget the session."""
        await self._finish(session_id, TranslationPhase.COMPLETED, None)

    async def mark_error(self, session_id: str, message: str) -> None:
        """Stop autosave, record the error phase, save, and forget the session."""
        await self._finish(session_id, TranslationPhase.ERROR, message)

    async def _finish(
        self,
        session_id: str,
        phase: TranslationPhase,
        message: Optional[str]
    ) -> None:
        active = self._sessions.get(session_id)
        if not active:
            return
        await self._stop_autosave(session_id)

        progress = active.session.progress
        active.session.progress = ProgressState(
            current=progress.current,
            total=progress.total,
            phase=phase,
            percentage=progress.percentage,
            message=message if message is not None else progress.message,
        )
        await self.save_state(session_id)
        self._sessions.pop(session_id, None)
        logger.info("Recovery session %s finished (%s)", session_id, phase.value)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _session_path(self, session_id: str) -> Path:
        return self.recovery_dir / f"{session_id}.json"

    async def save_state(self, session_id: str) -> bool:
        """
        Persist an active session, overwriting its previous file.

        Returns:
            True if written; False if the session is unknown or the write failed
        """
        active = self._sessions.get(session_id)
        if not active:
            logger.warning("Cannot save unknown recovery session %s", session_id)
            return False

        async with active.lock:
            try:
                await self._write_session(active.session)
            except RecoverySaveError as e:
                logger.error("Failed to save recovery state: %s", e)
                return False

        if self.event_bus:
            self.event_bus.publish(Event(
                type=EventType.SESSION_SAVED,
                data={'session_id': session_id},
                source='recovery_manager'
            ))
        return True

    async def _write_session(self, session: RecoverySession) -> None:
        """Write to a temp file then replace, so readers never see a partial record."""
        path = self._session_path(session.id)
        tmp_path = path.with_name(path.name + '.tmp')
        try:
            payload = json.dumps(session.to_dict(), ensure_ascii=False, indent=2)
            await aiofiles.os.makedirs(self.recovery_dir, exist_ok=True)
            async with aiofiles.open(tmp_path, 'w', encoding='utf-8') as f:
                await f.write(payload)
            await aiofiles.os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            raise RecoverySaveError(
                f"Could not write session file: {e}",
                {'session_id': session.id, 'path': str(path)}
            ) from e

    async def load_state(self, session_id: str) -> Optional[RecoverySession]:
        """
        Read a persisted session.

        Returns:
            The session, or None if the id is invalid or the file is missing,
            unreadable or corrupt
        """
        is_valid, error = PathValidator.validate_session_id(session_id)
        if not is_valid:
            logger.warning("Rejected recovery session id %r: %s", session_id, error)
            return None

        path = self._session_path(session_id)
        if not await aiofiles.os.path.exists(path):
            return None

        try:
            return await self._read_session(path)
        except RecoveryLoadError as e:
            logger.warning("Failed to load recovery state: %s", e)
            return None

    async def _read_session(self, path: Path) -> RecoverySession:
        try:
            async with aiofiles.open(path, 'r', encoding='utf-8') as f:
                content = await f.read()
            return RecoverySession.from_dict(json.loads(content))
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise RecoveryLoadError(
                f"Could not read session file: {e}",
                {'path': str(path)}
            ) from e

    async def list_sessions(self) -> List[SessionSummary]:
        """Summaries of every readable persisted session, newest first."""
        if not await aiofiles.os.path.isdir(self.recovery_dir):
            return []

        summaries = []
        for name in await aiofiles.os.listdir(self.recovery_dir):
            if not name.endswith('.json'):
                continue
            session = await self.load_state(name[:-len('.json')])
            if session is None:
                continue
            summaries.append(SessionSummary(
                id=session.id,
                timestamp=session.timestamp,
                progress=session.progress.percentage,
            ))

        summaries.sort(key=lambda s: s.timestamp, reverse=True)
        return summaries

    async def delete_session(self, session_id: str) -> bool:
        """
        Stop a session's autosave (if active) and remove its file.

        Returns:
            False only when the id is invalid or the file could not be removed
        """
        is_valid, error = PathValidator.validate_session_id(session_id)
        if not is_valid:
            logger.warning("Rejected recovery session id %r: %s", session_id, error)
            return False

        await self._stop_autosave(session_id)
        self._sessions.pop(session_id, None)

        try:
            await aiofiles.os.remove(self._session_path(session_id))
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("Failed to delete recovery session %s: %s", session_id, e)
            return False
        return True

    @staticmethod
    def get_resumable_fragments(session: RecoverySession) -> Dict[str, Fragment]:
        """Request fragments not yet completed; failed ones are retried."""
        completed = set(session.completed_fragment_ids)
        return {
            fid: fragment
            for fid, fragment in session.original_request.fragments.items()
            if fid not in completed
        }

    async def cleanup(self, max_age_days: int = RECOVERY_MAX_AGE_DAYS) -> int:
        """
        Delete session files last modified more than ``max_age_days`` ago.
        Sessions active in this manager are never removed.

        Returns:
            Number of files deleted
        """
        if not await aiofiles.os.path.isdir(self.recovery_dir):
            return 0

        cutoff = time.time() - max_age_days * 24 * 60 * 60
        removed = 0
        for name in await aiofiles.os.listdir(self.recovery_dir):
            if not name.endswith('.json'):
                continue
            if name[:-len('.json')] in self._sessions:
                continue
            path = self.recovery_dir / name
            try:
                stat = await aiofiles.os.stat(path)
                if stat.st_mtime < cutoff:
                    await aiofiles.os.remove(path)
                    removed += 1
            except OSError as e:
                logger.warning("Could not clean up %s: %s", path, e)

        if removed:
            logger.info("Removed %d expired recovery sessions", removed)
        return removed

    async def close(self) -> None:
        """Stop every autosave task."""
        for session_id in list(self._sessions):
            await self._stop_autosave(session_id)

    # ------------------------------------------------------------------
    # Autosave
    # ------------------------------------------------------------------

    async def _autosave_loop(self, session_id: str) -> None:
        while True:
            await asyncio.sleep(self.autosave_interval)
            await self.save_state(session_id)

    async def _stop_autosave(self, session_id: str) -> None:
        active = self._sessions.get(session_id)
        if not active or active.autosave_task is None:
            return
        task = active.autosave_task
        active.autosave_task = None
        if task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
