"""Report sessions and their in-memory store.

A session holds the state of one user's report tab: the loaded workbook,
the extraction derived from it, the free-text context and the generated
summary. Sessions are immutable; every transition returns a new session,
so loading a workbook replaces record, log and summary in one step.

Summary generation is slow and may be triggered again before it finishes,
or a new workbook may be loaded in the meantime. ``begin_summary`` hands out
a ticket naming the workbook revision and generation it belongs to, and
``apply_summary`` only accepts a result whose ticket is still current.
"""

import threading
import time
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from ad_report_summarizer.config import settings
from ad_report_summarizer.services.kpi_extractor import ExtractionResult
from ad_report_summarizer.services.quality_gate import QualityReport
from ad_report_summarizer.services.summary_generator import AiContext
from ad_report_summarizer.utils.exceptions import (
    NoExtractionError,
    SessionExpiredError,
    SessionNotFoundError,
)
from ad_report_summarizer.utils.logging import get_logger
from ad_report_summarizer.workbook import Workbook

logger = get_logger(__name__)


@dataclass(frozen=True)
class SummaryTicket:
    """Identifies the extraction a summary request was derived from."""

    session_id: str
    revision: int
    generation: int


@dataclass(frozen=True)
class ReportSession:
    """Snapshot of one report session."""

    session_id: str
    created_at: datetime
    updated_at: datetime
    revision: int = 0
    generation: int = 0
    filename: str | None = None
    workbook: Workbook | None = None
    active_sheet: str | None = None
    extraction: ExtractionResult | None = None
    quality: QualityReport | None = None
    rejection_reason: str | None = None
    context: AiContext = field(default_factory=AiContext)
    summary: str | None = None

    @property
    def ready_for_summary(self) -> bool:
        return self.extraction is not None and self.quality is not None


def new_session(session_id: str) -> ReportSession:
    now = datetime.now(UTC)
    return ReportSession(session_id=session_id, created_at=now, updated_at=now)


def load_extraction(
    session: ReportSession,
    workbook: Workbook,
    filename: str,
    extraction: ExtractionResult,
    quality: QualityReport,
) -> ReportSession:
    """Replace all workbook-derived state with a trusted extraction."""
    return replace(
        session,
        updated_at=datetime.now(UTC),
        revision=session.revision + 1,
        filename=filename,
        workbook=workbook,
        active_sheet=extraction.summary_sheet,
        extraction=extraction,
        quality=quality,
        rejection_reason=None,
        summary=None,
    )


def reject_extraction(
    session: ReportSession,
    workbook: Workbook | None,
    filename: str,
    reason: str,
    active_sheet: str | None = None,
) -> ReportSession:
    """Replace workbook-derived state after a failed or rejected load.

    The workbook stays viewable when it parsed, but no KPI record survives,
    so no summary can be generated from it.
    """
    return replace(
        session,
        updated_at=datetime.now(UTC),
        revision=session.revision + 1,
        filename=filename,
        workbook=workbook,
        active_sheet=active_sheet,
        extraction=None,
        quality=None,
        rejection_reason=reason,
        summary=None,
    )


def reset_workbook(session: ReportSession) -> ReportSession:
    """Drop the workbook and everything derived from it, keeping the context."""
    return replace(
        session,
        updated_at=datetime.now(UTC),
        revision=session.revision + 1,
        filename=None,
        workbook=None,
        active_sheet=None,
        extraction=None,
        quality=None,
        rejection_reason=None,
        summary=None,
    )


def with_context(session: ReportSession, context: AiContext) -> ReportSession:
    return replace(session, updated_at=datetime.now(UTC), context=context)


def with_active_sheet(session: ReportSession, sheet_name: str) -> ReportSession:
    return replace(session, updated_at=datetime.now(UTC), active_sheet=sheet_name)


def begin_summary(session: ReportSession) -> tuple[ReportSession, SummaryTicket]:
    """Start a summary request; any earlier in-flight request becomes stale.

    Raises:
        NoExtractionError: If the session holds no trusted extraction.
    """
    if not session.ready_for_summary:
        raise NoExtractionError(session.session_id)

    updated = replace(
        session,
        updated_at=datetime.now(UTC),
        generation=session.generation + 1,
        summary=None,
    )
    ticket = SummaryTicket(
        session_id=session.session_id,
        revision=updated.revision,
        generation=updated.generation,
    )
    return updated, ticket


def is_current(session: ReportSession, ticket: SummaryTicket) -> bool:
    return (
        session.session_id == ticket.session_id
        and session.revision == ticket.revision
        and session.generation == ticket.generation
    )


def apply_summary(
    session: ReportSession, ticket: SummaryTicket, text: str
) -> tuple[ReportSession, bool]:
    """Store a generated summary if its ticket is still current.

    Returns:
        The resulting session and whether the summary was accepted.
    """
    if not is_current(session, ticket):
        logger.info(
            "Discarding stale summary",
            ticket_revision=ticket.revision,
            ticket_generation=ticket.generation,
            current_revision=session.revision,
            current_generation=session.generation,
        )
        return session, False
    return replace(session, updated_at=datetime.now(UTC), summary=text), True


# =============================================================================
# Store
# =============================================================================


@dataclass
class SessionManagerConfig:
    """Configuration for the session manager."""

    ttl_seconds: int = field(default_factory=lambda: settings.session_ttl_seconds)
    cleanup_interval_seconds: int = 300
    enable_auto_cleanup: bool = True


class SessionManager:
    """Thread-safe in-memory session store with idle TTL.

    Sessions expire ``ttl_seconds`` after their last update.
    """

    def __init__(self, config: SessionManagerConfig | None = None) -> None:
        self.config = config or SessionManagerConfig()
        self._sessions: dict[str, ReportSession] = {}
        self._lock = threading.RLock()
        self._cleanup_thread: threading.Thread | None = None
        self._stop_cleanup = threading.Event()

        if self.config.enable_auto_cleanup:
            self._start_cleanup_thread()

    def _start_cleanup_thread(self) -> None:
        self._stop_cleanup.clear()
        self._cleanup_thread = threading.Thread(
            target=self._cleanup_loop,
            daemon=True,
            name="SessionManagerCleanup",
        )
        self._cleanup_thread.start()
        logger.info("Session cleanup thread started")

    def _cleanup_loop(self) -> None:
        while not self._stop_cleanup.wait(self.config.cleanup_interval_seconds):
            try:
                self.cleanup_expired_sessions()
            except Exception as e:
                logger.error(f"Error in session cleanup: {e}")

    def stop_cleanup(self) -> None:
        """Stop the background cleanup thread."""
        self._stop_cleanup.set()
        if self._cleanup_thread and self._cleanup_thread.is_alive():
            self._cleanup_thread.join(timeout=5.0)
            logger.info("Session cleanup thread stopped")

    def _is_expired(self, session: ReportSession, now: float) -> bool:
        return now - session.updated_at.timestamp() > self.config.ttl_seconds

    def create(self, session_id: str) -> ReportSession:
        session = new_session(session_id)
        with self._lock:
            self._sessions[session_id] = session
        logger.info("Session created", session_id=session_id)
        return session

    def get(self, session_id: str) -> ReportSession:
        """Get a session by ID.

        Raises:
            SessionNotFoundError: If the session doesn't exist.
            SessionExpiredError: If the session has expired.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            if self._is_expired(session, time.time()):
                del self._sessions[session_id]
                raise SessionExpiredError(session_id)
            return session

    def put(self, session: ReportSession) -> ReportSession:
        """Store a session snapshot, replacing the previous one wholesale."""
        with self._lock:
            if session.session_id not in self._sessions:
                raise SessionNotFoundError(session.session_id)
            self._sessions[session.session_id] = session
        return session

    def delete(self, session_id: str) -> None:
        with self._lock:
            if self._sessions.pop(session_id, None) is None:
                raise SessionNotFoundError(session_id)
        logger.info("Session deleted", session_id=session_id)

    def cleanup_expired_sessions(self) -> int:
        """Remove expired sessions.

        Returns:
            Number of sessions removed.
        """
        now = time.time()
        with self._lock:
            expired = [
                sid for sid, s in self._sessions.items() if self._is_expired(s, now)
            ]
            for sid in expired:
                del self._sessions[sid]

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired sessions")
        return len(expired)

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def clear_all(self) -> None:
        """Clear all sessions. Used primarily for testing."""
        with self._lock:
            self._sessions.clear()


_session_manager: SessionManager | None = None


def get_session_manager() -> SessionManager:
    """Get the global session manager, creating it on first use."""
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager()
    return _session_manager


def reset_session_manager() -> None:
    """Reset the global session manager. Used primarily for testing."""
    global _session_manager
    if _session_manager is not None:
        _session_manager.stop_cleanup()
        _session_manager = None
