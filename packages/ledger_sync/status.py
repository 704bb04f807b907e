"""UI-facing sync status: a small phase state machine around the engine.

The coordinator owns the user-visible state of syncing (current phase,
whether a cycle is running, the last error message) and publishes
:class:`PhaseChanged` and :class:`SyncFinished` on the engine's notifier.
A failed cycle records its message and re-raises; retrying is simply calling
:meth:`SyncCoordinator.sync` again.
"""

from __future__ import annotations

import threading
from collections.abc import Callable

from .dirty import dirty_count
from .engine import SyncEngine, SyncSetupError
from .gateway import RemoteGateway
from .logging_setup import get_logger
from .models import DirtyCount, PhaseChanged, SyncFinished, SyncPhase, SyncReport
from .records import AUTO_SYNC_KEY, get_preference, set_preference

_logger = get_logger("ledger_sync.status")


class SyncCoordinator:
    def __init__(
        self,
        engine: SyncEngine,
        gateway: RemoteGateway | None,
        *,
        credential_refresher: Callable[[], object] | None = None,
    ) -> None:
        self._engine = engine
        self._gateway = gateway
        self._refresh_credentials = credential_refresher
        self._lock = threading.Lock()
        self._phase = SyncPhase.IDLE
        self._syncing = False
        self._last_error: str | None = None
        self._last_report: SyncReport | None = None

    @property
    def phase(self) -> SyncPhase:
        return self._phase

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def last_report(self) -> SyncReport | None:
        return self._last_report

    def clear_error(self) -> None:
        self._last_error = None

    def _set_phase(self, user_id: str, phase: SyncPhase) -> None:
        if phase is self._phase:
            return
        self._phase = phase
        self._engine.notifier.publish(PhaseChanged(user_id=user_id, phase=phase))

    def sync(self, user_id: str) -> SyncReport | None:
        """Run one full cycle; ``None`` when a cycle is already running."""

        with self._lock:
            if self._syncing:
                _logger.info("Sync already in progress; ignoring request")
                return None
            self._syncing = True

        self._last_error = None
        try:
            if not user_id:
                raise SyncSetupError("user_id is required to sync")
            if self._gateway is None:
                raise SyncSetupError("no remote gateway configured")
            if self._refresh_credentials is not None:
                self._refresh_credentials()
            report = self._engine.sync_all(
                user_id,
                self._gateway,
                on_phase=lambda phase: self._set_phase(user_id, phase),
            )
        except Exception as exc:
            self._last_error = str(exc) or type(exc).__name__
            _logger.error("Sync failed for user %s: %s", user_id, self._last_error)
            self._engine.notifier.publish(
                SyncFinished(user_id=user_id, ok=False, error=self._last_error)
            )
            raise
        finally:
            self._set_phase(user_id, SyncPhase.IDLE)
            with self._lock:
                self._syncing = False

        if report is not None:
            self._last_report = report
            self._engine.notifier.publish(SyncFinished(user_id=user_id, ok=True))
        return report

    def trigger_auto_sync(self, user_id: str) -> SyncReport | None:
        """Sync when the user enabled auto-sync; failures are logged, not raised."""

        if not self.auto_sync_enabled(user_id):
            return None
        if self._syncing:
            _logger.info("Auto-sync skipped: a sync is already running")
            return None
        try:
            return self.sync(user_id)
        except Exception:
            _logger.exception("Auto-sync failed for user %s", user_id)
            return None

    def auto_sync_enabled(self, user_id: str) -> bool:
        return get_preference(self._engine.store, user_id, AUTO_SYNC_KEY) == "true"

    def set_auto_sync(self, user_id: str, enabled: bool) -> None:
        set_preference(self._engine.store, user_id, AUTO_SYNC_KEY, "true" if enabled else "false")

    def dirty_count(self, user_id: str) -> DirtyCount:
        return dirty_count(self._engine.store, user_id)


__all__ = ["SyncCoordinator"]
