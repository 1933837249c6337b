from __future__ import annotations

import errno
import logging
import os
import threading
import time
from datetime import date
from pathlib import Path
from typing import Any
from uuid import uuid4

from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.tracker.clock import FixedOffsetClock
from backend.tracker.services.channel_registry import ChannelRegistry
from backend.tracker.telemetry import TelemetryClient

LOGGER = logging.getLogger("channel_tracker.scheduler")

try:
    import fcntl
except ImportError:  # pragma: no cover - non-POSIX fallback
    fcntl = None


class SnapshotScheduler:
    """Background loop that captures each calendar day's snapshots once, without a listing request."""

    def __init__(
        self,
        registry: ChannelRegistry,
        clock: FixedOffsetClock,
        poll_interval_seconds: int,
        *,
        telemetry: TelemetryClient | None = None,
        lock_path: Path | None = None,
    ) -> None:
        self._registry = registry
        self._clock = clock
        self._poll_interval_seconds = max(1, poll_interval_seconds)
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()
        self._last_captured_day: date | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock_path = lock_path
        self._lock_file: Any | None = None

    @property
    def last_captured_day(self) -> date | None:
        return self._last_captured_day

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        if not self._try_acquire_process_lock():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="channel-tracker-scheduler")
        self._thread.daemon = True
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=3)
            self._thread = None
        self._release_process_lock()

    def run_once(self) -> bool:
        """
        Capture today's snapshots unless already done.

        Returns True only when every tracked channel is captured for today. A partial
        capture, or an error, leaves the day open so the next poll tries again.
        """
        today = self._clock.today()
        if self._last_captured_day == today:
            return False

        tick_id = uuid4().hex
        tick_tokens = bind_contextvars(scheduler_tick_id=tick_id)
        started_at = time.perf_counter()
        self._telemetry.emit("scheduler.refresh.start", tick_id=tick_id, day=today)
        try:
            capture = self._registry.capture_snapshots()
        except Exception as exc:
            self._telemetry.emit(
                "scheduler.refresh.error",
                tick_id=tick_id,
                duration_ms=int((time.perf_counter() - started_at) * 1000),
                error_type=type(exc).__name__,
            )
            LOGGER.warning("daily snapshot refresh failed day=%s", today.isoformat(), exc_info=True)
            return False
        finally:
            reset_contextvars(**tick_tokens)

        duration_ms = int((time.perf_counter() - started_at) * 1000)
        if not capture.complete:
            self._telemetry.emit(
                "scheduler.refresh.incomplete",
                tick_id=tick_id,
                duration_ms=duration_ms,
                captured=capture.captured,
                pending=len(capture.pending_ids),
            )
            LOGGER.warning(
                "daily snapshot capture incomplete day=%s captured=%s pending=%s",
                today.isoformat(),
                capture.captured,
                len(capture.pending_ids),
            )
            return False

        self._last_captured_day = today
        self._telemetry.emit(
            "scheduler.refresh.finish",
            tick_id=tick_id,
            duration_ms=duration_ms,
            captured=capture.captured,
        )
        LOGGER.info(
            "daily snapshot capture done day=%s captured=%s",
            today.isoformat(),
            capture.captured,
        )
        return True

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.run_once()
            self._stop_event.wait(self._poll_interval_seconds)

    def _try_acquire_process_lock(self) -> bool:
        if self._lock_path is None:
            return True

        if fcntl is None:
            LOGGER.warning(
                "scheduler single-instance lock unavailable on this platform; starting scheduler"
            )
            return True

        lock_path = self._lock_path
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        lock_file = lock_path.open("a+", encoding="utf-8")
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as exc:
            lock_file.close()
            if exc.errno in (errno.EACCES, errno.EAGAIN):
                LOGGER.info(
                    "scheduler start skipped; lock held by another process path=%s",
                    lock_path,
                )
                return False
            LOGGER.warning(
                "scheduler lock acquisition failed path=%s; starting scheduler anyway",
                lock_path,
                exc_info=True,
            )
            return True

        lock_file.seek(0)
        lock_file.truncate()
        lock_file.write(f"{os.getpid()}\n")
        lock_file.flush()
        self._lock_file = lock_file
        return True

    def _release_process_lock(self) -> None:
        lock_file = self._lock_file
        if lock_file is None:
            return
        try:
            if fcntl is not None:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
        except OSError:
            LOGGER.debug("scheduler lock release failed path=%s", self._lock_path, exc_info=True)
        finally:
            lock_file.close()
            self._lock_file = None
