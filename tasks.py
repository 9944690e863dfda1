# tasks.py

"""
Periodic background work: the queue processing loop and the orphaned
temp file sweep. Both run on daemon threads owned by the web process.
"""

import logging
import threading
from typing import Callable, Optional

from schemas import HandlerResponse
from workspace import WorkspaceManager
from config import CLEANUP_INTERVAL_HOURS, ORPHAN_MAX_AGE_HOURS, PROCESSING_INTERVAL, WORKER_COUNT

Handler = Callable[[], HandlerResponse]


class _IntervalRunner:
    """
    Calls a job every interval_seconds until stopped, the first time right
    away when run_immediately is set.
    start() on a running instance restarts it; stop() on a stopped one is a no-op.
    """

    name = "interval"
    run_immediately = True

    def __init__(self, interval_seconds: float):
        self.interval_seconds = interval_seconds
        self._lock = threading.Lock()
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            self._stop_locked()
            stop_event = threading.Event()
            self._stop_event = stop_event
            self._thread = threading.Thread(
                target=self._loop, args=(stop_event,), name=f"{self.name}-loop", daemon=True
            )
            self._thread.start()

    def stop(self) -> None:
        with self._lock:
            self._stop_locked()

    def _stop_locked(self) -> None:
        if self._stop_event is None:
            return
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=5)
        self._stop_event = None
        self._thread = None

    def _loop(self, stop_event: threading.Event) -> None:
        if not self.run_immediately:
            stop_event.wait(self.interval_seconds)
        while not stop_event.is_set():
            self._launch()
            stop_event.wait(self.interval_seconds)

    def _launch(self) -> None:
        raise NotImplementedError


class ProcessingController(_IntervalRunner):
    """
    Every interval, launches one tick on its own thread. A tick runs
    worker_count slots one after the other; each slot makes one video pass
    and then one segment pass.
    """

    name = "processing"
    run_immediately = False

    def __init__(
        self,
        video_handler: Handler,
        segment_handler: Handler,
        worker_count: int = WORKER_COUNT,
        interval_seconds: float = PROCESSING_INTERVAL,
    ):
        super().__init__(interval_seconds)
        self.video_handler = video_handler
        self.segment_handler = segment_handler
        self.worker_count = worker_count

    def start(self) -> None:
        if self.is_running:
            logging.info("Stopping existing processing interval")
        super().start()
        logging.info(
            f"✅ Started processing with {self.worker_count} workers, "
            f"interval {self.interval_seconds}s"
        )

    def stop(self) -> None:
        was_running = self.is_running
        super().stop()
        if was_running:
            logging.info("Processing stopped")

    def run_tick(self) -> None:
        for worker_id in range(1, self.worker_count + 1):
            try:
                logging.info(f"Worker {worker_id}: processing video queue")
                video_result = self.video_handler()
                logging.info(f"Worker {worker_id}: video result {video_result.status_code} {video_result.body}")

                logging.info(f"Worker {worker_id}: processing segment queue")
                segment_result = self.segment_handler()
                logging.info(f"Worker {worker_id}: segment result {segment_result.status_code} {segment_result.body}")
            except Exception as e:
                logging.exception(f"❌ Worker {worker_id} error: {e}")

    def _launch(self) -> None:
        threading.Thread(target=self._tick, name="processing-tick", daemon=True).start()

    def _tick(self) -> None:
        try:
            self.run_tick()
        except Exception as e:
            logging.exception(f"❌ Processing tick failed: {e}")


class CleanupScheduler(_IntervalRunner):
    """Sweeps orphaned workspaces right away and then every interval_hours."""

    name = "cleanup"

    def __init__(
        self,
        workspace: WorkspaceManager,
        interval_hours: float = CLEANUP_INTERVAL_HOURS,
        max_age_hours: float = ORPHAN_MAX_AGE_HOURS,
    ):
        super().__init__(interval_hours * 3600)
        self.workspace = workspace
        self.max_age_hours = max_age_hours

    def start(self) -> None:
        super().start()
        logging.info(f"Scheduled orphaned temp cleanup every {self.interval_seconds / 3600:g}h")

    def _launch(self) -> None:
        try:
            self.workspace.sweep_orphans(self.max_age_hours)
        except Exception as e:
            logging.exception(f"❌ Error cleaning up orphaned temp files: {e}")
