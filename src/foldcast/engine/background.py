"""Fire-and-forget pattern recording on a worker thread."""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Optional

from foldcast.patterns.models import FileDescriptor, ObservedContext

from .recorder import PatternRecorder

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class RecordRequest:
    """Arguments of one queued ``PatternRecorder.record`` call."""

    owner_id: str
    file: FileDescriptor
    source_folder_id: Optional[str]
    destination_folder_id: str
    observed: Optional[ObservedContext] = None
    destination_folder_name: Optional[str] = None


class BackgroundRecorder:
    """Queue recording work so move handlers never wait on pattern storage."""

    def __init__(self, recorder: PatternRecorder, *, max_pending: int = 1_000) -> None:
        """Initialize the background recorder.

        Args:
            recorder: Recorder that performs the actual work.
            max_pending: Queue capacity; submissions beyond it are dropped.
        """
        self._recorder = recorder
        self._queue: queue.Queue[RecordRequest | None] = queue.Queue(maxsize=max(1, max_pending))
        self._thread: threading.Thread | None = None
        self._start_lock = threading.Lock()
        self._stop_requested = False

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the worker thread if it is not already running."""
        with self._start_lock:
            if self.running:
                return
            self._stop_requested = False
            self._thread = threading.Thread(
                target=self._run_loop, name="foldcast-recorder", daemon=True
            )
            self._thread.start()

    def submit(self, request: RecordRequest) -> bool:
        """Queue ``request`` without blocking.

        Returns:
            bool: False when the queue is full and the observation was dropped.
        """
        self.start()
        try:
            self._queue.put_nowait(request)
        except queue.Full:
            LOGGER.warning(
                "Recording queue full; dropping observation for owner=%s file=%s",
                request.owner_id,
                request.file.id,
            )
            return False
        return True

    def flush(self) -> None:
        """Block until every queued observation has been processed."""
        self._queue.join()

    def stop(self, timeout: float = 5.0) -> None:
        """Process pending work, then stop the worker thread.

        A worker still busy after ``timeout`` seconds is left running, and a
        later call waits for it again.
        """
        with self._start_lock:
            thread = self._thread
            if thread is None:
                return
            if not self._stop_requested:
                # Blocking put: the sentinel must land even when the queue is full.
                self._queue.put(None)
                self._stop_requested = True
            thread.join(timeout=timeout)
            if thread.is_alive():
                LOGGER.warning(
                    "Recorder worker still busy after %.1fs; leaving it running", timeout
                )
                return
            self._thread = None
            self._stop_requested = False

    def _run_loop(self) -> None:
        while True:
            request = self._queue.get()
            try:
                if request is None:
                    return
                self._recorder.record(
                    request.owner_id,
                    request.file,
                    request.source_folder_id,
                    request.destination_folder_id,
                    request.observed,
                    destination_folder_name=request.destination_folder_name,
                )
            except Exception:  # the worker must outlive any single failure
                LOGGER.exception("Background recording failed for owner=%s", request.owner_id)
            finally:
                self._queue.task_done()


__all__ = ["BackgroundRecorder", "RecordRequest"]
