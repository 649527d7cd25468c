from __future__ import annotations
import threading
from queue import Queue, Empty
from typing import Optional

import structlog

from guardcore.storage.event_store import EventStore, Measurement
from guardcore.utils.queueing import safe_put

log = structlog.get_logger()

class StoreWriter:
    """
    Fire-and-forget persistence:
    - submit() never blocks; a full buffer drops its oldest measurement
    - a daemon thread drains the buffer into EventStore.append_event
    - stop() never waits longer than its timeout, even on a stalled store
    """
    def __init__(self, store: EventStore, maxsize: int = 2000, poll_sec: float = 0.25):
        self.store = store
        self.poll_sec = poll_sec
        self._q: Queue = Queue(maxsize=maxsize)
        self._stop = threading.Event()
        self._thr: Optional[threading.Thread] = None
        self.written = 0

    def start(self) -> None:
        if self._thr and self._thr.is_alive():
            return
        self._stop.clear()
        self._thr = threading.Thread(target=self._loop, name="store-writer", daemon=True)
        self._thr.start()

    def stop(self, timeout: float = 1.0) -> None:
        self._stop.set()
        if self._thr:
            self._thr.join(timeout=timeout)
            if self._thr.is_alive():
                # store is stalled; leave the backlog to the daemon thread
                log.warning("store_writer.stop.timeout", timeout_s=timeout, dropped=self._q.qsize())
                return
            self._thr = None
        # writer never started, or exited before draining
        self.flush()

    def submit(self, m: Measurement) -> None:
        safe_put(self._q, m)

    def flush(self) -> int:
        """Synchronously write everything queued (used on stop and by tests)."""
        n = 0
        while True:
            try:
                m = self._q.get_nowait()
            except Empty:
                return n
            self._write(m)
            n += 1

    # -------- internal --------

    def _loop(self):
        while not self._stop.is_set():
            try:
                m = self._q.get(timeout=self.poll_sec)
            except Empty:
                continue
            self._write(m)
        # final flush
        self.flush()

    def _write(self, m: Measurement) -> None:
        try:
            self.store.append_event(m)
            self.written += 1
        except Exception as e:
            # stores are expected to swallow their own errors; this guards third-party ones
            log.warning("store_writer.error", signal=m.signal.value, err=str(e))
