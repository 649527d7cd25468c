from __future__ import annotations
import threading
from queue import Queue, Empty
from typing import Callable, Optional
import structlog

from guardcore.hooks.events import BaseEvent
from guardcore.utils.queueing import safe_put
from guardapp.controller.engine import AnalysisEngine

log = structlog.get_logger()

class EngineRuntime:
    """
    Single-consumer front for an AnalysisEngine.
    Producers on any thread call submit(); one consumer thread feeds the engine
    in arrival order. submit() never blocks: a full ingress queue drops its oldest event.
    stop() drains accepted events within its timeout and logs any it had to drop.
    """
    def __init__(self, engine: AnalysisEngine, maxsize: Optional[int] = None,
                 on_event: Optional[Callable[[BaseEvent, int], None]] = None):
        self.engine = engine
        self.queue: Queue = Queue(maxsize=maxsize or engine.cfg.ingress_queue_size)
        self._consumer_thr: Optional[threading.Thread] = None
        self._stop_evt = threading.Event()
        self._idle = threading.Condition()
        self._on_event = on_event
        self.processed = 0

    def start(self) -> None:
        if self._consumer_thr and self._consumer_thr.is_alive():
            return
        self._stop_evt.clear()
        self._consumer_thr = threading.Thread(target=self._consume_loop, name="engine-consumer", daemon=True)
        self._consumer_thr.start()
        log.info("runtime.start")

    def stop(self, timeout: float = 1.0) -> None:
        # stop accepting first; the consumer drains what was already accepted
        self._stop_evt.set()
        if self._consumer_thr:
            self._consumer_thr.join(timeout=timeout)
            if not self._consumer_thr.is_alive():
                self._consumer_thr = None
        backlog = self.queue.qsize()
        if backlog:
            log.warning("runtime.stop.dropped", dropped=backlog, timeout_s=timeout)
        self.engine.shutdown(timeout=timeout)
        log.info("runtime.stop", processed=self.processed)

    def submit(self, ev: BaseEvent) -> None:
        if self._stop_evt.is_set():
            return
        safe_put(self.queue, ev)

    def wait_idle(self, timeout: float = 5.0) -> bool:
        """Block until every submitted event has been processed (tests, CLI replay)."""
        with self._idle:
            return self._idle.wait_for(lambda: self.queue.unfinished_tasks == 0, timeout=timeout)

    def _consume_loop(self):
        while True:
            stopping = self._stop_evt.is_set()
            try:
                ev: BaseEvent = self.queue.get_nowait() if stopping else self.queue.get(timeout=0.5)
            except Empty:
                if stopping:
                    break
                continue

            try:
                self.engine.on_event(ev)
            except Exception as e:
                log.warning("engine.error", err=str(e), etype=ev.etype.name)

            self.processed += 1
            if self._on_event:
                try:
                    self._on_event(ev, self.processed)
                except Exception as e:
                    log.warning("runtime.on_event.error", err=str(e))

            self.queue.task_done()
            with self._idle:
                self._idle.notify_all()
