# guardcore/utils/queueing.py
from __future__ import annotations
import threading
from queue import Queue, Full, Empty
from typing import List

def safe_put(q: Queue, item) -> None:
    """
    Put without blocking; if the queue is full, drop the oldest item and retry.
    Prevents producer threads from stalling and caps memory growth.
    """
    try:
        q.put_nowait(item)
    except Full:
        try:
            q.get_nowait()  # drop oldest
            q.task_done()   # keep join()/unfinished_tasks honest for dropped items
        except Empty:
            pass
        try:
            q.put_nowait(item)
        except Full:
            # another producer refilled it first; this item is the one dropped
            pass

def drain(q: Queue) -> list:
    """Non-blocking: everything currently queued, oldest first."""
    out = []
    while True:
        try:
            out.append(q.get_nowait())
        except Empty:
            break
    return out

class Broadcaster:
    """
    Single-writer, multi-reader fan-out onto bounded per-subscriber queues.
    Delivery is at-most-once with no replay: a subscriber sees only items
    published after it subscribed, and a slow one loses its own oldest items.
    """
    def __init__(self, maxsize: int = 256):
        self.maxsize = maxsize
        self._lock = threading.Lock()
        self._subs: List[Queue] = []

    def subscribe(self) -> Queue:
        q: Queue = Queue(maxsize=self.maxsize)
        with self._lock:
            self._subs.append(q)
        return q

    def unsubscribe(self, q: Queue) -> bool:
        with self._lock:
            try:
                self._subs.remove(q)
                return True
            except ValueError:
                return False

    def publish(self, item) -> None:
        with self._lock:
            subs = list(self._subs)
        for q in subs:
            safe_put(q, item)

    def close(self) -> None:
        with self._lock:
            self._subs.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._subs)
