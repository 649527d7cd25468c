from __future__ import annotations
import threading
from dataclasses import dataclass

@dataclass(frozen=True)
class AppContext:
    app_name: str = "unknown"
    editable_focus: bool = False
    since_mono: float = 0.0

class ContextState:
    def __init__(self):
        self._lock = threading.RLock()
        self._current = AppContext()

    def update(self, app_name: str, editable_focus: bool, since_mono: float) -> AppContext:
        with self._lock:
            self._current = AppContext(app_name=app_name, editable_focus=editable_focus, since_mono=since_mono)
            return self._current

    def get_current(self) -> AppContext:
        with self._lock:
            return self._current
