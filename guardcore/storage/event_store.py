from __future__ import annotations
import json
import os
import sqlite3
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, Dict, List, Optional, Protocol

import structlog

from guardcore.crypto.sealer import RecordSealer

log = structlog.get_logger()

DB_FILE = os.path.join(os.path.abspath("."), "guard_history.sqlite3")
HISTORY_CAP = 1000

class Signal(Enum):
    """One primitive measurement stream; each has its own rolling window."""
    TYPING_LATENCY = "typing_latency"
    TOUCH_PRESSURE = "touch_pressure"
    SWIPE_SPEED = "swipe_speed"
    MOVEMENT = "movement"
    CLICK_HOLD = "click_hold"

@dataclass(frozen=True)
class Measurement:
    signal: Signal
    value: float
    ts_utc: int = 0     # epoch ms; 0 = unknown

    def to_record(self) -> Dict[str, object]:
        return {"signal": self.signal.value, "value": self.value, "ts_utc": self.ts_utc}

def utc_ts_ms() -> int:
    return int(time.time() * 1000)

class EventStore(Protocol):
    """
    Persistence boundary consumed by the engine.
    Implementations recover from their own I/O errors: a failed load is "no history",
    a failed append is dropped. Neither raises into the caller.
    """
    def load_recent_events(self, signal: Signal, limit: int) -> List[Measurement]:
        """Most recent `limit` measurements of `signal`, chronological."""
        ...

    def append_event(self, m: Measurement) -> None:
        ...

class MemoryEventStore:
    """In-process store; per-signal history bounded by history_cap."""
    def __init__(self, history_cap: int = HISTORY_CAP):
        self.history_cap = history_cap
        self._lock = threading.Lock()
        self._rows: Dict[Signal, Deque[Measurement]] = defaultdict(lambda: deque(maxlen=self.history_cap))

    def load_recent_events(self, signal: Signal, limit: int) -> List[Measurement]:
        with self._lock:
            rows = list(self._rows[signal])
        return rows[-limit:] if limit > 0 else []

    def append_event(self, m: Measurement) -> None:
        with self._lock:
            self._rows[m.signal].append(m)

    def clear(self) -> None:
        with self._lock:
            self._rows.clear()

class SqliteEventStore:
    """
    Append-only measurement history in SQLite.
    - one row per measurement; per-signal history trimmed to history_cap
    - optional RecordSealer: value payload encrypted, signal bound as AAD
    - every call opens its own connection (callers may be on any thread)
    """
    def __init__(self, db_path: str = DB_FILE, sealer: Optional[RecordSealer] = None, history_cap: int = HISTORY_CAP):
        self.db_path = db_path
        self.sealer = sealer
        self.history_cap = history_cap
        self._init_db()

    def _init_db(self):
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS measurements(
                  seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  ts_utc INTEGER NOT NULL,
                  signal TEXT NOT NULL,
                  body BLOB NOT NULL,
                  nonce BLOB
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_measurements_signal ON measurements(signal, seq)")
            conn.commit()
        finally:
            conn.close()

    def append_event(self, m: Measurement) -> None:
        try:
            body, nonce = self._encode(m)
            conn = sqlite3.connect(self.db_path)
            try:
                conn.execute(
                    "INSERT INTO measurements(ts_utc, signal, body, nonce) VALUES (?,?,?,?)",
                    (m.ts_utc or utc_ts_ms(), m.signal.value, body, nonce),
                )
                conn.execute(
                    """DELETE FROM measurements WHERE signal = ? AND seq NOT IN (
                         SELECT seq FROM measurements WHERE signal = ? ORDER BY seq DESC LIMIT ?)""",
                    (m.signal.value, m.signal.value, self.history_cap),
                )
                conn.commit()
            finally:
                conn.close()
        except Exception as e:
            log.warning("store.append.error", signal=m.signal.value, err=str(e))

    def load_recent_events(self, signal: Signal, limit: int) -> List[Measurement]:
        if limit <= 0:
            return []
        try:
            conn = sqlite3.connect(self.db_path)
            try:
                rows = conn.execute(
                    "SELECT ts_utc, body, nonce FROM measurements WHERE signal = ? ORDER BY seq DESC LIMIT ?",
                    (signal.value, limit),
                ).fetchall()
            finally:
                conn.close()
        except Exception as e:
            log.warning("store.load.error", signal=signal.value, err=str(e))
            return []

        out: List[Measurement] = []
        for ts_utc, body, nonce in reversed(rows):
            try:
                out.append(Measurement(signal=signal, value=self._decode(signal, body, nonce), ts_utc=int(ts_utc)))
            except Exception as e:
                # unreadable row (wrong key, tamper, corrupt json): skip it, keep the rest
                log.warning("store.load.row_skipped", signal=signal.value, err=str(e))
        return out

    def count(self, signal: Optional[Signal] = None) -> int:
        conn = sqlite3.connect(self.db_path)
        try:
            if signal is None:
                (n,) = conn.execute("SELECT COUNT(*) FROM measurements").fetchone()
            else:
                (n,) = conn.execute("SELECT COUNT(*) FROM measurements WHERE signal = ?", (signal.value,)).fetchone()
            return int(n)
        finally:
            conn.close()

    def clear(self) -> None:
        try:
            conn = sqlite3.connect(self.db_path)
            try:
                conn.execute("DELETE FROM measurements")
                conn.commit()
            finally:
                conn.close()
            log.info("store.cleared", db=self.db_path)
        except Exception as e:
            log.warning("store.clear.error", err=str(e))

    # -------- internal --------

    def _encode(self, m: Measurement):
        raw = json.dumps({"v": m.value}, separators=(",", ":")).encode("utf-8")
        if self.sealer is None:
            return raw, None
        return self.sealer.seal(raw, m.signal.value.encode("utf-8"))

    def _decode(self, signal: Signal, body: bytes, nonce: Optional[bytes]) -> float:
        if nonce is not None:
            if self.sealer is None:
                raise ValueError("sealed row but no sealer configured")
            body = self.sealer.open(body, nonce, signal.value.encode("utf-8"))
        return float(json.loads(bytes(body).decode("utf-8"))["v"])
