# tests/test_event_store.py
# How to run:
#   pytest -q
#
# What this covers:
#   - chronological load of the most recent N measurements
#   - per-signal history cap
#   - sealed rows: not stored in the clear, unreadable with another key
#   - load errors recovered locally (empty history, no exception)

import sqlite3

from guardcore.crypto.sealer import KeyManager, RecordSealer
from guardcore.storage.event_store import MemoryEventStore, SqliteEventStore, Measurement, Signal

def values(rows):
    return [m.value for m in rows]

def test_sqlite_load_recent_is_chronological(tmp_path):
    store = SqliteEventStore(str(tmp_path / "h.sqlite3"))
    for v in (1.0, 2.0, 3.0, 4.0, 5.0):
        store.append_event(Measurement(Signal.TYPING_LATENCY, v))
    store.append_event(Measurement(Signal.TOUCH_PRESSURE, 0.5))
    assert values(store.load_recent_events(Signal.TYPING_LATENCY, 3)) == [3.0, 4.0, 5.0]
    assert values(store.load_recent_events(Signal.TOUCH_PRESSURE, 10)) == [0.5]
    assert store.load_recent_events(Signal.MOVEMENT, 10) == []

def test_sqlite_history_cap_is_per_signal(tmp_path):
    store = SqliteEventStore(str(tmp_path / "h.sqlite3"), history_cap=10)
    for i in range(15):
        store.append_event(Measurement(Signal.TYPING_LATENCY, float(i)))
    store.append_event(Measurement(Signal.MOVEMENT, 12.0))
    assert store.count(Signal.TYPING_LATENCY) == 10
    assert store.count(Signal.MOVEMENT) == 1
    assert values(store.load_recent_events(Signal.TYPING_LATENCY, 100))[0] == 5.0

def test_sealed_rows_round_trip_and_are_not_plaintext(tmp_path):
    km = KeyManager(str(tmp_path / "secrets"))
    store = SqliteEventStore(str(tmp_path / "h.sqlite3"), sealer=RecordSealer.from_key_manager(km))
    store.append_event(Measurement(Signal.TOUCH_PRESSURE, 0.4321))
    assert values(store.load_recent_events(Signal.TOUCH_PRESSURE, 5)) == [0.4321]

    conn = sqlite3.connect(str(tmp_path / "h.sqlite3"))
    (body,) = conn.execute("SELECT body FROM measurements").fetchone()
    conn.close()
    assert b"0.4321" not in bytes(body)

    # same key file -> same derived key
    again = SqliteEventStore(str(tmp_path / "h.sqlite3"), sealer=RecordSealer.from_key_manager(km))
    assert values(again.load_recent_events(Signal.TOUCH_PRESSURE, 5)) == [0.4321]

def test_rows_under_a_foreign_key_are_skipped(tmp_path):
    db = str(tmp_path / "h.sqlite3")
    mine = RecordSealer.from_key_manager(KeyManager(str(tmp_path / "a")))
    theirs = RecordSealer.from_key_manager(KeyManager(str(tmp_path / "b")))
    SqliteEventStore(db, sealer=mine).append_event(Measurement(Signal.TYPING_LATENCY, 250.0))
    assert SqliteEventStore(db, sealer=theirs).load_recent_events(Signal.TYPING_LATENCY, 5) == []
    assert SqliteEventStore(db).load_recent_events(Signal.TYPING_LATENCY, 5) == []

def test_load_failure_is_no_history(tmp_path):
    db = str(tmp_path / "h.sqlite3")
    store = SqliteEventStore(db)
    store.append_event(Measurement(Signal.TYPING_LATENCY, 1.0))
    conn = sqlite3.connect(db)
    conn.execute("DROP TABLE measurements")
    conn.commit()
    conn.close()
    assert store.load_recent_events(Signal.TYPING_LATENCY, 5) == []
    # append failure is swallowed as well
    store.append_event(Measurement(Signal.TYPING_LATENCY, 2.0))

def test_clear(tmp_path):
    store = SqliteEventStore(str(tmp_path / "h.sqlite3"))
    store.append_event(Measurement(Signal.CLICK_HOLD, 90.0))
    store.clear()
    assert store.count() == 0

def test_memory_store_cap_and_limit():
    store = MemoryEventStore(history_cap=5)
    for i in range(8):
        store.append_event(Measurement(Signal.SWIPE_SPEED, float(i)))
    assert values(store.load_recent_events(Signal.SWIPE_SPEED, 100)) == [3.0, 4.0, 5.0, 6.0, 7.0]
    assert values(store.load_recent_events(Signal.SWIPE_SPEED, 2)) == [6.0, 7.0]
    assert store.load_recent_events(Signal.SWIPE_SPEED, 0) == []
