# tests/test_runtime.py
# How to run:
#   pytest -q
#
# What this covers:
#   - concurrent producers feeding one engine through EngineRuntime
#   - safe_put drop-oldest behaviour and the subscriber broadcaster

import queue
import threading

from guardcore.hooks.events import KeyEvent
from guardcore.utils.queueing import Broadcaster, drain, safe_put
from guardapp.controller.engine import AnalysisEngine
from guardapp.controller.runner import EngineRuntime

def test_concurrent_producers_are_serialized():
    eng = AnalysisEngine()
    seen = []
    rt = EngineRuntime(eng, on_event=lambda ev, n: seen.append(n))
    rt.start()

    def produce():
        for _ in range(100):
            rt.submit(KeyEvent(inter_key_latency_ms=300.0))

    threads = [threading.Thread(target=produce) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert rt.wait_idle(timeout=5.0)
    rt.stop()

    assert rt.processed == 400
    assert eng.events_seen == 400
    assert seen == list(range(1, 401))
    p = eng.current_profile()
    assert p.typing_latency.count == 200
    assert p.typing_latency.stddev == 0.0

def test_stop_shuts_engine_down_and_ignores_late_submits():
    eng = AnalysisEngine()
    rt = EngineRuntime(eng)
    rt.start()
    rt.start()  # idempotent
    rt.stop()
    assert not eng.is_running
    rt.submit(KeyEvent(inter_key_latency_ms=300.0))
    assert rt.queue.qsize() == 0

def test_safe_put_drops_oldest_when_full():
    q = queue.Queue(maxsize=2)
    for i in range(5):
        safe_put(q, i)
    assert drain(q) == [3, 4]

def test_broadcaster_has_no_replay():
    b = Broadcaster(maxsize=4)
    early = b.subscribe()
    b.publish("a")
    late = b.subscribe()
    b.publish("b")
    assert drain(early) == ["a", "b"]
    assert drain(late) == ["b"]
    assert b.unsubscribe(late)
    assert not b.unsubscribe(late)
    assert len(b) == 1

def test_stop_processes_accepted_backlog():
    eng = AnalysisEngine()
    rt = EngineRuntime(eng)
    rt.start()
    for _ in range(5):
        rt.submit(KeyEvent(inter_key_latency_ms=300.0))
    rt.stop(timeout=2.0)
    assert rt.queue.qsize() == 0
    assert rt.processed == 5
    assert eng.events_seen == 5
    assert eng.current_profile().typing_latency.count == 5
