from __future__ import annotations
import math
import threading
from dataclasses import replace
from queue import Queue
from typing import Callable, Dict, List, Optional

import structlog

from guardcore.gestures.segmenter import GestureSegmenter
from guardcore.hooks.events import (
    BaseEvent, KeyEvent, KeyStrokeEvent, PointerEvent, PointerPhase, PointerSource,
    MotionEvent, FocusEvent, AnomalyVerdict,
)
from guardcore.storage.event_store import EventStore, Measurement, Signal, utc_ts_ms
from guardcore.utils.queueing import Broadcaster
from guardapp.analytics.config import EngineConfig
from guardapp.analytics.profile import ProfileEstimator, UserProfile
from guardapp.analytics.rules import AnomalyRuleEngine, SHORT_TERM_RULES
from guardapp.controller.context_state import ContextState
from guardapp.controller.store_writer import StoreWriter

log = structlog.get_logger()

class AnalysisEngine:
    """
    Orchestrator. For every event, under one lock:
      1. gesture segmentation (swipes, clicks, keystroke timing)
      2. ProfileEstimator.update -> new UserProfile snapshot
      3. if the post-update profile has a baseline, rule evaluation -> verdict, published
      4. persistence submit, then the profile snapshot is published
    The sample is folded into the baseline before it is judged against it.
    Persistence is handed to a background StoreWriter and never awaited.
    """
    def __init__(self, store: Optional[EventStore] = None, config: Optional[EngineConfig] = None,
                 start_writer: bool = True):
        self.cfg = config or EngineConfig()
        self.segmenter = GestureSegmenter(tap_max_ms=self.cfg.tap_max_ms)
        self.estimator = ProfileEstimator(self.cfg)
        self.rules = AnomalyRuleEngine(self.cfg)
        self.ctx = ContextState()

        self._lock = threading.RLock()
        self._closed = False
        self._anomalies = Broadcaster(maxsize=self.cfg.subscriber_queue_size)
        self._profiles = Broadcaster(maxsize=self.cfg.subscriber_queue_size)
        self.events_seen = 0

        self.store = store
        self.writer: Optional[StoreWriter] = None
        if store is not None:
            self._hydrate(store)
            self.writer = StoreWriter(store, maxsize=self.cfg.writer_queue_size)
            if start_writer:
                self.writer.start()
        else:
            self.estimator.recompute()
        log.info("engine.start", policy=self.cfg.baseline_policy.value,
                 baseline=self.current_profile().is_baseline_established)

    # ---- public surface ----

    def on_event(self, ev: BaseEvent) -> None:
        with self._lock:
            if self._closed:
                log.debug("engine.event.rejected", etype=ev.etype.name)
                return
            self.events_seen += 1
            if isinstance(ev, KeyEvent):
                self._on_latency(ev.inter_key_latency_ms)
            elif isinstance(ev, KeyStrokeEvent):
                latency = self.segmenter.on_keystroke(ev)
                if latency is not None:
                    self._on_latency(latency)
            elif isinstance(ev, PointerEvent):
                self._on_pointer(ev)
            elif isinstance(ev, MotionEvent):
                self._on_motion(ev)
            elif isinstance(ev, FocusEvent):
                self._on_focus(ev)
            else:
                log.debug("engine.event.ignored", etype=getattr(getattr(ev, "etype", None), "name", "UNKNOWN"))

    def current_profile(self) -> UserProfile:
        return self.estimator.profile

    def subscribe_anomalies(self) -> Queue:
        return self._anomalies.subscribe()

    def subscribe_profiles(self) -> Queue:
        return self._profiles.subscribe()

    def unsubscribe(self, q: Queue) -> None:
        if not self._anomalies.unsubscribe(q):
            self._profiles.unsubscribe(q)

    @property
    def is_running(self) -> bool:
        return not self._closed

    def shutdown(self, timeout: float = 1.0) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        if self.writer:
            self.writer.stop(timeout=timeout)
        self._anomalies.close()
        self._profiles.close()
        log.info("engine.stop", events=self.events_seen)

    # ---- routing ----

    def _on_latency(self, latency_ms: float) -> None:
        if not _valid(latency_ms) or latency_ms <= 0:
            return
        self._observe(Signal.TYPING_LATENCY, latency_ms, self._judge_typing)

    def _judge_typing(self, latency_ms: float, profile: UserProfile) -> Optional[AnomalyVerdict]:
        verdict = self.rules.evaluate_typing(latency_ms, profile, self.estimator.short_term_stats())
        if verdict and verdict.rule_id in SHORT_TERM_RULES:
            self.estimator.reset_short_term()
        return verdict

    def _on_pointer(self, ev: PointerEvent) -> None:
        if ev.source == PointerSource.MOUSE:
            click = self.segmenter.on_mouse(ev)
            if click is not None:
                self._observe(Signal.CLICK_HOLD, click.hold_time_ms, self.rules.evaluate_click)
            return

        if ev.phase == PointerPhase.DOWN and (not _valid(ev.pressure) or ev.pressure < 0):
            return
        swipe = self.segmenter.on_touch(ev)
        if ev.phase == PointerPhase.DOWN:
            self._observe(Signal.TOUCH_PRESSURE, ev.pressure, self.rules.evaluate_touch)
        elif swipe is not None:
            self._observe(Signal.SWIPE_SPEED, swipe.speed, self.rules.evaluate_swipe)

    def _on_motion(self, ev: MotionEvent) -> None:
        magnitude = ev.magnitude
        if not _valid(magnitude) or not self.rules.is_movement_candidate(magnitude):
            return
        self._observe(Signal.MOVEMENT, magnitude, self.rules.evaluate_movement)

    def _on_focus(self, ev: FocusEvent) -> None:
        self.ctx.update(ev.app_name, ev.editable, ev.t_mono)
        if ev.editable:
            self.segmenter.reset_typing()
            self.estimator.reset_short_term()
            log.debug("engine.typing.reset", app=ev.app_name)

    # ---- helpers ----

    def _observe(self, signal: Signal, value: float,
                 judge: Callable[[float, UserProfile], Optional[AnomalyVerdict]]) -> Optional[AnomalyVerdict]:
        # update -> judge (established only) -> verdict -> persist -> profile
        profile = self.estimator.update(signal, value)
        verdict = judge(value, profile) if profile.is_baseline_established else None
        self._emit(verdict)
        if self.writer:
            self.writer.submit(Measurement(signal=signal, value=value, ts_utc=utc_ts_ms()))
        self._profiles.publish(profile)
        return verdict

    def _emit(self, verdict: Optional[AnomalyVerdict]) -> None:
        if verdict is None:
            return
        verdict = replace(verdict, app=self.ctx.get_current().app_name)
        log.info("anomaly.flag", rule=verdict.rule_id, severity=verdict.severity.value,
                 why=verdict.reason, features=verdict.features, app=verdict.app)
        self._anomalies.publish(verdict)

    def _hydrate(self, store: EventStore) -> None:
        # history load runs on a helper thread so a stalled disk cannot stall startup
        result: Dict[Signal, List[float]] = {}

        def _load():
            try:
                result.update(self.estimator.load_history(store))
            except Exception as e:
                log.warning("engine.hydrate.error", err=str(e))

        thr = threading.Thread(target=_load, name="history-load", daemon=True)
        thr.start()
        thr.join(timeout=self.cfg.load_timeout_s)
        if thr.is_alive():
            log.warning("engine.hydrate.timeout", timeout_s=self.cfg.load_timeout_s)
            self.estimator.recompute()
            return
        self.estimator.seed(result)

def _valid(x: float) -> bool:
    return isinstance(x, (int, float)) and math.isfinite(x)
