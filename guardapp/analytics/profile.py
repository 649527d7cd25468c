# guardapp/analytics/profile.py
from __future__ import annotations
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

import structlog

from guardcore.stats.rolling_window import RollingWindow
from guardcore.storage.event_store import EventStore, Signal
from guardapp.analytics.config import BaselinePolicy, EngineConfig

log = structlog.get_logger()

# windows that vote on baseline readiness
QUORUM_SIGNALS = (Signal.TYPING_LATENCY, Signal.TOUCH_PRESSURE, Signal.MOVEMENT)
STRICT_SIGNALS = (Signal.TYPING_LATENCY, Signal.TOUCH_PRESSURE)

@dataclass(frozen=True)
class SignalStats:
    mean: float = 0.0
    stddev: float = 0.0
    count: int = 0

    @classmethod
    def of(cls, window: RollingWindow) -> "SignalStats":
        m = window.mean()
        return cls(mean=m, stddev=window.stddev(m), count=len(window))

@dataclass(frozen=True)
class UserProfile:
    """Immutable snapshot of the learned baseline. Replaced, never mutated."""
    typing_latency: SignalStats = field(default_factory=SignalStats)
    typing_wpm: int = 0
    touch_pressure: SignalStats = field(default_factory=SignalStats)
    swipe_speed: SignalStats = field(default_factory=SignalStats)
    movement: SignalStats = field(default_factory=SignalStats)
    click_hold: SignalStats = field(default_factory=SignalStats)
    is_baseline_established: bool = False

    def stats(self, signal: Signal) -> SignalStats:
        return {
            Signal.TYPING_LATENCY: self.typing_latency,
            Signal.TOUCH_PRESSURE: self.touch_pressure,
            Signal.SWIPE_SPEED: self.swipe_speed,
            Signal.MOVEMENT: self.movement,
            Signal.CLICK_HOLD: self.click_hold,
        }[signal]

    def to_record(self) -> Dict[str, object]:
        rec: Dict[str, object] = {
            s.value: {"mean": st.mean, "stddev": st.stddev, "count": st.count}
            for s, st in ((s, self.stats(s)) for s in Signal)
        }
        rec["typing_wpm"] = self.typing_wpm
        rec["is_baseline_established"] = self.is_baseline_established
        return rec

def words_per_minute(avg_latency_ms: float, chars_per_word: int = 5) -> int:
    # 5 characters per word; truncated like the on-device readout
    if avg_latency_ms <= 0:
        return 0
    return int(60_000 / (avg_latency_ms * chars_per_word))

class ProfileEstimator:
    """
    Owns one RollingWindow per signal plus a short-term typing window, and
    derives the UserProfile snapshot after every update.

    The short-term window only feeds burst / regime-change checks; it never
    contributes to the baseline mean.
    """
    def __init__(self, config: Optional[EngineConfig] = None):
        self.cfg = config or EngineConfig()
        self._windows: Dict[Signal, RollingWindow] = {
            s: RollingWindow(self.cfg.max_data_points) for s in Signal
        }
        self._short_term = RollingWindow(self.cfg.short_term_buffer_size)
        self._lock = threading.RLock()
        self._profile = UserProfile()

    @property
    def profile(self) -> UserProfile:
        return self._profile

    def window(self, signal: Signal) -> RollingWindow:
        return self._windows[signal]

    def load_history(self, store: EventStore) -> Dict[Signal, List[float]]:
        """Newest max_data_points values per hydrated signal, chronological."""
        return {
            signal: [m.value for m in store.load_recent_events(signal, self.cfg.max_data_points)]
            for signal in self.cfg.hydrate_signals
        }

    def seed(self, history: Mapping[Signal, Iterable[float]]) -> UserProfile:
        loaded = 0
        with self._lock:
            for signal, values in history.items():
                before = len(self._windows[signal])
                self._windows[signal].extend(values)
                loaded += len(self._windows[signal]) - before
            profile = self.recompute()
        log.info("profile.seeded", samples=loaded, baseline=profile.is_baseline_established)
        return profile

    def hydrate(self, store: EventStore) -> UserProfile:
        return self.seed(self.load_history(store))

    def update(self, signal: Signal, value: float) -> UserProfile:
        with self._lock:
            self._windows[signal].push(value)
            if signal == Signal.TYPING_LATENCY:
                self._short_term.push(value)
            return self.recompute()

    def recompute(self) -> UserProfile:
        with self._lock:
            typing = SignalStats.of(self._windows[Signal.TYPING_LATENCY])
            profile = UserProfile(
                typing_latency=typing,
                typing_wpm=words_per_minute(typing.mean, self.cfg.chars_per_word),
                touch_pressure=SignalStats.of(self._windows[Signal.TOUCH_PRESSURE]),
                swipe_speed=SignalStats.of(self._windows[Signal.SWIPE_SPEED]),
                movement=SignalStats.of(self._windows[Signal.MOVEMENT]),
                click_hold=SignalStats.of(self._windows[Signal.CLICK_HOLD]),
                is_baseline_established=self._baseline_ready(),
            )
            # single reference swap; readers see the old or the new snapshot
            self._profile = profile
            return profile

    def _baseline_ready(self) -> bool:
        need = self.cfg.min_points_for_baseline
        if self.cfg.baseline_policy == BaselinePolicy.STRICT:
            return all(len(self._windows[s]) >= need for s in STRICT_SIGNALS)
        met = sum(1 for s in QUORUM_SIGNALS if len(self._windows[s]) >= need)
        return met >= self.cfg.quorum_needed

    # --- short-term typing window ---

    def short_term_stats(self) -> Optional[SignalStats]:
        """Stats of the short-term window, only once it is full."""
        with self._lock:
            if not self._short_term.is_full():
                return None
            return SignalStats.of(self._short_term)

    def reset_short_term(self) -> None:
        with self._lock:
            self._short_term.clear()

    def trim(self, signal: Signal, keep: int) -> UserProfile:
        """Drop all but the newest `keep` samples of one signal and re-derive the profile."""
        with self._lock:
            w = self._windows[signal]
            survivors = w.values()[-keep:] if keep > 0 else []
            w.clear()
            w.extend(survivors)
            return self.recompute()
