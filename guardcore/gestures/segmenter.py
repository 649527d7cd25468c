# guardcore/gestures/segmenter.py
from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Optional

from guardcore.hooks.events import PointerEvent, PointerPhase, PointerSource, KeyStrokeEvent

@dataclass(frozen=True)
class PendingGesture:
    """A 'down' waiting for its 'up'. Replaced on every transition, never mutated."""
    x: float
    y: float
    device_time_ms: float

    @classmethod
    def from_event(cls, ev: PointerEvent) -> "PendingGesture":
        return cls(x=ev.x, y=ev.y, device_time_ms=ev.device_time_ms)

@dataclass(frozen=True)
class SwipeMeasurement:
    speed: float          # px/ms
    distance: float       # px
    duration_ms: float

@dataclass(frozen=True)
class ClickMeasurement:
    hold_time_ms: float

class GestureSegmenter:
    """
    Turns raw down/up pointer events and key-down timestamps into derived measurements.
    Each modality is a two-state machine: idle -> pending -> idle.
      - touchscreen: DOWN..UP -> swipe speed (taps shorter than tap_max_ms discarded)
      - mouse:       DOWN..UP -> click hold time
      - keystrokes:  consecutive key downs -> inter-key latency
    Anything malformed (UP without DOWN, non-positive durations) yields nothing.
    """
    def __init__(self, tap_max_ms: float = 50.0):
        self.tap_max_ms = tap_max_ms
        self._swipe_start: Optional[PendingGesture] = None
        self._click_start: Optional[PendingGesture] = None
        self._last_key_down_ms: Optional[float] = None

    @property
    def swipe_pending(self) -> bool:
        return self._swipe_start is not None

    @property
    def click_pending(self) -> bool:
        return self._click_start is not None

    def on_touch(self, ev: PointerEvent) -> Optional[SwipeMeasurement]:
        if ev.phase == PointerPhase.DOWN:
            # last down wins
            self._swipe_start = PendingGesture.from_event(ev)
            return None
        if ev.phase != PointerPhase.UP:
            return None

        start, self._swipe_start = self._swipe_start, None
        if start is None:
            return None
        duration = ev.device_time_ms - start.device_time_ms
        if duration < self.tap_max_ms:
            return None
        distance = math.hypot(ev.x - start.x, ev.y - start.y)
        if distance <= 0 or duration <= 0:
            return None
        return SwipeMeasurement(speed=distance / duration, distance=distance, duration_ms=duration)

    def on_mouse(self, ev: PointerEvent) -> Optional[ClickMeasurement]:
        if ev.phase == PointerPhase.DOWN:
            self._click_start = PendingGesture.from_event(ev)
            return None
        if ev.phase != PointerPhase.UP:
            return None

        start, self._click_start = self._click_start, None
        if start is None:
            return None
        hold = ev.device_time_ms - start.device_time_ms
        if hold <= 0:
            return None
        return ClickMeasurement(hold_time_ms=hold)

    def on_pointer(self, ev: PointerEvent):
        if ev.source == PointerSource.MOUSE:
            return self.on_mouse(ev)
        return self.on_touch(ev)

    def on_keystroke(self, ev: KeyStrokeEvent) -> Optional[float]:
        """Returns the latency since the previous key down, if any."""
        prev, self._last_key_down_ms = self._last_key_down_ms, ev.device_time_ms
        if prev is None:
            return None
        latency = ev.device_time_ms - prev
        if latency <= 0:
            return None
        return latency

    def reset_typing(self) -> None:
        self._last_key_down_ms = None

    def reset(self) -> None:
        self._swipe_start = None
        self._click_start = None
        self.reset_typing()
