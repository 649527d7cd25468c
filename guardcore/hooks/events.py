from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional, Dict, Any
import math
import time
from datetime import datetime, timezone

# --- timing helpers ---
def utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")

def mono_ts() -> float:
    # Monotonic high-res timestamp (immune to system clock changes)
    return time.perf_counter()

# --- core enums ---
class EventType(Enum):
    """Top-level classifier for event routing and storage."""
    KEY = auto()
    KEYSTROKE = auto()
    POINTER = auto()
    MOTION = auto()
    FOCUS = auto()
    ANOMALY = auto()

class PointerPhase(Enum):
    DOWN = "down"
    MOVE = "move"
    UP = "up"
    SCROLL = "scroll"
    HOVER_MOVE = "hover_move"
    OTHER = "other"

    @classmethod
    def from_code(cls, code: int) -> "PointerPhase":
        """Map a platform motion action code onto a phase."""
        return _PHASE_CODES.get(code, cls.OTHER)

_PHASE_CODES = {
    0: PointerPhase.DOWN,
    1: PointerPhase.UP,
    2: PointerPhase.MOVE,
    7: PointerPhase.HOVER_MOVE,
    8: PointerPhase.SCROLL,
}

class PointerSource(Enum):
    TOUCHSCREEN = "touchscreen"
    MOUSE = "mouse"

class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

# --- base event ---
@dataclass(frozen=True)
class BaseEvent:
    """Common shape for all events."""
    etype: EventType = field(init=False)         # auto-set by subclasses
    t_utc: Optional[str] = None                  # lazy; materialized on serialize
    t_mono: float = field(default_factory=mono_ts)
    app: Optional[str] = None                    # filled by the engine from focus context

    def to_record(self) -> Dict[str, Any]:
        t_utc_val = self.t_utc or utc_iso()
        return {
            "etype": self.etype.name,
            "t_utc": t_utc_val,
            "t_mono": self.t_mono,
            "app": self.app,
        }

# --- key events ---
@dataclass(frozen=True)
class KeyEvent(BaseEvent):
    """Inter-key latency between two consecutive key downs (no key identity)."""
    inter_key_latency_ms: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.KEY)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base["inter_key_latency_ms"] = self.inter_key_latency_ms
        return base

@dataclass(frozen=True)
class KeyStrokeEvent(BaseEvent):
    """Raw key-down timestamp; turned into a KeyEvent latency by the segmenter."""
    device_time_ms: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.KEYSTROKE)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base["device_time_ms"] = self.device_time_ms
        return base

# --- pointer event ---
@dataclass(frozen=True)
class PointerEvent(BaseEvent):
    """Touchscreen or mouse sample. device_time_ms is the platform uptime clock."""
    timestamp: int = 0               # wall clock, epoch ms
    x: float = 0.0
    y: float = 0.0
    pressure: float = 0.0
    phase: PointerPhase = PointerPhase.DOWN
    action_code: Optional[int] = None  # raw platform code, kept for OTHER phases
    device_time_ms: float = 0.0
    source: PointerSource = PointerSource.TOUCHSCREEN

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.POINTER)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base.update({
            "timestamp": self.timestamp,
            "x": self.x,
            "y": self.y,
            "pressure": self.pressure,
            "phase": self.phase.value,
            "action_code": self.action_code,
            "device_time_ms": self.device_time_ms,
            "source": self.source.value,
        })
        return base

# --- motion event ---
@dataclass(frozen=True)
class MotionEvent(BaseEvent):
    """Accelerometer sample in m/s^2."""
    acc_x: float = 0.0
    acc_y: float = 0.0
    acc_z: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.MOTION)

    @property
    def magnitude(self) -> float:
        return math.sqrt(self.acc_x ** 2 + self.acc_y ** 2 + self.acc_z ** 2)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base.update({"acc_x": self.acc_x, "acc_y": self.acc_y, "acc_z": self.acc_z})
        return base

# --- focus event ---
@dataclass(frozen=True)
class FocusEvent(BaseEvent):
    """Foreground app / focused field transition."""
    app_name: str = "unknown"       # normalized package/app label
    editable: bool = False          # an input field took focus

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.FOCUS)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base.update({"app_name": self.app_name, "editable": self.editable})
        return base

# --- verdict ---
@dataclass(frozen=True)
class AnomalyVerdict(BaseEvent):
    """Anomaly signal produced by the rule engine."""
    reason: str = ""                # human-readable 'why flagged'
    severity: Severity = Severity.LOW
    rule_id: str = ""               # e.g., "bot_typing", "spoofed_touch"
    features: Dict[str, Any] = field(default_factory=dict)  # small feature snapshot

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.ANOMALY)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base.update({
            "reason": self.reason,
            "severity": self.severity.value,
            "rule_id": self.rule_id,
            "features": self.features,
        })
        return base

# --- record decoding ---

def event_from_record(rec: Dict[str, Any]) -> BaseEvent:
    """
    Rebuild an input event from a to_record() dict (or a hand-written JSON line).
    Unknown or missing fields fall back to dataclass defaults.
    Raises ValueError whenever the record cannot become an event, including
    nulls where a number is expected.
    """
    if not isinstance(rec, dict):
        raise ValueError(f"event record must be an object, got {type(rec).__name__}")
    try:
        return _decode(rec)
    except TypeError as e:
        raise ValueError(f"bad field in {rec.get('etype')!r} record: {e}") from e

def _decode(rec: Dict[str, Any]) -> BaseEvent:
    etype = str(rec.get("etype", "")).upper()
    common: Dict[str, Any] = {"t_utc": rec.get("t_utc"), "app": rec.get("app")}
    if rec.get("t_mono") is not None:
        common["t_mono"] = float(rec["t_mono"])

    if etype == EventType.KEY.name:
        return KeyEvent(inter_key_latency_ms=float(rec.get("inter_key_latency_ms", 0.0)), **common)
    if etype == EventType.KEYSTROKE.name:
        return KeyStrokeEvent(device_time_ms=float(rec.get("device_time_ms", 0.0)), **common)
    if etype == EventType.POINTER.name:
        code = rec.get("action_code")
        phase_val = rec.get("phase")
        if phase_val is not None:
            phase = PointerPhase(phase_val)
        elif code is not None:
            phase = PointerPhase.from_code(int(code))
        else:
            phase = PointerPhase.OTHER
        return PointerEvent(
            timestamp=int(rec.get("timestamp", 0)),
            x=float(rec.get("x", 0.0)),
            y=float(rec.get("y", 0.0)),
            pressure=float(rec.get("pressure", 0.0)),
            phase=phase,
            action_code=None if code is None else int(code),
            device_time_ms=float(rec.get("device_time_ms", 0.0)),
            source=PointerSource(rec.get("source", PointerSource.TOUCHSCREEN.value)),
            **common,
        )
    if etype == EventType.MOTION.name:
        return MotionEvent(
            acc_x=float(rec.get("acc_x", 0.0)),
            acc_y=float(rec.get("acc_y", 0.0)),
            acc_z=float(rec.get("acc_z", 0.0)),
            **common,
        )
    if etype == EventType.FOCUS.name:
        return FocusEvent(app_name=str(rec.get("app_name", "unknown")), editable=bool(rec.get("editable", False)), **common)
    raise ValueError(f"unknown event type: {etype!r}")
