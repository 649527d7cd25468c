from __future__ import annotations
import tomllib
from dataclasses import dataclass, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from guardcore.storage.event_store import Signal

class BaselinePolicy(Enum):
    QUORUM = "quorum"   # >= 2 of {typing, touch, movement} windows at the minimum
    STRICT = "strict"   # typing AND touch windows at the minimum

@dataclass(frozen=True)
class EngineConfig:
    # windows
    max_data_points: int = 200
    short_term_buffer_size: int = 10
    history_cap: int = 1000

    # baseline readiness
    baseline_policy: BaselinePolicy = BaselinePolicy.QUORUM
    min_points_for_baseline: int = 75
    quorum_needed: int = 2
    hydrate_signals: Tuple[Signal, ...] = (Signal.TYPING_LATENCY, Signal.TOUCH_PRESSURE)

    # gestures
    tap_max_ms: float = 50.0

    # typing
    bot_typing_max_ms: float = 40.0
    wpm_mismatch_ratio: float = 0.5
    rhythmic_burst_ratio: float = 0.7
    typing_sigma: float = 4.0
    chars_per_word: int = 5

    # touch
    spoofed_pressure: float = 0.0
    pressure_sigma: float = 4.5

    # swipe
    bot_swipe_min_speed: float = 50.0   # px/ms
    swipe_sigma: float = 3.5

    # movement (outside the resting 1g band only)
    rest_band_low: float = 9.0
    rest_band_high: float = 10.5
    movement_sigma: float = 5.0

    # mouse click
    bot_click_max_ms: float = 10.0
    click_sigma: float = 3.5

    # runtime
    load_timeout_s: float = 2.0
    ingress_queue_size: int = 5000
    writer_queue_size: int = 2000
    subscriber_queue_size: int = 256

    @classmethod
    def strict(cls, **overrides: Any) -> "EngineConfig":
        """Two-modality variant: typing AND touch, 50 samples each."""
        base = cls(baseline_policy=BaselinePolicy.STRICT, min_points_for_baseline=50)
        return replace(base, **overrides)

    @classmethod
    def from_toml(cls, path: Path, base: Optional["EngineConfig"] = None) -> "EngineConfig":
        """
        Load overrides from a TOML file on top of `base` (defaults when omitted).
        Keys may sit at top level or under [engine]. Unknown keys raise ValueError.
        """
        with open(path, "rb") as f:
            data = tomllib.load(f)
        return cls.from_mapping(data.get("engine", data), base=base)

    @classmethod
    def from_mapping(cls, data: Dict[str, Any], base: Optional["EngineConfig"] = None) -> "EngineConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"unknown engine config keys: {', '.join(unknown)}")

        kwargs: Dict[str, Any] = dict(data)
        if "baseline_policy" in kwargs:
            kwargs["baseline_policy"] = BaselinePolicy(kwargs["baseline_policy"])
        if "hydrate_signals" in kwargs:
            kwargs["hydrate_signals"] = tuple(Signal(s) for s in kwargs["hydrate_signals"])

        cfg = replace(base, **kwargs) if base is not None else cls(**kwargs)
        if cfg.min_points_for_baseline > cfg.max_data_points:
            raise ValueError("min_points_for_baseline cannot exceed max_data_points")
        return cfg
