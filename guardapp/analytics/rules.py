# guardapp/analytics/rules.py
from __future__ import annotations
from typing import Optional

from guardcore.hooks.events import AnomalyVerdict, Severity
from guardapp.analytics.config import EngineConfig
from guardapp.analytics.profile import SignalStats, UserProfile, words_per_minute

# Verdicts from these rules consume the short-term typing window.
SHORT_TERM_RULES = frozenset({"typing_speed_mismatch", "rhythmic_burst"})

class AnomalyRuleEngine:
    """
    Per-modality rule cascades, judged against the current profile:
      - typing:   bot speed -> WPM mismatch -> rhythmic burst -> rhythm deviation
      - touch:    zero pressure -> pressure deviation
      - swipe:    inhuman speed -> speed deviation
      - movement: magnitude deviation
      - click:    inhuman hold time -> hold deviation
    First match wins. Statistical rules never fire on a zero stddev.
    The caller decides *whether* to evaluate (baseline established); these
    methods only decide *what* is anomalous.
    """
    def __init__(self, config: Optional[EngineConfig] = None):
        self.cfg = config or EngineConfig()

    # ---- Rules ----

    def evaluate_typing(self, latency_ms: float, profile: UserProfile,
                        short_term: Optional[SignalStats] = None) -> Optional[AnomalyVerdict]:
        base = profile.typing_latency
        if latency_ms < self.cfg.bot_typing_max_ms:
            return _verdict("bot_typing", Severity.HIGH,
                            "Bot-like typing detected (inhuman programmatic speed)",
                            latency_ms, base)

        if short_term is not None:
            st_wpm = words_per_minute(short_term.mean, self.cfg.chars_per_word)
            diff = abs(st_wpm - profile.typing_wpm)
            if profile.typing_wpm > 0 and diff > profile.typing_wpm * self.cfg.wpm_mismatch_ratio:
                rationale = f"Typing speed mismatch ({st_wpm} wpm vs baseline {profile.typing_wpm} wpm)"
                return _verdict("typing_speed_mismatch", Severity.MEDIUM, rationale, latency_ms, base,
                                short_term_wpm=st_wpm, baseline_wpm=profile.typing_wpm)

            r = self.cfg.rhythmic_burst_ratio
            if short_term.mean < base.mean * r and short_term.stddev < base.stddev * r:
                return _verdict("rhythmic_burst", Severity.MEDIUM,
                                "Unusually rhythmic burst of typing detected",
                                latency_ms, base,
                                short_term_mean=round(short_term.mean, 3),
                                short_term_stddev=round(short_term.stddev, 3))

        if _beyond(latency_ms, base, self.cfg.typing_sigma):
            return _verdict("typing_rhythm", Severity.MEDIUM, "Unusual typing rhythm", latency_ms, base)
        return None

    def evaluate_touch(self, pressure: float, profile: UserProfile) -> Optional[AnomalyVerdict]:
        base = profile.touch_pressure
        if pressure == self.cfg.spoofed_pressure:
            return _verdict("spoofed_touch", Severity.HIGH, "Zero-pressure touch, likely spoofed", pressure, base)
        if _beyond(pressure, base, self.cfg.pressure_sigma):
            return _verdict("touch_pressure", Severity.LOW, "Unusual touch pressure", pressure, base)
        return None

    def evaluate_swipe(self, speed: float, profile: UserProfile) -> Optional[AnomalyVerdict]:
        base = profile.swipe_speed
        if speed > self.cfg.bot_swipe_min_speed:
            return _verdict("bot_swipe", Severity.HIGH, "Bot-like swipe detected (inhuman speed)", speed, base)
        if _beyond(speed, base, self.cfg.swipe_sigma):
            return _verdict("swipe_speed", Severity.MEDIUM, "Unusual swipe speed", speed, base)
        return None

    def evaluate_movement(self, magnitude: float, profile: UserProfile) -> Optional[AnomalyVerdict]:
        base = profile.movement
        if _beyond(magnitude, base, self.cfg.movement_sigma):
            return _verdict("sudden_movement", Severity.MEDIUM,
                            "Sudden, high-intensity device movement detected", magnitude, base)
        return None

    def evaluate_click(self, hold_ms: float, profile: UserProfile) -> Optional[AnomalyVerdict]:
        base = profile.click_hold
        if hold_ms < self.cfg.bot_click_max_ms:
            return _verdict("bot_click", Severity.HIGH, "Bot-like click detected (inhuman hold time)", hold_ms, base)
        if _beyond(hold_ms, base, self.cfg.click_sigma):
            return _verdict("click_speed", Severity.MEDIUM, "Unusual click speed", hold_ms, base)
        return None

    def is_movement_candidate(self, magnitude: float) -> bool:
        # resting phone reads ~9.8 m/s^2; only samples outside the band are windowed
        return magnitude > self.cfg.rest_band_high or magnitude < self.cfg.rest_band_low

def _beyond(value: float, base: SignalStats, sigma: float) -> bool:
    if base.stddev <= 0:
        return False
    return abs(value - base.mean) > base.stddev * sigma

def _verdict(rule_id: str, severity: Severity, reason: str, value: float, base: SignalStats, **extra) -> AnomalyVerdict:
    features = {
        "value": round(value, 4),
        "mean": round(base.mean, 4),
        "stddev": round(base.stddev, 4),
        "samples": base.count,
    }
    features.update(extra)
    return AnomalyVerdict(reason=reason, severity=severity, rule_id=rule_id, features=features)
