# tests/test_config.py
# How to run:
#   pytest -q

import pytest

from guardcore.storage.event_store import Signal
from guardapp.analytics.config import BaselinePolicy, EngineConfig

def test_defaults_match_documented_constants():
    cfg = EngineConfig()
    assert cfg.max_data_points == 200
    assert cfg.min_points_for_baseline == 75
    assert cfg.short_term_buffer_size == 10
    assert cfg.baseline_policy == BaselinePolicy.QUORUM
    assert cfg.tap_max_ms == 50.0
    assert cfg.hydrate_signals == (Signal.TYPING_LATENCY, Signal.TOUCH_PRESSURE)

def test_strict_variant_accepts_overrides():
    cfg = EngineConfig.strict(tap_max_ms=80.0)
    assert cfg.baseline_policy == BaselinePolicy.STRICT
    assert cfg.min_points_for_baseline == 50
    assert cfg.tap_max_ms == 80.0

def test_from_toml_engine_section(tmp_path):
    path = tmp_path / "guard.toml"
    path.write_text(
        '[engine]\n'
        'baseline_policy = "strict"\n'
        'min_points_for_baseline = 30\n'
        'pressure_sigma = 3.0\n'
        'hydrate_signals = ["typing_latency", "movement"]\n',
        encoding="utf-8",
    )
    cfg = EngineConfig.from_toml(path)
    assert cfg.baseline_policy == BaselinePolicy.STRICT
    assert cfg.min_points_for_baseline == 30
    assert cfg.pressure_sigma == 3.0
    assert cfg.hydrate_signals == (Signal.TYPING_LATENCY, Signal.MOVEMENT)

def test_from_toml_top_level_keys(tmp_path):
    path = tmp_path / "guard.toml"
    path.write_text("swipe_sigma = 2.5\n", encoding="utf-8")
    assert EngineConfig.from_toml(path).swipe_sigma == 2.5

def test_unknown_keys_rejected():
    with pytest.raises(ValueError, match="bogus"):
        EngineConfig.from_mapping({"bogus": 1})

def test_minimum_cannot_exceed_window():
    with pytest.raises(ValueError):
        EngineConfig.from_mapping({"min_points_for_baseline": 500})
