# tests/test_cli.py
# How to run:
#   pytest -q
#
# What this covers:
#   - replay of a JSON-lines recording through the engine, with a TOML config
#   - profile rebuilt from a SQLite store, and clear
#   - --strict layered under TOML overrides

import json

from guardcore.storage.event_store import SqliteEventStore, Measurement, Signal
from guardapp.analytics.config import BaselinePolicy
from guardapp.cli import _build_config, build_parser, main

def _write_recording(path):
    lines = []
    for i in range(5):
        lines.append({"etype": "KEY", "inter_key_latency_ms": 280.0 if i % 2 else 320.0})
    for i in range(5):
        lines.append({"etype": "POINTER", "phase": "down", "pressure": 0.45 if i % 2 else 0.55,
                      "device_time_ms": 1000.0 * (i + 1)})
    lines.append({"etype": "POINTER", "action_code": 0, "pressure": 0.0, "device_time_ms": 9000.0})
    body = "\n".join(json.dumps(x) for x in lines)
    path.write_text("# recorded session\n" + body + "\nnot json\n"
                   + '{"etype": "KEY", "inter_key_latency_ms": null}\n[1, 2]\n', encoding="utf-8")

def test_replay_reports_verdicts_and_profile(tmp_path, capsys):
    rec = tmp_path / "session.jsonl"
    _write_recording(rec)
    cfg = tmp_path / "guard.toml"
    cfg.write_text('[engine]\nbaseline_policy = "strict"\nmin_points_for_baseline = 5\n', encoding="utf-8")

    assert main(["replay", str(rec), "--config", str(cfg)]) == 0
    out = capsys.readouterr().out
    assert "spoofed_touch" in out
    assert "=== Profile ===" in out
    assert "established" in out
    assert "Flags: 1" in out
    assert "Skipped lines: 3" in out

def test_profile_and_clear_on_sqlite_store(tmp_path, capsys):
    db = str(tmp_path / "h.sqlite3")
    store = SqliteEventStore(db)
    for _ in range(3):
        store.append_event(Measurement(Signal.TYPING_LATENCY, 300.0))

    assert main(["profile", "--db", db]) == 0
    out = capsys.readouterr().out
    assert "typing_latency" in out and "n=3" in out
    assert "learning" in out

    assert main(["clear", "--db", db]) == 0
    assert store.count() == 0

def test_strict_flag_keeps_minimum_from_config_file(tmp_path):
    cfg = tmp_path / "guard.toml"
    cfg.write_text("[engine]\nmin_points_for_baseline = 5\n", encoding="utf-8")
    args = build_parser().parse_args(["profile", "--strict", "--config", str(cfg)])
    built = _build_config(args)
    assert built.baseline_policy == BaselinePolicy.STRICT
    assert built.min_points_for_baseline == 5

    args = build_parser().parse_args(["profile", "--strict"])
    assert _build_config(args).min_points_for_baseline == 50
