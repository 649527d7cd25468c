from __future__ import annotations
import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import structlog

from guardcore.crypto.sealer import KeyManager, RecordSealer
from guardcore.hooks.events import event_from_record
from guardcore.storage.event_store import MemoryEventStore, SqliteEventStore, Signal
from guardcore.utils.queueing import drain
from guardapp.analytics.config import BaselinePolicy, EngineConfig
from guardapp.analytics.profile import UserProfile
from guardapp.controller.engine import AnalysisEngine
from guardapp.logging_config import configure_logging

log = structlog.get_logger()

def _build_config(args) -> EngineConfig:
    # --strict supplies the strict defaults; explicit TOML keys still win over them
    base = EngineConfig.strict() if args.strict else EngineConfig()
    cfg = EngineConfig.from_toml(Path(args.config), base=base) if args.config else base
    if args.strict:
        cfg = replace(cfg, baseline_policy=BaselinePolicy.STRICT)
    return cfg

def _open_store(args, cfg: EngineConfig):
    if not args.db:
        return MemoryEventStore(history_cap=cfg.history_cap)
    sealer = RecordSealer.from_key_manager(KeyManager(args.secrets)) if args.seal else None
    return SqliteEventStore(args.db, sealer=sealer, history_cap=cfg.history_cap)

def print_profile(p: UserProfile, out=sys.stdout) -> None:
    print("\n=== Profile ===", file=out)
    for s in Signal:
        st = p.stats(s)
        print(f"{s.value:<16}: mean={st.mean:10.4f}  stddev={st.stddev:10.4f}  n={st.count}", file=out)
    print(f"{'typing_wpm':<16}: {p.typing_wpm}", file=out)
    print(f"{'baseline':<16}: {'established' if p.is_baseline_established else 'learning'}", file=out)

def cmd_replay(args) -> int:
    cfg = _build_config(args)
    engine = AnalysisEngine(store=_open_store(args, cfg), config=cfg)
    verdicts_q = engine.subscribe_anomalies()
    flagged = 0
    bad = 0
    with open(args.file, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                ev = event_from_record(json.loads(line))
            except ValueError as e:
                # json.JSONDecodeError is a ValueError too
                bad += 1
                log.warning("replay.skip", line=lineno, err=str(e))
                continue
            engine.on_event(ev)
            for v in drain(verdicts_q):
                flagged += 1
                print(f"[{lineno:>6}] {v.severity.value.upper():<6} {v.rule_id:<22} {v.reason}")
    engine.shutdown()
    print_profile(engine.current_profile())
    print(f"\nEvents: {engine.events_seen}  Flags: {flagged}  Skipped lines: {bad}")
    return 0

def cmd_profile(args) -> int:
    cfg = _build_config(args)
    engine = AnalysisEngine(store=_open_store(args, cfg), config=cfg, start_writer=False)
    print_profile(engine.current_profile())
    engine.shutdown()
    return 0

def cmd_clear(args) -> int:
    store = SqliteEventStore(args.db)
    store.clear()
    print(f"Cleared {args.db}")
    return 0

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="guard", description="Behavior Guard baseline engine CLI")
    ap.add_argument("--debug", action="store_true", help="Verbose structured logs on stderr")
    sub = ap.add_subparsers(dest="cmd", required=True)

    def engine_opts(p):
        p.add_argument("--db", help="SQLite history store (default: in-memory)")
        p.add_argument("--seal", action="store_true", help="Encrypt stored measurements")
        p.add_argument("--secrets", default="secrets", help="Directory holding master.key")
        p.add_argument("--config", help="TOML file with engine overrides")
        p.add_argument("--strict", action="store_true", help="Strict typing+touch baseline policy")

    p_replay = sub.add_parser("replay", help="Feed a JSON-lines event recording through the engine")
    p_replay.add_argument("file")
    engine_opts(p_replay)

    p_profile = sub.add_parser("profile", help="Show the profile rebuilt from stored history")
    engine_opts(p_profile)

    p_clear = sub.add_parser("clear", help="Delete stored history")
    p_clear.add_argument("--db", required=True)
    return ap

def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(debug=args.debug, json_logs=False)
    if args.cmd == "replay":
        return cmd_replay(args)
    if args.cmd == "profile":
        return cmd_profile(args)
    if args.cmd == "clear":
        return cmd_clear(args)
    return 2

if __name__ == "__main__":
    sys.exit(main())
