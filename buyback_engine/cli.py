"""Command line interface for the buyback engine.

Usage:
    python -m buyback_engine init --db engine.db
    python -m buyback_engine check --db engine.db --key KEY --now 3600 --balance 0
    python -m buyback_engine allocate 1000000000 --buyback-bps 5000 --lp-bps 3000 --distribution-bps 1500
    python -m buyback_engine execute --db engine.db --key KEY --caller HEX --now 3600 --balance 2000000000
    python -m buyback_engine simulate --hours 24 --scenario buyback_heavy
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .collaborators import AuthorityCheck, LedgerDisburser, SqliteStateStore, derive_state_key
from .config import ROUTING_SCENARIOS, EngineConfig
from .engine import BuybackEngine
from .errors import EngineError, ScheduleNotSatisfied
from .router import allocate
from .schedule import require_eligible, schedule_status, seconds_until_eligible
from .state import IDENTITY_LENGTH


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def identity_hex(value: str) -> bytes:
    """argparse type for a 32-byte identity given as hex."""
    try:
        identity = bytes.fromhex(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid hex identity: {value!r}") from None
    if len(identity) != IDENTITY_LENGTH:
        raise argparse.ArgumentTypeError(f"identity must be {IDENTITY_LENGTH} bytes, got {len(identity)}")
    return identity


def _load_config(path: Optional[str], scenario: Optional[str] = None) -> EngineConfig:
    if path:
        config = EngineConfig.from_calibration_file(path)
    elif scenario:
        config = EngineConfig.create_routing_scenario(scenario)
    else:
        config = EngineConfig()
    config.validate()
    return config


def cmd_init(args) -> int:
    config = _load_config(args.config)
    store = SqliteStateStore(args.db)
    try:
        key = derive_state_key(config.authority, config.treasury)
        store.save(key, config.to_engine_state(last_execution_ts=args.last_execution_ts))
    finally:
        store.close()
    print(key)
    return 0


def cmd_show(args) -> int:
    store = SqliteStateStore(args.db)
    try:
        state = store.load(args.key)
    finally:
        store.close()
    print(json.dumps(state.to_dict(), indent=2))
    return 0


def cmd_check(args) -> int:
    store = SqliteStateStore(args.db)
    try:
        state = store.load(args.key)
    finally:
        store.close()

    status = schedule_status(state, args.now, args.balance)
    print(json.dumps({
        "status": status.value,
        "seconds_until_eligible": seconds_until_eligible(state, args.now),
    }, indent=2))
    if args.strict:
        require_eligible(state, args.now, args.balance)
    return 0


def cmd_allocate(args) -> int:
    result = allocate(args.amount, args.buyback_bps, args.lp_bps, args.distribution_bps)
    print(json.dumps(result.to_dict(), indent=2))
    return 0


def cmd_execute(args) -> int:
    store = SqliteStateStore(args.db)
    disburser = LedgerDisburser(args.balance)
    try:
        engine = BuybackEngine(store, AuthorityCheck(), disburser)
        outcome = engine.run_cycle(args.key, args.caller, args.now, args.balance)
    finally:
        store.close()

    payload = outcome.to_dict()
    payload["transfers"] = [
        {"source": t.source, "bucket": t.bucket, "amount": t.amount} for t in disburser.transfers
    ]
    payload["treasury_balance"] = disburser.treasury_balance
    print(json.dumps(payload, indent=2))
    return 0


def cmd_simulate(args) -> int:
    from .core import TreasurySimulation
    from .metrics import calculate_key_metrics, export_metrics_to_file

    config = _load_config(args.config, args.scenario)
    config.random_seed = args.seed
    label = Path(args.config).stem if args.config else args.scenario

    print(f"Running {args.hours}h simulation: {label}")
    results = TreasurySimulation(config).run(hours=args.hours)

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    metrics_file = export_metrics_to_file(results.snapshots, str(output_dir / f"metrics_{label}.json"))
    print(f"Metrics saved: {metrics_file}")

    if args.plots:
        from .plotting import create_summary_plots, generate_summary_report

        create_summary_plots(results, str(output_dir / f"summary_{label}.png"))
        generate_summary_report(results, str(output_dir / f"report_{label}.md"))

    metrics = calculate_key_metrics(results.snapshots)
    print("\nFinal Results:")
    print(f"   • Executions: {metrics['executions']}")
    print(f"   • Buyback: {metrics['total_buyback']:,} lamports")
    print(f"   • Liquidity: {metrics['total_lp']:,} lamports")
    print(f"   • Distribution: {metrics['total_distribution']:,} lamports")
    print(f"   • Treasury Balance: {metrics['final_treasury_balance']:,} lamports")
    return 0


def cmd_scenarios(args) -> int:
    print("Available routing scenarios:\n")
    for name, weights in ROUTING_SCENARIOS.items():
        retained = 10_000 - sum(weights.values())
        print(f"{name}")
        print(f"   • Buyback: {weights['buyback_bps'] / 100:.1f}% ({weights['buyback_bps']} bps)")
        print(f"   • Liquidity: {weights['lp_bps'] / 100:.1f}% ({weights['lp_bps']} bps)")
        print(f"   • Distribution: {weights['distribution_bps'] / 100:.1f}% ({weights['distribution_bps']} bps)")
        print(f"   • Retained: {retained / 100:.1f}% (remainder)")
        print()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scheduled buyback engine")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser("init", help="Write an engine record into a SQLite store")
    init_parser.add_argument("--db", required=True, help="SQLite database path")
    init_parser.add_argument("--config", help="JSON calibration file with an engine_config section")
    init_parser.add_argument("--last-execution-ts", type=int, default=0, help="Initial execution cursor")
    init_parser.set_defaults(func=cmd_init)

    show_parser = subparsers.add_parser("show", help="Print a stored engine record")
    show_parser.add_argument("--db", required=True)
    show_parser.add_argument("--key", required=True)
    show_parser.set_defaults(func=cmd_show)

    check_parser = subparsers.add_parser("check", help="Dry-run the eligibility check")
    check_parser.add_argument("--db", required=True)
    check_parser.add_argument("--key", required=True)
    check_parser.add_argument("--now", type=int, required=True, help="Current unix time in seconds")
    check_parser.add_argument("--balance", type=int, required=True, help="Treasury balance in lamports")
    check_parser.add_argument("--strict", action="store_true", help="Exit non-zero when not eligible")
    check_parser.set_defaults(func=cmd_check)

    allocate_parser = subparsers.add_parser("allocate", help="Simulate a routing split")
    allocate_parser.add_argument("amount", type=int, help="Amount in lamports")
    allocate_parser.add_argument("--buyback-bps", type=int, default=5000)
    allocate_parser.add_argument("--lp-bps", type=int, default=3000)
    allocate_parser.add_argument("--distribution-bps", type=int, default=1500)
    allocate_parser.set_defaults(func=cmd_allocate)

    execute_parser = subparsers.add_parser("execute", help="Run one disbursement cycle")
    execute_parser.add_argument("--db", required=True)
    execute_parser.add_argument("--key", required=True)
    execute_parser.add_argument("--caller", required=True, type=identity_hex, help="Caller identity (64 hex chars)")
    execute_parser.add_argument("--now", type=int, required=True)
    execute_parser.add_argument("--balance", type=int, required=True)
    execute_parser.set_defaults(func=cmd_execute)

    simulate_parser = subparsers.add_parser("simulate", help="Run a treasury simulation")
    simulate_parser.add_argument("--hours", type=int, default=24, help="Simulation duration in hours")
    simulate_parser.add_argument("--scenario", default="default", choices=list(ROUTING_SCENARIOS.keys()))
    simulate_parser.add_argument("--config", help="JSON calibration file (overrides --scenario)")
    simulate_parser.add_argument("--output-dir", default="experiments/single", help="Output directory")
    simulate_parser.add_argument("--seed", type=int, default=42, help="Random seed")
    simulate_parser.add_argument("--plots", action="store_true", help="Write plots and a markdown report")
    simulate_parser.set_defaults(func=cmd_simulate)

    scenarios_parser = subparsers.add_parser("scenarios", help="List routing scenarios")
    scenarios_parser.set_defaults(func=cmd_scenarios)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 1

    configure_logging(args.verbose)
    try:
        return args.func(args)
    except ScheduleNotSatisfied as exc:
        print(json.dumps(exc.to_dict(), default=str), file=sys.stderr)
        return 1
    except EngineError as exc:
        print(json.dumps(exc.to_dict(), default=str), file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
