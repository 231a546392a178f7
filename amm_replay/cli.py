"""Command-line interface for replaying AMM simulations."""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from amm_replay.errors import ConfigurationError, StrategyExecutionError
from amm_replay.evm.adapter import EVMFeeStrategy
from amm_replay.simulation.config import SimulationConfig
from amm_replay.simulation.engine import SimulationEngine
from amm_replay.simulation.events import TradeEvent
from amm_replay.strategies.runtime import StrategyRef, default_registry

BYTECODE_STRATEGY_ID = "bytecode"


def _format_event(event: TradeEvent) -> str:
    snap = event.snapshot
    return (
        f"#{event.id:<5} step={event.step:<5} {event.flow.value:<9} "
        f"fair={snap.fair_price:10.4f} edge={event.edge_delta:+9.4f} "
        f"total={snap.edge.total:+10.4f} | {event.summary}"
    )


def run_command(args: argparse.Namespace) -> int:
    """Replay a seed and print the tape."""
    registry = default_registry()
    strategy = args.strategy

    if args.bytecode:
        bytecode_path = Path(args.bytecode)
        if not bytecode_path.exists():
            print(f"Error: Bytecode file not found: {bytecode_path}")
            return 1
        registry.register_fee(
            BYTECODE_STRATEGY_ID,
            bytecode_path.stem,
            lambda: EVMFeeStrategy.from_file(bytecode_path, name=bytecode_path.stem),
        )
        strategy = f"fee:{BYTECODE_STRATEGY_ID}"

    try:
        config = SimulationConfig(
            seed=args.seed,
            strategy=StrategyRef.parse(strategy),
            max_tape_rows=args.max_tape_rows,
        )
        engine = SimulationEngine(config, registry)
        engine.reset()
    except ConfigurationError as e:
        print(f"Error: {e}")
        return 1
    except StrategyExecutionError as e:
        print(f"Strategy failed: {e}")
        return 1

    print(engine.last_event.summary)
    print(f"Strategy: {engine.runtime.name} ({engine.runtime.ref})")

    try:
        for event in engine.run(args.events):
            print(_format_event(event))
    except StrategyExecutionError as e:
        print(f"Strategy failed: {e}")
        return 1

    state = engine.to_ui_state()
    edge = state.snapshot.edge
    print(
        f"\n{state.trade_count} events, step {state.snapshot.step}. "
        f"Edge: total {edge.total:+.4f} (retail {edge.retail:+.4f}, arb {edge.arb:+.4f})"
    )
    print(state.fee_badge)
    if args.verbose and state.diagnostics:
        print("\nDiagnostics:")
        for diagnostic in state.diagnostics:
            print(f"  step {diagnostic.step}: {diagnostic.kind.value}: {diagnostic.message}")
    return 0


def strategies_command(args: argparse.Namespace) -> int:
    """List registered strategies."""
    for info in default_registry().available():
        print(f"{info.kind}:{info.id:<20} {info.name}")
    return 0


def validate_command(args: argparse.Namespace) -> int:
    """Deploy fee-callback bytecode and check it answers afterInitialize."""
    bytecode_path = Path(args.bytecode)
    if not bytecode_path.exists():
        print(f"Error: Bytecode file not found: {bytecode_path}")
        return 1

    try:
        strategy = EVMFeeStrategy.from_file(bytecode_path)
        quote = strategy.initialize(100.0, 10_000.0)
    except Exception as e:
        print(f"EVM execution failed: {e}")
        return 1

    print(
        f"Strategy '{strategy.get_name()}' validated successfully! "
        f"Initial fees: {quote.bid_fee_bps}/{quote.ask_fee_bps} bps"
    )
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Replay a deterministic two-pool AMM simulation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  amm-replay run --seed 1337 --strategy swap:baseline-30bps --events 50
  amm-replay run --bytecode strategy.hex --events 100
  amm-replay strategies
  amm-replay validate strategy.hex
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Replay a seed and print the trade tape")
    run_parser.add_argument("--seed", type=int, default=1337, help="Simulation seed")
    run_parser.add_argument(
        "--strategy",
        default="swap:starter-500bps",
        help="Strategy reference KIND:ID (see `amm-replay strategies`)",
    )
    run_parser.add_argument(
        "--bytecode",
        default=None,
        help="Fee-callback contract bytecode (hex or binary); overrides --strategy",
    )
    run_parser.add_argument("--events", type=int, default=50, help="Number of trade events to print")
    run_parser.add_argument(
        "--max-tape-rows", type=int, default=20, help="History rows kept by the engine"
    )
    run_parser.add_argument("--verbose", action="store_true", help="Debug logging and diagnostics")
    run_parser.set_defaults(func=run_command)

    strategies_parser = subparsers.add_parser("strategies", help="List builtin strategies")
    strategies_parser.set_defaults(func=strategies_command)

    validate_parser = subparsers.add_parser(
        "validate", help="Deploy fee-callback bytecode and query its initial fees"
    )
    validate_parser.add_argument("bytecode", help="Path to contract bytecode (hex or binary)")
    validate_parser.set_defaults(func=validate_command)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.DEBUG if getattr(args, "verbose", False) else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
