import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from flip_hash_benchmarks.aggregation import DEFAULT_BATCH_SIZE, AggregationEngine
from flip_hash_benchmarks.algorithms import DEFAULT_ALGORITHMS, AlgorithmName
from flip_hash_benchmarks.experiments import (
    Collisions,
    Experiment,
    IndependenceAcrossRanges,
    IndependenceAcrossSeeds,
    Regularity,
)
from flip_hash_benchmarks.perf import RANGE_ENDS, measure

RESULT_DIR = "results"

logger = logging.getLogger(__name__)


def output_path(args: argparse.Namespace) -> Path:
    """Result file of an experiment run, named after its parameters."""
    base = Path(args.output_dir)
    if args.command == "regularity":
        return base / "regularity" / f"{args.input_size_bytes}_bytes_to_range_to_incl_{args.range_end}"
    if args.command == "collisions":
        return base / "collisions" / f"{args.input_size_bytes}_bytes_to_range_to_incl_{args.range_end}"
    if args.command == "independence-across-ranges":
        ends = "_".join(str(end) for end in args.range_end)
        return base / "independence_across_ranges" / f"{args.input_size_bytes}_bytes_to_ranges_to_incl_{ends}"
    if args.command == "independence-across-seeds":
        return (
            base
            / "independence_across_seeds"
            / f"{args.input_size_bytes}_bytes_{args.num_seeds}_seeds_to_range_to_incl_{args.range_end}"
        )
    raise ValueError(f"no output file for command {args.command!r}")


def build_experiment(args: argparse.Namespace) -> Experiment:
    if args.command == "regularity":
        return Regularity(args.range_end, args.input_size_bytes)
    if args.command == "collisions":
        return Collisions(args.range_end, args.input_size_bytes)
    if args.command == "independence-across-ranges":
        return IndependenceAcrossRanges(args.range_end, args.input_size_bytes)
    if args.command == "independence-across-seeds":
        return IndependenceAcrossSeeds(args.range_end, args.num_seeds, args.input_size_bytes)
    raise ValueError(f"unknown experiment {args.command!r}")


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-i", "--input-size-bytes", type=int, required=True)
    parser.add_argument(
        "-a",
        "--algorithms",
        type=AlgorithmName,
        nargs="+",
        default=list(DEFAULT_ALGORITHMS),
        choices=list(AlgorithmName),
        metavar="ALGORITHM",
        help=f"one or more of {', '.join(a.value for a in AlgorithmName)} (default: all)",
    )
    parser.add_argument("--batch-size", type=int, default=DEFAULT_BATCH_SIZE, help="trials per worker batch")
    parser.add_argument("--workers", type=int, default=None, help="worker threads (default: CPU count - 1)")
    parser.add_argument("--rounds", type=int, default=None, help="stop after this many passes per worker")
    parser.add_argument("--output-dir", default=RESULT_DIR)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flip-hash-benchmarks",
        description="Statistical quality benchmarks for range-mapping hash algorithms.",
    )
    parser.add_argument("--log-level", default="INFO")
    commands = parser.add_subparsers(dest="command", required=True)

    p = commands.add_parser(
        "regularity",
        help="test the uniformity of the distribution of hashes using a chi-squared test",
    )
    p.add_argument("-r", "--range-end", type=int, required=True)
    _add_common_arguments(p)

    p = commands.add_parser(
        "collisions",
        help="compare the number of collisions with its expected value under uniformity",
    )
    p.add_argument("-r", "--range-end", type=int, required=True)
    _add_common_arguments(p)

    p = commands.add_parser(
        "independence-across-ranges",
        help="test mutual independence across ranges, given pairwise distinct hashes",
    )
    p.add_argument("-r", "--range-end", type=int, nargs="+", required=True)
    _add_common_arguments(p)

    p = commands.add_parser(
        "independence-across-seeds",
        help="test mutual independence across seeds using a chi-squared test",
    )
    p.add_argument("-r", "--range-end", type=int, required=True)
    p.add_argument("-n", "--num-seeds", type=int, required=True)
    _add_common_arguments(p)

    p = commands.add_parser("perf", help="measure hashing time per call")
    p.add_argument("-a", "--algorithms", type=AlgorithmName, nargs="+", default=list(DEFAULT_ALGORITHMS),
                   choices=list(AlgorithmName), metavar="ALGORITHM")
    p.add_argument("--range-end", type=int, nargs="+", default=list(RANGE_ENDS))
    p.add_argument("--num-calls", type=int, default=100_000)
    return parser


def run_perf(args: argparse.Namespace) -> None:
    algorithms = [name.create() for name in args.algorithms]
    for (name, range_end), ns in measure(algorithms, args.num_calls, args.range_end).items():
        print(f"{name} ..={range_end}: {ns:.1f} ns/call")


def run_experiment(args: argparse.Namespace) -> None:
    experiment = build_experiment(args)
    path = output_path(args)
    path.parent.mkdir(parents=True, exist_ok=True)
    engine = AggregationEngine(
        experiment,
        [name.create() for name in args.algorithms],
        batch_size=args.batch_size,
        num_workers=args.workers,
        rounds=args.rounds,
    )
    logger.info("Writing summaries to %s", path)
    with open(path, "w", encoding="utf-8") as output:
        engine.run(output)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.command == "perf":
        run_perf(args)
    else:
        run_experiment(args)
    return 0


if __name__ == "__main__":
    sys.exit(main())
