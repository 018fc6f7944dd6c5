"""Statistical experiments run against range-mapping hash algorithms.

An experiment is an immutable configuration that knows how to run one trial
into an accumulator and how to summarise an accumulator as one line of JSON.
Experiments hold no random state: every batch draws payloads from its own
generator, so one experiment object can be shared by all worker threads.
"""
import abc
from typing import IO, Any, Dict, Optional, Protocol, Sequence, Tuple

import numpy as np

from flip_hash_benchmarks.accumulators import (
    Accumulator,
    CooccurrenceTable,
    OccurrenceTable,
)
from flip_hash_benchmarks.algorithms import U64_MASK, Algorithm
from flip_hash_benchmarks.chi_squared import (
    mutual_independence_p_value,
    uniformity_p_value,
)

# Attempts at drawing a set of pairwise distinct seeds before giving up.
MAX_SEED_ATTEMPTS = 1000


class RandomSource(Protocol):
    """The subset of ``numpy.random.Generator`` experiments draw from."""

    def bytes(self, length: int) -> bytes:
        ...

    def integers(self, low, high=None, size=None, dtype=np.int64, endpoint=False) -> Any:
        ...


def format_float(x: float) -> str:
    """Shortest round-trip scientific notation, e.g. ``7.5e-01``."""
    return np.format_float_scientific(float(x), trim="-")


def format_record(fields: Dict[str, Any]) -> str:
    """Render summary fields as one JSON object line; non-finite floats become null."""
    parts = []
    for key, value in fields.items():
        if isinstance(value, str):
            rendered = f'"{value}"'
        elif isinstance(value, (int, np.integer)):
            rendered = str(int(value))
        elif not np.isfinite(value):
            rendered = "null"
        else:
            rendered = format_float(value)
        parts.append(f'"{key}": {rendered}')
    return "{" + ", ".join(parts) + "}\n"


def _check_input_size(input_size_bytes: int) -> int:
    if input_size_bytes < 0:
        raise ValueError(f"input size must be non-negative, got {input_size_bytes}")
    return input_size_bytes


def _check_range_end(range_end: int) -> int:
    if not 0 <= range_end <= U64_MASK:
        raise OverflowError(f"range end {range_end} does not fit in 64 bits")
    return range_end


class Experiment(abc.ABC):
    input_size_bytes: int

    @abc.abstractmethod
    def new_accumulator(self) -> Accumulator:
        """Empty accumulator matching this configuration's domain."""

    @abc.abstractmethod
    def run(self, accumulator: Accumulator, algorithm: Algorithm, rng: RandomSource) -> None:
        """Run exactly one trial into ``accumulator``."""

    @abc.abstractmethod
    def summarize(self, accumulator: Accumulator) -> Dict[str, Any]:
        """Summary fields of ``accumulator``, starting with ``num keys``."""

    def accumulate(
        self,
        algorithm: Algorithm,
        num_iterations: int,
        rng: Optional[RandomSource] = None,
    ) -> Accumulator:
        """Run ``num_iterations`` trials into a fresh accumulator."""
        if rng is None:
            rng = np.random.default_rng()
        accumulator = self.new_accumulator()
        for _ in range(num_iterations):
            self.run(accumulator, algorithm, rng)
        return accumulator

    def write_summary(
        self, output: IO[str], accumulator: Accumulator, algo: Optional[str] = None
    ) -> None:
        """Write one summary record of ``accumulator`` to ``output``.

        Calling it again on a grown accumulator refines the summary; calling it
        on an unchanged one writes the same record.
        """
        fields: Dict[str, Any] = {}
        if algo is not None:
            fields["algo"] = algo
        fields.update(self.summarize(accumulator))
        output.write(format_record(fields))


class _SingleRangeExperiment(Experiment):
    def __init__(self, range_end: int, input_size_bytes: int) -> None:
        self.range_end = _check_range_end(range_end)
        self.input_size_bytes = _check_input_size(input_size_bytes)

    def new_accumulator(self) -> OccurrenceTable:
        return OccurrenceTable.for_range(self.range_end)

    def run(self, accumulator: OccurrenceTable, algorithm: Algorithm, rng: RandomSource) -> None:
        key = rng.bytes(self.input_size_bytes)
        accumulator.record(algorithm.hash(key, 0, self.range_end))

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(range_end={self.range_end}, "
            f"input_size_bytes={self.input_size_bytes})"
        )


class Regularity(_SingleRangeExperiment):
    """Uniformity of the hash distribution over a single range."""

    def summarize(self, accumulator: OccurrenceTable) -> Dict[str, Any]:
        num_keys = accumulator.num_iterations
        counts = accumulator.counts
        p = counts.astype(np.float64) / num_keys
        deviation = p - 1.0 / len(counts)
        return {
            "num keys": num_keys,
            "l1 distance": float(np.sum(np.abs(deviation))),
            "l2 distance": float(np.sqrt(np.sum(deviation ** 2))),
            "p-value": uniformity_p_value(counts),
        }


class Collisions(_SingleRangeExperiment):
    """Pairwise collision rate compared to the uniform expectation.

    The collision count is tied to the L2 distance to the uniform distribution,
    so this is another view on regularity.
    """

    def summarize(self, accumulator: OccurrenceTable) -> Dict[str, Any]:
        num_keys = accumulator.num_iterations
        counts = accumulator.counts
        colliding = counts[counts > 1].astype(np.float64)
        num_collisions = float(np.sum(colliding * (colliding - 1.0) / 2.0))
        num_pairs = num_keys * (num_keys - 1) // 2
        c_hat = num_collisions / num_pairs if num_pairs else float("nan")
        return {
            "num keys": num_keys,
            "num collisions": num_collisions,
            "c hat": c_hat,
            "normalized c hat": c_hat * len(counts),
        }


class IndependenceAcrossRanges(Experiment):
    """Mutual independence of hashes across nested ranges.

    Trials are conditioned on the hashes being pairwise distinct: a key whose
    hashes collide is discarded and a new one drawn.
    """

    def __init__(self, range_ends: Sequence[int], input_size_bytes: int) -> None:
        ends = [_check_range_end(end) for end in range_ends]
        if len(ends) < 2:
            raise ValueError(f"at least 2 ranges are required, got {len(ends)}")
        if len(set(ends)) != len(ends):
            raise ValueError(f"range ends must be pairwise distinct, got {ends}")
        self.range_ends: Tuple[int, ...] = tuple(sorted(ends))
        self.input_size_bytes = _check_input_size(input_size_bytes)

    def new_accumulator(self) -> CooccurrenceTable:
        return CooccurrenceTable(range(end + 1) for end in self.range_ends)

    def run(self, accumulator: CooccurrenceTable, algorithm: Algorithm, rng: RandomSource) -> None:
        while True:
            key = rng.bytes(self.input_size_bytes)
            hashes = [algorithm.hash(key, 0, end) for end in self.range_ends]
            if len(set(hashes)) == len(hashes):
                accumulator.record(hashes)
                return

    def summarize(self, accumulator: CooccurrenceTable) -> Dict[str, Any]:
        return {
            "num keys": accumulator.num_iterations,
            "p-value": mutual_independence_p_value(accumulator.counts, len(self.range_ends)),
        }

    def __repr__(self) -> str:
        return (
            f"IndependenceAcrossRanges(range_ends={list(self.range_ends)}, "
            f"input_size_bytes={self.input_size_bytes})"
        )


def draw_distinct_seeds(
    num_seeds: int, rng: RandomSource, max_attempts: int = MAX_SEED_ATTEMPTS
) -> Tuple[int, ...]:
    """Draw ``num_seeds`` pairwise distinct 64-bit seeds by rejection sampling."""
    for _ in range(max_attempts):
        seeds = [
            int(s) for s in rng.integers(0, U64_MASK, size=num_seeds, dtype=np.uint64, endpoint=True)
        ]
        if len(set(seeds)) == num_seeds:
            return tuple(seeds)
    raise ValueError(f"could not draw {num_seeds} distinct seeds in {max_attempts} attempts")


class IndependenceAcrossSeeds(Experiment):
    """Mutual independence of hashes of the same key under different seeds."""

    def __init__(
        self,
        range_end: int,
        num_seeds: int,
        input_size_bytes: int,
        rng: Optional[RandomSource] = None,
    ) -> None:
        if num_seeds < 2:
            raise ValueError(f"at least 2 seeds are required, got {num_seeds}")
        self.range_end = _check_range_end(range_end)
        self.input_size_bytes = _check_input_size(input_size_bytes)
        self.seeds: Tuple[int, ...] = draw_distinct_seeds(
            num_seeds, rng if rng is not None else np.random.default_rng()
        )

    def new_accumulator(self) -> CooccurrenceTable:
        return CooccurrenceTable([range(self.range_end + 1)] * len(self.seeds))

    def run(self, accumulator: CooccurrenceTable, algorithm: Algorithm, rng: RandomSource) -> None:
        key = rng.bytes(self.input_size_bytes)
        accumulator.record([algorithm.hash(key, seed, self.range_end) for seed in self.seeds])

    def summarize(self, accumulator: CooccurrenceTable) -> Dict[str, Any]:
        return {
            "num keys": accumulator.num_iterations,
            "p-value": mutual_independence_p_value(accumulator.counts, len(self.seeds)),
        }

    def __repr__(self) -> str:
        return (
            f"IndependenceAcrossSeeds(range_end={self.range_end}, "
            f"num_seeds={len(self.seeds)}, input_size_bytes={self.input_size_bytes})"
        )
