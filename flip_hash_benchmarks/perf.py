import time
from typing import Dict, Iterable, Optional, Sequence, Tuple

import numpy as np

from flip_hash_benchmarks.algorithms import Algorithm

RANGE_ENDS = (10, 1000, 100000, 10000000)
KEY_SIZE_BYTES = 128


def time_algorithm(
    algorithm: Algorithm,
    range_end: int,
    num_calls: int,
    rng: Optional[np.random.Generator] = None,
) -> float:
    """Average wall-clock nanoseconds per ``hash`` call on random keys."""
    if num_calls <= 0:
        raise ValueError(f"num calls must be positive, got {num_calls}")
    if rng is None:
        rng = np.random.default_rng()
    keys = [rng.bytes(KEY_SIZE_BYTES) for _ in range(num_calls)]
    start = time.perf_counter_ns()
    for key in keys:
        algorithm.hash(key, 0, range_end)
    return (time.perf_counter_ns() - start) / num_calls


def measure(
    algorithms: Sequence[Algorithm],
    num_calls: int,
    range_ends: Iterable[int] = RANGE_ENDS,
) -> Dict[Tuple[str, int], float]:
    """Nanoseconds per call for every (algorithm, range end) pair."""
    rng = np.random.default_rng()
    return {
        (algorithm.name, range_end): time_algorithm(algorithm, range_end, num_calls, rng)
        for range_end in range_ends
        for algorithm in algorithms
    }
