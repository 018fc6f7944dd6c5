"""Parallel execution of an experiment with streaming, merged summaries.

Worker threads repeatedly run fixed-size batches of trials, one per algorithm
in round-robin order, and hand each batch accumulator over a shared queue to a
single aggregator running on the calling thread. The aggregator folds every
batch into a per-algorithm running accumulator and writes a refreshed summary
after each one. Workers never see the running accumulators.
"""
import logging
import os
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import IO, Dict, List, Optional, Sequence

from flip_hash_benchmarks.accumulators import Accumulator
from flip_hash_benchmarks.algorithms import Algorithm
from flip_hash_benchmarks.experiments import Experiment, format_float

logger = logging.getLogger(__name__)

# Trials run one at a time in Python, so batches are sized for a record every
# few seconds per worker rather than for raw throughput.
DEFAULT_BATCH_SIZE = 100_000

# Posted by a worker when it stops producing; the channel is closed once every
# worker has posted it.
_CLOSED = object()


def default_num_workers() -> int:
    """One worker per hardware thread, minus one left for the aggregator."""
    return max((os.cpu_count() or 1) - 1, 0)


class AggregationEngine:
    """Runs ``experiment`` against ``algorithms`` until stopped.

    Args:
        experiment: Shared, immutable experiment configuration.
        algorithms: Algorithms to run, each worker cycles through all of them.
        batch_size: Trials per batch.
        num_workers: Worker threads; defaults to ``default_num_workers()``.
        rounds: Passes over ``algorithms`` each worker makes before stopping.
            ``None`` runs until ``stop`` is set, which in production is never.
        stop: Checked by workers at every batch boundary.
    """

    def __init__(
        self,
        experiment: Experiment,
        algorithms: Sequence[Algorithm],
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        num_workers: Optional[int] = None,
        rounds: Optional[int] = None,
        stop: Optional[threading.Event] = None,
    ) -> None:
        if not algorithms:
            raise ValueError("at least one algorithm is required")
        names = [algorithm.name for algorithm in algorithms]
        if len(set(names)) != len(names):
            raise ValueError(f"algorithm names must be distinct, got {names}")
        if batch_size <= 0:
            raise ValueError(f"batch size must be positive, got {batch_size}")
        if num_workers is None:
            num_workers = default_num_workers()
        if num_workers < 0:
            raise ValueError(f"worker count must be non-negative, got {num_workers}")
        if rounds is not None and rounds < 0:
            raise ValueError(f"rounds must be non-negative, got {rounds}")
        self.experiment = experiment
        self.algorithms = list(algorithms)
        self.batch_size = batch_size
        self.num_workers = num_workers
        self.rounds = rounds
        self.stop = stop if stop is not None else threading.Event()

    def _work(self, channel: "queue.Queue[object]") -> None:
        try:
            completed = 0
            while self.rounds is None or completed < self.rounds:
                for algorithm in self.algorithms:
                    if self.stop.is_set():
                        return
                    batch = self.experiment.accumulate(algorithm, self.batch_size)
                    channel.put((algorithm.name, batch))
                completed += 1
        except Exception:
            logger.exception("Worker %s failed", threading.current_thread().name)
            raise
        finally:
            channel.put(_CLOSED)

    def _aggregate(
        self, channel: "queue.Queue[object]", output: IO[str], num_senders: int
    ) -> Dict[str, Accumulator]:
        accumulators: Dict[str, Accumulator] = {}
        while num_senders:
            message = channel.get()
            if message is _CLOSED:
                num_senders -= 1
                continue
            algo, batch = message
            accumulator = accumulators.get(algo)
            if accumulator is None:
                accumulator = accumulators[algo] = self.experiment.new_accumulator()
            accumulator.merge(batch)

            self.experiment.write_summary(output, accumulator, algo=algo)
            output.flush()
            logger.info(
                "Processed %s keys for %s", format_float(accumulator.num_iterations), algo
            )
        return accumulators

    def run(self, output: IO[str]) -> Dict[str, Accumulator]:
        """Run workers and aggregate their batches into ``output``.

        Returns once every worker has stopped, with the running accumulator of
        each algorithm. A worker failure is re-raised after the remaining
        workers have stopped; an aggregator failure stops the workers and is
        re-raised.
        """
        if self.num_workers == 0:
            logger.warning("No worker threads available, nothing to run")
            return {}
        logger.info(
            "Running %r with %d workers, %s trials per batch",
            self.experiment,
            self.num_workers,
            format_float(self.batch_size),
        )
        channel: "queue.Queue[object]" = queue.Queue()
        with ThreadPoolExecutor(
            max_workers=self.num_workers, thread_name_prefix="worker"
        ) as pool:
            futures: List[Future] = [
                pool.submit(self._work, channel) for _ in range(self.num_workers)
            ]
            try:
                accumulators = self._aggregate(channel, output, len(futures))
            except BaseException:
                self.stop.set()
                raise
        for future in futures:
            future.result()
        return accumulators
