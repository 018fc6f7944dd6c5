"""Mergeable containers of trial outcomes.

Accumulators are only ever grown: ``record`` adds one trial, ``merge`` adds
every trial of another accumulator built for the same experiment
configuration. Merging is an element-wise (or key-wise) sum, hence associative
and commutative, which is what lets batches from different workers be folded
in whatever order they arrive.
"""
import abc
from collections import Counter
from types import MappingProxyType
from typing import Iterable, Mapping, Sequence, Tuple, TypeAlias

import numpy as np
import numpy.typing as npt

# 1D array of per-bucket counters.
Counts: TypeAlias = npt.NDArray[np.uint64]
# One bucket index per participating range or seed.
Outcome: TypeAlias = Tuple[int, ...]

MAX_TABLE_SIZE = int(np.iinfo(np.intp).max)


class Accumulator(abc.ABC):
    @property
    @abc.abstractmethod
    def num_iterations(self) -> int:
        """Total number of trials represented."""

    @property
    @abc.abstractmethod
    def counts(self):
        """Read-only view of the recorded counts."""

    @abc.abstractmethod
    def record(self, outcome) -> None:
        ...

    @abc.abstractmethod
    def merge(self, other: "Accumulator") -> None:
        ...


class OccurrenceTable(Accumulator):
    """Counts how many trials landed in each bucket of [0, size)."""

    def __init__(self, size: int) -> None:
        if size <= 0:
            raise ValueError(f"size must be positive, got {size}")
        if size > MAX_TABLE_SIZE:
            raise OverflowError(f"{size} buckets do not fit the platform index type")
        self._counts: Counts = np.zeros(size, dtype=np.uint64)
        self._num_iterations = 0

    @classmethod
    def for_range(cls, range_end: int) -> "OccurrenceTable":
        """Table with one bucket per value of the inclusive range [0, range_end]."""
        if range_end < 0:
            raise ValueError(f"range end must be non-negative, got {range_end}")
        if range_end >= MAX_TABLE_SIZE:
            raise OverflowError(f"range end {range_end} does not fit the platform index type")
        return cls(range_end + 1)

    @property
    def num_iterations(self) -> int:
        return self._num_iterations

    @property
    def counts(self) -> Counts:
        """Read-only view of the counters."""
        view = self._counts.view()
        view.flags.writeable = False
        return view

    def __len__(self) -> int:
        return len(self._counts)

    def record(self, outcome: int) -> None:
        if not 0 <= outcome < len(self._counts):
            raise IndexError(f"bucket {outcome} outside [0, {len(self._counts) - 1}]")
        self._counts[outcome] += np.uint64(1)
        self._num_iterations += 1

    def merge(self, other: Accumulator) -> None:
        if not isinstance(other, OccurrenceTable):
            raise TypeError(f"cannot merge {type(other).__name__} into OccurrenceTable")
        if len(other) != len(self):
            raise ValueError(f"cannot merge {len(other)} buckets into {len(self)}")
        np.add(self._counts, other._counts, out=self._counts)
        self._num_iterations += other._num_iterations

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OccurrenceTable):
            return NotImplemented
        return (
            self._num_iterations == other._num_iterations
            and np.array_equal(self._counts, other._counts)
        )

    def __repr__(self) -> str:
        return f"OccurrenceTable(size={len(self)}, num_iterations={self._num_iterations})"


class CooccurrenceTable(Accumulator):
    """Counts joint outcomes, one bucket per participant.

    The valid outcomes are the Cartesian product of ``domains``; only outcomes
    that were actually observed are stored.
    """

    def __init__(self, domains: Iterable[range]) -> None:
        self._domains: Tuple[range, ...] = tuple(domains)
        if not self._domains:
            raise ValueError("at least one domain is required")
        if any(not d for d in self._domains):
            raise ValueError(f"domains must be non-empty, got {self._domains}")
        self._counts: Counter = Counter()
        self._num_iterations = 0

    @property
    def domains(self) -> Tuple[range, ...]:
        return self._domains

    @property
    def num_iterations(self) -> int:
        return self._num_iterations

    @property
    def counts(self) -> Mapping[Outcome, int]:
        """Read-only view of the observed joint counts."""
        return MappingProxyType(self._counts)

    def record(self, outcome: Sequence[int]) -> None:
        outcome = tuple(outcome)
        if len(outcome) != len(self._domains):
            raise ValueError(f"expected {len(self._domains)} coordinates, got {len(outcome)}")
        for i, domain in zip(outcome, self._domains):
            if i not in domain:
                raise IndexError(f"bucket {i} outside {domain}")
        self._counts[outcome] += 1
        self._num_iterations += 1

    def merge(self, other: Accumulator) -> None:
        if not isinstance(other, CooccurrenceTable):
            raise TypeError(f"cannot merge {type(other).__name__} into CooccurrenceTable")
        if other._domains != self._domains:
            raise ValueError(f"cannot merge domains {other._domains} into {self._domains}")
        self._counts.update(other._counts)
        self._num_iterations += other._num_iterations

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CooccurrenceTable):
            return NotImplemented
        return (
            self._domains == other._domains
            and self._num_iterations == other._num_iterations
            and +self._counts == +other._counts
        )

    def __repr__(self) -> str:
        return (
            f"CooccurrenceTable(domains={self._domains}, "
            f"num_iterations={self._num_iterations})"
        )
