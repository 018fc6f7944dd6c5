"""Statistical quality benchmarks for range-mapping hash algorithms."""

from flip_hash_benchmarks.accumulators import CooccurrenceTable, OccurrenceTable
from flip_hash_benchmarks.aggregation import AggregationEngine
from flip_hash_benchmarks.experiments import (
    Collisions,
    Experiment,
    IndependenceAcrossRanges,
    IndependenceAcrossSeeds,
    Regularity,
)

__all__ = [
    "AggregationEngine",
    "Collisions",
    "CooccurrenceTable",
    "Experiment",
    "IndependenceAcrossRanges",
    "IndependenceAcrossSeeds",
    "OccurrenceTable",
    "Regularity",
]
