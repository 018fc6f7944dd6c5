"""Shared stub algorithms and scripted random sources."""

from __future__ import annotations

import itertools
import sys
from pathlib import Path
from typing import Iterable

import numpy as np
import pytest

# Ensure project root is on sys.path so 'import flip_hash_benchmarks' works uninstalled
_root = Path(__file__).resolve().parents[1]
if str(_root) not in sys.path:
    sys.path.insert(0, str(_root))


class ScriptedRandom:
    """Hands out keys from a fixed cycle; seeds come from a seeded generator."""

    def __init__(self, first_bytes: Iterable[int], seed: int = 0) -> None:
        self._first_bytes = itertools.cycle(list(first_bytes))
        self._rng = np.random.default_rng(seed)
        self.num_keys = 0

    def bytes(self, length: int) -> bytes:
        self.num_keys += 1
        return bytes([next(self._first_bytes)]) + bytes(max(length - 1, 0))

    def integers(self, *args, **kwargs):
        return self._rng.integers(*args, **kwargs)


class FirstByteMod:
    name = "first byte mod"

    def hash(self, key: bytes, seed: int, range_end: int) -> int:
        return key[0] % (range_end + 1)


class AlwaysZero:
    name = "always zero"

    def hash(self, key: bytes, seed: int, range_end: int) -> int:
        return 0


class SeedLowBit:
    name = "seed low bit"

    def hash(self, key: bytes, seed: int, range_end: int) -> int:
        return seed & 1


class Broken:
    name = "broken"

    def hash(self, key: bytes, seed: int, range_end: int) -> int:
        raise RuntimeError("hash failed")


@pytest.fixture
def balanced_keys() -> ScriptedRandom:
    """Keys whose first byte cycles through 0, 1, 2, 3."""
    return ScriptedRandom(range(4))
