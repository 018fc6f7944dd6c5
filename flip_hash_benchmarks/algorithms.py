import enum
import sys
from typing import Callable, Dict, Protocol, TypeAlias

import xxhash

U64_MASK = (1 << 64) - 1
U32_MAX = (1 << 32) - 1

# Maximum number of rejection rounds before flip hash falls back to the
# power-of-two range just below the requested one.
MAX_FLIP_ROUNDS = 64

# Seeded 64-bit hash of a key: (salt) -> hash. The salt selects one of the
# independent hash functions flip hash draws from.
SaltedHash: TypeAlias = Callable[[int], int]


class Algorithm(Protocol):
    """A range-mapping hash: maps (key, seed) to a bucket in [0, range_end]."""

    name: str

    def hash(self, key: bytes, seed: int, range_end: int) -> int:
        ...


def jump_hash(key: int, range_end: int) -> int:
    """Jump consistent hash of a 64-bit key into [0, range_end].

    Lamping & Veach, "A Fast, Minimal Memory, Consistent Hash Algorithm".
    The range end must fit in 32 bits.
    """
    if not 0 <= range_end <= U32_MAX:
        raise OverflowError(f"range end {range_end} does not fit in 32 bits")
    k = key & U64_MASK
    b, j = -1, 0
    while j <= range_end:
        b = j
        k = (k * 2862933555777941757 + 1) & U64_MASK
        j = int((b + 1) * (float(1 << 31) / float((k >> 33) + 1)))
    return b


def fmix64(x: int) -> int:
    """MurmurHash3 64-bit finaliser."""
    x &= U64_MASK
    x ^= x >> 33
    x = (x * 0xFF51AFD7ED558CCD) & U64_MASK
    x ^= x >> 33
    x = (x * 0xC4CEB9FE1A85EC53) & U64_MASK
    x ^= x >> 33
    return x


def derive_seed(seed: int, salt: int) -> int:
    """Combine a user seed with a salt into a 64-bit hash seed."""
    return fmix64((seed & U64_MASK) ^ fmix64(salt + 0x9E3779B97F4A7C15))


def flip_hash_pow2(hash_fn: SaltedHash, r: int) -> int:
    """Flip hash into the power-of-two range [0, 2^r)."""
    if r == 0:
        return 0
    a = hash_fn(0) & ((1 << r) - 1)
    if a == 0:
        return 0
    b = a.bit_length() - 1
    if b == 0:
        return 1
    return (1 << b) + (hash_fn(b) & ((1 << b) - 1))


def flip_hash(hash_fn: SaltedHash, range_end: int) -> int:
    """Flip hash into the inclusive range [0, range_end].

    Masson & Lee, "FlipHash: A Constant-Time Consistent Range-Hashing
    Algorithm". Salts 0..63 are used by the power-of-two step, the rejection
    rounds draw from salts above 64 so the two families never overlap.
    """
    if range_end < 0:
        raise ValueError(f"range end must be non-negative, got {range_end}")
    if range_end == 0:
        return 0
    r = range_end.bit_length()
    d = flip_hash_pow2(hash_fn, r)
    if d <= range_end:
        return d
    half = 1 << (r - 1)
    mask = (1 << r) - 1
    for i in range(MAX_FLIP_ROUNDS):
        e = hash_fn(64 + (r << 8) + i) & mask
        if e < half:
            return flip_hash_pow2(hash_fn, r - 1)
        if e <= range_end:
            return e
    return flip_hash_pow2(hash_fn, r - 1)


def _key_as_u64(key: bytes) -> int:
    if len(key) < 8:
        raise ValueError(f"key must be at least 8 bytes, got {len(key)}")
    return int.from_bytes(key[:8], sys.byteorder)


class FlipHash64:
    name = "Flip Hash (64 bits)"

    def hash(self, key: bytes, seed: int, range_end: int) -> int:
        k = _key_as_u64(key)
        return flip_hash(lambda salt: fmix64(k ^ derive_seed(seed, salt)), range_end)


class FlipHashXXH364:
    name = "Flip Hash (XXH3, 64 bits)"

    def hash(self, key: bytes, seed: int, range_end: int) -> int:
        return flip_hash(
            lambda salt: xxhash.xxh3_64_intdigest(key, seed=derive_seed(seed, salt)),
            range_end,
        )


class FlipHashXXH3128:
    name = "Flip Hash (XXH3, 128 bits)"

    def hash(self, key: bytes, seed: int, range_end: int) -> int:
        h = flip_hash(
            lambda salt: xxhash.xxh3_128_intdigest(key, seed=derive_seed(seed, salt)),
            range_end,
        )
        if h > U64_MASK:
            raise OverflowError(f"hash {h} does not fit in 64 bits")
        return h


class JumpHash:
    name = "Jump Hash"

    def hash(self, key: bytes, seed: int, range_end: int) -> int:
        return jump_hash(_key_as_u64(key) ^ (seed & U64_MASK), range_end)


class AlgorithmName(enum.Enum):
    """Command-line identifiers of the bundled algorithms."""
    FLIP_HASH_64 = "flip-hash64"
    FLIP_HASH_XXH3_64 = "flip-hash-xxh364"
    FLIP_HASH_XXH3_128 = "flip-hash-xxh3128"
    JUMP_HASH = "jump-hash"

    def __str__(self) -> str:
        return self.value

    def create(self) -> Algorithm:
        return ALGORITHMS[self]()


ALGORITHMS: Dict[AlgorithmName, Callable[[], Algorithm]] = {
    AlgorithmName.FLIP_HASH_64: FlipHash64,
    AlgorithmName.FLIP_HASH_XXH3_64: FlipHashXXH364,
    AlgorithmName.FLIP_HASH_XXH3_128: FlipHashXXH3128,
    AlgorithmName.JUMP_HASH: JumpHash,
}

DEFAULT_ALGORITHMS = tuple(AlgorithmName)
