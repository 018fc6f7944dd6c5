from collections import defaultdict
from typing import Dict, Hashable, List, Mapping, Sequence, Tuple

import numpy as np
import numpy.typing as npt
from scipy import stats

# Marginal probabilities are recomputed from the same joint counts, so they only
# drift from 1 through float rounding; anything larger means malformed input.
MARGINAL_TOLERANCE = 1e-2


def uniformity_p_value(counts: npt.ArrayLike) -> float:
    """Chi-squared goodness-of-fit p-value against the uniform distribution.

    Args:
        counts: Non-negative observed count per category, at least two of them.

    Returns:
        The probability of a statistic at least as large under uniformity.
    """
    observed = np.asarray(counts, dtype=np.float64)
    k = observed.size
    if k < 2:
        raise ValueError(f"uniformity test needs at least 2 categories, got {k}")
    total = observed.sum()
    if total <= 0:
        raise ValueError("uniformity test needs at least one observation")
    expected = total / k
    statistic = float(np.sum((observed - expected) ** 2) / expected)
    return float(stats.chi2.sf(statistic, k - 1))


def marginal_probabilities(
    joint_counts: Mapping[Tuple[Hashable, ...], int], n: int
) -> Tuple[List[Dict[Hashable, float]], float]:
    """Estimate each variable's marginal distribution from joint counts.

    Returns:
        (marginals, num_samples) where marginals[j] maps the values observed
        for variable j to their estimated probability.
    """
    marginals: List[Dict[Hashable, float]] = [defaultdict(float) for _ in range(n)]
    for outcome, count in joint_counts.items():
        if len(outcome) != n:
            raise ValueError(f"expected {n} coordinates, got {outcome}")
        for value, marginal in zip(outcome, marginals):
            marginal[value] += count
    num_samples = sum(marginals[0].values())
    if num_samples <= 0:
        raise ValueError("independence test needs at least one observation")
    for marginal in marginals:
        for value in marginal:
            marginal[value] /= num_samples
    for j, marginal in enumerate(marginals):
        mass = sum(marginal.values())
        if abs(mass - 1.0) >= MARGINAL_TOLERANCE:
            raise ValueError(f"marginal {j} sums to {mass}, expected 1")
    return [dict(m) for m in marginals], num_samples


def independence_degrees_of_freedom(domain_sizes: Sequence[int]) -> int:
    """Degrees of freedom of the mutual independence test for n variables."""
    return (int(np.prod(domain_sizes, dtype=object)) - 1) - sum(s - 1 for s in domain_sizes)


def mutual_independence_p_value(
    joint_counts: Mapping[Tuple[Hashable, ...], int], n: int
) -> float:
    """Chi-squared p-value for the mutual independence of n categorical variables.

    Expected joint counts are the product of the estimated marginals. Only
    observed outcomes contribute to the statistic: an outcome that never
    occurred adds nothing, which understates the statistic on sparse tables.
    Reported p-values depend on that convention, keep it.
    """
    marginals, num_samples = marginal_probabilities(joint_counts, n)

    statistic = 0.0
    for outcome, observed in joint_counts.items():
        joint_probability = 1.0
        for value, marginal in zip(outcome, marginals):
            joint_probability *= marginal[value]
        expected = joint_probability * num_samples
        statistic += (observed - expected) ** 2 / expected

    degrees_of_freedom = independence_degrees_of_freedom([len(m) for m in marginals])
    if degrees_of_freedom <= 0:
        raise ValueError(
            f"independence test needs positive degrees of freedom, got {degrees_of_freedom} "
            f"for observed domain sizes {[len(m) for m in marginals]}"
        )
    return float(stats.chi2.sf(statistic, degrees_of_freedom))
