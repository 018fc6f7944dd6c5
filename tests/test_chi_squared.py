import numpy as np
import pytest
from scipy import stats

from flip_hash_benchmarks.chi_squared import (
    independence_degrees_of_freedom,
    marginal_probabilities,
    mutual_independence_p_value,
    uniformity_p_value,
)


def test_uniform_counts_have_high_p_value() -> None:
    assert uniformity_p_value([1000, 1000, 1000, 1000]) == pytest.approx(1.0)


def test_skewed_counts_have_low_p_value() -> None:
    assert uniformity_p_value([4000, 0, 0, 0]) < 1e-12


def test_uniformity_p_value_range() -> None:
    rng = np.random.default_rng(3)
    for _ in range(20):
        p = uniformity_p_value(rng.integers(0, 50, size=10) + 1)
        assert 0.0 <= p <= 1.0


def test_uniformity_needs_two_categories() -> None:
    with pytest.raises(ValueError):
        uniformity_p_value([10])
    with pytest.raises(ValueError):
        uniformity_p_value([0, 0])


def test_independent_table_has_high_p_value() -> None:
    counts = {(a, b): 250 for a in range(2) for b in range(2)}
    assert mutual_independence_p_value(counts, 2) == pytest.approx(1.0)


def test_dependent_table_has_low_p_value() -> None:
    counts = {(0, 0): 500, (1, 1): 500}
    assert mutual_independence_p_value(counts, 2) < 1e-12


def test_independence_p_value_range() -> None:
    rng = np.random.default_rng(5)
    for _ in range(10):
        counts = {
            (a, b, c): int(rng.integers(1, 100))
            for a in range(3)
            for b in range(2)
            for c in range(2)
        }
        p = mutual_independence_p_value(counts, 3)
        assert 0.0 <= p <= 1.0


def test_unobserved_outcomes_contribute_nothing() -> None:
    # (1, 1) never occurs; only the three observed cells enter the statistic.
    counts = {(0, 0): 100, (0, 1): 100, (1, 0): 100}
    marginals, n = marginal_probabilities(counts, 2)
    assert n == 300
    expected = {
        (a, b): marginals[0][a] * marginals[1][b] * n for a, b in counts
    }
    statistic = sum((counts[k] - expected[k]) ** 2 / expected[k] for k in counts)
    assert mutual_independence_p_value(counts, 2) == pytest.approx(stats.chi2.sf(statistic, 1))


def test_marginals_sum_to_one() -> None:
    counts = {(0, 2): 3, (1, 2): 1, (1, 0): 4}
    marginals, n = marginal_probabilities(counts, 2)
    assert n == 8
    assert marginals[0] == {0: pytest.approx(3 / 8), 1: pytest.approx(5 / 8)}
    assert marginals[1] == {2: pytest.approx(4 / 8), 0: pytest.approx(4 / 8)}


def test_degrees_of_freedom() -> None:
    assert independence_degrees_of_freedom([2, 2]) == 1
    assert independence_degrees_of_freedom([4, 4, 4]) == 63 - 9
    assert independence_degrees_of_freedom([1, 2]) == 0


def test_constant_variable_is_a_configuration_error() -> None:
    counts = {(0, 0): 10, (0, 1): 10}
    with pytest.raises(ValueError, match="degrees of freedom"):
        mutual_independence_p_value(counts, 2)


def test_malformed_outcome_arity() -> None:
    with pytest.raises(ValueError):
        mutual_independence_p_value({(0, 0, 1): 3}, 2)
