"""Tests for robust statistics."""

import random

import pytest

from heatmap_viewer.engine.stats import median, median_absolute_deviation
from heatmap_viewer.errors import EmptySampleError


class TestMedian:
    """Test median."""

    def test_even_count_averages_middle_pair(self):
        """median([1,2,3,4]) is the mean of 2 and 3."""
        assert median([1, 2, 3, 4]) == 2.5

    def test_odd_count_returns_middle(self):
        """median([1,2,3]) is 2."""
        assert median([1, 2, 3]) == 2

    def test_single_element(self):
        assert median([7.5]) == 7.5

    def test_order_invariant(self):
        """Shuffling the input never changes the result."""
        samples = [3.0, 9.0, 1.0, 4.0, 4.0, 100.0, -2.0]
        expected = median(samples)
        rng = random.Random(42)
        for _ in range(10):
            shuffled = samples[:]
            rng.shuffle(shuffled)
            assert median(shuffled) == expected

    def test_does_not_mutate_input(self):
        samples = [3.0, 1.0, 2.0]
        median(samples)
        assert samples == [3.0, 1.0, 2.0]

    def test_accepts_generator(self):
        assert median(x for x in (5, 1, 3)) == 3

    def test_empty_raises(self):
        """Empty input is a contract violation."""
        with pytest.raises(EmptySampleError):
            median([])

    def test_empty_error_is_value_error(self):
        with pytest.raises(ValueError):
            median([])


class TestMedianAbsoluteDeviation:
    """Test median absolute deviation."""

    def test_basic(self):
        """Deviations from 3 are [2,1,0,1,2] -> MAD 1."""
        assert median_absolute_deviation([1, 2, 3, 4, 5], 3) == 1

    def test_outlier_resistant(self):
        """One huge value barely moves the MAD."""
        samples = [10.0, 11.0, 12.0, 13.0, 14.0, 10_000.0]
        center = median(samples)
        assert center == 12.5
        assert median_absolute_deviation(samples, center) == pytest.approx(1.5)

    def test_identical_samples_give_zero(self):
        assert median_absolute_deviation([4.0, 4.0, 4.0], 4.0) == 0.0

    def test_order_invariant(self):
        samples = [1.0, 5.0, 2.0, 8.0, 3.0, 13.0]
        center = median(samples)
        expected = median_absolute_deviation(samples, center)
        assert median_absolute_deviation(list(reversed(samples)), center) == expected
        assert median_absolute_deviation(sorted(samples), center) == expected

    def test_empty_raises(self):
        with pytest.raises(EmptySampleError):
            median_absolute_deviation([], 0.0)
