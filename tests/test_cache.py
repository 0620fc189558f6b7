"""Tests for merging fresh shadows into a cached shadow matrix."""

from __future__ import annotations

import numpy as np
import pytest

from shadow_engine.cache import merge_with_cache
from shadow_engine.errors import InvalidInputError


class TestMergeWithCache:

    def test_no_cache_returns_fresh(self) -> None:
        fresh = np.full((3, 3), 0.4)
        mask = np.zeros((3, 3), dtype=np.uint8)
        assert merge_with_cache(fresh, mask, None) is fresh

    def test_mask_selects_fresh_values(self) -> None:
        fresh = np.full((2, 3), 0.2)
        cache = np.full((2, 3), 0.9)
        mask = np.array([[1, 0, 1], [0, 0, 1]], dtype=np.uint8)

        merged = merge_with_cache(fresh, mask, cache)

        expected = np.array([[0.2, 0.9, 0.2], [0.9, 0.9, 0.2]])
        np.testing.assert_array_equal(merged, expected)

    def test_all_zero_mask_returns_cache(self) -> None:
        fresh = np.zeros((4, 4))
        cache = np.linspace(0.0, 1.0, 16).reshape(4, 4)
        mask = np.zeros((4, 4), dtype=np.uint8)
        np.testing.assert_array_equal(merge_with_cache(fresh, mask, cache), cache)

    def test_inputs_not_modified(self) -> None:
        fresh = np.full((2, 2), 0.1)
        cache = np.full((2, 2), 0.7)
        mask = np.array([[1, 0], [0, 1]], dtype=np.uint8)

        merge_with_cache(fresh, mask, cache)

        assert np.all(fresh == 0.1)
        assert np.all(cache == 0.7)

    def test_shape_mismatch(self) -> None:
        with pytest.raises(InvalidInputError, match="Cannot merge"):
            merge_with_cache(np.zeros((2, 2)), np.ones((2, 2)), np.zeros((3, 3)))
