"""Tests for profile sets, datasets and aggregation keys."""

import numpy as np
import pytest

from popmix.dataset import (
    Dataset,
    ProfileSet,
    Row,
    aggregate_by_key,
    aggregation_key,
)
from popmix.exceptions import InvalidInputError


class TestAggregationKey:

    def test_prefix_before_first_colon(self):
        assert aggregation_key("Pop1:sample:x") == "Pop1"

    def test_name_without_colon(self):
        assert aggregation_key("Pop2") == "Pop2"

    def test_empty_prefix(self):
        assert aggregation_key(":a") == ""


class TestAggregateByKey:

    def test_sum_keeps_first_seen_order(self):
        keys, values = aggregate_by_key(
            ["B:1", "A:1", "B:2", "C"], [0.1, 0.2, 0.3, 0.4], reducer="sum"
        )
        assert keys == ["B", "A", "C"]
        assert values == pytest.approx([0.4, 0.2, 0.4])

    def test_min(self):
        keys, values = aggregate_by_key(["P:a", "P:b", "Q"], [5.0, 1.0, 2.0], reducer="min")
        assert keys == ["P", "Q"]
        assert values == [1.0, 2.0]

    def test_idempotent_on_unique_keys(self):
        names = ["A", "B", "C"]
        keys, values = aggregate_by_key(names, [3.0, 1.0, 2.0])
        again_keys, again_values = aggregate_by_key(keys, values)
        assert again_keys == keys == names
        assert again_values == values

    def test_length_mismatch(self):
        with pytest.raises(InvalidInputError):
            aggregate_by_key(["A"], [1.0, 2.0])

    def test_unknown_reducer(self):
        with pytest.raises(ValueError):
            aggregate_by_key(["A"], [1.0], reducer="max")


class TestProfileSet:

    def test_from_rows(self):
        profiles = ProfileSet.from_rows([("A", [1, 2]), ("B", [3, 4])])
        assert len(profiles) == 2
        assert profiles.dimension == 2
        assert profiles.vectors.dtype == np.float64
        assert profiles.index_of("B") == 1

    def test_vectors_are_read_only_copies(self):
        source = np.array([[1.0, 2.0]])
        profiles = ProfileSet(names=("A",), vectors=source)
        source[0, 0] = 99.0
        assert profiles.vectors[0, 0] == 1.0
        with pytest.raises(ValueError):
            profiles.vectors[0, 0] = 5.0

    def test_iteration_yields_rows(self):
        profiles = ProfileSet.from_rows([("A", [1, 2])])
        rows = list(profiles)
        assert isinstance(rows[0], Row)
        assert rows[0].name == "A"

    def test_inconsistent_rows(self):
        with pytest.raises(InvalidInputError):
            ProfileSet.from_rows([("A", [1, 2]), ("B", [1, 2, 3])])

    def test_name_count_mismatch(self):
        with pytest.raises(InvalidInputError):
            ProfileSet(names=("A", "B"), vectors=np.zeros((1, 2)))

    def test_unknown_name(self):
        profiles = ProfileSet.from_rows([("A", [1, 2])])
        with pytest.raises(InvalidInputError):
            profiles.index_of("missing")


class TestDatasetValidation:

    def test_valid(self, simple_dataset):
        assert simple_dataset.validate() is simple_dataset
        assert simple_dataset.dimension == 2

    def test_empty_source(self):
        dataset = Dataset(
            source=ProfileSet.from_rows([]),
            target=ProfileSet.from_rows([("T", [1, 2])]),
        )
        with pytest.raises(InvalidInputError, match="Source set is empty"):
            dataset.validate()

    def test_dimension_mismatch(self):
        dataset = Dataset(
            source=ProfileSet.from_rows([("A", [1, 2, 3])]),
            target=ProfileSet.from_rows([("T", [1, 2])]),
        )
        with pytest.raises(InvalidInputError) as excinfo:
            dataset.validate()
        assert excinfo.value.details == {"source": 3, "target": 2}

    def test_one_dimension_rejected(self):
        dataset = Dataset(
            source=ProfileSet.from_rows([("A", [1])]),
            target=ProfileSet.from_rows([("T", [1])]),
        )
        with pytest.raises(InvalidInputError, match="at least 2"):
            dataset.validate()

    def test_non_finite(self):
        dataset = Dataset(
            source=ProfileSet.from_rows([("A", [1, 2]), ("B", [np.nan, 2])]),
            target=ProfileSet.from_rows([("T", [1, 2])]),
        )
        with pytest.raises(InvalidInputError) as excinfo:
            dataset.validate()
        assert excinfo.value.details["row"] == "B"

    def test_pooled(self, simple_dataset):
        names, points = simple_dataset.pooled()
        assert names == ["A (source)", "B (source)", "T1 (target)", "T2 (target)"]
        assert points.shape == (4, 2)
