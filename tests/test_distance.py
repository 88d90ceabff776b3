"""Tests for distance ranking."""

import numpy as np
import pytest

from popmix.config import DistanceConfig
from popmix.distance import rank_distances, rank_target
from popmix.exceptions import InvalidInputError


class TestRankDistances:

    def test_ascending_order(self):
        result = rank_distances(
            [0.0, 0.0],
            ["far", "near", "mid"],
            np.array([[3.0, 4.0], [0.0, 1.0], [0.0, 2.0]]),
        )
        assert [e.name for e in result.entries] == ["near", "mid", "far"]
        assert [e.rank for e in result.entries] == [1, 2, 3]
        assert result.entries[-1].distance == 5.0

    def test_ties_keep_input_order(self):
        result = rank_distances([0.0, 0.0], ["S1", "S2"], np.array([[1.0, 0.0], [0.0, 1.0]]))
        assert [e.name for e in result.entries] == ["S1", "S2"]

    def test_aggregate_uses_closest_member(self):
        result = rank_distances(
            [0.0, 0.0],
            ["Pop:a", "Pop:b", "Other"],
            np.array([[3.0, 4.0], [0.0, 1.0], [0.0, 2.0]]),
            aggregate=True,
        )
        assert [(e.name, e.distance) for e in result.entries] == [("Pop", 1.0), ("Other", 2.0)]
        assert result.aggregated

    def test_top_n(self):
        result = rank_distances(
            [0.0, 0.0], ["A", "B", "C"], np.array([[1.0, 0.0], [2.0, 0.0], [3.0, 0.0]]), top_n=2
        )
        assert result.shown == 2
        assert result.total == 3

    def test_top_n_must_be_positive(self):
        with pytest.raises(InvalidInputError):
            rank_distances([0.0, 0.0], ["A"], np.array([[1.0, 0.0]]), top_n=0)

    def test_empty_sources(self):
        with pytest.raises(InvalidInputError):
            rank_distances([0.0, 0.0], [], np.empty((0, 2)))

    def test_to_frame(self):
        result = rank_distances([0.0, 0.0], ["A", "B"], np.array([[1.0, 0.0], [2.0, 0.0]]))
        frame = result.to_frame()
        assert list(frame.columns) == ["rank", "name", "distance"]
        assert frame["name"].tolist() == ["A", "B"]


class TestRankTarget:

    def test_named_target(self, simple_dataset):
        result = rank_target(simple_dataset, "T2", DistanceConfig())
        assert result.target == "T2"
        assert result.entries[0].name == "A"
        assert result.entries[0].distance == pytest.approx(np.sqrt(8.0))

    def test_unknown_target(self, simple_dataset):
        with pytest.raises(InvalidInputError):
            rank_target(simple_dataset, "missing", DistanceConfig())
