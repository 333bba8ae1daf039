from __future__ import annotations

import numpy as np
import pytest

from hierimpute.impute.hierarchical.clusters import ClusterAssignment
from hierimpute.impute.hierarchical.genotypes import orientation_flags
from hierimpute.impute.hierarchical.hierarchy import Hierarchy
from hierimpute.impute.hierarchical.resolver import (
    ResolutionStage,
    resolve_marker,
    sample_from_frequencies,
)

from conftest import three_marker_matrix

# Four singleton clusters: (0, 1) merge at 0.1, (2, 3) at 0.2, all at 0.3.
LADDER = np.array([[0, 1, 0.1, 2], [2, 3, 0.2, 2], [4, 5, 0.3, 4]], dtype=float)
LADDER_X = np.array(
    [
        [-1, -1, 2, 0],
        [0, 0, 0, 0],
        [0, 0, 0, 0],
        [1, 1, 0, 0],
    ],
    dtype=np.int8,
)


def _resolve(X, clusters, hierarchy, marker, min_abs_cor, seed=0):
    flags = orientation_flags(X)
    return resolve_marker(
        marker, X, hierarchy, clusters, flags, min_abs_cor, np.random.default_rng(seed)
    )


def test_cluster_mate_fills_with_orientation_flip() -> None:
    X = three_marker_matrix(member=[2, -1, 2, -1, 2, -1])
    clusters = ClusterAssignment(["a", "b", "b"], [0, 1])
    hierarchy = Hierarchy.from_linkage(
        np.array([[1, 2, 0.05, 2], [0, 3, 0.10, 3]], dtype=float)
    )

    res = _resolve(X, clusters, hierarchy, 1, 0.1)

    # Marker 2 is alternate-oriented, marker 1 reference-oriented: 2 -> 0.
    np.testing.assert_array_equal(res.column, [0, 0, 0, 2, 0, 1])
    assert res.stage is ResolutionStage.CLUSTER
    assert res.n_filled_cluster == 1
    assert res.n_filled_hierarchy == 0
    assert res.n_sampled == 0


def test_hierarchy_ascent_skips_exhausted_groups() -> None:
    clusters = ClusterAssignment(["a", "b", "c", "d"], [0, 1, 2, 3])
    hierarchy = Hierarchy.from_linkage(LADDER)

    res = _resolve(LADDER_X, clusters, hierarchy, 0, 0.5)

    np.testing.assert_array_equal(res.column, [2, 0, 0, 1])
    assert res.stage is ResolutionStage.HIERARCHY
    assert res.n_filled_hierarchy == 1
    assert res.max_height == pytest.approx(0.3)


def test_ascent_stops_at_height_threshold() -> None:
    clusters = ClusterAssignment(["a", "b", "c", "d"], [0, 1, 2, 3])
    hierarchy = Hierarchy.from_linkage(LADDER)

    res = _resolve(LADDER_X, clusters, hierarchy, 0, 0.75)

    assert res.stage is ResolutionStage.FREQUENCY
    assert res.n_filled_hierarchy == 0
    assert res.n_sampled == 1
    assert res.max_height == pytest.approx(0.1)
    assert res.column[0] in (0, 1)


@pytest.mark.parametrize("seed", [0, 1, 2, 3, 4])
def test_threshold_fallback_samples_own_distribution(seed: int) -> None:
    # The only neighbour is all alternate homozygotes but sits above the threshold.
    target = [0, 1, 0, 1] + [-1] * 16
    X = np.array([target, [2] * 20], dtype=np.int8).T
    clusters = ClusterAssignment(["a", "b"], [0, 1])
    hierarchy = Hierarchy.from_linkage(np.array([[0, 1, 0.95, 2]], dtype=float))

    res = _resolve(X, clusters, hierarchy, 0, 0.1, seed=seed)

    assert res.stage is ResolutionStage.FREQUENCY
    assert res.n_sampled == 16
    assert res.max_height == 0.0
    assert set(np.unique(res.column)) <= {0, 1}
    np.testing.assert_array_equal(res.column[:4], [0, 1, 0, 1])


def test_non_representative_and_complete_markers_unchanged(three_marker) -> None:
    X = three_marker.genotypes

    member = _resolve(X, three_marker.clusters, three_marker.hierarchy, 2, 0.1)
    complete = _resolve(X, three_marker.clusters, three_marker.hierarchy, 0, 0.1)

    assert member.stage is ResolutionStage.UNCHANGED
    np.testing.assert_array_equal(member.column, X[:, 2])
    assert complete.stage is ResolutionStage.UNCHANGED
    np.testing.assert_array_equal(complete.column, X[:, 0])


def test_resolver_does_not_modify_matrix(three_marker) -> None:
    X = three_marker.genotypes
    before = X.copy()

    res = _resolve(X, three_marker.clusters, three_marker.hierarchy, 1, 0.1)

    np.testing.assert_array_equal(X, before)
    np.testing.assert_array_equal(res.column, [0, 0, 0, 2, 0, 1])
    assert res.stage is ResolutionStage.HIERARCHY


def test_sample_from_frequencies_single_state() -> None:
    column = np.array([1, -1, -1], dtype=np.int8)

    out = sample_from_frequencies(column, column, np.random.default_rng(0))

    np.testing.assert_array_equal(out, [1, 1, 1])
    np.testing.assert_array_equal(column, [1, -1, -1])


def test_sample_from_frequencies_requires_observed_calls() -> None:
    column = np.array([-1, -1], dtype=np.int8)

    with pytest.raises(ValueError):
        sample_from_frequencies(column, column, np.random.default_rng(0))
