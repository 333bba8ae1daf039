from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd
import pytest
from scipy.cluster.hierarchy import linkage

from hierimpute.impute.hierarchical.clusters import ClusterAssignment
from hierimpute.impute.hierarchical.hierarchy import Hierarchy

# Three markers: marker 0 alone in cluster "a"; markers 1 and 2 in cluster "b"
# with marker 1 as representative. Markers 1 and 2 merge first (height 0.05),
# marker 0 joins at height 0.1.
PAIR_LINKAGE = np.array([[1, 2, 0.05, 2], [0, 3, 0.10, 3]], dtype=float)


@dataclass
class Scenario:
    genotypes: np.ndarray
    clusters: ClusterAssignment
    hierarchy: Hierarchy


def three_marker_matrix(member: list[int] | None = None) -> np.ndarray:
    """6 samples x 3 markers.

    Marker 0 is oriented towards the alternate allele, marker 1 (missing at sample 4) towards the reference. Marker 2 is fully missing unless `member` is given.
    """
    m0 = [2, 2, 1, 0, 2, 1]
    m1 = [0, 0, 0, 2, -1, 1]
    m2 = member if member is not None else [-1] * 6
    return np.array([m0, m1, m2], dtype=np.int8).T


@pytest.fixture
def three_marker() -> Scenario:
    return Scenario(
        genotypes=three_marker_matrix(),
        clusters=ClusterAssignment(["a", "b", "b"], [0, 1]),
        hierarchy=Hierarchy.from_linkage(PAIR_LINKAGE),
    )


@pytest.fixture
def synthetic() -> Scenario:
    """20 samples x 8 markers, ~30% missing; the first sample is fully observed."""
    rng = np.random.default_rng(0)
    truth = rng.integers(0, 3, size=(20, 8))
    mask = rng.random(truth.shape) < 0.3
    mask[0, :] = False
    X = truth.copy()
    X[mask] = -1

    Z = linkage(truth.T, method="average", metric="hamming")
    return Scenario(
        genotypes=X.astype(np.int8),
        clusters=ClusterAssignment([0, 0, 1, 1, 2, 2, 3, 3], [0, 2, 4, 6]),
        hierarchy=Hierarchy.from_linkage(Z),
    )


@pytest.fixture
def synthetic_df(synthetic: Scenario) -> pd.DataFrame:
    n_samples, n_markers = synthetic.genotypes.shape
    return pd.DataFrame(
        synthetic.genotypes,
        index=[f"ind{i}" for i in range(n_samples)],
        columns=[f"snp{j}" for j in range(n_markers)],
    )
