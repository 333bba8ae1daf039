"""Resolution of one representative marker.

Stages, in order: copy from identical markers of the same cluster, ascend the hierarchy widening the neighbour pool while the group height stays within ``1 - min_abs_cor``, then sample any remaining calls from the marker's own observed genotype frequencies.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Set

import numpy as np

from hierimpute.impute.hierarchical.clusters import ClusterAssignment
from hierimpute.impute.hierarchical.genotypes import Genotype, genotype_counts
from hierimpute.impute.hierarchical.hierarchy import Hierarchy
from hierimpute.impute.hierarchical.neighbor_fill import fill_from_neighbors


class ResolutionStage(str, Enum):
    """Last stage that contributed calls to a marker."""

    UNCHANGED = "unchanged"
    CLUSTER = "cluster"
    HIERARCHY = "hierarchy"
    FREQUENCY = "frequency"


@dataclass
class MarkerResolution:
    marker: int
    column: np.ndarray
    stage: ResolutionStage
    n_filled_cluster: int = 0
    n_filled_hierarchy: int = 0
    n_sampled: int = 0
    max_height: float = 0.0


def _n_missing(column: np.ndarray) -> int:
    return int(np.count_nonzero(column == Genotype.MISSING))


def sample_from_frequencies(
    column: np.ndarray, observed: np.ndarray, rng: np.random.Generator
) -> np.ndarray:
    """Fill missing calls in `column` by categorical draws weighted by the genotype counts of `observed`.

    Args:
        column (np.ndarray): Calls to complete. Not modified.
        observed (np.ndarray): Calls whose observed 0/1/2 counts define the distribution.
        rng (np.random.Generator): Random stream for the draws.

    Returns:
        np.ndarray: Completed copy of `column`.

    Raises:
        ValueError: If `observed` holds no observed calls.
    """
    out = column.copy()
    js = np.flatnonzero(out == Genotype.MISSING)
    if js.size == 0:
        return out

    counts = genotype_counts(observed)
    total = counts.sum()
    if total == 0:
        raise ValueError("Cannot sample genotypes for a marker with no observed calls.")

    states = np.flatnonzero(counts)
    probs = counts[states] / total
    out[js] = rng.choice(states, size=js.size, replace=True, p=probs)
    return out


def resolve_marker(
    marker: int,
    genotypes: np.ndarray,
    hierarchy: Hierarchy,
    clusters: ClusterAssignment,
    flags: np.ndarray,
    min_abs_cor: float,
    rng: np.random.Generator,
) -> MarkerResolution:
    """Impute the missing calls of one representative marker.

    Non-representative markers and markers without missing calls are returned unchanged. Candidate order inside a group is the group's member order; no re-ranking by correlation is attempted.

    Args:
        marker (int): Column index of the marker.
        genotypes (np.ndarray): Read-only normalized genotype matrix.
        hierarchy (Hierarchy): Hierarchy covering every marker.
        clusters (ClusterAssignment): Cluster labels and representatives.
        flags (np.ndarray): Orientation flags of all markers.
        min_abs_cor (float): Groups above height ``1 - min_abs_cor`` are never used.
        rng (np.random.Generator): Random stream for the frequency fallback.

    Returns:
        MarkerResolution: The resolved column and per-stage counts.
    """
    original = genotypes[:, marker]
    column = original.copy()
    if not clusters.is_medoid[marker] or _n_missing(column) == 0:
        return MarkerResolution(marker, column, ResolutionStage.UNCHANGED)

    result = MarkerResolution(marker, column, ResolutionStage.UNCHANGED)
    target_flag = bool(flags[marker])
    max_height = 1.0 - min_abs_cor

    tried: Set[int] = {marker}
    mates = [int(m) for m in clusters.members(marker) if m != marker]
    tried.update(mates)
    before = _n_missing(column)
    column, unsolved = fill_from_neighbors(column, mates, genotypes, target_flag, flags)
    result.n_filled_cluster = before - _n_missing(column)
    if result.n_filled_cluster:
        result.stage = ResolutionStage.CLUSTER

    if unsolved:
        before = _n_missing(column)
        for node in hierarchy.ascend(marker):
            h = hierarchy.height(node)
            if h > max_height:
                break
            result.max_height = h
            candidates = [m for m in hierarchy.members(node) if m not in tried]
            tried.update(candidates)
            if candidates:
                column, unsolved = fill_from_neighbors(
                    column, candidates, genotypes, target_flag, flags
                )
            if not unsolved:
                break
        result.n_filled_hierarchy = before - _n_missing(column)
        if result.n_filled_hierarchy:
            result.stage = ResolutionStage.HIERARCHY

    if unsolved:
        result.n_sampled = _n_missing(column)
        column = sample_from_frequencies(column, original, rng)
        result.stage = ResolutionStage.FREQUENCY

    result.column = column
    return result
