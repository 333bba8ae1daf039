import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Literal, Optional, Tuple

import numpy as np
from joblib import Parallel, delayed
from tqdm import tqdm

from hierimpute.impute.hierarchical.clusters import ClusterAssignment
from hierimpute.impute.hierarchical.genotypes import (
    Genotype,
    aligned_calls,
    orientation_flags,
    validate_genotypes,
)
from hierimpute.impute.hierarchical.hierarchy import Hierarchy
from hierimpute.impute.hierarchical.resolver import (
    MarkerResolution,
    ResolutionStage,
    resolve_marker,
)
from hierimpute.utils.exceptions import InvalidInputError
from hierimpute.utils.misc import format_seconds


@dataclass(frozen=True)
class MedoidContext:
    """Read-only inputs shared by every medoid task."""

    genotypes: np.ndarray
    hierarchy: Hierarchy
    clusters: ClusterAssignment
    flags: np.ndarray
    min_abs_cor: float


def _fail(logger: logging.Logger, msg: str) -> None:
    logger.error(msg)
    raise InvalidInputError(msg)


def validate_inputs(
    genotypes,
    clusters: ClusterAssignment,
    hierarchy: Hierarchy,
    min_abs_cor: float,
    n_jobs: int = 1,
    rng_strategy: str = "per_marker",
    logger: Optional[logging.Logger] = None,
) -> np.ndarray:
    """Check every precondition of the imputation and return the normalized matrix.

    Raises:
        InvalidInputError: If any input or parameter is invalid. Nothing has been imputed at that point.
    """
    logger = logger or logging.getLogger(__name__)

    if not isinstance(clusters, ClusterAssignment):
        _fail(logger, f"clusters must be a ClusterAssignment, got {type(clusters)}")
    if not isinstance(hierarchy, Hierarchy):
        _fail(logger, f"hierarchy must be a Hierarchy, got {type(hierarchy)}")
    if not isinstance(min_abs_cor, (int, float)) or not 0.0 <= min_abs_cor <= 1.0:
        _fail(logger, f"min_abs_cor must be in [0, 1], got {min_abs_cor!r}")
    if isinstance(n_jobs, bool) or not isinstance(n_jobs, (int, np.integer)):
        _fail(logger, f"n_jobs must be an integer, got {n_jobs!r}")
    if n_jobs == 0 or n_jobs < -1:
        _fail(logger, f"n_jobs must be >= 1 or -1 (all cores), got {n_jobs}")
    if rng_strategy not in {"per_marker", "shared"}:
        _fail(logger, f"rng_strategy must be 'per_marker' or 'shared', got {rng_strategy!r}")
    if rng_strategy == "shared" and n_jobs != 1:
        _fail(
            logger,
            "rng_strategy='shared' consumes one random stream in column order and "
            f"requires n_jobs=1, got n_jobs={n_jobs}. Use rng_strategy='per_marker' "
            "for reproducible parallel runs.",
        )

    X = validate_genotypes(genotypes)
    n_markers = X.shape[1]
    clusters.validate_size(n_markers)
    hierarchy.validate_coverage(n_markers)

    observed = (X >= 0).sum(axis=0)
    empty = np.flatnonzero(clusters.is_medoid & (observed == 0))
    if empty.size:
        _fail(
            logger,
            f"{empty.size} representative marker(s) have no observed calls, "
            f"e.g. {empty[:10].tolist()}",
        )
    return X


def _resolve_task(
    marker: int, ctx: MedoidContext, seed: np.random.SeedSequence
) -> MarkerResolution:
    return resolve_marker(
        marker,
        ctx.genotypes,
        ctx.hierarchy,
        ctx.clusters,
        ctx.flags,
        ctx.min_abs_cor,
        np.random.default_rng(seed),
    )


def summarize_resolutions(resolutions: List[MarkerResolution]) -> Dict[str, int]:
    """Count resolved markers per stage and filled calls per source."""
    summary = {stage.value: 0 for stage in ResolutionStage}
    summary.update(filled_cluster=0, filled_hierarchy=0, sampled=0)
    for res in resolutions:
        summary[res.stage.value] += 1
        summary["filled_cluster"] += res.n_filled_cluster
        summary["filled_hierarchy"] += res.n_filled_hierarchy
        summary["sampled"] += res.n_sampled
    return summary


def impute_medoids(
    genotypes,
    clusters: ClusterAssignment,
    hierarchy: Hierarchy,
    min_abs_cor: float = 0.25,
    *,
    n_jobs: int = 1,
    seed: Optional[int] = None,
    rng_strategy: Literal["per_marker", "shared"] = "per_marker",
    backend: Literal["loky", "threading", "sequential"] = "loky",
    orientation: Literal["genotype", "allele"] = "genotype",
    verbose: bool = False,
    logger: Optional[logging.Logger] = None,
) -> Tuple[np.ndarray, List[MarkerResolution]]:
    """Impute the missing calls of every representative marker.

    Each representative with missing calls is resolved by an independent task that only reads the shared inputs. Results are gathered and written into a copy of the matrix in column order; other columns are returned unchanged.

    Args:
        genotypes (array-like): 0/1/2 matrix (samples x markers), negative values missing. Not modified.
        clusters (ClusterAssignment): Cluster labels and representatives.
        hierarchy (Hierarchy): Hierarchy whose leaves are exactly the markers.
        min_abs_cor (float): Minimum absolute correlation of usable neighbour groups. Defaults to 0.25.
        n_jobs (int): Worker count for joblib. -1 uses all cores.
        seed (int | None): Seed of the frequency fallback's random streams.
        rng_strategy (Literal["per_marker", "shared"]): "per_marker" spawns one stream per marker column from `seed`, giving identical output for any `n_jobs`. "shared" draws from one stream in column order and requires ``n_jobs=1``.
        backend (Literal["loky", "threading", "sequential"]): joblib backend.
        orientation (Literal["genotype", "allele"]): Basis of the orientation flags.
        verbose (bool): Show a progress bar over tasks.
        logger (logging.Logger | None): Logger for progress and errors.

    Returns:
        Tuple[np.ndarray, List[MarkerResolution]]: The int8 matrix with every representative complete, and one resolution record per processed marker.

    Raises:
        InvalidInputError: If validation fails.
    """
    logger = logger or logging.getLogger(__name__)
    X = validate_inputs(
        genotypes, clusters, hierarchy, min_abs_cor, n_jobs, rng_strategy, logger
    )

    flags = orientation_flags(X, basis=orientation)
    needs_work = clusters.is_medoid & (X == Genotype.MISSING).any(axis=0)
    markers = [int(m) for m in np.flatnonzero(needs_work)]
    logger.info(
        f"Resolving {len(markers)} of {int(clusters.is_medoid.sum())} representative "
        f"markers with missing calls (min_abs_cor={min_abs_cor})."
    )

    ctx = MedoidContext(
        genotypes=X,
        hierarchy=hierarchy,
        clusters=clusters,
        flags=flags,
        min_abs_cor=float(min_abs_cor),
    )

    start = time.perf_counter()
    progress = tqdm(markers, desc="Medoid markers", disable=not verbose)
    if rng_strategy == "shared":
        rng = np.random.default_rng(seed)
        resolutions = [
            resolve_marker(m, X, hierarchy, clusters, flags, ctx.min_abs_cor, rng)
            for m in progress
        ]
    else:
        streams = np.random.SeedSequence(seed).spawn(X.shape[1])
        resolutions = Parallel(n_jobs=n_jobs, backend=backend)(
            delayed(_resolve_task)(m, ctx, streams[m]) for m in progress
        )

    out = X.copy()
    for res in resolutions:
        out[:, res.marker] = res.column

    elapsed = time.perf_counter() - start
    summary = summarize_resolutions(resolutions)
    logger.info(
        f"Resolved representatives in {format_seconds(elapsed)}: "
        f"{summary['cluster']} by cluster mates, {summary['hierarchy']} by hierarchy "
        f"ascent, {summary['frequency']} needed frequency sampling "
        f"({summary['sampled']} calls sampled)."
    )
    return out, resolutions


def propagate_to_members(
    genotypes: np.ndarray,
    clusters: ClusterAssignment,
    orientation: Literal["genotype", "allele"] = "genotype",
    logger: Optional[logging.Logger] = None,
) -> Tuple[np.ndarray, int]:
    """Fill every non-representative marker from its cluster's resolved representative.

    Orientation flags are computed on `genotypes`, i.e. after the representatives have been resolved. A member without any observed call has no orientation of its own and receives the representative's calls unflipped.

    Args:
        genotypes (np.ndarray): Normalized matrix whose representatives are complete. Not modified.
        clusters (ClusterAssignment): Cluster labels and representatives.
        orientation (Literal["genotype", "allele"]): Basis of the orientation flags.
        logger (logging.Logger | None): Logger for progress.

    Returns:
        Tuple[np.ndarray, int]: The completed copy and the number of calls copied.
    """
    logger = logger or logging.getLogger(__name__)
    out = genotypes.copy()
    flags = orientation_flags(out, basis=orientation)
    has_calls = (out >= 0).any(axis=0)

    n_filled = 0
    members = np.flatnonzero(~clusters.is_medoid & (out == Genotype.MISSING).any(axis=0))
    for m in members:
        r = clusters.medoid(m)
        js = np.flatnonzero(out[:, m] == Genotype.MISSING)
        target_flag = flags[m] if has_calls[m] else flags[r]
        calls = aligned_calls(out[js, r], flags[r], target_flag)
        out[js, m] = calls
        n_filled += int(np.count_nonzero(calls != Genotype.MISSING))

    logger.info(
        f"Propagated {n_filled} calls from representatives to {members.size} cluster members."
    )
    return out, n_filled
