from typing import Iterable, Tuple

import numpy as np

from hierimpute.impute.hierarchical.genotypes import Genotype, aligned_calls


def fill_from_neighbors(
    target: np.ndarray,
    candidates: Iterable[int],
    genotypes: np.ndarray,
    target_flag: bool,
    flags: np.ndarray,
) -> Tuple[np.ndarray, bool]:
    """Copy orientation-corrected calls from neighbour markers into the missing slots of `target`.

    Candidates are used in order: a later candidate only fills positions that all earlier ones left missing. Iteration stops as soon as nothing is missing.

    Args:
        target (np.ndarray): Current calls of the marker being resolved. Not modified.
        candidates (Iterable[int]): Neighbour marker indices in priority order.
        genotypes (np.ndarray): Read-only normalized genotype matrix (samples x markers).
        target_flag (bool): Orientation flag of the target marker.
        flags (np.ndarray): Orientation flags of all markers.

    Returns:
        Tuple[np.ndarray, bool]: The filled copy of `target` and whether any missing calls remain.
    """
    filled = target.copy()
    missing = np.flatnonzero(filled == Genotype.MISSING)

    for marker in candidates:
        if missing.size == 0:
            break
        calls = aligned_calls(genotypes[missing, marker], flags[marker], target_flag)
        filled[missing] = calls
        missing = missing[calls == Genotype.MISSING]

    return filled, bool(missing.size)
