"""Genotype codes and the allele orientation model.

Genotypes are 0/1/2 integer codes (homozygous reference, heterozygous, homozygous alternate). Any negative value is a missing call and is normalized to ``Genotype.MISSING``.
"""

import logging
from enum import IntEnum
from typing import Literal

import numpy as np

from hierimpute.utils.exceptions import InvalidInputError

logger = logging.getLogger(__name__)


class Genotype(IntEnum):
    MISSING = -1
    HOMOZYGOUS_REF = 0
    HETEROZYGOUS = 1
    HOMOZYGOUS_ALT = 2


def validate_genotypes(X) -> np.ndarray:
    """Return a normalized int8 copy of a 0/1/2 genotype matrix.

    Args:
        X (array-like): Matrix of shape (n_samples, n_markers). Negative values are missing calls; NaN is accepted as missing for float input.

    Returns:
        np.ndarray: int8 copy with every missing call set to ``Genotype.MISSING``.

    Raises:
        InvalidInputError: If X is not 2D, is empty, or holds codes other than 0, 1, 2 or a missing value.
    """
    arr = np.asarray(X)
    if arr.ndim != 2:
        msg = f"Genotype matrix must be 2D (samples x markers), got shape {arr.shape}"
        logger.error(msg)
        raise InvalidInputError(msg)
    if arr.size == 0:
        msg = f"Genotype matrix is empty, got shape {arr.shape}"
        logger.error(msg)
        raise InvalidInputError(msg)
    if arr.dtype.kind not in "iuf":
        msg = f"Genotype matrix must be numeric 0/1/2 codes, got dtype {arr.dtype}"
        logger.error(msg)
        raise InvalidInputError(msg)

    work = arr.astype(np.float64, copy=True)
    missing = np.isnan(work) | (work < 0)
    observed = work[~missing]
    bad = ~np.isin(observed, (0.0, 1.0, 2.0))
    if bad.any():
        values = np.unique(observed[bad])[:10]
        msg = f"Genotype matrix holds codes outside {{0, 1, 2, <0 for missing}}: {values.tolist()}"
        logger.error(msg)
        raise InvalidInputError(msg)

    out = np.full(arr.shape, Genotype.MISSING, dtype=np.int8)
    out[~missing] = observed.astype(np.int8)
    return out


def genotype_counts(column: np.ndarray) -> np.ndarray:
    """Return observed counts of (HOMOZYGOUS_REF, HETEROZYGOUS, HOMOZYGOUS_ALT) for one marker."""
    observed = column[column >= 0]
    return np.bincount(observed.astype(np.intp), minlength=3)[:3]


def orientation_flags(
    genotypes: np.ndarray, basis: Literal["genotype", "allele"] = "genotype"
) -> np.ndarray:
    """Compute the orientation flag of every marker.

    A marker's flag is True when its reference is the minor side: the frequency of ``HOMOZYGOUS_REF`` among its observed calls is <= 0.5 (``basis="genotype"``), or the reference allele frequency is <= 0.5 (``basis="allele"``). Markers without observed calls get False.

    Args:
        genotypes (np.ndarray): Normalized matrix from ``validate_genotypes``.
        basis (Literal["genotype", "allele"]): Frequency the flag is derived from.

    Returns:
        np.ndarray: Boolean array of shape (n_markers,).

    Raises:
        ValueError: If `basis` is unknown.
    """
    n_ref = (genotypes == Genotype.HOMOZYGOUS_REF).sum(axis=0).astype(np.float64)
    n_het = (genotypes == Genotype.HETEROZYGOUS).sum(axis=0).astype(np.float64)
    n_obs = (genotypes >= 0).sum(axis=0).astype(np.float64)

    if basis == "genotype":
        num, den = n_ref, n_obs
    elif basis == "allele":
        num, den = 2.0 * n_ref + n_het, 2.0 * n_obs
    else:
        raise ValueError(f"basis must be 'genotype' or 'allele', got: {basis}")

    freq = np.divide(num, den, out=np.full(num.shape, np.nan), where=den > 0)
    return np.where(np.isnan(freq), False, freq <= 0.5)


def flip_genotypes(calls: np.ndarray) -> np.ndarray:
    """Swap homozygous codes (0 <-> 2); heterozygous and missing calls are unchanged."""
    return np.where(calls >= 0, 2 - calls, calls).astype(calls.dtype, copy=False)


def aligned_calls(calls: np.ndarray, source_flag: bool, target_flag: bool) -> np.ndarray:
    """Return `calls` from a source marker expressed in the target marker's orientation."""
    if bool(source_flag) != bool(target_flag):
        return flip_genotypes(calls)
    return calls
