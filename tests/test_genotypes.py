from __future__ import annotations

import numpy as np
import pytest

from hierimpute.impute.hierarchical.genotypes import (
    Genotype,
    aligned_calls,
    flip_genotypes,
    genotype_counts,
    orientation_flags,
    validate_genotypes,
)
from hierimpute.utils.exceptions import InvalidInputError


def test_validate_genotypes_normalizes_missing_codes() -> None:
    X = np.array([[0.0, np.nan], [-9.0, 2.0], [1.0, -1.0]])

    out = validate_genotypes(X)

    assert out.dtype == np.int8
    np.testing.assert_array_equal(out, [[0, -1], [-1, 2], [1, -1]])


def test_validate_genotypes_returns_copy() -> None:
    X = np.array([[0, -9], [1, 2]])

    out = validate_genotypes(X)
    out[0, 0] = 2

    assert X[0, 0] == 0
    assert X[0, 1] == -9


@pytest.mark.parametrize(
    "X",
    [
        np.array([0, 1, 2]),
        np.zeros((0, 3)),
        np.array([[0, 3], [1, 2]]),
        np.array([[0.5, 1.0]]),
        np.array([["0", "1"]]),
    ],
)
def test_validate_genotypes_rejects_bad_input(X) -> None:
    with pytest.raises(InvalidInputError):
        validate_genotypes(X)


def test_genotype_counts_ignores_missing() -> None:
    counts = genotype_counts(np.array([0, 0, 1, -1, 2, -1], dtype=np.int8))
    np.testing.assert_array_equal(counts, [2, 1, 1])


@pytest.mark.parametrize(
    "column, expected",
    [
        ([0, 0, 1], False),  # reference homozygote is the majority
        ([0, 1, 2], True),
        ([0, 2, -1], True),  # exactly 0.5 counts as minor
        ([-1, -1, -1], False),
    ],
)
def test_orientation_flags_genotype_basis(column, expected) -> None:
    X = np.array(column, dtype=np.int8)[:, None]
    assert bool(orientation_flags(X)[0]) is expected


def test_orientation_flags_allele_basis_differs() -> None:
    # Genotype frequency of 0 is 0.5; reference allele frequency is 5/8.
    X = np.array([[0], [0], [1], [2]], dtype=np.int8)

    assert bool(orientation_flags(X, basis="genotype")[0]) is True
    assert bool(orientation_flags(X, basis="allele")[0]) is False


def test_orientation_flags_unknown_basis() -> None:
    with pytest.raises(ValueError):
        orientation_flags(np.zeros((2, 2), dtype=np.int8), basis="haplotype")


def test_flip_genotypes_swaps_homozygotes_only() -> None:
    calls = np.array([0, 1, 2, -1], dtype=np.int8)

    flipped = flip_genotypes(calls)

    np.testing.assert_array_equal(flipped, [2, 1, 0, -1])
    assert flipped.dtype == np.int8
    np.testing.assert_array_equal(calls, [0, 1, 2, -1])


def test_aligned_calls_flips_only_on_orientation_mismatch() -> None:
    calls = np.array([Genotype.HOMOZYGOUS_REF, Genotype.HETEROZYGOUS], dtype=np.int8)

    np.testing.assert_array_equal(aligned_calls(calls, True, True), [0, 1])
    np.testing.assert_array_equal(aligned_calls(calls, False, False), [0, 1])
    np.testing.assert_array_equal(aligned_calls(calls, True, False), [2, 1])
    np.testing.assert_array_equal(aligned_calls(calls, False, True), [2, 1])
