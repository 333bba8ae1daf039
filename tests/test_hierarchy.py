from __future__ import annotations

import numpy as np
import pytest

from hierimpute.impute.hierarchical.hierarchy import Hierarchy, InternalNode, LeafNode
from hierimpute.utils.exceptions import InvalidInputError

Z = np.array([[1, 2, 0.05, 2], [0, 3, 0.10, 3]], dtype=float)


def test_from_linkage_builds_nodes_by_index() -> None:
    h = Hierarchy.from_linkage(Z)

    assert len(h) == 5
    assert h.n_leaves == 3
    assert h.markers == (0, 1, 2)
    assert h.leaf_of(1) == 1
    assert h.widen(1) == 3
    assert h.members(3) == (1, 2)
    assert h.members(4) == (0, 1, 2)
    assert h.members(0) == (0,)
    assert h.height(0) == 0.0
    assert h.height(3) == pytest.approx(0.05)
    assert h.height(4) == pytest.approx(0.10)
    assert h.widen(4) is None


def test_from_linkage_with_labels() -> None:
    h = Hierarchy.from_linkage(Z, labels=[7, 8, 9])

    assert h.markers == (7, 8, 9)
    assert h.members(h.widen(h.leaf_of(8))) == (8, 9)


def test_from_linkage_single_marker() -> None:
    h = Hierarchy.from_linkage(np.empty((0, 4)))

    assert h.n_leaves == 1
    assert list(h.ascend(0)) == []


@pytest.mark.parametrize(
    "bad",
    [
        np.array([[0, 1, 0.2]]),
        np.array([[0, 0, 0.2, 2]]),
        np.array([[0, 1, 1.5, 2]]),
    ],
)
def test_from_linkage_rejects_invalid(bad) -> None:
    with pytest.raises(InvalidInputError):
        Hierarchy.from_linkage(bad)


def test_from_linkage_rejects_wrong_label_count() -> None:
    with pytest.raises(InvalidInputError):
        Hierarchy.from_linkage(Z, labels=[0, 1])


def test_ascend_walks_to_root_with_increasing_height() -> None:
    h = Hierarchy.from_linkage(Z)

    assert list(h.ascend(2)) == [3, 4]
    assert list(h.ascend(0)) == [4]
    heights = [h.height(n) for n in h.ascend(1)]
    assert heights == sorted(heights)


def test_leaf_of_unknown_marker() -> None:
    h = Hierarchy.from_linkage(Z)

    with pytest.raises(KeyError):
        h.leaf_of(9)


def test_validate_coverage() -> None:
    h = Hierarchy.from_linkage(Z)

    h.validate_coverage(3)
    with pytest.raises(InvalidInputError, match="does not cover"):
        h.validate_coverage(4)
    with pytest.raises(InvalidInputError, match="unknown marker"):
        h.validate_coverage(2)


def test_duplicate_leaf_rejected() -> None:
    with pytest.raises(InvalidInputError, match="more than one leaf"):
        Hierarchy([LeafNode(0, parent=2), LeafNode(0, parent=2), InternalNode((0,), 0.1)])


def test_height_out_of_range_rejected() -> None:
    with pytest.raises(InvalidInputError, match="heights must lie"):
        Hierarchy([LeafNode(0, parent=1), InternalNode((0,), 1.5)])


def test_decreasing_height_rejected() -> None:
    nodes = [
        LeafNode(0, parent=2),
        LeafNode(1, parent=2),
        InternalNode((0, 1), 0.5, parent=3),
        InternalNode((0, 1), 0.2),
    ]
    with pytest.raises(InvalidInputError, match="decrease"):
        Hierarchy(nodes)


def test_cycle_rejected() -> None:
    nodes = [
        LeafNode(0, parent=1),
        InternalNode((0,), 0.2, parent=2),
        InternalNode((0,), 0.2, parent=1),
    ]
    with pytest.raises(InvalidInputError, match="cycle"):
        Hierarchy(nodes)


@pytest.mark.parametrize(
    "nodes",
    [
        [LeafNode(0, parent=5)],
        [LeafNode(0, parent=0)],
        [LeafNode(0, parent=1), LeafNode(1)],
    ],
)
def test_bad_parent_rejected(nodes) -> None:
    with pytest.raises(InvalidInputError):
        Hierarchy(nodes)


def test_nodes_are_immutable() -> None:
    leaf = LeafNode(0)
    with pytest.raises(AttributeError):
        leaf.marker = 1  # type: ignore[misc]


@pytest.mark.parametrize(
    "rows",
    [
        [[0, 0, 0.2, 2]],
        [[0, 1, 0.1, 2], [0, 2, 0.2, 3]],
        [[0, 3, 0.1, 2], [1, 2, 0.2, 3]],
    ],
)
def test_from_linkage_rejects_self_merge_and_reuse(rows) -> None:
    with pytest.raises(InvalidInputError):
        Hierarchy.from_linkage(np.array(rows, dtype=float))


def test_forest_rejected() -> None:
    nodes = [
        LeafNode(0, parent=2),
        LeafNode(1, parent=2),
        InternalNode((0, 1), 0.2),
        LeafNode(2),
    ]
    with pytest.raises(InvalidInputError, match="exactly one root"):
        Hierarchy(nodes)


def test_deep_chain_builds_and_ascends() -> None:
    n = 2000
    rows = [[0, 1, 0.9 / n, 2]]
    for i in range(1, n - 1):
        rows.append([n + i - 1, i + 1, 0.9 * (i + 1) / n, i + 2])

    h = Hierarchy.from_linkage(np.array(rows, dtype=float))

    assert h.n_leaves == n
    path = list(h.ascend(0))
    assert len(path) == n - 1
    assert h.widen(path[-1]) is None
    assert len(h.members(path[-1])) == n
