"""Hierarchy of markers used as the neighbour search structure.

The hierarchy is an immutable tuple of nodes addressed by index. A node is either a ``LeafNode`` holding one marker or an ``InternalNode`` holding the ordered marker members of its subtree and a dissimilarity height in [0, 1] (typically ``1 - |r|`` of the merge). Heights never decrease from a leaf towards the root.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.cluster.hierarchy import is_valid_linkage

from hierimpute.utils.exceptions import InvalidInputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeafNode:
    marker: int
    parent: Optional[int] = None


@dataclass(frozen=True)
class InternalNode:
    members: Tuple[int, ...]
    height: float
    parent: Optional[int] = None


Node = Union[LeafNode, InternalNode]


class Hierarchy:
    """Rooted tree over markers with O(1) leaf lookup and parent-wise widening.

    Args:
        nodes (Sequence[Node]): Leaves and internal nodes. Parent links are node indices into this sequence.

    Raises:
        InvalidInputError: If a marker appears in more than one leaf, a height is outside [0, 1], a parent index is invalid, the parent links form a cycle, heights decrease towards the root, or the nodes do not form a single rooted tree.
    """

    def __init__(self, nodes: Sequence[Node]) -> None:
        self.nodes: Tuple[Node, ...] = tuple(nodes)
        self._leaf_index: Dict[int, int] = {}

        for idx, node in enumerate(self.nodes):
            if isinstance(node, LeafNode):
                if node.marker in self._leaf_index:
                    self._fail(f"Marker {node.marker} appears in more than one leaf.")
                self._leaf_index[node.marker] = idx
            elif isinstance(node, InternalNode):
                if not 0.0 <= node.height <= 1.0:
                    self._fail(
                        f"Node {idx} has height {node.height}; heights must lie in [0, 1]."
                    )
            else:
                self._fail(f"Node {idx} is not a LeafNode or InternalNode: {node!r}")

            if node.parent is not None:
                if not 0 <= node.parent < len(self.nodes) or node.parent == idx:
                    self._fail(f"Node {idx} has an invalid parent index {node.parent}.")
                if isinstance(self.nodes[node.parent], LeafNode):
                    self._fail(f"Node {idx} has a leaf as its parent.")

        self._check_acyclic()

        for idx, node in enumerate(self.nodes):
            if node.parent is not None and self.height(node.parent) < self.height(idx):
                self._fail(
                    f"Heights decrease towards the root above node {idx} "
                    f"({self.height(idx)} -> {self.height(node.parent)})."
                )

        roots = [idx for idx, node in enumerate(self.nodes) if node.parent is None]
        if len(self.nodes) > 1 and len(roots) != 1:
            self._fail(
                f"Hierarchy must have exactly one root, found {len(roots)}: {roots[:10]}"
            )

    @staticmethod
    def _fail(msg: str) -> None:
        logger.error(msg)
        raise InvalidInputError(msg)

    def _check_acyclic(self) -> None:
        """Follow parent links from every node once; 1 marks the current walk, 2 a finished node."""
        state = [0] * len(self.nodes)
        for start in range(len(self.nodes)):
            path = []
            node = start
            while node is not None and state[node] == 0:
                state[node] = 1
                path.append(node)
                node = self.nodes[node].parent
            if node is not None and state[node] == 1:
                self._fail(f"Parent links from node {start} form a cycle.")
            for n in path:
                state[n] = 2

    # ---------------- Navigation ----------------
    @property
    def n_leaves(self) -> int:
        return len(self._leaf_index)

    @property
    def markers(self) -> Tuple[int, ...]:
        return tuple(sorted(self._leaf_index))

    def leaf_of(self, marker: int) -> int:
        """Return the node index of the leaf holding `marker`.

        Raises:
            KeyError: If the marker is not in the hierarchy.
        """
        try:
            return self._leaf_index[int(marker)]
        except KeyError:
            raise KeyError(f"Marker {marker} is not a leaf of the hierarchy.") from None

    def widen(self, node: int) -> Optional[int]:
        """Return the parent node index, or None at the root."""
        return self.nodes[node].parent

    def height(self, node: int) -> float:
        n = self.nodes[node]
        return 0.0 if isinstance(n, LeafNode) else float(n.height)

    def members(self, node: int) -> Tuple[int, ...]:
        n = self.nodes[node]
        return (n.marker,) if isinstance(n, LeafNode) else n.members

    def ascend(self, marker: int) -> Iterator[int]:
        """Yield ancestor node indices of `marker` from its leaf's parent up to the root."""
        node = self.widen(self.leaf_of(marker))
        while node is not None:
            yield node
            node = self.widen(node)

    def validate_coverage(self, n_markers: int) -> None:
        """Check that the leaves are exactly the markers 0..n_markers-1.

        Raises:
            InvalidInputError: If any marker is missing from the hierarchy or a leaf refers to an unknown marker.
        """
        expected = set(range(n_markers))
        present = set(self._leaf_index)
        absent = sorted(expected - present)
        extra = sorted(present - expected)
        if absent:
            self._fail(
                f"Hierarchy does not cover {len(absent)} marker(s), e.g. {absent[:10]}"
            )
        if extra:
            self._fail(f"Hierarchy has leaves for unknown marker(s): {extra[:10]}")

    def __len__(self) -> int:
        return len(self.nodes)

    def __repr__(self) -> str:
        return f"Hierarchy(n_nodes={len(self.nodes)}, n_leaves={self.n_leaves})"

    # ---------------- Construction ----------------
    @classmethod
    def from_linkage(
        cls, Z: np.ndarray, labels: Optional[Sequence[int]] = None
    ) -> "Hierarchy":
        """Build a hierarchy from a SciPy linkage matrix.

        Row ``i`` of `Z` merges clusters ``Z[i, 0]`` and ``Z[i, 1]`` at distance ``Z[i, 2]`` into cluster ``n + i``, where ``n`` is the number of observations. Members of a merged node are the left subtree's members followed by the right subtree's.

        Args:
            Z (np.ndarray): Linkage matrix of shape (n - 1, 4) with distances in [0, 1].
            labels (Sequence[int] | None): Marker index of each observation. Defaults to ``range(n)``.

        Returns:
            Hierarchy: The converted hierarchy.

        Raises:
            InvalidInputError: If `Z` is not a valid linkage matrix, `labels` has the wrong length, or distances fall outside [0, 1].
        """
        Z = np.asarray(Z, dtype=np.float64)
        if Z.ndim == 2 and Z.shape == (0, 4):
            marker = 0 if labels is None else int(labels[0])
            return cls([LeafNode(marker=marker)])
        if Z.ndim != 2 or Z.shape[1] != 4 or not is_valid_linkage(Z):
            cls._fail(f"Not a valid linkage matrix (shape {Z.shape}).")

        n = Z.shape[0] + 1
        if labels is None:
            labels = range(n)
        labels = [int(m) for m in labels]
        if len(labels) != n:
            cls._fail(f"Linkage covers {n} observations but {len(labels)} labels were given.")

        nodes: list = [None] * (2 * n - 1)
        members: list = [None] * (2 * n - 1)
        for i, marker in enumerate(labels):
            members[i] = (marker,)

        parents = [None] * (2 * n - 1)
        for i, (left, right, dist, _) in enumerate(Z):
            merged = n + i
            left, right = int(left), int(right)
            if left == right:
                cls._fail(f"Linkage row {i} merges cluster {left} with itself.")
            for child in (left, right):
                if not 0 <= child < merged:
                    cls._fail(f"Linkage row {i} refers to cluster {child} before it is formed.")
                if parents[child] is not None:
                    cls._fail(f"Linkage row {i} reuses cluster {child}.")
            parents[left] = merged
            parents[right] = merged
            members[merged] = members[left] + members[right]

        for i, marker in enumerate(labels):
            nodes[i] = LeafNode(marker=marker, parent=parents[i])
        for i, row in enumerate(Z):
            merged = n + i
            nodes[merged] = InternalNode(
                members=members[merged], height=float(row[2]), parent=parents[merged]
            )

        return cls(nodes)
