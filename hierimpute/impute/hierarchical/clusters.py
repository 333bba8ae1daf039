import logging
from typing import Dict, Hashable, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd

from hierimpute.utils.exceptions import InvalidInputError

logger = logging.getLogger(__name__)


class ClusterAssignment:
    """Cluster label of every marker plus one representative (medoid) marker per cluster.

    Args:
        labels (Sequence[Hashable]): Cluster label of each marker, in column order.
        medoids (Sequence[int]): Column indices of the representative markers.

    Raises:
        InvalidInputError: If a label is missing, a medoid index is out of range or repeated, a cluster has no or several medoids.
    """

    def __init__(self, labels: Sequence[Hashable], medoids: Sequence[int]) -> None:
        self.labels = pd.Series(list(labels)).to_numpy()
        missing = np.flatnonzero(pd.isna(self.labels))
        if missing.size:
            self._fail(f"Markers without a cluster label: {missing[:10].tolist()}")
        self.n_markers = int(self.labels.shape[0])

        medoids = [int(m) for m in medoids]
        if len(set(medoids)) != len(medoids):
            self._fail("Representative markers must be unique.")
        bad = [m for m in medoids if not 0 <= m < self.n_markers]
        if bad:
            self._fail(f"Representative marker indices out of range: {bad[:10]}")

        self.medoid_of: Dict[Hashable, int] = {}
        for m in medoids:
            label = self.labels[m]
            if label in self.medoid_of:
                self._fail(
                    f"Cluster {label!r} has more than one representative "
                    f"({self.medoid_of[label]} and {m})."
                )
            self.medoid_of[label] = m

        unrepresented = sorted(set(self.labels.tolist()) - set(self.medoid_of), key=str)
        if unrepresented:
            self._fail(
                f"{len(unrepresented)} cluster(s) have no representative, e.g. {unrepresented[:10]}"
            )

        self.is_medoid = np.zeros(self.n_markers, dtype=bool)
        self.is_medoid[medoids] = True

        codes, _ = pd.factorize(self.labels)
        self._members = {
            code: np.flatnonzero(codes == code) for code in np.unique(codes)
        }
        self._codes = codes

    @staticmethod
    def _fail(msg: str) -> None:
        logger.error(msg)
        raise InvalidInputError(msg)

    @classmethod
    def from_mapping(
        cls,
        clusters: Mapping[Hashable, Hashable],
        medoids: Sequence[Hashable],
        marker_names: Sequence[Hashable],
    ) -> "ClusterAssignment":
        """Build an assignment from marker-name keyed inputs.

        Args:
            clusters (Mapping[Hashable, Hashable]): Marker name to cluster label.
            medoids (Sequence[Hashable]): Names of the representative markers.
            marker_names (Sequence[Hashable]): Marker names in column order.

        Raises:
            InvalidInputError: If a marker has no cluster label or a medoid name is unknown.
        """
        position = {name: i for i, name in enumerate(marker_names)}
        absent = [name for name in marker_names if name not in clusters]
        if absent:
            cls._fail(f"{len(absent)} marker(s) have no cluster label, e.g. {absent[:10]}")
        unknown = [name for name in medoids if name not in position]
        if unknown:
            cls._fail(f"Unknown representative marker name(s): {unknown[:10]}")
        return cls(
            [clusters[name] for name in marker_names], [position[m] for m in medoids]
        )

    @property
    def medoids(self) -> Tuple[int, ...]:
        return tuple(int(m) for m in np.flatnonzero(self.is_medoid))

    def members(self, marker: int) -> np.ndarray:
        """Return all markers sharing `marker`'s cluster, in column order (including `marker`)."""
        return self._members[self._codes[marker]]

    def medoid(self, marker: int) -> int:
        """Return the representative marker of `marker`'s cluster."""
        return self.medoid_of[self.labels[marker]]

    def validate_size(self, n_markers: int) -> None:
        """Check that one label was given per genotype matrix column.

        Raises:
            InvalidInputError: On a length mismatch.
        """
        if self.n_markers != n_markers:
            self._fail(
                f"Cluster labels cover {self.n_markers} markers but the genotype matrix has {n_markers}."
            )

    def __repr__(self) -> str:
        return (
            f"ClusterAssignment(n_markers={self.n_markers}, "
            f"n_clusters={len(self.medoid_of)})"
        )
