# Standard library
import copy
from typing import Any, Dict, List, Literal, Optional, Union

# Third-party
import numpy as np
import pandas as pd
from sklearn.exceptions import NotFittedError
from sklearn.metrics import (
    accuracy_score,
    classification_report,
    f1_score,
    precision_score,
    recall_score,
)
from snpio.utils.logging import LoggerManager

# Project
from hierimpute.data_processing.config import (
    apply_dot_overrides,
    flatten_dict,
    load_yaml_to_dataclass,
)
from hierimpute.data_processing.containers import HierImputeConfig
from hierimpute.data_processing.transformers import SimGenotypeDataTransformer
from hierimpute.impute.hierarchical.batch import (
    impute_medoids,
    propagate_to_members,
    summarize_resolutions,
    validate_inputs,
)
from hierimpute.impute.hierarchical.clusters import ClusterAssignment
from hierimpute.impute.hierarchical.genotypes import Genotype
from hierimpute.impute.hierarchical.hierarchy import Hierarchy
from hierimpute.impute.hierarchical.resolver import MarkerResolution
from hierimpute.utils.logging_utils import configure_logger


def ensure_hier_config(
    config: Union[HierImputeConfig, dict, str, None],
) -> HierImputeConfig:
    """Return a concrete HierImputeConfig (dataclass, dict, YAML path, or None).

    A dict may carry an optional top-level 'preset' key; the remaining nested keys are applied on top of that preset.

    Args:
        config (Union[HierImputeConfig, dict, str, None]): Configuration input.

    Returns:
        HierImputeConfig: A concrete config instance.

    Raises:
        TypeError: If the input type is not supported.
    """
    if config is None:
        return HierImputeConfig()
    if isinstance(config, HierImputeConfig):
        return config
    if isinstance(config, str):
        return load_yaml_to_dataclass(config, HierImputeConfig)
    if isinstance(config, dict):
        config = copy.deepcopy(config)
        preset = config.pop("preset", None)
        base = HierImputeConfig.from_preset(preset) if preset else HierImputeConfig()
        return apply_dot_overrides(base, flatten_dict(config))

    raise TypeError(
        f"config must be HierImputeConfig, dict, YAML path, or None, but got: {type(config)}."
    )


class ImputeHierarchical:
    """Impute missing SNP calls from correlated neighbour markers in a marker hierarchy.

    Representative (medoid) markers are resolved first: calls are copied from identical markers of the same cluster, then from ever wider groups of the hierarchy while their height stays within ``1 - min_abs_cor``, and any remainder is sampled from the marker's own genotype frequencies. Every other marker then takes the calls of its cluster's representative. Copies between markers with opposite orientation swap the homozygous codes.

    Genotypes are 0/1/2 (homozygous reference, heterozygous, homozygous alternate) with negative values as missing. With ``sim.simulate_missing`` enabled, a proportion of observed calls is masked in ``fit()`` and scored after ``transform()``.

    Example:
        >>> imputer = ImputeHierarchical(X, clusters, hierarchy, overrides={"io.seed": 1})
        >>> X_imputed = imputer.fit_transform()
    """

    def __init__(
        self,
        genotypes: Union[np.ndarray, pd.DataFrame],
        clusters: ClusterAssignment,
        hierarchy: Hierarchy,
        *,
        config: Optional[Union[HierImputeConfig, dict, str]] = None,
        overrides: Optional[dict] = None,
    ) -> None:
        """Initialize the imputer from a unified config.

        Args:
            genotypes (np.ndarray | pd.DataFrame): 0/1/2 matrix (samples x markers). Never modified.
            clusters (ClusterAssignment): Cluster labels and representatives.
            hierarchy (Hierarchy): Hierarchy whose leaves are exactly the markers.
            config (HierImputeConfig | dict | str | None): Configuration as a dataclass, nested dict, or YAML path. If None, defaults are used.
            overrides (dict | None): Flat dot-key overrides applied last, e.g. {'algo.min_abs_cor': 0.25}.
        """
        cfg = ensure_hier_config(config)
        if overrides:
            cfg = apply_dot_overrides(cfg, overrides)
        self.cfg = cfg

        self.genotypes = genotypes
        self.clusters = clusters
        self.hierarchy = hierarchy
        self.prefix = cfg.io.prefix
        self.verbose = cfg.io.verbose
        self.debug = cfg.io.debug

        # Logger
        logman = LoggerManager(
            __name__, prefix=self.prefix, verbose=self.verbose, debug=self.debug
        )
        self.logger = configure_logger(
            logman.get_logger(), verbose=self.verbose, debug=self.debug
        )

        self.min_abs_cor = float(cfg.algo.min_abs_cor)

        # State
        self.is_fit_: bool = False
        self.X_: Optional[np.ndarray] = None
        self.X_masked_: Optional[np.ndarray] = None
        self.sim_mask_: Optional[np.ndarray] = None
        self.X_imputed_: Optional[np.ndarray] = None
        self.resolutions_: List[MarkerResolution] = []
        self.summary_: Dict[str, int] = {}
        self.metrics_: Dict[str, Any] = {}

    def fit(self) -> "ImputeHierarchical":
        """Validate the inputs and, if configured, simulate missing calls for evaluation.

        Returns:
            ImputeHierarchical: self.

        Raises:
            InvalidInputError: If genotypes, clusters, hierarchy, or parameters are invalid.
        """
        X = validate_inputs(
            self.genotypes,
            self.clusters,
            self.hierarchy,
            self.min_abs_cor,
            self.cfg.io.n_jobs,
            self.cfg.algo.rng_strategy,
            self.logger,
        )
        self.X_ = X
        self.X_masked_ = X
        self.sim_mask_ = None

        if self.cfg.sim.simulate_missing:
            sim = SimGenotypeDataTransformer(
                prop_missing=self.cfg.sim.sim_prop,
                strategy=self.cfg.sim.sim_strategy,
                seed=self.cfg.io.seed,
                het_boost=self.cfg.sim.het_boost,
                logger=self.logger,
            )
            self.X_masked_ = sim.fit_transform(X)
            self.sim_mask_ = sim.sim_missing_mask_

        n_missing = int(np.count_nonzero(self.X_masked_ == Genotype.MISSING))
        self.logger.info(
            f"Fit complete. {self.X_.shape[0]} samples x {self.X_.shape[1]} markers, "
            f"{n_missing} missing calls, {len(self.clusters.medoid_of)} clusters."
        )
        self.is_fit_ = True
        return self

    def transform(self) -> Union[np.ndarray, pd.DataFrame]:
        """Impute every missing call.

        Returns:
            np.ndarray | pd.DataFrame: Completed 0/1/2 matrix of the input's shape; a DataFrame with the input's index and columns when a DataFrame was given.

        Raises:
            NotFittedError: If ``fit()`` has not been called.
        """
        if not self.is_fit_:
            msg = "Model is not fitted. Call `fit()` before `transform()`."
            self.logger.error(msg)
            raise NotFittedError(msg)

        if self.sim_mask_ is not None:
            X_sim, _, _ = self._impute(self.X_masked_)
            self._evaluate(X_sim)

        # Observed calls are returned unchanged; the masked run only feeds the metrics.
        X_imp, self.resolutions_, n_propagated = self._impute(self.X_)
        self.summary_ = summarize_resolutions(self.resolutions_)
        self.summary_["propagated"] = n_propagated
        self.X_imputed_ = X_imp

        out = X_imp.astype(np.int8)
        if isinstance(self.genotypes, pd.DataFrame):
            return pd.DataFrame(
                out, index=self.genotypes.index, columns=self.genotypes.columns
            )
        return out

    def _impute(self, X: np.ndarray):
        """Resolve the representatives of `X`, then propagate them to cluster members."""
        X_medoids, resolutions = impute_medoids(
            X,
            self.clusters,
            self.hierarchy,
            self.min_abs_cor,
            n_jobs=self.cfg.io.n_jobs,
            seed=self.cfg.io.seed,
            rng_strategy=self.cfg.algo.rng_strategy,
            backend=self.cfg.io.backend,
            orientation=self.cfg.algo.orientation,
            verbose=self.verbose,
            logger=self.logger,
        )
        X_imp, n_propagated = propagate_to_members(
            X_medoids, self.clusters, self.cfg.algo.orientation, self.logger
        )
        return X_imp, resolutions, n_propagated

    def fit_transform(self) -> Union[np.ndarray, pd.DataFrame]:
        """Convenience method that calls `fit()` then `transform()`."""
        self.fit()
        return self.transform()

    def _evaluate(self, X_imp: np.ndarray) -> None:
        """Score imputed calls at the simulated-missing cells against the masked truth."""
        y_true = self.X_[self.sim_mask_].astype(int)
        y_pred = X_imp[self.sim_mask_].astype(int)

        if y_true.size == 0:
            self.metrics_ = {"n_masked": 0}
            self.logger.warning("No observed calls were masked; nothing to evaluate.")
            return

        labels = [0, 1, 2]
        self.metrics_ = {
            "n_masked": int(y_true.size),
            "accuracy": float(accuracy_score(y_true, y_pred)),
            "f1": float(
                f1_score(y_true, y_pred, average="macro", labels=labels, zero_division=0)
            ),
            "precision": float(
                precision_score(
                    y_true, y_pred, average="macro", labels=labels, zero_division=0
                )
            ),
            "recall": float(
                recall_score(
                    y_true, y_pred, average="macro", labels=labels, zero_division=0
                )
            ),
        }
        self.logger.info(f"Evaluation on simulated missing calls: {self.metrics_}")
        self.logger.debug(
            "\n"
            + classification_report(
                y_true,
                y_pred,
                labels=labels,
                target_names=["hom-ref", "het", "hom-alt"],
                zero_division=0,
            )
        )


def impute_snp_matrix(
    genotypes: Union[np.ndarray, pd.DataFrame],
    clusters: ClusterAssignment,
    hierarchy: Hierarchy,
    min_abs_cor: float = 0.1,
    n_jobs: int = 1,
    *,
    seed: Optional[int] = None,
    rng_strategy: Literal["per_marker", "shared"] = "per_marker",
    backend: Literal["loky", "threading", "sequential"] = "loky",
    orientation: Literal["genotype", "allele"] = "genotype",
    verbose: bool = False,
) -> Union[np.ndarray, pd.DataFrame]:
    """Impute a SNP matrix in one call: resolve representatives, then propagate to cluster members.

    Functional counterpart of ``ImputeHierarchical(...).fit_transform()`` without simulated-missingness evaluation. Note the default ``min_abs_cor=0.1`` here versus 0.25 for ``impute_medoids``.

    Returns:
        np.ndarray | pd.DataFrame: Completed matrix in the input's container type.
    """
    overrides = {
        "algo.min_abs_cor": min_abs_cor,
        "algo.rng_strategy": rng_strategy,
        "algo.orientation": orientation,
        "io.n_jobs": n_jobs,
        "io.seed": seed,
        "io.backend": backend,
        "io.verbose": verbose,
    }
    return ImputeHierarchical(
        genotypes, clusters, hierarchy, overrides=overrides
    ).fit_transform()
