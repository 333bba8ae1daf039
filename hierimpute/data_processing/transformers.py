# Standard library imports
import logging
from typing import Literal

# Third-party imports
import numpy as np
from sklearn.base import BaseEstimator, TransformerMixin

from hierimpute.impute.hierarchical.genotypes import Genotype
from hierimpute.utils.misc import validate_input_type


class SimGenotypeDataTransformer(BaseEstimator, TransformerMixin):
    """Simulates missing genotypes on a 2D 0/1/2 matrix for imputation benchmarking.

    This transformer masks a proportion of observed genotypes in the input matrix X, setting them to the missing code. The masking can be uniform over observed calls or inversely proportional to genotype frequencies, with an option to boost the likelihood of masking heterozygous calls. No column or row is ever left without an observed call.

    Args:
        prop_missing (float): Proportion of *observed* calls to mask (0..1).
        strategy (Literal["random", "random_inv_genotype"]): Strategy name.
        missing_val (int): Missing code written into masked cells. Defaults to -1.
        seed (int | None): RNG seed.
        het_boost (float): Multiplier for heterozygotes in inv-genotype mode.
        logger (logging.Logger | None): Logger for messages.

    Attributes:
        original_missing_mask_ (np.ndarray): Cells missing in the input.
        sim_missing_mask_ (np.ndarray): Cells masked by this transformer.
        all_missing_mask_ (np.ndarray): Union of both.
    """

    def __init__(
        self,
        *,
        prop_missing: float = 0.1,
        strategy: Literal["random", "random_inv_genotype"] = "random",
        missing_val: int = Genotype.MISSING,
        seed: int | None = None,
        het_boost: float = 1.0,
        logger: logging.Logger | None = None,
    ):
        self.prop_missing = prop_missing
        self.strategy = strategy
        self.missing_val = missing_val
        self.seed = seed
        self.het_boost = het_boost
        self.logger = logger

    def fit(self, X, y=None) -> "SimGenotypeDataTransformer":
        """Draw the simulated-missing mask for X.

        Args:
            X (array-like): (n_samples, n_markers) 0/1/2 codes, <0 as missing.
            y: Ignored.

        Raises:
            ValueError: If X is not 2D, `prop_missing` is outside [0, 1], or `strategy` is unknown.
        """
        logger = self.logger or logging.getLogger(__name__)
        X = validate_input_type(X, return_type="array")
        if X.ndim != 2:
            msg = f"X must be 2D, got shape {X.shape}"
            logger.error(msg)
            raise ValueError(msg)
        if not 0.0 <= float(self.prop_missing) <= 1.0:
            msg = f"prop_missing must be in [0, 1], got {self.prop_missing}"
            logger.error(msg)
            raise ValueError(msg)

        self.rng_ = np.random.default_rng(self.seed)
        self.original_missing_mask_ = X < 0

        if self.strategy == "random":
            mask = self._simulate_random(self.original_missing_mask_)
        elif self.strategy == "random_inv_genotype":
            mask = self._simulate_inv_genotype(X, self.original_missing_mask_)
        else:
            msg = f"strategy must be one of {{'random','random_inv_genotype'}}, got: {self.strategy}"
            logger.error(msg)
            raise ValueError(msg)

        mask &= ~self.original_missing_mask_
        self.sim_missing_mask_ = self._validate_mask(mask)
        self.all_missing_mask_ = self.original_missing_mask_ | self.sim_missing_mask_

        logger.info(
            f"Masked {int(self.sim_missing_mask_.sum())} observed calls "
            f"({self.prop_missing_real:.2%} of the matrix) using strategy: {self.strategy}"
        )
        return self

    def transform(self, X) -> np.ndarray:
        """Return a copy of X with the simulated cells set to the missing code."""
        Xt = validate_input_type(X, return_type="array")
        Xt[self.sim_missing_mask_] = self.missing_val
        return Xt

    # ---- strategies ----
    def _simulate_random(self, original_mask: np.ndarray) -> np.ndarray:
        rows, cols = np.where(~original_mask)
        n_known = len(rows)
        mask = np.zeros_like(original_mask, dtype=bool)

        n_to_mask = int(np.floor(float(self.prop_missing) * n_known))
        if n_to_mask <= 0:
            return mask

        idx = self.rng_.choice(n_known, size=n_to_mask, replace=False)
        mask[rows[idx], cols[idx]] = True
        return mask

    def _simulate_inv_genotype(
        self, X: np.ndarray, original_mask: np.ndarray
    ) -> np.ndarray:
        """Mask observed calls with probability inversely proportional to their genotype frequency."""
        rows, cols = np.where(~original_mask)
        n_known = len(rows)
        mask = np.zeros_like(original_mask, dtype=bool)

        n_to_mask = int(np.floor(float(self.prop_missing) * n_known))
        if n_to_mask <= 0:
            return mask

        geno_known = X[rows, cols].astype(int)
        cnt = np.bincount(geno_known, minlength=3).astype(float)
        freqs = cnt / cnt.sum()

        inv = 1.0 / (freqs[geno_known] + 1e-12)
        if self.het_boost != 1.0:
            inv = inv * np.where(geno_known == Genotype.HETEROZYGOUS, self.het_boost, 1.0)

        probs = inv / inv.sum()
        idx = self.rng_.choice(n_known, size=n_to_mask, replace=False, p=probs)
        mask[rows[idx], cols[idx]] = True
        return mask

    def _validate_mask(self, mask: np.ndarray) -> np.ndarray:
        """Keep at least one observed call in every column and row that had one."""
        observed = ~self.original_missing_mask_

        for c in np.flatnonzero((observed & ~mask).sum(axis=0) == 0):
            idxs = np.flatnonzero(observed[:, c])
            if idxs.size:
                mask[idxs[int(self.rng_.integers(0, idxs.size))], c] = False

        for r in np.flatnonzero((observed & ~mask).sum(axis=1) == 0):
            idxs = np.flatnonzero(observed[r, :])
            if idxs.size:
                mask[r, idxs[int(self.rng_.integers(0, idxs.size))]] = False
        return mask

    @property
    def missing_count(self) -> int:
        """Count of masked genotypes."""
        return int(np.sum(self.sim_missing_mask_))

    @property
    def prop_missing_real(self) -> float:
        """Proportion of the matrix masked by the simulation."""
        return float(np.sum(self.sim_missing_mask_) / self.sim_missing_mask_.size)
