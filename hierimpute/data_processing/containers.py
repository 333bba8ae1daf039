from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Literal

from hierimpute.data_processing.config import apply_dot_overrides


@dataclass
class IOConfig:
    """I/O configuration.

    This class contains configuration options for input/output operations, including file prefixes, verbosity, random seed, and parallel execution.

    Attributes:
        prefix (str): Prefix for output files. Default is "hierimpute".
        verbose (bool): If True, enables verbose logging. Default is False.
        debug (bool): If True, enables debug mode. Default is False.
        seed (int | None): Random seed for reproducibility. Default is None.
        n_jobs (int): Number of parallel workers resolving representative markers. -1 uses all cores. Default is 1.
        backend (Literal["loky", "threading", "sequential"]): joblib backend for the worker pool. Default is "loky".
    """

    prefix: str = "hierimpute"
    verbose: bool = False
    debug: bool = False
    seed: int | None = None
    n_jobs: int = 1
    backend: Literal["loky", "threading", "sequential"] = "loky"


@dataclass
class HierAlgoConfig:
    """Algorithmic knobs for ImputeHierarchical.

    Attributes:
        min_abs_cor (float): Minimum absolute correlation for neighbour markers. The hierarchy is ascended while the group height is <= 1 - min_abs_cor. Default is 0.1.
        orientation (Literal["genotype", "allele"]): How the per-marker orientation flag is computed. "genotype" uses the homozygous-reference genotype frequency, "allele" uses the reference allele frequency. Default is "genotype".
        rng_strategy (Literal["per_marker", "shared"]): Random stream layout for the frequency fallback. "per_marker" spawns an independent stream per marker and is reproducible for any number of workers. "shared" consumes a single stream in column order and requires n_jobs == 1.
    """

    min_abs_cor: float = 0.1
    orientation: Literal["genotype", "allele"] = "genotype"
    rng_strategy: Literal["per_marker", "shared"] = "per_marker"


@dataclass
class SimConfig:
    """Configuration for simulated missingness used to evaluate imputation.

    Attributes:
        simulate_missing (bool): If True, mask a proportion of observed calls before imputing and score them afterwards.
        sim_strategy (Literal["random", "random_inv_genotype"]): Masking strategy.
        sim_prop (float): Proportion of observed calls to mask.
        het_boost (float): Weight multiplier for heterozygous calls under "random_inv_genotype".
    """

    simulate_missing: bool = False
    sim_strategy: Literal["random", "random_inv_genotype"] = "random"
    sim_prop: float = 0.10
    het_boost: float = 1.0


@dataclass
class HierImputeConfig:
    """Top-level configuration for ImputeHierarchical.

    The configuration is organized into sections, each represented by a dataclass.

    Attributes:
        io (IOConfig): I/O and execution configuration.
        algo (HierAlgoConfig): Algorithmic configuration.
        sim (SimConfig): Simulated-missingness evaluation configuration.
    """

    io: IOConfig = field(default_factory=IOConfig)
    algo: HierAlgoConfig = field(default_factory=HierAlgoConfig)
    sim: SimConfig = field(default_factory=SimConfig)

    @classmethod
    def from_preset(
        cls,
        preset: Literal["fast", "balanced", "thorough"] = "balanced",
    ) -> "HierImputeConfig":
        """Construct a preset configuration.

        Presets trade wall-clock time against evaluation output. None of them changes the correlation threshold.

        Args:
            preset (Literal["fast", "balanced", "thorough"]): One of {"fast", "balanced", "thorough"}.

        Returns:
            HierImputeConfig: Populated config instance.

        Raises:
            ValueError: If `preset` is unknown.
        """
        if preset not in {"fast", "balanced", "thorough"}:
            raise ValueError(f"Unknown preset: {preset}")

        cfg = cls()
        cfg.algo.rng_strategy = "per_marker"

        if preset == "fast":
            cfg.io.n_jobs = -1
            cfg.sim.simulate_missing = False
        elif preset == "balanced":
            cfg.io.n_jobs = 1
            cfg.sim.simulate_missing = False
        else:
            cfg.io.n_jobs = 1
            cfg.io.verbose = True
            cfg.sim.simulate_missing = True
            cfg.sim.sim_strategy = "random"
            cfg.sim.sim_prop = 0.1

        return cfg

    def apply_overrides(self, overrides: Dict[str, Any] | None) -> "HierImputeConfig":
        """Apply dot-key overrides (e.g., {'algo.min_abs_cor': 0.25}) and return the updated config.

        Unknown keys raise KeyError.
        """
        return apply_dot_overrides(self, overrides)

    def to_dict(self) -> Dict[str, Any]:
        """Return the config as a nested dictionary."""
        return asdict(self)
