#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""HierImpute CLI

Argument-precedence model:
    code defaults  <  preset (--preset)  <  YAML (--config)  <  explicit CLI flags  <  --set k=v

Notes
-----
- YAML entries override the preset (a 'preset' key in YAML is ignored with a warning).
- CLI flags only override when explicitly provided (argparse uses SUPPRESS).
- --set key=value has the highest precedence and applies dot-path overrides.

Examples
--------
hierimpute --input geno.csv --clusters clusters.tsv --linkage tree.npy --prefix run1
hierimpute --input data.vcf.gz --popmap pops.popmap --clusters clusters.tsv \
    --linkage tree.npy --n-jobs 4 --seed 42 --verbose
hierimpute --input geno.csv --clusters clusters.tsv --linkage tree.npy \
    --preset thorough --set algo.min_abs_cor=0.25
"""

from __future__ import annotations

import argparse
import ast
import logging
import sys
import time
from functools import wraps
from pathlib import Path
from typing import Callable, List, Optional, ParamSpec, Sequence, Tuple, TypeVar, cast

import numpy as np
import pandas as pd
import yaml
from snpio import GenotypeEncoder, VCFReader

from hierimpute.data_processing.config import (
    apply_dot_overrides,
    dataclass_to_yaml,
    load_yaml_to_dataclass,
    save_dataclass_yaml,
)
from hierimpute.data_processing.containers import HierImputeConfig
from hierimpute.impute.hierarchical.clusters import ClusterAssignment
from hierimpute.impute.hierarchical.hierarchy import Hierarchy
from hierimpute.impute.hierarchical.imputers.hier_impute import ImputeHierarchical
from hierimpute.utils.misc import format_seconds

CLUSTER_COLUMNS: Tuple[str, ...] = ("marker", "cluster", "medoid")
TRUTHY: Tuple[str, ...] = ("1", "1.0", "true", "t", "yes", "y")

P = ParamSpec("P")
R = TypeVar("R")


# ----------------------------- CLI Utilities ----------------------------- #
def _print_version() -> None:
    """Log the HierImpute version."""
    from hierimpute import __version__ as version

    logging.info(f"Using HierImpute version: {version}")


def _without_own_handlers(record: logging.LogRecord) -> bool:
    logger = logging.getLogger(record.name)
    return logger is logging.getLogger() or not logger.handlers


def _configure_logging(
    verbose: bool, debug: bool = False, log_file: Optional[str] = None
) -> None:
    """Configure root logger.

    Args:
        verbose (bool): If True, INFO; else ERROR.
        debug (bool): If True, DEBUG. Takes precedence over `verbose`.
        log_file (Optional[str]): Optional file to tee logs to.
    """
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.ERROR

    # Loggers with their own console handler (the imputer's) still reach the log file.
    console = logging.StreamHandler(sys.stdout)
    console.addFilter(_without_own_handlers)
    handlers: List[logging.Handler] = [console]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="w", encoding="utf-8"))
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )


def _parse_seed(seed_arg: str) -> Optional[int]:
    """Parse --seed argument into an int or None."""
    s = seed_arg.strip().lower()
    if s == "random":
        return None
    if s == "deterministic":
        return 42
    try:
        return int(seed_arg)
    except ValueError as e:
        raise argparse.ArgumentTypeError(
            "Invalid --seed. Use 'random', 'deterministic', or an integer."
        ) from e


def _parse_overrides(pairs: list[str]) -> dict:
    """Parse --set key=value into typed values via literal_eval."""
    out: dict = {}
    for kv in pairs or []:
        if "=" not in kv:
            raise argparse.ArgumentTypeError(f"--set expects key=value, got '{kv}'")
        k, v = kv.split("=", 1)
        v = v.strip()
        try:
            out[k.strip()] = ast.literal_eval(v)
        except (ValueError, SyntaxError):
            out[k.strip()] = v  # raw string fallback
    return out


def _args_to_cli_overrides(args: argparse.Namespace) -> dict:
    """Convert explicitly provided CLI flags into config dot-overrides."""
    overrides: dict = {}

    # IO / execution
    if hasattr(args, "prefix"):
        overrides["io.prefix"] = args.prefix
    if getattr(args, "verbose", False):
        overrides["io.verbose"] = True
    if getattr(args, "debug", False):
        overrides["io.debug"] = True
    if hasattr(args, "n_jobs"):
        overrides["io.n_jobs"] = int(args.n_jobs)
    if hasattr(args, "seed"):
        overrides["io.seed"] = _parse_seed(args.seed)
    if hasattr(args, "backend"):
        overrides["io.backend"] = args.backend

    # Algorithm
    if hasattr(args, "min_abs_cor"):
        overrides["algo.min_abs_cor"] = float(args.min_abs_cor)
    if hasattr(args, "rng_strategy"):
        overrides["algo.rng_strategy"] = args.rng_strategy
    if hasattr(args, "orientation"):
        overrides["algo.orientation"] = args.orientation

    # Simulation
    if hasattr(args, "simulate_missing"):
        overrides["sim.simulate_missing"] = bool(args.simulate_missing)
    if hasattr(args, "sim_strategy"):
        overrides["sim.sim_strategy"] = args.sim_strategy
    if hasattr(args, "sim_prop"):
        overrides["sim.sim_prop"] = float(args.sim_prop)

    return overrides


def log_run_time(fn: Callable[P, R]) -> Callable[P, R]:
    """Decorator to log the wall-clock time of an imputation run."""

    @wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        start = time.perf_counter()
        try:
            result = fn(*args, **kwargs)
        except Exception:
            elapsed = time.perf_counter() - start
            logging.error(
                f"Imputation failed after {elapsed:0.2f}s ({format_seconds(elapsed)}).",
                exc_info=True,
            )
            raise
        elapsed = time.perf_counter() - start
        logging.info(
            f"Imputation finished in {elapsed:0.2f}s ({format_seconds(elapsed)})."
        )
        return result

    return cast(Callable[P, R], wrapper)


# ------------------------------ Data loading ----------------------------- #
def load_genotypes(
    input_path: str,
    popmap_path: str | None = None,
    force_popmap: bool = False,
    verbose: bool = False,
) -> pd.DataFrame:
    """Load a samples x markers 0/1/2 matrix from VCF or delimited text.

    VCF input is read with SNPio and encoded to 0/1/2 (missing as -9, read as missing). CSV/TSV input must carry a header of marker names and sample IDs in the first column.

    Raises:
        ValueError: If the file extension is not recognized.
    """
    path = Path(input_path)
    name = path.name.lower()

    if name.endswith((".vcf", ".vcf.gz")):
        logging.info("Loading VCF and popmap data...")
        gd = VCFReader(
            filename=str(path),
            popmapfile=popmap_path,
            force_popmap=force_popmap,
            verbose=verbose,
            prefix=f"snpio_{path.name.split('.')[0]}",
        )
        X = np.asarray(GenotypeEncoder(gd).genotypes_012)
        markers = getattr(gd, "marker_names", None)
        if markers is None or len(markers) != X.shape[1]:
            markers = [f"locus_{i}" for i in range(X.shape[1])]
        df = pd.DataFrame(X, index=list(gd.samples), columns=[str(m) for m in markers])
    elif name.endswith((".csv", ".tsv", ".txt")):
        logging.info(f"Loading genotype matrix from {path}...")
        sep = "," if name.endswith(".csv") else "\t"
        df = pd.read_csv(path, sep=sep, index_col=0)
        df.columns = [str(c) for c in df.columns]
    else:
        raise ValueError(
            f"Could not infer input format from file extension: {input_path}. "
            "Use .vcf, .vcf.gz, .csv, or .tsv."
        )

    logging.info(f"Loaded {df.shape[0]} samples x {df.shape[1]} markers.")
    return df


def load_clusters(path: str, marker_names: Sequence[str]) -> ClusterAssignment:
    """Read a cluster table with columns marker, cluster, medoid.

    The medoid column is truthy (1/true/yes) on exactly one row per cluster.

    Raises:
        ValueError: If a required column is absent.
    """
    sep = "," if str(path).lower().endswith(".csv") else "\t"
    df = pd.read_csv(path, sep=sep, dtype={"marker": str})
    df.columns = [str(c).strip().lower() for c in df.columns]

    absent = [c for c in CLUSTER_COLUMNS if c not in df.columns]
    if absent:
        raise ValueError(f"Cluster file {path} lacks required column(s): {absent}")

    is_medoid = df["medoid"].astype(str).str.strip().str.lower().isin(TRUTHY)
    mapping = dict(zip(df["marker"], df["cluster"]))
    medoids = df.loc[is_medoid, "marker"].tolist()
    logging.info(
        f"Loaded {df['cluster'].nunique()} clusters with {len(medoids)} representatives."
    )
    return ClusterAssignment.from_mapping(mapping, medoids, list(marker_names))


def load_hierarchy(path: str) -> Hierarchy:
    """Read a SciPy linkage matrix saved with ``numpy.save``."""
    Z = np.load(path)
    hierarchy = Hierarchy.from_linkage(Z)
    logging.info(f"Loaded hierarchy with {hierarchy.n_leaves} leaves.")
    return hierarchy


# ------------------------------ Core Runner ------------------------------ #
def build_effective_config(args: argparse.Namespace) -> HierImputeConfig:
    """Build the effective config.

    Precedence (lowest -> highest):
        defaults < preset (--preset) < YAML (--config) < explicit CLI flags < --set
    """
    if hasattr(args, "preset"):
        cfg = HierImputeConfig.from_preset(args.preset)
        logging.info(f"Initialized config from '{args.preset}' preset.")
    else:
        cfg = HierImputeConfig()
        logging.info("Initialized config from dataclass defaults (no preset).")

    yaml_path = getattr(args, "config", None)
    if yaml_path:
        cfg = load_yaml_to_dataclass(
            yaml_path, HierImputeConfig, base=cfg, yaml_preset_behavior="ignore"
        )
        logging.info(f"Loaded YAML config from {yaml_path}.")

    cli_overrides = _args_to_cli_overrides(args)
    if cli_overrides:
        cfg = apply_dot_overrides(cfg, cli_overrides)

    user_overrides = _parse_overrides(getattr(args, "set", []))
    if user_overrides:
        cfg = apply_dot_overrides(cfg, user_overrides)

    return cfg


@log_run_time
def run_imputation(
    genotypes: pd.DataFrame,
    clusters: ClusterAssignment,
    hierarchy: Hierarchy,
    cfg: HierImputeConfig,
) -> Tuple[pd.DataFrame, ImputeHierarchical]:
    """Fit and run ImputeHierarchical."""
    logging.info("Running ImputeHierarchical ...")
    model = ImputeHierarchical(genotypes, clusters, hierarchy, config=cfg)
    model.fit()
    X_imputed = model.transform()
    logging.info("ImputeHierarchical completed.")
    return X_imputed, model


def write_outputs(
    X_imputed: pd.DataFrame, model: ImputeHierarchical, prefix: str
) -> Path:
    """Write the imputed matrix and, when available, evaluation metrics.

    Returns:
        Path: Path of the imputed CSV.
    """
    root = Path(f"{prefix}_output")
    name = Path(prefix).name

    imp_dir = root / "imputed"
    imp_dir.mkdir(parents=True, exist_ok=True)
    out_csv = imp_dir / f"{name}_imputed.csv"
    X_imputed.to_csv(out_csv)
    logging.info(f"Wrote imputed genotypes to {out_csv}")

    if model.metrics_:
        met_dir = root / "metrics"
        met_dir.mkdir(parents=True, exist_ok=True)
        out_yaml = met_dir / f"{name}_metrics.yaml"
        report = {"metrics": model.metrics_, "summary": model.summary_}
        with open(out_yaml, "w", encoding="utf-8") as f:
            yaml.safe_dump(report, f, sort_keys=False)
        logging.info(f"Wrote evaluation metrics to {out_yaml}")

    return out_csv


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hierimpute",
        description="Impute missing SNP genotypes from correlated neighbour markers using a precomputed marker hierarchy and marker clusters. Handle configuration via presets, YAML, and CLI flags.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        usage="%(prog)s [options]",
    )

    # ----------------------------- Required I/O ----------------------------- #
    parser.add_argument(
        "--input",
        default=argparse.SUPPRESS,
        help="Genotype file: VCF (.vcf/.vcf.gz) or a 0/1/2 matrix (.csv/.tsv) with marker names as header and sample IDs in the first column.",
    )
    parser.add_argument(
        "--popmap",
        default=argparse.SUPPRESS,
        help="Population map for VCF input. Two-column tab-delimited file with sample IDs and population IDs.",
    )
    parser.add_argument(
        "--force-popmap",
        action="store_true",
        default=False,
        help="Require popmap (error if absent).",
    )
    parser.add_argument(
        "--clusters",
        default=argparse.SUPPRESS,
        help="Cluster table (.tsv/.csv) with columns marker, cluster, medoid.",
    )
    parser.add_argument(
        "--linkage",
        default=argparse.SUPPRESS,
        help="SciPy linkage matrix (.npy) over the markers in column order, with heights 1 - |r|.",
    )
    parser.add_argument(
        "--prefix",
        default=argparse.SUPPRESS,
        help="Output file prefix.",
    )

    # ---------------------- Generic Config Inputs -------------------------- #
    parser.add_argument(
        "--config",
        default=argparse.SUPPRESS,
        help="YAML config file.",
    )
    parser.add_argument(
        "--preset",
        choices=("fast", "balanced", "thorough"),
        default=argparse.SUPPRESS,
        help="If provided, initialize the config from this preset; otherwise start from dataclass defaults.",
    )
    parser.add_argument(
        "--set",
        action="append",
        default=argparse.SUPPRESS,
        help="Dot-key overrides, e.g. --set algo.min_abs_cor=0.25",
    )
    parser.add_argument(
        "--print-config",
        action="store_true",
        help="Print the effective config and exit.",
    )
    parser.add_argument(
        "--dump-config",
        default=argparse.SUPPRESS,
        help="Write the effective config YAML to this path and exit.",
    )

    # ------------------------------ Algorithm ------------------------------ #
    parser.add_argument(
        "--min-abs-cor",
        type=float,
        default=argparse.SUPPRESS,
        help="Minimum absolute correlation of usable neighbour groups (0-1).",
    )
    parser.add_argument(
        "--orientation",
        choices=("genotype", "allele"),
        default=argparse.SUPPRESS,
        help="Frequency basis of the per-marker orientation flag.",
    )
    parser.add_argument(
        "--rng-strategy",
        choices=("per_marker", "shared"),
        default=argparse.SUPPRESS,
        help="Random stream layout for frequency sampling. 'shared' requires --n-jobs 1.",
    )
    parser.add_argument(
        "--n-jobs",
        type=int,
        default=argparse.SUPPRESS,
        help="Parallel workers for representative markers. -1 uses all cores.",
    )
    parser.add_argument(
        "--backend",
        choices=("loky", "threading", "sequential"),
        default=argparse.SUPPRESS,
        help="joblib backend for the worker pool.",
    )

    # ------------------------- Simulation Controls ------------------------ #
    parser.add_argument(
        "--simulate-missing",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Mask a proportion of observed calls and report imputation accuracy on them.",
    )
    parser.add_argument(
        "--sim-strategy",
        choices=("random", "random_inv_genotype"),
        default=argparse.SUPPRESS,
        help="Missing-data simulation strategy.",
    )
    parser.add_argument(
        "--sim-prop",
        type=float,
        default=argparse.SUPPRESS,
        help="Proportion of observed calls to mask during simulation (0-1).",
    )

    # --------------------------- Seed & logging ---------------------------- #
    parser.add_argument(
        "--seed",
        default=argparse.SUPPRESS,
        help="Random seed: 'random', 'deterministic', or an integer.",
    )
    parser.add_argument("--verbose", action="store_true", help="Info-level logging.")
    parser.add_argument("--debug", action="store_true", help="Debug-level logging.")
    parser.add_argument(
        "--log-file", default=argparse.SUPPRESS, help="Also write logs to a file."
    )

    # ------------------------------ Safety/UX ------------------------------ #
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse args and load and validate inputs, but skip imputation.",
    )
    parser.add_argument(
        "--version", action="store_true", help="Print HierImpute version and exit."
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if getattr(args, "version", False):
        from hierimpute import __version__

        print(f"hierimpute {__version__}")
        return 0

    _configure_logging(
        verbose=getattr(args, "verbose", False),
        debug=getattr(args, "debug", False),
        log_file=getattr(args, "log_file", None),
    )

    logging.info("Starting HierImpute imputation...")
    _print_version()

    try:
        cfg = build_effective_config(args)
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))
        return 2

    did_io = False
    if getattr(args, "print_config", False):
        print(dataclass_to_yaml(cfg))
        did_io = True
    if hasattr(args, "dump_config"):
        save_dataclass_yaml(cfg, args.dump_config)
        logging.info(f"Saved config to {args.dump_config}")
        did_io = True
    if did_io:
        return 0

    missing = [
        flag
        for flag, attr in (
            ("--input", "input"),
            ("--clusters", "clusters"),
            ("--linkage", "linkage"),
        )
        if not hasattr(args, attr)
    ]
    if missing:
        parser.error(f"Missing required argument(s): {' '.join(missing)}")
        return 2

    try:
        genotypes = load_genotypes(
            args.input,
            popmap_path=getattr(args, "popmap", None),
            force_popmap=bool(getattr(args, "force_popmap", False)),
            verbose=cfg.io.verbose,
        )
    except ValueError as e:
        parser.error(str(e))
        return 2

    clusters = load_clusters(args.clusters, genotypes.columns)
    hierarchy = load_hierarchy(args.linkage)

    if getattr(args, "dry_run", False):
        clusters.validate_size(genotypes.shape[1])
        hierarchy.validate_coverage(genotypes.shape[1])
        logging.info("Dry run complete. Exiting without imputing.")
        return 0

    X_imputed, model = run_imputation(genotypes, clusters, hierarchy, cfg)
    write_outputs(X_imputed, model, cfg.io.prefix)

    logging.info(f"Imputation summary: {model.summary_}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
