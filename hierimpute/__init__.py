## HierImpute: hierarchy-guided imputation of missing SNP genotypes

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("HierImpute")
except PackageNotFoundError:
    __version__ = "0.0.0"

from hierimpute.data_processing.containers import (
    HierAlgoConfig,
    HierImputeConfig,
    IOConfig,
    SimConfig,
)
from hierimpute.impute.hierarchical.batch import impute_medoids, propagate_to_members
from hierimpute.impute.hierarchical.clusters import ClusterAssignment
from hierimpute.impute.hierarchical.genotypes import (
    Genotype,
    flip_genotypes,
    orientation_flags,
)
from hierimpute.impute.hierarchical.hierarchy import Hierarchy, InternalNode, LeafNode
from hierimpute.impute.hierarchical.imputers.hier_impute import (
    ImputeHierarchical,
    impute_snp_matrix,
)
from hierimpute.impute.hierarchical.resolver import (
    MarkerResolution,
    ResolutionStage,
    resolve_marker,
)
from hierimpute.utils.exceptions import InvalidInputError

__all__ = [
    "ImputeHierarchical",  # Imputer class and functional entry points
    "impute_snp_matrix",
    "impute_medoids",
    "propagate_to_members",
    "resolve_marker",
    "Hierarchy",  # Data model
    "LeafNode",
    "InternalNode",
    "ClusterAssignment",
    "Genotype",
    "MarkerResolution",
    "ResolutionStage",
    "orientation_flags",
    "flip_genotypes",
    "HierImputeConfig",  # Configs
    "IOConfig",
    "HierAlgoConfig",
    "SimConfig",
    "InvalidInputError",
    "__version__",
]
