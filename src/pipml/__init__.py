"""
pipml: maximum-likelihood phylogenetic inference with indel-aware models.

Trees are inferred by alternating model-parameter optimisation and SPR
topology search until the log-likelihood stops improving. Gaps are either
modelled by the Poisson Indel Process (PIP) or treated as missing data.

Quick Start
-----------
>>> from pipml import infer
>>> report = infer("HKY", "alignment.fasta", tree_file="tree.nwk", seed=1)
>>> print(report.summary())
>>> print(report.final_tree_newick())

Examples
--------
>>> # Gaps as missing data, no iteration cap
>>> from pipml import RunConfig, run_inference
>>> config = RunConfig.build("GTR", "data.fasta", gap_handling="missing",
...                          max_iterations=0, epsilon=1e-3)
>>> report = run_inference(config)
"""

__version__ = "0.1.0"

from .api import infer, run_inference
from .config import RunConfig
from .dispatch import build_cost
from .driver import CoOptimisationDriver, DriverResult, IterationRecord
from .exceptions import (
    ConfigurationError,
    DataError,
    NumericalError,
    OutputError,
    PipmlError,
    UnsupportedCombination,
)
from .io.sequences import Alignment
from .io.trees import Tree
from .models.ids import FrequencyOptimisation, GapHandling, SubstModelId
from .report import RunReport
from .stopping import Epsilon, EpsilonOrMaxIterations, MaxIterations, StoppingPolicy

__all__ = [
    "infer",
    "run_inference",
    "RunConfig",
    "RunReport",
    "build_cost",
    "CoOptimisationDriver",
    "DriverResult",
    "IterationRecord",
    "StoppingPolicy",
    "Epsilon",
    "MaxIterations",
    "EpsilonOrMaxIterations",
    "SubstModelId",
    "GapHandling",
    "FrequencyOptimisation",
    "Alignment",
    "Tree",
    "PipmlError",
    "ConfigurationError",
    "UnsupportedCombination",
    "DataError",
    "NumericalError",
    "OutputError",
    "__version__",
]
