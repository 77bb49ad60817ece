"""
Core algorithms for phylogenetic likelihood calculation.

This module provides low-level computational routines:

- **Likelihood calculation**: Felsenstein's pruning algorithm with gaps as
  missing data, and the Poisson Indel Process likelihood
- **Matrix operations**: Eigendecomposition and transition matrices
- **Cost functions**: model, tree and data bundled into a scored value

These are expert-level functions typically not needed by end users.
The high-level API (:mod:`pipml.api`) provides easier access.
"""

from pipml.core.cost import CostFunction, PIPCost, SubstitutionCost
from pipml.core.likelihood import PIPLikelihood, SitePatterns, SubstitutionLikelihood
from pipml.core.matrix import eigen_decompose_rev, matrix_exponential, transition_matrices

__all__ = [
    "CostFunction",
    "SubstitutionCost",
    "PIPCost",
    "SitePatterns",
    "SubstitutionLikelihood",
    "PIPLikelihood",
    "matrix_exponential",
    "eigen_decompose_rev",
    "transition_matrices",
]
