"""
Optimization routines for maximum likelihood inference.

- **Model parameters**: L-BFGS-B on substitution and indel rates, with
  optional frequency estimation
- **Branch lengths**: bounded scalar search per branch
- **Topology**: subtree prune and regraft (SPR) hill climbing
- **Starting trees**: neighbor joining on corrected distances
"""

from pipml.optimize.branch import BranchLengthOptimizer
from pipml.optimize.distance_init import neighbor_joining_tree
from pipml.optimize.model import ModelOptimizer, optimise_model
from pipml.optimize.topology import SPRSearch, search_topology

__all__ = [
    "ModelOptimizer",
    "optimise_model",
    "BranchLengthOptimizer",
    "SPRSearch",
    "search_topology",
    "neighbor_joining_tree",
]
