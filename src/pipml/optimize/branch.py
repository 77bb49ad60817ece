"""
Branch length optimisation.

Branches are optimised one at a time with a bounded scalar search on
log(branch length), keeping the model and every other branch fixed.
"""

import logging
from typing import Iterable, Optional

import numpy as np
from scipy.optimize import minimize_scalar

from ..core.cost import CostFunction
from ..io.trees import MIN_BRANCH_LENGTH

logger = logging.getLogger(__name__)

MAX_BRANCH_LENGTH = 50.0


class BranchLengthOptimizer:
    """
    Coordinate-wise branch length optimisation.

    Parameters
    ----------
    min_length : float
        Lower bound on branch lengths
    max_length : float
        Upper bound on branch lengths
    xatol : float
        Absolute tolerance on log(branch length)
    """

    def __init__(
        self,
        min_length: float = MIN_BRANCH_LENGTH,
        max_length: float = MAX_BRANCH_LENGTH,
        xatol: float = 1e-3,
    ):
        self.bounds = (np.log(min_length), np.log(max_length))
        self.xatol = xatol

    def optimize_branch(self, cost: CostFunction, node_id: int) -> CostFunction:
        """
        Optimise the branch above ``node_id``.

        Returns the input unchanged unless a better length is found.
        """
        tree = cost.tree

        def neg_log_likelihood(log_length: float) -> float:
            score = cost.with_tree(tree.with_branch_length(node_id, np.exp(log_length))).score()
            return -score if np.isfinite(score) else np.inf

        result = minimize_scalar(
            neg_log_likelihood,
            bounds=self.bounds,
            method='bounded',
            options={'xatol': self.xatol},
        )
        candidate = cost.with_tree(tree.with_branch_length(node_id, float(np.exp(result.x))))
        if candidate.score() > cost.score():
            return candidate
        return cost

    def optimize(
        self, cost: CostFunction, node_ids: Optional[Iterable[int]] = None
    ) -> CostFunction:
        """
        One pass over the given branches (all non-root branches by default).

        Parameters
        ----------
        cost : CostFunction
            Starting cost
        node_ids : iterable of int, optional
            Nodes whose parent branch is optimised, in this order

        Returns
        -------
        CostFunction
            Cost with optimised branch lengths
        """
        if node_ids is None:
            node_ids = [node.id for node in cost.tree.preorder() if node.parent is not None]

        start = cost.score()
        for node_id in node_ids:
            cost = self.optimize_branch(cost, node_id)
        logger.debug("Branch lengths: lnL %.6f -> %.6f", start, cost.score())
        return cost
