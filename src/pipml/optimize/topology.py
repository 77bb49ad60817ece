"""
Topology search by subtree prune and regraft (SPR).

Each round visits every prunable subtree once, in an order drawn from the
run's random generator. A subtree is moved to the regraft position with the
best log-likelihood if that beats the current tree; the branches around an
accepted move are re-optimised at once and all branch lengths at the end of
the round.
"""

import logging
from typing import Optional

import numpy as np

from ..core.cost import CostFunction
from ..exceptions import NumericalError
from ..stopping import StoppingPolicy
from .branch import BranchLengthOptimizer

logger = logging.getLogger(__name__)

# A move must gain at least this much log-likelihood to be accepted
MIN_IMPROVEMENT = 1e-8


class SPRSearch:
    """
    Hill-climbing SPR search.

    Parameters
    ----------
    policy : StoppingPolicy
        When to stop repeating rounds
    rng : np.random.Generator
        Random source for the pruning order
    branch_optimizer : BranchLengthOptimizer, optional
        Branch length optimiser used after moves and rounds
    """

    def __init__(
        self,
        policy: StoppingPolicy,
        rng: np.random.Generator,
        branch_optimizer: Optional[BranchLengthOptimizer] = None,
    ):
        self.policy = policy
        self.rng = rng
        self.branch_optimizer = branch_optimizer or BranchLengthOptimizer()
        self.n_accepted = 0

    def best_regraft(self, cost: CostFunction, prune_id: int) -> CostFunction:
        """Best cost over all regraft targets of ``prune_id``, or ``cost`` itself."""
        best = cost
        for regraft_id in cost.tree.spr_candidates(prune_id):
            candidate = cost.with_tree(cost.tree.spr(prune_id, regraft_id))
            if candidate.score() > best.score() + MIN_IMPROVEMENT:
                best = candidate
        return best

    def run_round(self, cost: CostFunction) -> CostFunction:
        """One pass over all prunable subtrees followed by branch optimisation."""
        prune_ids = sorted(node.id for node in cost.tree.preorder() if node.parent is not None)
        for prune_id in self.rng.permutation(prune_ids):
            prune_id = int(prune_id)
            moved = self.best_regraft(cost, prune_id)
            if moved is cost:
                continue

            self.n_accepted += 1
            logger.debug(
                "SPR prune %d: lnL %.6f -> %.6f", prune_id, cost.score(), moved.score()
            )
            nodes = moved.tree.node_map()
            joint = nodes[prune_id].parent
            local = [prune_id, joint.id] + [child.id for child in joint.children]
            local = [node_id for node_id in dict.fromkeys(local) if nodes[node_id].parent is not None]
            cost = self.branch_optimizer.optimize(moved, local)

        return self.branch_optimizer.optimize(cost)

    def search(self, cost: CostFunction) -> tuple[CostFunction, float]:
        """
        Repeat SPR rounds until the stopping policy ends the search.

        Returns
        -------
        tuple
            (cost, log-likelihood) of the best tree found

        Raises
        ------
        NumericalError
            If the tree has fewer than 3 leaves (no SPR moves exist) or the
            starting score is not finite
        """
        if cost.tree.n_leaves < 3:
            raise NumericalError(
                f"No SPR moves exist for a tree with {cost.tree.n_leaves} leaves"
            )
        previous = cost.score()
        if not np.isfinite(previous):
            raise NumericalError(f"Topology search started from lnL = {previous}")

        rounds = 0
        while True:
            cost = self.run_round(cost)
            rounds += 1
            delta = cost.score() - previous
            logger.debug("SPR round %d: lnL = %.6f (delta %.3g)", rounds, cost.score(), delta)
            if not self.policy.should_continue(rounds, delta):
                break
            previous = cost.score()

        return cost, cost.score()


def search_topology(
    cost: CostFunction, policy: StoppingPolicy, rng: np.random.Generator
) -> tuple[CostFunction, float]:
    """
    Search tree space by SPR moves.

    Parameters
    ----------
    cost : CostFunction
        Starting cost
    policy : StoppingPolicy
        Inner stopping policy
    rng : np.random.Generator
        Random source; consumed, never copied

    Returns
    -------
    tuple
        (cost, log-likelihood) after the search
    """
    search = SPRSearch(policy, rng)
    cost, score = search.search(cost)
    logger.debug("Topology search accepted %d SPR moves", search.n_accepted)
    return cost, score
