"""
Co-optimisation driver.

The driver alternates two phases until its stopping policy says stop:

1. the model phase optimises model parameters (and frequencies) on the
   current tree;
2. the topology phase searches tree space under the current model and
   returns the new cost together with its score.

After each outer iteration the policy sees the number of completed
iterations and the score gain over the previous iteration. The previous
score starts at -inf, so the first iteration always completes. Phase output
is always taken, even if it scores below its input.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

import numpy as np

from .core.cost import CostFunction
from .exceptions import NumericalError, PipmlError
from .io.trees import Tree
from .models.ids import FrequencyOptimisation
from .optimize.model import optimise_model
from .optimize.topology import search_topology
from .stopping import StoppingPolicy

logger = logging.getLogger(__name__)

MODEL_PHASE = "model"
TOPOLOGY_PHASE = "topology"

ModelOptimiser = Callable[[CostFunction, FrequencyOptimisation, StoppingPolicy], CostFunction]
TopologySearch = Callable[
    [CostFunction, StoppingPolicy, np.random.Generator], tuple[CostFunction, float]
]


@dataclass(frozen=True)
class IterationRecord:
    """Score of one phase of one outer iteration."""

    iteration: int
    phase: str
    score_before: float
    score_after: float

    @property
    def delta(self) -> float:
        return self.score_after - self.score_before

    def to_dict(self) -> dict:
        return {
            'iteration': self.iteration,
            'phase': self.phase,
            'score_before': self.score_before,
            'score_after': self.score_after,
        }


@dataclass
class DriverResult:
    """
    Outcome of a co-optimisation run.

    Attributes
    ----------
    score : float
        Final log-likelihood
    cost : CostFunction
        Final cost object
    iterations : int
        Number of completed outer iterations
    records : list[IterationRecord]
        Per-phase scores, two per iteration
    """

    score: float
    cost: CostFunction
    iterations: int
    records: list[IterationRecord] = field(default_factory=list)

    @property
    def tree(self) -> Tree:
        return self.cost.tree


class CoOptimisationDriver:
    """
    Alternating model / topology optimisation.

    Parameters
    ----------
    cost : CostFunction
        Starting cost (model, tree and data)
    policy : StoppingPolicy
        Outer stopping policy; the phases get ``policy.inner()``
    freq_opt : FrequencyOptimisation
        Frequency handling passed to the model phase
    rng : np.random.Generator
        Random source handed to every topology search call
    model_optimiser : callable, optional
        ``(cost, freq_opt, policy) -> cost``
    topology_search : callable, optional
        ``(cost, policy, rng) -> (cost, score)``
    """

    def __init__(
        self,
        cost: CostFunction,
        policy: StoppingPolicy,
        freq_opt: FrequencyOptimisation,
        rng: np.random.Generator,
        model_optimiser: ModelOptimiser = optimise_model,
        topology_search: TopologySearch = search_topology,
    ):
        self.cost = cost
        self.policy = policy
        self.freq_opt = freq_opt
        self.rng = rng
        self.model_optimiser = model_optimiser
        self.topology_search = topology_search

    @staticmethod
    def _checked(score: float, iteration: int, phase: str) -> float:
        if not np.isfinite(score):
            raise NumericalError(
                f"Log-likelihood is {score}", iteration=iteration, phase=phase
            )
        return float(score)

    def _run_phase(self, iteration: int, phase: str, step: Callable):
        try:
            return step()
        except PipmlError as e:
            raise e.add_context(iteration, phase)
        except (ArithmeticError, ValueError, np.linalg.LinAlgError) as e:
            raise NumericalError(str(e), iteration=iteration, phase=phase) from e

    def run(self) -> DriverResult:
        """
        Run the loop to completion.

        Returns
        -------
        DriverResult
            Final score, cost and per-phase records

        Raises
        ------
        PipmlError
            Any library error from a phase, with iteration and phase attached
        NumericalError
            If a phase produces a non-finite score, or fails arithmetically
        """
        inner = self.policy.inner()
        cost = self.cost
        previous = -np.inf
        iteration = 0
        records = []

        logger.info("Optimising with stopping rule: %s", self.policy)
        while True:
            current = iteration + 1

            before = self._run_phase(current, MODEL_PHASE, cost.score)
            cost = self._run_phase(
                current, MODEL_PHASE, lambda: self.model_optimiser(cost, self.freq_opt, inner)
            )
            after = self._checked(self._run_phase(current, MODEL_PHASE, cost.score), current, MODEL_PHASE)
            records.append(IterationRecord(current, MODEL_PHASE, before, after))
            logger.info("Iteration %d, model phase: lnL %.6f -> %.6f", current, before, after)

            cost, score = self._run_phase(
                current, TOPOLOGY_PHASE, lambda: self.topology_search(cost, inner, self.rng)
            )
            score = self._checked(score, current, TOPOLOGY_PHASE)
            records.append(IterationRecord(current, TOPOLOGY_PHASE, after, score))
            logger.info("Iteration %d, topology phase: lnL %.6f -> %.6f", current, after, score)

            delta = score - previous
            iteration = current
            if not self.policy.should_continue(iteration, delta):
                break
            previous = score

        logger.info("Finished after %d iterations, lnL = %.6f", iteration, score)
        return DriverResult(score=score, cost=cost, iterations=iteration, records=records)
