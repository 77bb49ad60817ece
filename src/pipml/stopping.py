"""
Stopping policies for the co-optimisation loop and its inner phases.

A policy answers one question after every completed iteration: should the
loop go on? It sees the number of iterations completed so far and the score
gain of the last iteration. The outer loop starts from a previous score of
-inf, so its first gain is +inf and an epsilon rule always lets the first
iteration through. A negative gain fails ``delta > epsilon`` and therefore
stops the loop; a regression is treated as convergence, not retried.
"""

import math
from dataclasses import dataclass
from typing import Optional

DEFAULT_INNER_EPSILON = 1e-3


@dataclass(frozen=True)
class StoppingPolicy:
    """Base class of the three policy variants."""

    def should_continue(self, iteration_count: int, score_delta: float) -> bool:
        raise NotImplementedError

    @property
    def epsilon(self) -> Optional[float]:
        return None

    @property
    def max_iterations(self) -> Optional[int]:
        return None

    def inner(self) -> "Epsilon":
        """
        Policy for the per-phase loops.

        The outer epsilon is kept and the outer iteration cap is dropped. A
        pure iteration-cap policy gives the inner phases a built-in epsilon
        rather than letting them run unbounded.
        """
        if self.epsilon is not None:
            return Epsilon(self.epsilon)
        return Epsilon(DEFAULT_INNER_EPSILON)

    @staticmethod
    def from_config(max_iterations: Optional[int], epsilon: Optional[float]) -> "StoppingPolicy":
        """
        Pick the policy variant for the given thresholds.

        A cap of None or 0 means no cap.

        Raises
        ------
        ValueError
            If neither threshold is set
        """
        capped = bool(max_iterations)
        if capped and epsilon is not None:
            return EpsilonOrMaxIterations(max_iterations, epsilon)
        if capped:
            return MaxIterations(max_iterations)
        if epsilon is not None:
            return Epsilon(epsilon)
        raise ValueError("A stopping policy needs an epsilon or a positive iteration cap")


def _check_epsilon(epsilon: float) -> None:
    if not (math.isfinite(epsilon) and epsilon > 0):
        raise ValueError(f"epsilon must be positive, got {epsilon}")


def _check_cap(max_iterations: int) -> None:
    if max_iterations < 1:
        raise ValueError(f"max_iterations must be at least 1, got {max_iterations}")


@dataclass(frozen=True)
class Epsilon(StoppingPolicy):
    """Continue while the last gain exceeds ``epsilon_value``."""

    epsilon_value: float

    def __post_init__(self):
        _check_epsilon(self.epsilon_value)

    @property
    def epsilon(self) -> float:
        return self.epsilon_value

    def should_continue(self, iteration_count: int, score_delta: float) -> bool:
        return score_delta > self.epsilon_value

    def __str__(self) -> str:
        return f"epsilon {self.epsilon_value:g}"


@dataclass(frozen=True)
class MaxIterations(StoppingPolicy):
    """Continue until ``n`` iterations have completed."""

    n: int

    def __post_init__(self):
        _check_cap(self.n)

    @property
    def max_iterations(self) -> int:
        return self.n

    def should_continue(self, iteration_count: int, score_delta: float) -> bool:
        return iteration_count < self.n

    def __str__(self) -> str:
        return f"max {self.n} iterations"


@dataclass(frozen=True)
class EpsilonOrMaxIterations(StoppingPolicy):
    """Continue while under the cap and the last gain exceeds epsilon."""

    n: int
    epsilon_value: float

    def __post_init__(self):
        _check_cap(self.n)
        _check_epsilon(self.epsilon_value)

    @property
    def epsilon(self) -> float:
        return self.epsilon_value

    @property
    def max_iterations(self) -> int:
        return self.n

    def should_continue(self, iteration_count: int, score_delta: float) -> bool:
        return iteration_count < self.n and score_delta > self.epsilon_value

    def __str__(self) -> str:
        return f"max {self.n} iterations or epsilon {self.epsilon_value:g}"
