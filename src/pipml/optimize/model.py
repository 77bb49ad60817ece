"""
Model parameter optimisation.

Substitution and indel parameters are optimised jointly with L-BFGS-B in
log space; branch lengths and topology stay fixed. Estimated frequencies
enter the same parameter vector as log-ratios against the last state.
"""

import logging

import numpy as np
from scipy.optimize import minimize

from ..core.cost import CostFunction
from ..exceptions import NumericalError
from ..models.ids import FrequencyOptimisation
from ..stopping import StoppingPolicy

logger = logging.getLogger(__name__)

# Bounds on rate parameters (kappa, exchangeabilities, lambda, mu)
PARAM_BOUNDS = (1e-6, 1e4)
# Bounds on frequency log-ratios
FREQ_LOG_RATIO_BOUNDS = (-12.0, 12.0)
PENALTY = 1e10


def _frequencies_to_log_ratios(freqs: np.ndarray) -> np.ndarray:
    return np.log(freqs[:-1] / freqs[-1])


def _log_ratios_to_frequencies(ratios: np.ndarray) -> np.ndarray:
    logits = np.append(ratios, 0.0)
    weights = np.exp(logits - logits.max())
    return weights / weights.sum()


class ModelOptimizer:
    """
    Optimise the model parameters of a cost function.

    Parameters
    ----------
    cost : CostFunction
        Cost to optimise; never modified
    freq_opt : FrequencyOptimisation
        How frequencies are set
    policy : StoppingPolicy
        When to stop repeating L-BFGS-B rounds
    maxiter : int
        Iteration limit of a single L-BFGS-B run
    """

    def __init__(
        self,
        cost: CostFunction,
        freq_opt: FrequencyOptimisation,
        policy: StoppingPolicy,
        maxiter: int = 200,
    ):
        self.cost = cost
        self.freq_opt = freq_opt
        self.policy = policy
        self.maxiter = maxiter

        self.estimate_freqs = (
            freq_opt is FrequencyOptimisation.ESTIMATED and cost.model.frequencies_free
        )
        self.n_params = len(cost.parameters())

    def _unpack(self, base: CostFunction, x: np.ndarray) -> CostFunction:
        candidate = base
        if self.n_params:
            candidate = candidate.with_parameters(np.exp(x[:self.n_params]))
        if self.estimate_freqs:
            candidate = candidate.with_frequencies(_log_ratios_to_frequencies(x[self.n_params:]))
        return candidate

    def _pack(self, cost: CostFunction) -> np.ndarray:
        lo, hi = np.log(PARAM_BOUNDS)
        parts = [np.clip(np.log(cost.parameters()), lo, hi)]
        if self.estimate_freqs:
            parts.append(np.clip(
                _frequencies_to_log_ratios(cost.frequencies()), *FREQ_LOG_RATIO_BOUNDS
            ))
        return np.concatenate(parts)

    def _bounds(self) -> list[tuple[float, float]]:
        bounds = [tuple(np.log(PARAM_BOUNDS))] * self.n_params
        if self.estimate_freqs:
            bounds += [FREQ_LOG_RATIO_BOUNDS] * (self.cost.model.n_states - 1)
        return bounds

    def compute_log_likelihood(self, x: np.ndarray, base: CostFunction) -> float:
        """
        Negative log-likelihood at a point in log space.

        Failed or non-finite evaluations return a large penalty so the
        line search backs off.
        """
        try:
            score = self._unpack(base, x).score()
        except (ArithmeticError, ValueError, np.linalg.LinAlgError) as e:
            logger.debug("Likelihood evaluation failed at %s: %s", np.exp(x), e)
            return PENALTY
        if not np.isfinite(score):
            return PENALTY
        return -score

    def _prepare(self) -> CostFunction:
        """Apply the frequency mode before parameter optimisation."""
        cost = self.cost
        if self.freq_opt is FrequencyOptimisation.FIXED or not cost.model.frequencies_free:
            return cost

        empirical = cost.with_frequencies(cost.empirical_frequencies())
        if self.freq_opt is FrequencyOptimisation.EMPIRICAL:
            return empirical
        # Estimation starts from whichever frequencies currently fit better
        return empirical if empirical.score() > cost.score() else cost

    def optimize(self) -> CostFunction:
        """
        Run L-BFGS-B rounds until the stopping policy ends them.

        Returns
        -------
        CostFunction
            Best cost found, never scoring below the starting point

        Raises
        ------
        NumericalError
            If the starting point has a non-finite log-likelihood
        """
        current = self._prepare()
        start_score = current.score()
        if not np.isfinite(start_score):
            raise NumericalError(f"Model optimisation started from lnL = {start_score}")

        n_free = self.n_params + (self.cost.model.n_states - 1 if self.estimate_freqs else 0)
        if n_free == 0:
            logger.debug("No free model parameters, skipping optimisation")
            return current

        bounds = self._bounds()
        previous = start_score
        rounds = 0
        while True:
            result = minimize(
                self.compute_log_likelihood,
                self._pack(current),
                args=(current,),
                method='L-BFGS-B',
                bounds=bounds,
                options={'maxiter': self.maxiter},
            )
            candidate = self._unpack(current, result.x)
            if np.isfinite(candidate.score()) and candidate.score() > current.score():
                current = candidate

            rounds += 1
            delta = current.score() - previous
            logger.debug(
                "Model round %d: lnL = %.6f (delta %.3g, %s)",
                rounds, current.score(), delta, result.message,
            )
            if not self.policy.should_continue(rounds, delta):
                break
            previous = current.score()

        return current


def optimise_model(
    cost: CostFunction,
    freq_opt: FrequencyOptimisation,
    policy: StoppingPolicy,
) -> CostFunction:
    """
    Optimise model parameters and frequencies of ``cost``.

    Parameters
    ----------
    cost : CostFunction
        Starting cost
    freq_opt : FrequencyOptimisation
        FIXED keeps frequencies, EMPIRICAL sets them from the data,
        ESTIMATED starts from the data and optimises them
    policy : StoppingPolicy
        Inner stopping policy

    Returns
    -------
    CostFunction
        Optimised cost
    """
    names = ", ".join(cost.parameter_names) or "none"
    logger.debug("Optimising model parameters (%s), frequencies %s", names, freq_opt)
    optimized = ModelOptimizer(cost, freq_opt, policy).optimize()
    params = ", ".join(
        f"{name}={value:.5g}" for name, value in zip(optimized.parameter_names, optimized.parameters())
    )
    if params:
        logger.debug("Model parameters: %s", params)
    return optimized
