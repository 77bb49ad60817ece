"""
Poisson Indel Process on top of a substitution model.

Insertions arrive as a Poisson process with rate ``lam`` spread over the
tree; every character is deleted at rate ``mu``. The substitution model
drives the character states between indel events.
"""

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .ids import PIP_PARAMETERS, SubstModelId
from .substitution import SubstitutionModel


@dataclass(frozen=True, eq=False)
class PIPModel:
    """
    Substitution model extended with insertion and deletion rates.

    Attributes
    ----------
    substitution : SubstitutionModel
        Underlying substitution model
    lam : float
        Insertion rate lambda
    mu : float
        Deletion rate mu
    """

    substitution: SubstitutionModel
    lam: float
    mu: float

    def __post_init__(self):
        if not (np.isfinite(self.lam) and self.lam > 0):
            raise ValueError(f"Insertion rate must be positive, got {self.lam}")
        if not (np.isfinite(self.mu) and self.mu > 0):
            raise ValueError(f"Deletion rate must be positive, got {self.mu}")

    @property
    def model_id(self) -> SubstModelId:
        return self.substitution.model_id

    @property
    def alphabet(self):
        return self.substitution.alphabet

    @property
    def n_states(self) -> int:
        return self.substitution.n_states

    @property
    def parameter_names(self) -> tuple[str, ...]:
        return PIP_PARAMETERS + self.substitution.parameter_names

    @property
    def frequencies_free(self) -> bool:
        return self.substitution.frequencies_free

    def parameters(self) -> np.ndarray:
        """Parameter vector ``[lambda, mu, *substitution parameters]``."""
        return np.concatenate([[self.lam, self.mu], self.substitution.parameters()])

    def frequencies(self) -> np.ndarray:
        return self.substitution.frequencies()

    def with_parameters(self, params: Sequence[float]) -> "PIPModel":
        params = np.asarray(params, dtype=float)
        if len(params) < 2:
            raise ValueError(f"PIP parameters need lambda and mu, got {len(params)} values")
        return PIPModel(
            substitution=self.substitution.with_parameters(params[2:]),
            lam=float(params[0]),
            mu=float(params[1]),
        )

    def with_frequencies(self, freqs: Sequence[float]) -> "PIPModel":
        return PIPModel(self.substitution.with_frequencies(freqs), self.lam, self.mu)

    def __repr__(self) -> str:
        return f"PIPModel({self.substitution!r}, lambda={self.lam:.4f}, mu={self.mu:.4f})"
