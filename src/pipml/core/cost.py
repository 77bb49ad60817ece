"""
Cost functions: a model, a tree and the data, scored by log-likelihood.

Cost objects are values. Every ``with_*`` method returns a new object and
leaves the original untouched, so an optimisation phase can always fall back
to the cost it was given.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

import numpy as np

from ..io.trees import Tree
from ..models.ids import GapHandling
from ..models.pip import PIPModel
from ..models.substitution import SubstitutionModel
from .likelihood import PIPLikelihood, SitePatterns, SubstitutionLikelihood


class CostFunction(ABC):
    """
    Log-likelihood of a tree and model for a fixed alignment.

    Higher scores are better.

    Parameters
    ----------
    model : SubstitutionModel or PIPModel
        Evolutionary model
    tree : Tree
        Rooted binary tree with branch lengths
    patterns : SitePatterns
        Compressed alignment, shared between derived costs
    """

    gap_handling: GapHandling

    def __init__(self, model, tree: Tree, patterns: SitePatterns):
        self._model = model
        self._tree = tree
        self._patterns = patterns
        self._calculator = self._make_calculator(patterns, tree)
        self._score: Optional[float] = None

    @abstractmethod
    def _make_calculator(self, patterns: SitePatterns, tree: Tree):
        """Likelihood calculator for this gap-handling mode."""

    @property
    def model(self):
        return self._model

    @property
    def tree(self) -> Tree:
        return self._tree

    @property
    def patterns(self) -> SitePatterns:
        return self._patterns

    @property
    def parameter_names(self) -> tuple[str, ...]:
        return self._model.parameter_names

    def score(self) -> float:
        """Log-likelihood, computed once per cost object."""
        if self._score is None:
            self._score = self._calculator.log_likelihood(self._model)
        return self._score

    def parameters(self) -> np.ndarray:
        return self._model.parameters()

    def frequencies(self) -> np.ndarray:
        return self._model.frequencies()

    def empirical_frequencies(self) -> np.ndarray:
        return self._patterns.empirical_freqs.copy()

    def pattern_probabilities(self) -> np.ndarray:
        return self._calculator.pattern_probabilities(self._model)

    def with_tree(self, tree: Tree) -> "CostFunction":
        return type(self)(self._model, tree, self._patterns)

    def with_model(self, model) -> "CostFunction":
        new = type(self).__new__(type(self))
        new._model = model
        new._tree = self._tree
        new._patterns = self._patterns
        # Same tree and data: the calculator can be shared
        new._calculator = self._calculator
        new._score = None
        return new

    def with_parameters(self, params: Sequence[float]) -> "CostFunction":
        return self.with_model(self._model.with_parameters(params))

    def with_frequencies(self, freqs: Sequence[float]) -> "CostFunction":
        return self.with_model(self._model.with_frequencies(freqs))

    def copy(self) -> "CostFunction":
        new = self.with_model(self._model)
        new._score = self._score
        return new

    def __repr__(self) -> str:
        score = "unscored" if self._score is None else f"lnL={self._score:.6f}"
        return f"{type(self).__name__}({self._model!r}, {self._tree!r}, {score})"


class SubstitutionCost(CostFunction):
    """Substitution model with gaps treated as missing data."""

    gap_handling = GapHandling.MISSING

    def __init__(self, model: SubstitutionModel, tree: Tree, patterns: SitePatterns):
        super().__init__(model, tree, patterns)

    def _make_calculator(self, patterns: SitePatterns, tree: Tree) -> SubstitutionLikelihood:
        return SubstitutionLikelihood(patterns, tree)


class PIPCost(CostFunction):
    """Substitution model with insertions and deletions under PIP."""

    gap_handling = GapHandling.PIP

    def __init__(self, model: PIPModel, tree: Tree, patterns: SitePatterns):
        super().__init__(model, tree, patterns)

    def _make_calculator(self, patterns: SitePatterns, tree: Tree) -> PIPLikelihood:
        return PIPLikelihood(patterns, tree)

    def empty_column_probability(self) -> float:
        return self._calculator.empty_column_probability(self._model)
