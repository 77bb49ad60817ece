"""
Model dispatch: (gap handling, substitution model) to a cost function.

The dispatch table is closed. Every combination of the two gap-handling
modes and the eight substitution models has exactly one constructor.
``HKY85`` is an alias member of ``HKY``, so both names share one entry.
"""

import logging
from pathlib import Path
from typing import Callable, Optional, Sequence

from .core.cost import CostFunction, PIPCost, SubstitutionCost
from .core.likelihood import SitePatterns
from .exceptions import ConfigurationError, UnsupportedCombination
from .io.sequences import Alignment
from .io.trees import Tree
from .models.ids import DEFAULT_PIP_PARAMETERS, GapHandling, SubstModelId
from .models.pip import PIPModel
from .models.substitution import build_substitution_model

logger = logging.getLogger(__name__)

CostConstructor = Callable[..., CostFunction]


def _missing_data_cost(model_id: SubstModelId) -> CostConstructor:
    def construct(frequencies, parameters, patterns, tree, matrix_dir=None):
        model = build_substitution_model(model_id, frequencies, parameters, matrix_dir)
        return SubstitutionCost(model, tree, patterns)

    construct.__name__ = f"missing_{model_id.value.lower()}"
    return construct


def _pip_cost(model_id: SubstModelId) -> CostConstructor:
    def construct(frequencies, parameters, patterns, tree, matrix_dir=None):
        parameters = tuple(parameters)
        if parameters:
            lam, mu = parameters[:2]
            subst_params = parameters[2:]
        else:
            lam, mu = DEFAULT_PIP_PARAMETERS
            subst_params = ()
        substitution = build_substitution_model(model_id, frequencies, subst_params, matrix_dir)
        return PIPCost(PIPModel(substitution, float(lam), float(mu)), tree, patterns)

    construct.__name__ = f"pip_{model_id.value.lower()}"
    return construct


_BUILDERS = {
    GapHandling.MISSING: _missing_data_cost,
    GapHandling.PIP: _pip_cost,
}

# Iterating an Enum skips aliases, so HKY85 does not get a separate entry
DISPATCH_TABLE: dict[tuple[GapHandling, SubstModelId], CostConstructor] = {
    (gap, model): builder(model)
    for gap, builder in _BUILDERS.items()
    for model in SubstModelId
}


def check_dispatch_table() -> None:
    """
    Verify that every (gap handling, model) pair has a constructor.

    Raises
    ------
    UnsupportedCombination
        Naming the first missing pair
    """
    for gap in GapHandling:
        for model in SubstModelId:
            if (gap, model) not in DISPATCH_TABLE:
                raise UnsupportedCombination(f"No cost constructor for {model} with {gap} gaps")


def build_cost(
    gap_handling: GapHandling,
    model_id: SubstModelId,
    frequencies: Sequence[float],
    parameters: Sequence[float],
    alignment: Alignment,
    tree: Tree,
    matrix_dir: Optional[Path] = None,
) -> CostFunction:
    """
    Construct the cost function for a gap mode and substitution model.

    Parameters
    ----------
    gap_handling : GapHandling
        PIP or missing-data likelihood
    model_id : SubstModelId
        Substitution model
    frequencies : sequence of float
        Stationary frequencies; empty for model defaults
    parameters : sequence of float
        Full parameter vector (lambda and mu first under PIP); empty for
        defaults
    alignment : Alignment
        Loaded alignment
    tree : Tree
        Starting tree
    matrix_dir : Path, optional
        Folder with PAML ``.dat`` files overriding the bundled matrices

    Returns
    -------
    CostFunction
        Unscored cost object

    Raises
    ------
    UnsupportedCombination
        If the pair is not in the dispatch table
    ConfigurationError
        If the model cannot be built from the given values
    """
    try:
        constructor = DISPATCH_TABLE[(gap_handling, model_id)]
    except KeyError:
        raise UnsupportedCombination(
            f"Model {model_id} is not supported with {gap_handling} gap handling"
        )

    logger.debug("Building cost with %s", constructor.__name__)
    patterns = SitePatterns.from_alignment(alignment)
    try:
        return constructor(frequencies, parameters, patterns, tree, matrix_dir=matrix_dir)
    except ValueError as e:
        raise ConfigurationError(f"Could not build {model_id} model: {e}") from e
