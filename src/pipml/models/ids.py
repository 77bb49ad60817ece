"""
Identifiers for substitution models, gap handling and frequency modes.

The tables here are the single source of truth for model arity: the
configuration layer validates against them and the model constructors read
parameter names and defaults from them.
"""

from enum import Enum


class SubstModelId(str, Enum):
    """Substitution model. ``HKY85`` is an alias of ``HKY``."""
    WAG = "WAG"
    HIVB = "HIVB"
    BLOSUM = "BLOSUM"
    JC69 = "JC69"
    K80 = "K80"
    HKY = "HKY"
    HKY85 = "HKY"
    TN93 = "TN93"
    GTR = "GTR"

    def __str__(self) -> str:
        return self.value


class GapHandling(str, Enum):
    """How alignment gaps enter the likelihood."""
    PIP = "pip"
    MISSING = "missing"

    def __str__(self) -> str:
        return self.value


class FrequencyOptimisation(str, Enum):
    """How stationary frequencies are set during model optimisation."""
    FIXED = "fixed"
    EMPIRICAL = "empirical"
    ESTIMATED = "estimated"

    def __str__(self) -> str:
        return self.value


class Alphabet(str, Enum):
    """Sequence alphabet."""
    DNA = "dna"
    PROTEIN = "protein"

    def __str__(self) -> str:
        return self.value


# Substitution parameters per model, in command-line order.
# Nucleotide order throughout is T, C, A, G.
MODEL_PARAMETERS = {
    SubstModelId.JC69: (),
    SubstModelId.K80: ("kappa",),
    SubstModelId.HKY: ("kappa",),
    SubstModelId.TN93: ("r_tc", "r_ag", "r_transversion"),
    SubstModelId.GTR: ("r_tc", "r_ta", "r_tg", "r_ca", "r_cg", "r_ag"),
    SubstModelId.WAG: (),
    SubstModelId.HIVB: (),
    SubstModelId.BLOSUM: (),
}

DEFAULT_PARAMETERS = {
    SubstModelId.JC69: (),
    SubstModelId.K80: (2.0,),
    SubstModelId.HKY: (2.0,),
    SubstModelId.TN93: (2.0, 2.0, 1.0),
    SubstModelId.GTR: (1.0, 1.0, 1.0, 1.0, 1.0, 1.0),
    SubstModelId.WAG: (),
    SubstModelId.HIVB: (),
    SubstModelId.BLOSUM: (),
}

MODEL_ALPHABET = {
    SubstModelId.JC69: Alphabet.DNA,
    SubstModelId.K80: Alphabet.DNA,
    SubstModelId.HKY: Alphabet.DNA,
    SubstModelId.TN93: Alphabet.DNA,
    SubstModelId.GTR: Alphabet.DNA,
    SubstModelId.WAG: Alphabet.PROTEIN,
    SubstModelId.HIVB: Alphabet.PROTEIN,
    SubstModelId.BLOSUM: Alphabet.PROTEIN,
}

# Indel rates lead the parameter vector under PIP.
PIP_PARAMETERS = ("lambda", "mu")
DEFAULT_PIP_PARAMETERS = (1.0, 0.1)


def parse_model_id(name: str) -> SubstModelId:
    """
    Look up a model id by name, case-insensitively (aliases included).

    Raises
    ------
    KeyError
        If the name is not a known model
    """
    if isinstance(name, SubstModelId):
        return name
    return SubstModelId.__members__[str(name).strip().upper()]


def parameter_names(model: SubstModelId, gap_handling: GapHandling) -> tuple[str, ...]:
    """Names of the full parameter vector for a model under a gap mode."""
    names = MODEL_PARAMETERS[model]
    if gap_handling is GapHandling.PIP:
        return PIP_PARAMETERS + names
    return names
