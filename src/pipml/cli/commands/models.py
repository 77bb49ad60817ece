"""Models command implementation."""

from pipml.models.empirical import MATRIX_FILES
from pipml.models.ids import (
    DEFAULT_PARAMETERS,
    DEFAULT_PIP_PARAMETERS,
    MODEL_ALPHABET,
    MODEL_PARAMETERS,
    PIP_PARAMETERS,
    SubstModelId,
)


def run_models():
    """Print the substitution models, their parameters and defaults."""
    print(f"{'Model':<8} {'Alphabet':<9} {'Parameters (defaults)'}")
    print("-" * 60)
    for model in SubstModelId:
        names = MODEL_PARAMETERS[model]
        if names:
            described = ", ".join(
                f"{name} ({default:g})" for name, default in zip(names, DEFAULT_PARAMETERS[model])
            )
        elif model in MATRIX_FILES:
            described = f"none (rates from {MATRIX_FILES[model]})"
        else:
            described = "none"
        print(f"{model.value:<8} {MODEL_ALPHABET[model].value:<9} {described}")

    print()
    print("HKY85 is accepted as another name for HKY.")
    pip = ", ".join(f"{n} ({d:g})" for n, d in zip(PIP_PARAMETERS, DEFAULT_PIP_PARAMETERS))
    print(f"Under PIP gap handling the parameters are preceded by {pip}.")
