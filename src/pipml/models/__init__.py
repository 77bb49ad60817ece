"""
Evolutionary models for sequence analysis.

- **Substitution models** (:mod:`pipml.models.substitution`): JC69, K80,
  HKY, TN93 and GTR for DNA; WAG, HIVB and BLOSUM for proteins
- **Indel model** (:mod:`pipml.models.pip`): the Poisson Indel Process
  layered on a substitution model
- **Identifiers** (:mod:`pipml.models.ids`): model, gap-handling and
  frequency-mode enums with the parameter tables

Only the identifiers are imported here, as the sequence readers depend on
them.
"""

from pipml.models.ids import (
    Alphabet,
    FrequencyOptimisation,
    GapHandling,
    SubstModelId,
    parse_model_id,
)

__all__ = [
    "Alphabet",
    "FrequencyOptimisation",
    "GapHandling",
    "SubstModelId",
    "parse_model_id",
]
