"""
Nucleotide and amino acid substitution models.

All models are time-reversible. Nucleotide states are ordered T, C, A, G;
amino acids follow the PAML order. Rate matrices are normalised to one
expected substitution per unit of branch length.
"""

from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Optional, Sequence

import numpy as np

from ..core.matrix import create_reversible_Q, eigen_decompose_rev
from ..io.sequences import N_STATES
from .empirical import find_matrix_file, read_paml_matrix
from .ids import (
    DEFAULT_PARAMETERS,
    MODEL_ALPHABET,
    MODEL_PARAMETERS,
    Alphabet,
    SubstModelId,
)

# JC69 and K80 assume equal base frequencies by definition
UNIFORM_FREQUENCY_MODELS = (SubstModelId.JC69, SubstModelId.K80)

T, C, A, G = range(4)


def _symmetric(n: int, entries: dict) -> np.ndarray:
    rates = np.zeros((n, n))
    for (i, j), value in entries.items():
        rates[i, j] = rates[j, i] = value
    return rates


def nucleotide_exchangeabilities(model_id: SubstModelId, params: Sequence[float]) -> np.ndarray:
    """
    Exchangeability matrix of a nucleotide model.

    Parameters
    ----------
    model_id : SubstModelId
        One of JC69, K80, HKY, TN93, GTR
    params : sequence of float
        Model parameters in the order of ``MODEL_PARAMETERS[model_id]``

    Returns
    -------
    ndarray, shape (4, 4)
        Symmetric exchangeabilities with zero diagonal
    """
    transversions = [(T, A), (T, G), (C, A), (C, G)]

    if model_id is SubstModelId.JC69:
        return np.ones((4, 4)) - np.eye(4)

    if model_id in (SubstModelId.K80, SubstModelId.HKY):
        kappa = params[0]
        entries = {pair: 1.0 for pair in transversions}
        entries[(T, C)] = kappa
        entries[(A, G)] = kappa
        return _symmetric(4, entries)

    if model_id is SubstModelId.TN93:
        r_tc, r_ag, r_tv = params
        entries = {pair: r_tv for pair in transversions}
        entries[(T, C)] = r_tc
        entries[(A, G)] = r_ag
        return _symmetric(4, entries)

    if model_id is SubstModelId.GTR:
        r_tc, r_ta, r_tg, r_ca, r_cg, r_ag = params
        return _symmetric(4, {
            (T, C): r_tc, (T, A): r_ta, (T, G): r_tg,
            (C, A): r_ca, (C, G): r_cg, (A, G): r_ag,
        })

    raise ValueError(f"{model_id} is not a nucleotide model")


@dataclass(frozen=True, eq=False)
class SubstitutionModel:
    """
    Reversible substitution model with its parameters and frequencies.

    Attributes
    ----------
    model_id : SubstModelId
        Model identifier
    params : ndarray
        Substitution parameters (empty for JC69 and empirical models)
    freqs : ndarray
        Stationary frequencies
    base_rates : ndarray or None
        Fixed exchangeabilities of empirical (protein) models
    """

    model_id: SubstModelId
    params: np.ndarray
    freqs: np.ndarray
    base_rates: Optional[np.ndarray] = None

    @property
    def alphabet(self) -> Alphabet:
        return MODEL_ALPHABET[self.model_id]

    @property
    def n_states(self) -> int:
        return N_STATES[self.alphabet]

    @property
    def parameter_names(self) -> tuple[str, ...]:
        return MODEL_PARAMETERS[self.model_id]

    @property
    def frequencies_free(self) -> bool:
        """Whether frequencies may differ from uniform."""
        return self.model_id not in UNIFORM_FREQUENCY_MODELS

    def parameters(self) -> np.ndarray:
        return self.params.copy()

    def frequencies(self) -> np.ndarray:
        return self.freqs.copy()

    @cached_property
    def exchangeabilities(self) -> np.ndarray:
        if self.base_rates is not None:
            return self.base_rates
        return nucleotide_exchangeabilities(self.model_id, self.params)

    @cached_property
    def q_matrix(self) -> np.ndarray:
        """Normalised rate matrix Q."""
        return create_reversible_Q(self.exchangeabilities, self.freqs, normalize=True)

    @cached_property
    def eigen(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Eigendecomposition of Q, see :func:`eigen_decompose_rev`."""
        return eigen_decompose_rev(self.q_matrix, self.freqs)

    def with_parameters(self, params: Sequence[float]) -> "SubstitutionModel":
        params = np.asarray(params, dtype=float)
        if params.shape != self.params.shape:
            raise ValueError(
                f"{self.model_id} takes {len(self.params)} parameters, got {len(params)}"
            )
        return SubstitutionModel(self.model_id, params.copy(), self.freqs, self.base_rates)

    def with_frequencies(self, freqs: Sequence[float]) -> "SubstitutionModel":
        """Copy with new frequencies; uniform-frequency models ignore them."""
        if not self.frequencies_free:
            return self
        freqs = np.asarray(freqs, dtype=float)
        if freqs.shape != (self.n_states,):
            raise ValueError(f"Expected {self.n_states} frequencies, got {len(freqs)}")
        return SubstitutionModel(self.model_id, self.params, freqs / freqs.sum(), self.base_rates)

    def __repr__(self) -> str:
        params = ", ".join(f"{n}={v:.4f}" for n, v in zip(self.parameter_names, self.params))
        return f"SubstitutionModel({self.model_id}{', ' + params if params else ''})"


def build_substitution_model(
    model_id: SubstModelId,
    frequencies: Sequence[float] = (),
    parameters: Sequence[float] = (),
    matrix_dir: Optional[Path] = None,
) -> SubstitutionModel:
    """
    Construct a substitution model, filling in defaults.

    Parameters
    ----------
    model_id : SubstModelId
        Model identifier
    frequencies : sequence of float
        Stationary frequencies; empty means uniform (nucleotides) or the
        matrix frequencies (empirical protein models)
    parameters : sequence of float
        Substitution parameters; empty means model defaults
    matrix_dir : Path, optional
        Folder with PAML ``.dat`` files overriding the bundled matrices

    Returns
    -------
    SubstitutionModel
        The model

    Raises
    ------
    ValueError
        If the parameter or frequency vector has the wrong length
    DataError
        If a protein model's matrix file is malformed
    """
    expected = MODEL_PARAMETERS[model_id]
    params = np.asarray(parameters if len(parameters) else DEFAULT_PARAMETERS[model_id], dtype=float)
    if len(params) != len(expected):
        raise ValueError(f"{model_id} takes {len(expected)} parameters, got {len(params)}")

    base_rates = None
    if MODEL_ALPHABET[model_id] is Alphabet.PROTEIN:
        matrix = read_paml_matrix(find_matrix_file(matrix_dir, model_id))
        base_rates = matrix.exchangeabilities
        default_freqs = matrix.frequencies
    else:
        default_freqs = np.ones(4) / 4

    n_states = len(default_freqs)
    if len(frequencies) and model_id not in UNIFORM_FREQUENCY_MODELS:
        freqs = np.asarray(frequencies, dtype=float)
        if freqs.shape != (n_states,):
            raise ValueError(f"Expected {n_states} frequencies, got {len(freqs)}")
        freqs = freqs / freqs.sum()
    else:
        freqs = default_freqs

    return SubstitutionModel(model_id=model_id, params=params, freqs=freqs, base_rates=base_rates)
