"""
Empirical amino acid replacement matrices in PAML ``.dat`` format.

A PAML matrix file holds the 190 exchangeabilities of the lower triangle
(rows 2..20, amino acids in the order ARNDCQEGHILKMFPSTWYV) followed by the
20 equilibrium frequencies. Anything after those 210 numbers (citations,
notes) is ignored.

The WAG, HIVb and BLOSUM62 matrices ship with the package under ``data/``.
A matrix folder given at run time overrides them file by file.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np

from ..exceptions import DataError
from .ids import SubstModelId

N_AMINO_ACIDS = 20

MATRIX_FILES = {
    SubstModelId.WAG: "wag.dat",
    SubstModelId.HIVB: "hivb.dat",
    SubstModelId.BLOSUM: "blosum62.dat",
}

_BUILTIN_DIR = Path(__file__).parent / "data"

_NUMBER = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


@dataclass(frozen=True)
class EmpiricalMatrix:
    """
    Exchangeabilities and equilibrium frequencies of an empirical model.

    Attributes
    ----------
    exchangeabilities : ndarray, shape (20, 20)
        Symmetric exchangeability matrix with zero diagonal
    frequencies : ndarray, shape (20,)
        Equilibrium amino acid frequencies (sum to 1)
    """

    exchangeabilities: np.ndarray
    frequencies: np.ndarray


def find_matrix_file(matrix_dir: Optional[Path], model: SubstModelId) -> Optional[Path]:
    """
    Locate the ``.dat`` file for an empirical model.

    A file in ``matrix_dir`` (matched ignoring filename case) takes
    precedence over the bundled matrix. Returns None for models without an
    empirical matrix.
    """
    if model not in MATRIX_FILES:
        return None
    wanted = MATRIX_FILES[model].lower()
    if matrix_dir is not None and Path(matrix_dir).is_dir():
        for candidate in sorted(Path(matrix_dir).iterdir()):
            if candidate.is_file() and candidate.name.lower() == wanted:
                return candidate
    return _BUILTIN_DIR / MATRIX_FILES[model]


def read_paml_matrix(filepath: Path | str) -> EmpiricalMatrix:
    """
    Parse a PAML-format amino acid matrix file.

    Parameters
    ----------
    filepath : Path or str
        Path to the ``.dat`` file

    Returns
    -------
    EmpiricalMatrix
        Parsed matrix with frequencies renormalised to sum to 1

    Raises
    ------
    DataError
        If the file has fewer than 210 numbers or invalid values
    """
    filepath = Path(filepath)
    try:
        text = filepath.read_text()
    except OSError as e:
        raise DataError(f"Could not read matrix file: {e}", path=filepath)

    n_rates = N_AMINO_ACIDS * (N_AMINO_ACIDS - 1) // 2
    numbers = [float(x) for x in _NUMBER.findall(text)]
    if len(numbers) < n_rates + N_AMINO_ACIDS:
        raise DataError(
            f"Matrix file has {len(numbers)} numbers, expected at least "
            f"{n_rates + N_AMINO_ACIDS}",
            path=filepath,
        )

    rates = np.zeros((N_AMINO_ACIDS, N_AMINO_ACIDS))
    k = 0
    for i in range(1, N_AMINO_ACIDS):
        for j in range(i):
            rates[i, j] = rates[j, i] = numbers[k]
            k += 1

    freqs = np.array(numbers[n_rates:n_rates + N_AMINO_ACIDS])
    if np.any(rates < 0) or np.any(freqs <= 0):
        raise DataError("Matrix file has negative rates or non-positive frequencies", path=filepath)

    return EmpiricalMatrix(exchangeabilities=rates, frequencies=freqs / freqs.sum())
