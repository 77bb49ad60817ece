"""
Pytest configuration and shared fixtures.
"""

import pytest
from pathlib import Path
from typer.testing import CliRunner


# Five DNA sequences with gaps, one ambiguity code and a trailing all-gap column
DNA_SEQUENCES = {
    "A": "ATGGCTAGCTTACGGATCCATGCAAGTCGA-",
    "B": "ATGGCTAGCTTACGCATCCATGCAAG-CGA-",
    "C": "ATGACTAGC--ACGCATCGATGCTAGTCGA-",
    "D": "ATGACTCGC--ACGCATCGATGCTAGTNGA-",
    "E": "ATGACTCGCTTACGCAT-GATCCTAGTCGA-",
}

DNA_TREE = "((A:0.05,B:0.05):0.1,((C:0.05,D:0.05):0.05,E:0.1):0.1);\n"

PROTEIN_SEQUENCES = {
    "P1": "MKVLAAGIEHRTWYDNSQPF",
    "P2": "MKVLSAGIEHRTWFDNSQPF",
    "P3": "MKILSAG-EHKTWFDNSQ-F",
    "P4": "MRILSAGVEHKTWFDNTQ-F",
}


def write_fasta(path: Path, sequences: dict) -> Path:
    path.write_text("".join(f">{name}\n{seq}\n" for name, seq in sequences.items()))
    return path


def write_paml_matrix(path: Path) -> Path:
    """Synthetic PAML matrix: 190 positive rates and 20 frequencies."""
    rates = [f"{1.0 + 0.25 * (k % 7):.3f}" for k in range(190)]
    rows = []
    k = 0
    for i in range(1, 20):
        rows.append(" ".join(rates[k:k + i]))
        k += i
    freqs = " ".join(f"{0.04 + 0.002 * i:.4f}" for i in range(20))
    path.write_text("\n".join(rows) + "\n\n" + freqs + "\n\nSynthetic test matrix\n")
    return path


@pytest.fixture
def cli_runner():
    """CLI test runner for Typer apps."""
    return CliRunner()


@pytest.fixture
def dna_fasta(tmp_path):
    """Small DNA alignment with gaps."""
    return write_fasta(tmp_path / "dna.fasta", DNA_SEQUENCES)


@pytest.fixture
def dna_tree_file(tmp_path):
    """Newick tree matching the DNA alignment."""
    tree_file = tmp_path / "dna_tree.nwk"
    tree_file.write_text(DNA_TREE)
    return tree_file


@pytest.fixture
def protein_fasta(tmp_path):
    """Small protein alignment with gaps."""
    return write_fasta(tmp_path / "protein.fasta", PROTEIN_SEQUENCES)


@pytest.fixture
def matrix_dir(tmp_path):
    """Folder with synthetic wag.dat, hivb.dat and blosum62.dat files."""
    folder = tmp_path / "matrices"
    folder.mkdir()
    for name in ("wag.dat", "hivb.dat", "blosum62.dat"):
        write_paml_matrix(folder / name)
    return folder


@pytest.fixture
def out_folder(tmp_path):
    """Output parent folder."""
    folder = tmp_path / "out"
    folder.mkdir()
    return folder
