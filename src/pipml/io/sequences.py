"""
Sequence file parsing and alignment handling.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np

from ..models.ids import Alphabet

# Nucleotide encoding (PAML order)
NUCLEOTIDES = "TCAG"
NUCLEOTIDE_TO_INDEX = {nuc: i for i, nuc in enumerate(NUCLEOTIDES)}
NUCLEOTIDE_TO_INDEX["U"] = NUCLEOTIDE_TO_INDEX["T"]

# Amino acid encoding (PAML order, matches the .dat matrix files)
AMINO_ACIDS = "ARNDCQEGHILKMFPSTWYV"
AA_TO_INDEX = {aa: i for i, aa in enumerate(AMINO_ACIDS)}

# Special codes for gaps and unresolved characters
GAP_CODE = -1
UNKNOWN_CODE = -2

GAP_CHARS = set("-.")
DNA_AMBIGUOUS = set("NRYKMSWBDHV?")
AA_AMBIGUOUS = set("XBZJUO*?")

N_STATES = {Alphabet.DNA: len(NUCLEOTIDES), Alphabet.PROTEIN: len(AMINO_ACIDS)}


def infer_alphabet(sequences: list[str]) -> Alphabet:
    """
    Guess whether raw sequences are DNA or protein.

    Sequences are DNA when every non-gap character is a nucleotide or an
    IUPAC ambiguity code and at least 90% of them are A, C, G, T, U or N.
    """
    residues = [c for seq in sequences for c in seq if c not in GAP_CHARS]
    if not residues:
        raise ValueError("Sequences contain only gaps")

    dna_chars = set(NUCLEOTIDE_TO_INDEX) | DNA_AMBIGUOUS
    if all(c in dna_chars for c in residues):
        plain = sum(1 for c in residues if c in "ACGTUN")
        if plain >= 0.9 * len(residues):
            return Alphabet.DNA
    return Alphabet.PROTEIN


@dataclass
class Alignment:
    """
    Multiple sequence alignment.

    Attributes
    ----------
    names : list[str]
        Sequence names/labels
    sequences : ndarray, shape (n_species, n_sites)
        Encoded sequences: state indices, GAP_CODE or UNKNOWN_CODE
    n_species : int
        Number of sequences
    n_sites : int
        Number of sites (alignment length)
    seqtype : Alphabet
        Sequence alphabet
    """

    names: list[str]
    sequences: np.ndarray
    n_species: int
    n_sites: int
    seqtype: Alphabet

    @property
    def n_states(self) -> int:
        return N_STATES[self.seqtype]

    @classmethod
    def from_file(cls, filepath: Path | str, seqtype: Optional[Alphabet] = None) -> "Alignment":
        """
        Load an alignment, detecting FASTA or PHYLIP format.

        Files starting with '>' are read as FASTA, anything else as PHYLIP.

        Raises
        ------
        ValueError
            If the file cannot be parsed in the detected format
        """
        filepath = Path(filepath)
        with open(filepath, 'r') as f:
            first = ""
            for line in f:
                if line.strip():
                    first = line.strip()
                    break

        if first.startswith('>'):
            return cls.from_fasta(filepath, seqtype=seqtype)
        return cls.from_phylip(filepath, seqtype=seqtype)

    @classmethod
    def from_phylip(
        cls, filepath: Path | str, seqtype: Optional[Alphabet] = None
    ) -> "Alignment":
        """
        Parse PHYLIP format alignment file.

        Handles both the PAML layout (name on its own line, sequence on the
        following lines) and the classic layout (name and sequence on one
        line). The first line contains n_sequences and sequence_length.

        Parameters
        ----------
        filepath : Path or str
            Path to PHYLIP format file
        seqtype : Alphabet, optional
            Sequence alphabet; inferred from the data when None

        Returns
        -------
        Alignment
            Parsed alignment

        Examples
        --------
        >>> aln = Alignment.from_phylip("primates.phy")
        >>> aln.seqtype
        <Alphabet.DNA: 'dna'>
        """
        filepath = Path(filepath)

        with open(filepath, 'r') as f:
            lines = [line.rstrip() for line in f.readlines()]
        lines = [line for line in lines if line.strip()]
        if not lines:
            raise ValueError("Empty PHYLIP file")

        # Parse header
        header = lines[0].strip().split()
        if len(header) < 2:
            raise ValueError(f"Invalid PHYLIP header: '{lines[0].strip()}'")
        try:
            n_species = int(header[0])
            n_chars = int(header[1])
        except ValueError:
            raise ValueError(f"Invalid PHYLIP header: '{lines[0].strip()}'")

        names = []
        sequences_raw = []

        i = 1
        while i < len(lines) and len(names) < n_species:
            tokens = lines[i].strip().split()
            i += 1

            names.append(tokens[0])
            seq_data = ''.join(tokens[1:]).upper()

            # Collect sequence data until we have enough characters
            while len(seq_data) < n_chars and i < len(lines):
                seq_data += re.sub(r'\s', '', lines[i]).upper()
                i += 1

            sequences_raw.append(seq_data)

        if len(names) != n_species:
            raise ValueError(f"Expected {n_species} sequences, found {len(names)}")

        # Verify all sequences have correct length
        for name, seq in zip(names, sequences_raw):
            if len(seq) != n_chars:
                raise ValueError(
                    f"Sequence {name} has length {len(seq)}, expected {n_chars}"
                )

        return cls._from_raw(names, sequences_raw, seqtype)

    @classmethod
    def from_fasta(
        cls, filepath: Path | str, seqtype: Optional[Alphabet] = None
    ) -> "Alignment":
        """
        Parse FASTA format alignment file.

        The sequence name is the first word of the header line.

        Parameters
        ----------
        filepath : Path or str
            Path to FASTA format file
        seqtype : Alphabet, optional
            Sequence alphabet; inferred from the data when None

        Returns
        -------
        Alignment
            Parsed alignment
        """
        filepath = Path(filepath)

        names = []
        sequences_raw = []

        with open(filepath, 'r') as f:
            current_name = None
            current_seq = []

            for line in f:
                line = line.strip()

                if not line:
                    continue

                if line.startswith('>'):
                    # Save previous sequence if exists
                    if current_name is not None:
                        names.append(current_name)
                        sequences_raw.append(''.join(current_seq))

                    header = line[1:].split()
                    if not header:
                        raise ValueError("FASTA record without a name")
                    current_name = header[0]
                    current_seq = []
                else:
                    if current_name is None:
                        raise ValueError("Sequence data before the first FASTA header")
                    current_seq.append(line.upper())

            # Don't forget last sequence
            if current_name is not None:
                names.append(current_name)
                sequences_raw.append(''.join(current_seq))

        if not names:
            raise ValueError("No sequences found in FASTA file")

        sequences_clean = [re.sub(r'\s', '', seq) for seq in sequences_raw]

        # Check all sequences same length (WITH gaps intact)
        seq_lengths = [len(seq) for seq in sequences_clean]
        if len(set(seq_lengths)) > 1:
            raise ValueError(
                f"Sequences have different lengths: {sorted(set(seq_lengths))}"
            )

        return cls._from_raw(names, sequences_clean, seqtype)

    @classmethod
    def _from_raw(
        cls, names: list[str], sequences: list[str], seqtype: Optional[Alphabet]
    ) -> "Alignment":
        """Validate names and encode raw sequences."""
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate sequence names: {duplicates}")
        if not sequences or len(sequences[0]) == 0:
            raise ValueError("Alignment has no sites")

        if seqtype is None:
            seqtype = infer_alphabet(sequences)

        if seqtype is Alphabet.DNA:
            encoded = cls._encode_nucleotides(sequences)
        elif seqtype is Alphabet.PROTEIN:
            encoded = cls._encode_amino_acids(sequences)
        else:
            raise ValueError(f"Unknown seqtype: {seqtype}")

        return cls(
            names=list(names),
            sequences=encoded,
            n_species=len(names),
            n_sites=encoded.shape[1],
            seqtype=seqtype,
        )

    @staticmethod
    def _encode(sequences: list[str], table: dict, ambiguous: set) -> np.ndarray:
        n_sequences = len(sequences)
        n_sites = len(sequences[0])

        encoded = np.zeros((n_sequences, n_sites), dtype=np.int8)

        for i, seq in enumerate(sequences):
            for j, char in enumerate(seq):
                if char in table:
                    encoded[i, j] = table[char]
                elif char in GAP_CHARS:
                    encoded[i, j] = GAP_CODE
                elif char in ambiguous:
                    encoded[i, j] = UNKNOWN_CODE
                else:
                    raise ValueError(f"Invalid character '{char}' at site {j + 1} of sequence {i + 1}")

        return encoded

    @staticmethod
    def _encode_nucleotides(sequences: list[str]) -> np.ndarray:
        """Encode DNA sequences as integer arrays (0=T, 1=C, 2=A, 3=G)."""
        return Alignment._encode(sequences, NUCLEOTIDE_TO_INDEX, DNA_AMBIGUOUS)

    @staticmethod
    def _encode_amino_acids(sequences: list[str]) -> np.ndarray:
        """Encode amino acid sequences as integer arrays."""
        return Alignment._encode(sequences, AA_TO_INDEX, AA_AMBIGUOUS)

    def gap_only_columns(self) -> np.ndarray:
        """Boolean mask of columns that are gaps in every sequence."""
        return np.all(self.sequences == GAP_CODE, axis=0)

    def drop_gap_only_columns(self) -> "Alignment":
        """Return a copy without columns that are gaps in every sequence."""
        keep = ~self.gap_only_columns()
        sequences = self.sequences[:, keep].copy()
        return Alignment(
            names=list(self.names),
            sequences=sequences,
            n_species=self.n_species,
            n_sites=sequences.shape[1],
            seqtype=self.seqtype,
        )

    def empirical_frequencies(self, floor: float = 1e-4) -> np.ndarray:
        """
        Observed state frequencies, ignoring gaps and unresolved characters.

        States that never occur get ``floor`` so rate matrices stay
        well-defined; the result is renormalised to sum to 1.
        """
        observed = self.sequences[self.sequences >= 0]
        counts = np.bincount(observed.astype(np.int64), minlength=self.n_states).astype(float)
        if counts.sum() == 0:
            return np.ones(self.n_states) / self.n_states
        freqs = np.maximum(counts / counts.sum(), floor)
        return freqs / freqs.sum()

    def __repr__(self) -> str:
        return (
            f"Alignment(n_species={self.n_species}, n_sites={self.n_sites}, "
            f"seqtype='{self.seqtype}')"
        )
