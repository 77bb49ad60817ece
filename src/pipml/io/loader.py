"""
Loading of sequence data and starting trees for a run.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..exceptions import DataError
from ..models.ids import Alphabet
from ..optimize.distance_init import neighbor_joining_tree
from .sequences import Alignment
from .trees import Tree

logger = logging.getLogger(__name__)


@dataclass
class PhyloData:
    """Alignment and a matching rooted binary starting tree."""

    alignment: Alignment
    tree: Tree


def load_alignment(seq_file: Path | str, alphabet: Optional[Alphabet] = None) -> Alignment:
    """
    Read an alignment and drop columns that are gaps in every sequence.

    The sequences are read in ``alphabet`` when it is given and the
    alphabet is guessed from the characters otherwise.

    Raises
    ------
    DataError
        If the file cannot be read or parsed in the requested alphabet, or
        holds fewer than two sequences
    """
    seq_file = Path(seq_file)
    what = f"{alphabet} sequences" if alphabet is not None else "sequences"
    try:
        alignment = Alignment.from_file(seq_file, seqtype=alphabet)
    except (OSError, ValueError) as e:
        raise DataError(f"Could not read {what}: {e}", path=seq_file) from e

    if alignment.n_species < 2:
        raise DataError(
            f"Need at least 2 sequences, found {alignment.n_species}", path=seq_file
        )

    n_gap_only = int(alignment.gap_only_columns().sum())
    if n_gap_only:
        logger.info("Dropping %d all-gap columns", n_gap_only)
        alignment = alignment.drop_gap_only_columns()
    if alignment.n_sites == 0:
        raise DataError("Alignment has no sites left after removing all-gap columns", path=seq_file)

    logger.info(
        "Read %d %s sequences of %d sites", alignment.n_species, alignment.seqtype, alignment.n_sites
    )
    return alignment


def load_tree(tree_file: Path | str, alignment: Alignment) -> Tree:
    """
    Read a Newick tree and make it rooted, binary and complete.

    Raises
    ------
    DataError
        If the tree cannot be parsed or its leaves do not match the
        sequence names
    """
    tree_file = Path(tree_file)
    try:
        tree = Tree.from_file(tree_file)
    except (OSError, ValueError) as e:
        raise DataError(f"Could not read tree: {e}", path=tree_file) from e

    in_tree = set(tree.leaf_names)
    in_alignment = set(alignment.names)
    if in_tree != in_alignment:
        raise DataError(
            "Tree leaves and sequence names differ. "
            f"Only in tree: {sorted(in_tree - in_alignment)}. "
            f"Only in sequences: {sorted(in_alignment - in_tree)}",
            path=tree_file,
        )

    if not tree.is_binary():
        logger.info("Resolving multifurcations in the input tree")
    return tree.standardise()


def load_phylo_data(
    seq_file: Path | str,
    tree_file: Optional[Path | str] = None,
    alphabet: Optional[Alphabet] = None,
) -> PhyloData:
    """
    Load sequences and a starting tree.

    Without a tree file, a neighbor-joining tree is built from corrected
    pairwise distances.

    Parameters
    ----------
    seq_file : Path or str
        FASTA or PHYLIP alignment
    tree_file : Path or str, optional
        Newick starting tree
    alphabet : Alphabet, optional
        Alphabet the model expects

    Returns
    -------
    PhyloData
        Alignment and starting tree

    Raises
    ------
    DataError
        On malformed or inconsistent input, naming the offending file
    """
    alignment = load_alignment(seq_file, alphabet)
    if tree_file is None:
        logger.info("No tree file given, building a neighbor-joining tree")
        tree = neighbor_joining_tree(alignment)
    else:
        tree = load_tree(tree_file, alignment)
    return PhyloData(alignment=alignment, tree=tree)
