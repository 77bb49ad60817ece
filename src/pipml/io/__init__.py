"""
Input/Output modules for sequence alignments and phylogenetic trees.

This module provides classes for reading and working with:

- **Sequence alignments**: FASTA and PHYLIP formats, DNA or protein
- **Phylogenetic trees**: Newick format

The main classes handle file parsing, format detection, and data validation.
Loading a complete run input is done by :mod:`pipml.io.loader`.
"""

from pipml.io.sequences import Alignment
from pipml.io.trees import Tree, TreeNode

__all__ = ["Alignment", "Tree", "TreeNode"]
