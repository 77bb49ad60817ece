"""
Distance-based starting trees.

Builds a neighbor-joining tree from corrected pairwise distances when no
starting tree is supplied. The construction is deterministic: ties are
broken by the lowest index pair.
"""

import numpy as np

from ..io.sequences import Alignment
from ..io.trees import MIN_BRANCH_LENGTH, Tree, TreeNode

SATURATED_DISTANCE = 5.0


def compute_pairwise_distances(alignment: Alignment) -> np.ndarray:
    """
    Compute pairwise corrected distances between sequences.

    Uses the Jukes-Cantor correction d = -b log(1 - p/b) with
    b = (K - 1) / K for K states (3/4 for DNA, 19/20 for protein).

    Parameters
    ----------
    alignment : Alignment
        Sequence alignment

    Returns
    -------
    np.ndarray
        Matrix of pairwise distances (n_species x n_species)
    """
    n_seqs = alignment.n_species
    sequences = alignment.sequences  # shape: (n_seqs, n_sites)
    distances = np.zeros((n_seqs, n_seqs))
    b = (alignment.n_states - 1) / alignment.n_states

    # Resolved states only; gaps and ambiguity codes are skipped pairwise
    valid_mask = sequences >= 0

    for i in range(n_seqs):
        for j in range(i + 1, n_seqs):
            both_valid = valid_mask[i] & valid_mask[j]
            valid_sites = both_valid.sum()

            if valid_sites > 0:
                differences = ((sequences[i] != sequences[j]) & both_valid).sum()
                p_dist = differences / valid_sites

                if p_dist < b - 0.01:  # avoid log of negative
                    dist = -b * np.log(1.0 - p_dist / b)
                else:
                    dist = SATURATED_DISTANCE
            else:
                dist = SATURATED_DISTANCE

            distances[i, j] = dist
            distances[j, i] = dist

    return distances


def neighbor_joining(distances: np.ndarray, names: list[str]) -> Tree:
    """
    Build a rooted binary tree by neighbor joining.

    The final two clusters become the children of the root, each with half
    of their remaining distance.

    Parameters
    ----------
    distances : np.ndarray
        Symmetric distance matrix
    names : list[str]
        Leaf names in matrix order

    Returns
    -------
    Tree
        Rooted binary tree with non-negative branch lengths
    """
    n = len(names)
    if n < 2:
        raise ValueError("Neighbor joining needs at least 2 sequences")

    clusters = [TreeNode(id=-1, name=name) for name in names]
    d = np.array(distances, dtype=float)

    def join(a: TreeNode, b: TreeNode, len_a: float, len_b: float) -> TreeNode:
        parent = TreeNode(id=-1)
        a.parent = parent
        b.parent = parent
        a.branch_length = max(len_a, MIN_BRANCH_LENGTH)
        b.branch_length = max(len_b, MIN_BRANCH_LENGTH)
        parent.children = [a, b]
        return parent

    while len(clusters) > 2:
        m = len(clusters)
        row_sums = d.sum(axis=1)
        q = (m - 2) * d - row_sums[:, np.newaxis] - row_sums[np.newaxis, :]
        np.fill_diagonal(q, np.inf)
        i, j = np.unravel_index(np.argmin(q), q.shape)
        i, j = min(i, j), max(i, j)

        len_i = 0.5 * d[i, j] + (row_sums[i] - row_sums[j]) / (2 * (m - 2))
        len_j = d[i, j] - len_i
        joined = join(clusters[i], clusters[j], len_i, len_j)

        new_row = 0.5 * (d[i] + d[j] - d[i, j])
        keep = [k for k in range(m) if k not in (i, j)]
        new_d = np.zeros((m - 1, m - 1))
        new_d[:-1, :-1] = d[np.ix_(keep, keep)]
        new_d[-1, :-1] = new_row[keep]
        new_d[:-1, -1] = new_row[keep]
        d = new_d
        clusters = [clusters[k] for k in keep] + [joined]

    half = d[0, 1] / 2.0
    root = join(clusters[0], clusters[1], half, half)
    return Tree.from_root(root).standardise()


def neighbor_joining_tree(alignment: Alignment) -> Tree:
    """Neighbor-joining starting tree for an alignment."""
    return neighbor_joining(compute_pairwise_distances(alignment), alignment.names)
