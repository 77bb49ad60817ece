"""
Likelihood calculation for phylogenetic models.

Two calculators share one compressed view of the alignment:

- :class:`SubstitutionLikelihood` runs Felsenstein's pruning algorithm and
  treats gaps as missing data.
- :class:`PIPLikelihood` computes the marginal likelihood under the Poisson
  Indel Process, where a gap is a state of its own (the extended alphabet
  has one extra state, epsilon, for "deleted").

Both work on unique site patterns weighted by their counts and evaluate all
patterns of a node in one vectorised step.
"""

from dataclasses import dataclass, field

import numpy as np
from scipy.special import gammaln

from ..io.sequences import GAP_CODE, Alignment
from ..io.trees import Tree, TreeNode
from .matrix import transition_matrices


@dataclass(eq=False)
class SitePatterns:
    """
    Alignment compressed to unique columns.

    Attributes
    ----------
    names : list[str]
        Sequence names, row order of ``patterns``
    patterns : ndarray, shape (n_species, n_patterns)
        Unique alignment columns
    weights : ndarray, shape (n_patterns,)
        Number of alignment columns per pattern
    n_states : int
        Size of the character alphabet
    empirical_freqs : ndarray, shape (n_states,)
        Observed state frequencies of the alignment
    """

    names: list[str]
    patterns: np.ndarray
    weights: np.ndarray
    n_states: int
    empirical_freqs: np.ndarray
    _rows: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_alignment(cls, alignment: Alignment) -> "SitePatterns":
        patterns, counts = np.unique(alignment.sequences, axis=1, return_counts=True)
        return cls(
            names=list(alignment.names),
            patterns=patterns,
            weights=counts.astype(float),
            n_states=alignment.n_states,
            empirical_freqs=alignment.empirical_frequencies(),
            _rows={name: i for i, name in enumerate(alignment.names)},
        )

    @property
    def n_patterns(self) -> int:
        return self.patterns.shape[1]

    @property
    def n_sites(self) -> int:
        return int(self.weights.sum())

    def row_of(self, leaf: TreeNode) -> int:
        return self._rows[leaf.name]

    def check_tree(self, tree: Tree) -> None:
        """
        Verify that tree leaves and sequences name the same taxa.

        Raises
        ------
        ValueError
            If the name sets differ
        """
        in_alignment = set(self.names)
        in_tree = set(tree.leaf_names)
        if in_alignment != in_tree or tree.n_leaves != len(self.names):
            raise ValueError(
                "Alignment and tree have different species. "
                f"In alignment but not tree: {sorted(in_alignment - in_tree)}. "
                f"In tree but not alignment: {sorted(in_tree - in_alignment)}"
            )


class _PrunedTree:
    """Traversal order and branch bookkeeping shared by both calculators."""

    def __init__(self, patterns: SitePatterns, tree: Tree):
        patterns.check_tree(tree)
        self.patterns = patterns
        self.tree = tree
        self.postorder = tree.postorder()
        self.branch_nodes = [node for node in self.postorder if not node.is_root]
        self.branch_index = {node.id: i for i, node in enumerate(self.branch_nodes)}
        self.lengths = np.array([node.branch_length for node in self.branch_nodes], dtype=float)

    def prune(self, tips: dict, P: np.ndarray) -> dict:
        """
        Conditional likelihoods of every node by post-order traversal.

        ``tips`` maps leaf ids to (n_patterns, n) arrays and ``P`` holds one
        (n, n) transition matrix per branch in ``branch_nodes`` order.
        """
        partials = {}
        for node in self.postorder:
            if node.is_leaf:
                partials[node.id] = tips[node.id]
                continue
            partial = None
            for child in node.children:
                # sum_j P[i, j] L_child[site, j]
                term = partials[child.id] @ P[self.branch_index[child.id]].T
                partial = term if partial is None else partial * term
            partials[node.id] = partial
        return partials


class SubstitutionLikelihood:
    """
    Felsenstein pruning with gaps and ambiguity codes as missing data.

    Parameters
    ----------
    patterns : SitePatterns
        Compressed alignment
    tree : Tree
        Rooted tree whose leaves match the alignment
    """

    def __init__(self, patterns: SitePatterns, tree: Tree):
        self._pruned = _PrunedTree(patterns, tree)
        self.patterns = patterns
        n_states = patterns.n_states

        self._tips = {}
        for leaf in tree.leaves():
            codes = patterns.patterns[patterns.row_of(leaf)]
            tip = np.ones((patterns.n_patterns, n_states))
            observed = codes >= 0
            tip[observed] = 0.0
            tip[observed, codes[observed]] = 1.0
            self._tips[leaf.id] = tip

    def pattern_probabilities(self, model) -> np.ndarray:
        """Probability of each site pattern under ``model``."""
        P = transition_matrices(model.eigen, self._pruned.lengths)
        partials = self._pruned.prune(self._tips, P)
        return partials[self._pruned.tree.root.id] @ model.freqs

    def log_likelihood(self, model) -> float:
        """
        Log-likelihood of the alignment.

        Parameters
        ----------
        model : SubstitutionModel
            Substitution model

        Returns
        -------
        float
            Log-likelihood; -inf if some pattern has probability zero
        """
        probs = self.pattern_probabilities(model)
        with np.errstate(divide='ignore'):
            return float(np.sum(self.patterns.weights * np.log(probs)))


class PIPLikelihood:
    """
    Marginal likelihood under the Poisson Indel Process.

    For a tree with total length tau, insertion rate lambda and deletion
    rate mu:

    - a character is inserted at the root with probability
      iota_root = (1/mu) / (tau + 1/mu), and on the branch above node v with
      probability iota_v = b_v / (tau + 1/mu);
    - a character inserted on that branch survives to v with probability
      beta_v = (1 - exp(-mu b_v)) / (mu b_v), and beta_root = 1;
    - a column c can only have been inserted at a node v whose subtree holds
      all of its non-gap characters. Then
      p(c) = sum_v iota_v beta_v f_v(c), where f_v is the pruning likelihood
      of the subtree over the extended alphabet, started from the
      stationary frequencies;
    - the expected number of columns is nu = lambda (tau + 1/mu), and the
      number of observed columns m is Poisson with mean nu (1 - p_empty).

    The log-likelihood is
    m log nu - log m! + nu (p_empty - 1) + sum_c log p(c).

    Parameters
    ----------
    patterns : SitePatterns
        Compressed alignment without all-gap columns
    tree : Tree
        Rooted tree whose leaves match the alignment
    """

    def __init__(self, patterns: SitePatterns, tree: Tree):
        self._pruned = _PrunedTree(patterns, tree)
        self.patterns = patterns
        n_states = patterns.n_states
        # One extra pattern at the end: the all-gap column
        n_cols = patterns.n_patterns + 1

        self._tips = {}
        present = {}
        for leaf in tree.leaves():
            codes = np.append(patterns.patterns[patterns.row_of(leaf)], GAP_CODE)
            tip = np.zeros((n_cols, n_states + 1))
            gap = codes == GAP_CODE
            observed = codes >= 0
            unknown = ~gap & ~observed
            tip[gap, n_states] = 1.0
            tip[observed, codes[observed]] = 1.0
            tip[unknown, :n_states] = 1.0
            self._tips[leaf.id] = tip
            present[leaf.id] = (~gap).astype(np.int64)

        # Non-gap characters below each node; v can host column c only if
        # its subtree holds all of them
        for node in self._pruned.postorder:
            if not node.is_leaf:
                present[node.id] = sum(present[child.id] for child in node.children)
        total = present[tree.root.id]
        self._nodes = self._pruned.postorder
        self._covers = np.array([present[node.id] == total for node in self._nodes])

    def _extended_matrices(self, model) -> np.ndarray:
        """Transition matrices over the alphabet extended with epsilon."""
        n = model.n_states
        lengths = self._pruned.lengths
        P = transition_matrices(model.substitution.eigen, lengths)
        survival = np.exp(-model.mu * lengths)

        P_ext = np.zeros((len(lengths), n + 1, n + 1))
        P_ext[:, :n, :n] = survival[:, np.newaxis, np.newaxis] * P
        P_ext[:, :n, n] = (1.0 - survival)[:, np.newaxis]
        P_ext[:, n, n] = 1.0
        return P_ext

    def _insertion_weights(self, model) -> tuple[np.ndarray, np.ndarray, float]:
        """iota and beta per node (post-order) and the total tree length."""
        tau = float(self._pruned.lengths.sum())
        norm = tau + 1.0 / model.mu
        iota = np.empty(len(self._nodes))
        beta = np.empty(len(self._nodes))
        for i, node in enumerate(self._nodes):
            if node.is_root:
                iota[i] = (1.0 / model.mu) / norm
                beta[i] = 1.0
            else:
                x = model.mu * node.branch_length
                iota[i] = node.branch_length / norm
                beta[i] = -np.expm1(-x) / x
        return iota, beta, tau

    def _column_terms(self, model) -> tuple[np.ndarray, float, float]:
        partials = self._pruned.prune(self._tips, self._extended_matrices(model))
        n = model.n_states
        pi = model.frequencies()
        iota, beta, tau = self._insertion_weights(model)

        # f_v for every node and column, shape (n_nodes, n_patterns + 1)
        f = np.array([partials[node.id][:, :n] @ pi for node in self._nodes])

        weights = (iota * beta)[:, np.newaxis]
        probs = np.sum(weights * f[:, :-1] * self._covers[:, :-1], axis=0)
        p_empty = float(np.sum(iota * (1.0 - beta + beta * f[:, -1])))
        return probs, p_empty, tau

    def pattern_probabilities(self, model) -> np.ndarray:
        """
        Probability of each non-empty site pattern under ``model``.

        Parameters
        ----------
        model : PIPModel
            Indel-aware model

        Returns
        -------
        ndarray, shape (n_patterns,)
            p(c) for every unique column
        """
        return self._column_terms(model)[0]

    def empty_column_probability(self, model) -> float:
        """Probability that an inserted character leaves no trace at the leaves."""
        return self._column_terms(model)[1]

    def log_likelihood(self, model) -> float:
        """
        Log-likelihood of the alignment, including the column-count term.

        Parameters
        ----------
        model : PIPModel
            Indel-aware model

        Returns
        -------
        float
            Log-likelihood; -inf if some column has probability zero
        """
        probs, p_empty, tau = self._column_terms(model)
        m = self.patterns.n_sites
        nu = model.lam * (tau + 1.0 / model.mu)
        log_phi = m * np.log(nu) - gammaln(m + 1) + nu * (p_empty - 1.0)
        with np.errstate(divide='ignore'):
            return float(log_phi + np.sum(self.patterns.weights * np.log(probs)))
