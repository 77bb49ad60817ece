"""
Unit tests for model, branch length and topology optimisation.
"""

import numpy as np
import pytest

from pipml.core.cost import SubstitutionCost
from pipml.core.likelihood import SitePatterns
from pipml.dispatch import build_cost
from pipml.exceptions import NumericalError
from pipml.io.loader import load_phylo_data
from pipml.io.sequences import Alignment
from pipml.io.trees import Tree
from pipml.models.ids import Alphabet, FrequencyOptimisation, GapHandling, SubstModelId
from pipml.models.substitution import build_substitution_model
from pipml.optimize.branch import BranchLengthOptimizer
from pipml.optimize.model import ModelOptimizer, optimise_model
from pipml.optimize.topology import SPRSearch, search_topology
from pipml.stopping import Epsilon, MaxIterations


@pytest.fixture
def dna_data(dna_fasta, dna_tree_file):
    return load_phylo_data(dna_fasta, dna_tree_file)


def hky_cost(data, gap=GapHandling.MISSING, freqs=(0.1, 0.2, 0.3, 0.4)):
    params = (2.0,) if gap is GapHandling.MISSING else (1.0, 0.1, 2.0)
    return build_cost(gap, SubstModelId.HKY, freqs, params, data.alignment, data.tree)


class TestModelOptimizer:
    """Test model parameter optimisation."""

    def test_fixed_keeps_frequencies(self, dna_data):
        cost = hky_cost(dna_data)
        result = optimise_model(cost, FrequencyOptimisation.FIXED, Epsilon(1e-3))
        np.testing.assert_allclose(result.frequencies(), cost.frequencies())
        assert result.score() >= cost.score()

    def test_empirical_sets_frequencies(self, dna_data):
        cost = hky_cost(dna_data)
        result = optimise_model(cost, FrequencyOptimisation.EMPIRICAL, Epsilon(1e-3))
        np.testing.assert_allclose(result.frequencies(), cost.empirical_frequencies())
        empirical_start = cost.with_frequencies(cost.empirical_frequencies())
        assert result.score() >= empirical_start.score()

    def test_estimated_frequencies(self, dna_data):
        cost = hky_cost(dna_data)
        result = optimise_model(cost, FrequencyOptimisation.ESTIMATED, MaxIterations(1))
        assert result.frequencies().sum() == pytest.approx(1.0)
        assert result.score() >= cost.score()

    def test_pip_rates_optimised(self, dna_data):
        cost = hky_cost(dna_data, gap=GapHandling.PIP)
        result = optimise_model(cost, FrequencyOptimisation.FIXED, Epsilon(1e-3))
        assert result.score() > cost.score()
        assert result.parameter_names == ("lambda", "mu", "kappa")
        assert np.all(result.parameters() > 0)

    def test_input_cost_untouched(self, dna_data):
        cost = hky_cost(dna_data)
        before = cost.parameters()
        optimise_model(cost, FrequencyOptimisation.FIXED, Epsilon(1e-3))
        np.testing.assert_array_equal(cost.parameters(), before)

    def test_nothing_to_optimise(self, dna_data):
        cost = build_cost(
            GapHandling.MISSING, SubstModelId.JC69, (), (), dna_data.alignment, dna_data.tree
        )
        result = ModelOptimizer(cost, FrequencyOptimisation.ESTIMATED, Epsilon(1e-3)).optimize()
        assert result is cost

    def test_penalty_on_failure(self, dna_data):
        cost = hky_cost(dna_data)
        optimizer = ModelOptimizer(cost, FrequencyOptimisation.FIXED, Epsilon(1e-3))
        assert optimizer.compute_log_likelihood(np.array([np.nan]), cost) >= 1e10

    def test_objective_is_negative_log_likelihood(self, dna_data):
        cost = hky_cost(dna_data)
        optimizer = ModelOptimizer(cost, FrequencyOptimisation.FIXED, Epsilon(1e-3))
        x = optimizer._pack(cost)
        assert optimizer.compute_log_likelihood(x, cost) == pytest.approx(-cost.score())


class TestBranchLengthOptimizer:
    """Test branch length optimisation."""

    def test_bad_branch_is_improved(self, dna_data):
        cost = hky_cost(dna_data)
        stretched = cost.with_tree(cost.tree.with_branch_length(2, 5.0))
        result = BranchLengthOptimizer().optimize_branch(stretched, 2)
        assert result.score() > stretched.score()
        assert result.tree.node_map()[2].branch_length < 5.0

    def test_full_pass_never_worse(self, dna_data):
        cost = hky_cost(dna_data)
        result = BranchLengthOptimizer().optimize(cost)
        assert result.score() >= cost.score()
        assert sorted(result.tree.leaf_names) == sorted(cost.tree.leaf_names)


class TestTopologySearch:
    """Test SPR topology search."""

    def test_two_leaves_rejected(self):
        aln = Alignment._from_raw(["x", "y"], ["ACGT", "ACGA"], Alphabet.DNA)
        tree = Tree.from_newick("(x:0.1,y:0.1);").standardise()
        cost = SubstitutionCost(
            build_substitution_model(SubstModelId.JC69), tree, SitePatterns.from_alignment(aln)
        )
        with pytest.raises(NumericalError, match="2 leaves"):
            search_topology(cost, Epsilon(1e-3), np.random.default_rng(0))

    def test_search_never_worse(self, dna_data):
        cost = hky_cost(dna_data)
        result, score = search_topology(cost, MaxIterations(1), np.random.default_rng(1))
        assert score == result.score()
        assert score >= cost.score()
        assert result.tree.is_binary()
        assert sorted(result.tree.leaf_names) == sorted(cost.tree.leaf_names)

    def test_same_seed_same_tree(self, dna_data):
        cost = hky_cost(dna_data)
        first, _ = search_topology(cost, MaxIterations(1), np.random.default_rng(7))
        second, _ = search_topology(cost, MaxIterations(1), np.random.default_rng(7))
        assert first.tree.to_newick() == second.tree.to_newick()
        assert first.score() == second.score()

    def test_rng_is_consumed(self, dna_data):
        rng = np.random.default_rng(5)
        untouched = np.random.default_rng(5)
        SPRSearch(MaxIterations(1), rng).run_round(hky_cost(dna_data))
        assert rng.random() != untouched.random()

    def test_recovers_from_misplaced_leaf(self, dna_data):
        """Moving A next to E lowers the score; the search climbs back."""
        cost = hky_cost(dna_data)
        moved = cost.with_tree(cost.tree.spr(2, 8))
        result, score = search_topology(moved, Epsilon(1e-3), np.random.default_rng(0))
        assert score > moved.score()
