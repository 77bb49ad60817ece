"""
Unit tests for likelihood calculation.
"""

import itertools

import numpy as np
import pytest

from pipml.core.likelihood import PIPLikelihood, SitePatterns, SubstitutionLikelihood
from pipml.io.sequences import Alignment
from pipml.io.trees import Tree
from pipml.models.ids import Alphabet, SubstModelId
from pipml.models.pip import PIPModel
from pipml.models.substitution import build_substitution_model


def make_alignment(columns: list[str], names: list[str]) -> Alignment:
    """Alignment from a list of columns (one character per sequence)."""
    rows = ["".join(col[i] for col in columns) for i in range(len(names))]
    return Alignment._from_raw(names, rows, Alphabet.DNA)


def all_columns(n_leaves: int, with_gaps: bool) -> list[str]:
    chars = "TCAG-" if with_gaps else "TCAG"
    columns = ["".join(c) for c in itertools.product(chars, repeat=n_leaves)]
    return [c for c in columns if set(c) != {"-"}]


class TestSitePatterns:
    """Test site pattern compression."""

    def test_duplicate_columns_are_merged(self):
        aln = make_alignment(["AA", "AA", "AC", "G-"], ["x", "y"])
        patterns = SitePatterns.from_alignment(aln)
        assert patterns.n_patterns == 3
        assert patterns.n_sites == 4
        assert sorted(patterns.weights) == [1.0, 1.0, 2.0]

    def test_tree_must_match(self):
        aln = make_alignment(["AA"], ["x", "y"])
        patterns = SitePatterns.from_alignment(aln)
        with pytest.raises(ValueError, match="different species"):
            SubstitutionLikelihood(patterns, Tree.from_newick("(x:0.1,z:0.1);"))


class TestSubstitutionLikelihood:
    """Test Felsenstein pruning with missing data."""

    def test_two_taxon_jc69_analytic(self):
        """P(same) = 1/4 (1/4 + 3/4 e^{-4t/3}) for JC69 and total distance t."""
        aln = make_alignment(["AA", "AC"], ["x", "y"])
        tree = Tree.from_newick("(x:0.1,y:0.2);")
        model = build_substitution_model(SubstModelId.JC69)
        calc = SubstitutionLikelihood(SitePatterns.from_alignment(aln), tree)

        t = 0.3
        same = 0.25 * (0.25 + 0.75 * np.exp(-4.0 * t / 3.0))
        diff = 0.25 * (0.25 - 0.25 * np.exp(-4.0 * t / 3.0))
        expected = np.log(same) + np.log(diff)
        assert calc.log_likelihood(model) == pytest.approx(expected, rel=1e-10)

    def test_pattern_probabilities_sum_to_one(self):
        names = ["a", "b"]
        aln = make_alignment(all_columns(2, with_gaps=False), names)
        tree = Tree.from_newick("(a:0.15,b:0.4);")
        model = build_substitution_model(SubstModelId.GTR, (0.1, 0.2, 0.3, 0.4), (1, 2, 3, 4, 5, 6))
        calc = SubstitutionLikelihood(SitePatterns.from_alignment(aln), tree)
        assert calc.pattern_probabilities(model).sum() == pytest.approx(1.0)

    def test_pattern_probabilities_sum_to_one_three_taxa(self):
        names = ["a", "b", "c"]
        aln = make_alignment(all_columns(3, with_gaps=False), names)
        tree = Tree.from_newick("((a:0.1,b:0.2):0.05,c:0.3);")
        model = build_substitution_model(SubstModelId.HKY, (0.3, 0.2, 0.1, 0.4), (4.0,))
        calc = SubstitutionLikelihood(SitePatterns.from_alignment(aln), tree)
        assert calc.pattern_probabilities(model).sum() == pytest.approx(1.0)

    def test_gap_is_missing_data(self):
        """A column with one gap has the probability of the remaining character."""
        aln = make_alignment(["A-"], ["x", "y"])
        tree = Tree.from_newick("(x:0.1,y:0.2);")
        model = build_substitution_model(SubstModelId.JC69)
        calc = SubstitutionLikelihood(SitePatterns.from_alignment(aln), tree)
        assert calc.log_likelihood(model) == pytest.approx(np.log(0.25))

    def test_longer_branch_lower_likelihood_for_identical(self):
        aln = make_alignment(["AA", "CC", "GG"], ["x", "y"])
        model = build_substitution_model(SubstModelId.K80, (), (2.0,))
        patterns = SitePatterns.from_alignment(aln)
        short = SubstitutionLikelihood(patterns, Tree.from_newick("(x:0.01,y:0.01);"))
        long = SubstitutionLikelihood(patterns, Tree.from_newick("(x:1.0,y:1.0);"))
        assert short.log_likelihood(model) > long.log_likelihood(model)


class TestPIPLikelihood:
    """Test the Poisson Indel Process likelihood."""

    @pytest.mark.parametrize("newick", [
        "(a:0.15,b:0.4);",
        "((a:0.1,b:0.2):0.05,c:0.3);",
        "((a:0.1,b:0.2):0.05,(c:0.3,d:0.25):0.1);",
    ])
    def test_column_probabilities_sum_to_one(self, newick):
        """p(empty) plus p(c) over every non-empty column is 1."""
        tree = Tree.from_newick(newick)
        names = sorted(tree.leaf_names)
        aln = make_alignment(all_columns(len(names), with_gaps=True), names)
        substitution = build_substitution_model(
            SubstModelId.HKY, (0.3, 0.2, 0.1, 0.4), (3.0,)
        )
        model = PIPModel(substitution, lam=2.0, mu=0.7)
        calc = PIPLikelihood(SitePatterns.from_alignment(aln), tree)

        probs = calc.pattern_probabilities(model)
        assert np.all(probs > 0)
        total = probs.sum() + calc.empty_column_probability(model)
        assert total == pytest.approx(1.0)

    def test_two_taxon_gap_column(self):
        """Column (A, -): inserted above x, or at the root and deleted towards y."""
        tree = Tree.from_newick("(x:0.2,y:0.3);")
        aln = make_alignment(["A-"], ["x", "y"])
        model = PIPModel(build_substitution_model(SubstModelId.JC69), lam=1.0, mu=0.5)
        calc = PIPLikelihood(SitePatterns.from_alignment(aln), tree)

        mu, bx, by = 0.5, 0.2, 0.3
        norm = bx + by + 1.0 / mu
        survive_x, survive_y = np.exp(-mu * bx), np.exp(-mu * by)
        beta_x = (1.0 - survive_x) / (mu * bx)
        root = (1.0 / mu) / norm * 0.25 * survive_x * (1.0 - survive_y)
        on_x = bx / norm * beta_x * 0.25
        assert calc.pattern_probabilities(model)[0] == pytest.approx(root + on_x)

    def test_log_likelihood_includes_column_count(self):
        tree = Tree.from_newick("(x:0.2,y:0.3);")
        aln = make_alignment(["AA", "AC", "G-"], ["x", "y"])
        model = PIPModel(build_substitution_model(SubstModelId.JC69), lam=3.0, mu=0.4)
        calc = PIPLikelihood(SitePatterns.from_alignment(aln), tree)

        probs = calc.pattern_probabilities(model)
        p_empty = calc.empty_column_probability(model)
        nu = 3.0 * (0.5 + 1.0 / 0.4)
        m = 3
        expected = (
            m * np.log(nu) - np.log(6.0) + nu * (p_empty - 1.0)
            + np.sum(calc.patterns.weights * np.log(probs))
        )
        assert calc.log_likelihood(model) == pytest.approx(expected)

    def test_unknown_character(self):
        """An ambiguity code is a present character of unknown state."""
        tree = Tree.from_newick("(x:0.2,y:0.3);")
        model = PIPModel(build_substitution_model(SubstModelId.JC69), lam=1.0, mu=0.5)
        unknown = PIPLikelihood(
            SitePatterns.from_alignment(make_alignment(["AN"], ["x", "y"])), tree
        )
        summed = sum(
            PIPLikelihood(
                SitePatterns.from_alignment(make_alignment([f"A{c}"], ["x", "y"])), tree
            ).pattern_probabilities(model)[0]
            for c in "TCAG"
        )
        assert unknown.pattern_probabilities(model)[0] == pytest.approx(summed)

    def test_more_branches_than_states(self):
        """Five leaves give eight branches, twice the nucleotide alphabet."""
        tree = Tree.from_newick("((a:0.1,b:0.2):0.05,((c:0.3,d:0.25):0.1,e:0.2):0.07);")
        aln = make_alignment(["AAAA-", "ACG-T", "--TTG", "CCCCC"], ["a", "b", "c", "d", "e"])
        model = PIPModel(build_substitution_model(SubstModelId.HKY), lam=1.5, mu=0.3)
        calc = PIPLikelihood(SitePatterns.from_alignment(aln), tree)

        probs = calc.pattern_probabilities(model)
        assert probs.shape == (4,)
        assert np.all(probs > 0) and np.all(probs < 1)
        assert 0 < calc.empty_column_probability(model) < 1
        assert np.isfinite(calc.log_likelihood(model))
