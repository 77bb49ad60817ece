"""
Unit tests for I/O modules (sequence and tree parsing, data loading).
"""

import numpy as np
import pytest

from pipml.exceptions import DataError
from pipml.io.loader import load_alignment, load_phylo_data, load_tree
from pipml.io.sequences import GAP_CODE, UNKNOWN_CODE, Alignment, infer_alphabet
from pipml.io.trees import MIN_BRANCH_LENGTH, Tree
from pipml.models.ids import Alphabet

LEAVES = ["A", "B", "C", "D", "E"]


def write_fasta(path, sequences):
    path.write_text("".join(f">{name}\n{seq}\n" for name, seq in sequences.items()))
    return path


class TestSequenceParsing:
    """Test FASTA and PHYLIP parsing."""

    def test_parse_fasta(self, dna_fasta):
        aln = Alignment.from_file(dna_fasta)
        assert aln.names == ["A", "B", "C", "D", "E"]
        assert aln.n_sites == 31
        assert aln.seqtype is Alphabet.DNA
        assert aln.sequences.dtype == np.int8

    def test_parse_phylip_classic(self, tmp_path):
        path = tmp_path / "aln.phy"
        path.write_text("2 6\nx  ACGTAC\ny  ACG-AN\n")
        aln = Alignment.from_file(path)
        assert aln.names == ["x", "y"]
        np.testing.assert_array_equal(aln.sequences[0], [2, 1, 3, 0, 2, 1])
        np.testing.assert_array_equal(
            aln.sequences[1], [2, 1, 3, GAP_CODE, 2, UNKNOWN_CODE]
        )

    def test_parse_phylip_sequential(self, tmp_path):
        """Name on its own line, sequence wrapped over several lines."""
        path = tmp_path / "aln.phy"
        path.write_text("2 6\nx\nACGTAC\ny\nACG\nTAC\n")
        aln = Alignment.from_phylip(path)
        assert aln.names == ["x", "y"]
        assert aln.n_sites == 6
        np.testing.assert_array_equal(aln.sequences[0], aln.sequences[1])

    def test_phylip_wrong_count(self, tmp_path):
        path = tmp_path / "aln.phy"
        path.write_text("3 4\nx ACGT\ny ACGT\n")
        with pytest.raises(ValueError, match="Expected 3 sequences"):
            Alignment.from_phylip(path)

    def test_fasta_unequal_lengths(self, tmp_path):
        path = write_fasta(tmp_path / "bad.fasta", {"x": "ACGT", "y": "ACG"})
        with pytest.raises(ValueError, match="different lengths"):
            Alignment.from_fasta(path)

    def test_duplicate_names(self, tmp_path):
        path = tmp_path / "dup.fasta"
        path.write_text(">x\nACGT\n>x\nACGA\n")
        with pytest.raises(ValueError, match="Duplicate"):
            Alignment.from_fasta(path)

    def test_invalid_character(self, tmp_path):
        path = write_fasta(tmp_path / "bad.fasta", {"x": "ACGT", "y": "AC!T"})
        with pytest.raises(ValueError, match="Invalid character"):
            Alignment.from_fasta(path, seqtype=Alphabet.DNA)

    def test_infer_alphabet(self):
        assert infer_alphabet(["ACGT-N", "ACGTTA"]) is Alphabet.DNA
        assert infer_alphabet(["MKVLAA", "MKVLSA"]) is Alphabet.PROTEIN
        with pytest.raises(ValueError):
            infer_alphabet(["---", "..."])

    def test_gap_only_columns(self):
        aln = Alignment._from_raw(["x", "y"], ["A-C-", "G-T-"], Alphabet.DNA)
        np.testing.assert_array_equal(aln.gap_only_columns(), [False, True, False, True])
        dropped = aln.drop_gap_only_columns()
        assert dropped.n_sites == 2
        np.testing.assert_array_equal(dropped.sequences[0], [2, 1])

    def test_empirical_frequencies(self):
        aln = Alignment._from_raw(["x", "y"], ["AAAA", "AAC-"], Alphabet.DNA)
        freqs = aln.empirical_frequencies()
        assert freqs.sum() == pytest.approx(1.0)
        assert np.all(freqs > 0)
        assert np.argmax(freqs) == 2  # A


class TestTreeParsing:
    """Test Newick parsing and serialisation."""

    def test_parse(self):
        tree = Tree.from_newick("((A:0.1,B:0.2):0.05,C:0.3);")
        assert tree.n_leaves == 3
        assert tree.n_nodes == 5
        assert sorted(tree.leaf_names) == ["A", "B", "C"]
        assert tree.is_binary()
        assert tree.total_length() == pytest.approx(0.65)

    def test_comments_and_whitespace(self):
        tree = Tree.from_newick("( A : 0.1 [note], B:0.2 )\n;")
        assert sorted(tree.leaf_names) == ["A", "B"]

    def test_to_newick(self):
        tree = Tree.from_newick("(A:0.1,B:0.2);")
        assert tree.to_newick(precision=2) == "(A:0.10,B:0.20);"

    @pytest.mark.parametrize("newick, message", [
        ("(A:0.1,B:0.2)", "semicolon"),
        ("(A:0.1,B:x);", "branch length"),
        ("(A:0.1,B:-0.2);", "Negative"),
        ("(A,A);", "Duplicate"),
        ("(A,);", "Unnamed leaf"),
        ("(A,B)C,D;", "Unexpected text"),
    ])
    def test_invalid_newick(self, newick, message):
        with pytest.raises(ValueError, match=message):
            Tree.from_newick(newick)

    def test_standardise_polytomy(self):
        tree = Tree.from_newick("(A,B,C,D);").standardise()
        assert tree.is_binary()
        assert tree.n_nodes == 7
        assert sorted(node.id for node in tree.preorder()) == list(range(7))
        assert tree.root.branch_length == 0.0
        assert all(length >= MIN_BRANCH_LENGTH for length in tree.branch_lengths())
        leaf_lengths = {leaf.name: leaf.branch_length for leaf in tree.leaves()}
        assert leaf_lengths["D"] == pytest.approx(0.1)

    def test_standardise_unary_node(self):
        tree = Tree.from_newick("((A:0.1):0.2,B:0.3);").standardise()
        assert tree.n_nodes == 3
        leaf_lengths = {leaf.name: leaf.branch_length for leaf in tree.leaves()}
        assert leaf_lengths["A"] == pytest.approx(0.3)

    def test_copy_is_independent(self):
        tree = Tree.from_newick("((A:0.1,B:0.2):0.05,C:0.3);").standardise()
        changed = tree.with_branch_length(2, 1.5)
        assert changed.node_map()[2].branch_length == 1.5
        assert tree.node_map()[2].branch_length != 1.5


class TestSPR:
    """Test subtree prune and regraft moves."""

    @pytest.fixture
    def tree(self, dna_tree_file):
        # ids in pre-order: 0 root, 1 (A,B), 2 A, 3 B, 4, 5 (C,D), 6 C, 7 D, 8 E
        return Tree.from_file(dna_tree_file).standardise()

    def test_candidates(self, tree):
        assert tree.spr_candidates(2) == [4, 5, 6, 7, 8]
        assert tree.spr_candidates(0) == []

    def test_move_preserves_ids_and_leaves(self, tree):
        moved = tree.spr(2, 8)
        assert sorted(moved.node_map()) == sorted(tree.node_map())
        assert sorted(moved.leaf_names) == sorted(tree.leaf_names)
        assert moved.is_binary()

        nodes = moved.node_map()
        assert nodes[2].parent is nodes[8].parent
        # The sibling took the joint's place and its branch
        assert nodes[3].parent is moved.root
        assert nodes[3].branch_length == pytest.approx(0.15)
        # The original tree is untouched
        assert tree.node_map()[2].parent.id == 1

    def test_move_to_sibling_rejected(self, tree):
        with pytest.raises(ValueError, match="Invalid SPR move"):
            tree.spr(2, 3)


class TestLoader:
    """Test loading of run inputs."""

    def test_drops_all_gap_columns(self, dna_fasta):
        aln = load_alignment(dna_fasta)
        assert aln.n_sites == 30
        assert not aln.gap_only_columns().any()

    def test_alphabet_mismatch(self, protein_fasta):
        with pytest.raises(DataError, match="Could not read dna sequences"):
            load_alignment(protein_fasta, Alphabet.DNA)

    def test_requested_alphabet_wins(self, tmp_path):
        """A protein alignment made of nucleotide letters stays protein."""
        path = write_fasta(tmp_path / "prot.fasta", {"x": "ACGTAC", "y": "ACGTTA"})
        assert load_alignment(path).seqtype is Alphabet.DNA
        aln = load_alignment(path, Alphabet.PROTEIN)
        assert aln.seqtype is Alphabet.PROTEIN
        assert aln.n_states == 20

    def test_single_sequence(self, tmp_path):
        path = write_fasta(tmp_path / "one.fasta", {"x": "ACGT"})
        with pytest.raises(DataError) as excinfo:
            load_alignment(path)
        assert excinfo.value.path == path
        assert "one.fasta" in str(excinfo.value)

    def test_only_gaps(self, tmp_path):
        path = write_fasta(tmp_path / "gaps.fasta", {"x": "---", "y": "---"})
        with pytest.raises(DataError):
            load_alignment(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(DataError, match="Could not read sequences"):
            load_alignment(tmp_path / "nope.fasta")

    def test_tree_names_must_match(self, dna_fasta, tmp_path):
        tree_file = tmp_path / "tree.nwk"
        tree_file.write_text("((A:0.1,B:0.1):0.1,(C:0.1,Z:0.1):0.1,E:0.1);")
        with pytest.raises(DataError, match="Only in tree: \\['Z'\\]"):
            load_tree(tree_file, load_alignment(dna_fasta))

    def test_bad_tree(self, dna_fasta, tmp_path):
        tree_file = tmp_path / "tree.nwk"
        tree_file.write_text("((A,B),(C,D),E)")
        with pytest.raises(DataError, match="Could not read tree"):
            load_tree(tree_file, load_alignment(dna_fasta))

    def test_multifurcating_tree_resolved(self, dna_fasta, tmp_path):
        tree_file = tmp_path / "tree.nwk"
        tree_file.write_text("((A,B),(C,D),E);")
        tree = load_tree(tree_file, load_alignment(dna_fasta))
        assert tree.is_binary()
        assert tree.n_nodes == 9

    def test_neighbor_joining_start_tree(self, dna_fasta):
        data = load_phylo_data(dna_fasta)
        assert sorted(data.tree.leaf_names) == LEAVES
        assert data.tree.is_binary()
        assert data.tree.n_nodes == 2 * len(LEAVES) - 1
        assert all(length >= MIN_BRANCH_LENGTH for length in data.tree.branch_lengths())

    def test_given_tree(self, dna_fasta, dna_tree_file):
        data = load_phylo_data(dna_fasta, dna_tree_file)
        assert data.alignment.n_sites == 30
        assert data.tree.total_length() == pytest.approx(0.55)
