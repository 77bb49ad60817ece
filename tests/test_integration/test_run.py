"""
End-to-end inference runs on small alignments.
"""

import json

import numpy as np
import pytest

import pipml.api
from pipml import infer
from pipml.config import RunConfig
from pipml.exceptions import ConfigurationError, DataError, NumericalError
from pipml.io.trees import Tree


def run(dna_fasta, dna_tree_file, folder, **kwargs):
    options = dict(
        model="HKY",
        seq_file=dna_fasta,
        tree_file=dna_tree_file,
        max_iterations=2,
        epsilon=1e-2,
        seed=11,
        out_folder=folder,
        run_name="run",
        quiet=True,
    )
    options.update(kwargs)
    return infer(**options)


class TestRunArtifacts:
    """Test the files a run leaves behind."""

    def test_outputs_written(self, dna_fasta, dna_tree_file, out_folder):
        report = run(dna_fasta, dna_tree_file, out_folder)
        config = report.config

        assert config.out_dir.parent == out_folder
        for path in (
            config.start_tree,
            config.out_tree,
            config.out_logl,
            config.log_file,
            config.report_file,
        ):
            assert path.is_file(), path

        assert float(config.out_logl.read_text()) == pytest.approx(report.lnL, abs=1e-6)
        final = Tree.from_file(config.out_tree)
        assert sorted(final.leaf_names) == ["A", "B", "C", "D", "E"]
        assert "Configuration" in config.log_file.read_text()

        data = json.loads(config.report_file.read_text())
        assert data["run_id"] == config.run_id
        assert data["config"]["model"] == "HKY"
        assert data["lnL"] == pytest.approx(report.lnL)
        assert 1 <= data["iterations"] <= 2
        assert set(data["parameters"]) == {"lambda", "mu", "kappa"}

    def test_start_tree_from_neighbor_joining(self, dna_fasta, out_folder):
        report = run(dna_fasta, None, out_folder, gap_handling="missing")
        start = Tree.from_file(report.config.start_tree)
        assert start.n_leaves == 5
        assert "No input tree file provided." in report.config.log_file.read_text()

    def test_score_never_drops_after_model_phase(self, dna_fasta, dna_tree_file, out_folder):
        report = run(dna_fasta, dna_tree_file, out_folder)
        first = report.result.records[0]
        assert np.isfinite(report.lnL)
        assert report.lnL >= first.score_after


class TestReproducibility:
    """Test that the seed fixes the run."""

    def test_same_seed_same_result(self, dna_fasta, dna_tree_file, tmp_path):
        first = run(dna_fasta, dna_tree_file, tmp_path / "first")
        second = run(dna_fasta, dna_tree_file, tmp_path / "second")
        assert first.lnL == second.lnL
        assert first.final_tree_newick() == second.final_tree_newick()
        assert first.parameters() == second.parameters()

    def test_hky85_same_as_hky(self, dna_fasta, dna_tree_file, tmp_path):
        hky = run(dna_fasta, dna_tree_file, tmp_path / "hky", model="HKY")
        hky85 = run(dna_fasta, dna_tree_file, tmp_path / "hky85", model="HKY85")
        assert hky.lnL == hky85.lnL
        assert hky.final_tree_newick() == hky85.final_tree_newick()


class TestRunControl:
    """Test stopping and failure behaviour of whole runs."""

    def test_single_iteration(self, dna_fasta, dna_tree_file, out_folder):
        report = run(dna_fasta, dna_tree_file, out_folder, max_iterations=1, epsilon=None)
        assert report.result.iterations == 1
        assert [r.phase for r in report.result.records] == ["model", "topology"]

    def test_bad_parameters_fail_before_loading(self, dna_fasta, out_folder, monkeypatch):
        """GTR with two parameters is rejected before any data is read."""
        def fail(*args, **kwargs):
            raise AssertionError("data should not be loaded")

        monkeypatch.setattr(pipml.api, "load_phylo_data", fail)
        for gap_handling in ("pip", "missing"):
            with pytest.raises(ConfigurationError):
                infer("GTR", dna_fasta, gap_handling=gap_handling, params=[1.0, 2.0],
                      out_folder=out_folder)
        assert list(out_folder.iterdir()) == []

    def test_data_error_is_logged(self, protein_fasta, out_folder):
        config = RunConfig.build(
            "HKY", protein_fasta, out_folder=out_folder, run_name="bad", timestamp=42
        )
        with pytest.raises(DataError):
            pipml.api.run_inference(config, quiet=True)
        assert "Run failed" in config.log_file.read_text()

    def test_start_tree_scoring_failure(self, dna_fasta, dna_tree_file, out_folder, monkeypatch):
        """Arithmetic errors before the loop become NumericalError."""
        class Unscorable:
            def score(self):
                raise FloatingPointError("overflow in exp")

        monkeypatch.setattr(pipml.api, "build_cost", lambda *args, **kwargs: Unscorable())
        config = RunConfig.build(
            "HKY", dna_fasta, tree_file=dna_tree_file, out_folder=out_folder, timestamp=7
        )
        with pytest.raises(NumericalError, match="overflow in exp"):
            pipml.api.run_inference(config, quiet=True)
        assert "Run failed" in config.log_file.read_text()

    def test_protein_run(self, protein_fasta, matrix_dir, out_folder):
        report = infer(
            "WAG", protein_fasta, gap_handling="missing", max_iterations=1, epsilon=None,
            seed=3, out_folder=out_folder, matrix_dir=matrix_dir, quiet=True,
        )
        assert np.isfinite(report.lnL)
        assert len(report.frequencies()) == 20

    def test_protein_run_with_bundled_matrix(self, protein_fasta, out_folder):
        report = infer(
            "BLOSUM", protein_fasta, max_iterations=1, epsilon=None,
            seed=5, out_folder=out_folder, quiet=True,
        )
        assert np.isfinite(report.lnL)
        assert report.config.matrix_dir is None
