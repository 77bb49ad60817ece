"""
Run report: final score, final tree and per-iteration diagnostics.
"""

import json
from typing import Any, Dict, Optional

from .config import RunConfig
from .driver import DriverResult
from .io.trees import Tree
from .models.ids import GapHandling


class RunReport:
    """
    Formatted outcome of an inference run.

    Parameters
    ----------
    config : RunConfig
        Configuration of the run
    result : DriverResult
        Driver outcome
    start_tree : Tree
        Tree the optimisation started from

    Examples
    --------
    >>> report = run_inference(config)
    >>> print(report.summary())
    >>> report.to_json("report.json")
    """

    def __init__(self, config: RunConfig, result: DriverResult, start_tree: Tree):
        self.config = config
        self.result = result
        self.start_tree = start_tree

    @property
    def lnL(self) -> float:
        return self.result.score

    @property
    def tree(self) -> Tree:
        return self.result.tree

    def parameters(self) -> Dict[str, float]:
        cost = self.result.cost
        return {
            name: float(value) for name, value in zip(cost.parameter_names, cost.parameters())
        }

    def frequencies(self) -> list[float]:
        return [float(f) for f in self.result.cost.frequencies()]

    def final_tree_newick(self) -> str:
        return self.result.tree.to_newick()

    def iteration_table(self) -> str:
        """Per-phase scores as an aligned text table."""
        lines = [f"{'Iter':>4}  {'Phase':<9} {'lnL before':>16} {'lnL after':>16} {'Delta':>12}"]
        for record in self.result.records:
            lines.append(
                f"{record.iteration:>4}  {record.phase:<9} {record.score_before:>16.6f} "
                f"{record.score_after:>16.6f} {record.delta:>12.6f}"
            )
        return "\n".join(lines)

    def summary(self) -> str:
        """
        Human-readable summary of the run.

        Returns
        -------
        str
            Multi-line summary with score, parameters, tree and iterations
        """
        overmodel = "PIP" if self.config.gap_handling is GapHandling.PIP else "Substitution"
        lines = []
        lines.append("=" * 70)
        lines.append(f"RUN: {self.config.run_id}")
        lines.append("=" * 70)
        lines.append("")
        lines.append(f"Model:                {overmodel} model with {self.config.model} Q")
        lines.append(f"Log-likelihood:       {self.lnL:.6f}")
        lines.append(f"Iterations:           {self.result.iterations}")
        lines.append(f"Stopping rule:        {self.config.stopping_policy()}")
        lines.append("")

        params = self.parameters()
        if params:
            lines.append("PARAMETERS:")
            for name, value in params.items():
                lines.append(f"  {name:<16} = {value:.6f}")
            lines.append("")

        lines.append("FREQUENCIES:")
        lines.append("  " + " ".join(f"{f:.4f}" for f in self.frequencies()))
        lines.append("")
        lines.append("TREE:")
        lines.append(f"  {self.tree.n_leaves} sequences")
        lines.append(f"  total length {self.tree.total_length():.6f}")
        lines.append(f"  {self.final_tree_newick()}")
        lines.append("")
        lines.append("ITERATIONS:")
        lines.append(self.iteration_table())
        lines.append("")
        lines.append("=" * 70)

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """
        Export the report as a JSON-serialisable dictionary.

        Returns
        -------
        dict
            Run id, configuration, score, parameters, frequencies, trees and
            iteration records
        """
        config = self.config
        return {
            'run_id': config.run_id,
            'config': {
                'model': config.model.value,
                'gap_handling': config.gap_handling.value,
                'params': list(config.params),
                'freqs': list(config.freqs),
                'freq_opt': config.freq_opt.value,
                'epsilon': config.epsilon,
                'max_iterations': config.max_iterations,
                'prng_seed': config.prng_seed,
                'seq_file': str(config.seq_file),
                'tree_file': str(config.tree_file) if config.tree_file else None,
            },
            'lnL': float(self.lnL),
            'iterations': int(self.result.iterations),
            'parameters': self.parameters(),
            'frequencies': self.frequencies(),
            'start_tree': self.start_tree.to_newick(),
            'tree': self.final_tree_newick(),
            'records': [record.to_dict() for record in self.result.records],
        }

    def to_json(self, filepath: Optional[str] = None, indent: int = 2) -> str:
        """
        Export the report as JSON.

        Parameters
        ----------
        filepath : str, optional
            If provided, write JSON to this file
        indent : int, default=2
            Indentation level for pretty printing

        Returns
        -------
        str
            JSON string representation
        """
        json_str = json.dumps(self.to_dict(), indent=indent)

        if filepath:
            with open(filepath, 'w') as f:
                f.write(json_str)

        return json_str

    def __str__(self) -> str:
        return self.summary()

    def __repr__(self) -> str:
        return f"RunReport(run_id='{self.config.run_id}', lnL={self.lnL:.2f})"
