"""Infer command implementation."""

import logging
import sys
from pathlib import Path
from typing import Optional

from pipml.api import run_inference
from pipml.config import RunConfig
from pipml.exceptions import PipmlError

logger = logging.getLogger(__name__)


def run_infer(
    seq_file: Path,
    model: str,
    tree_file: Optional[Path],
    out_folder: Path,
    run_name: Optional[str],
    max_iterations: int,
    params: list[float],
    freqs: list[float],
    freq_opt: str,
    gap_handling: str,
    epsilon: float,
    seed: Optional[int],
    matrix_dir: Optional[Path],
    quiet: bool,
):
    """Validate the options, run inference and print the summary."""
    try:
        config = RunConfig.build(
            model=model,
            seq_file=seq_file,
            gap_handling=gap_handling,
            params=params,
            freqs=freqs,
            freq_opt=freq_opt,
            epsilon=epsilon,
            max_iterations=max_iterations,
            prng_seed=seed,
            tree_file=tree_file,
            out_folder=out_folder,
            run_name=run_name,
            matrix_dir=matrix_dir,
        )
    except PipmlError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        report = run_inference(config, quiet=quiet)
    except PipmlError as e:
        print(f"Error: {e}", file=sys.stderr)
        print(f"Run log: {config.log_file}", file=sys.stderr)
        sys.exit(1)

    if quiet:
        print(f"{report.lnL:.6f}")
    else:
        print(report.summary())
        print(f"\nResults written to {config.out_dir}", file=sys.stderr)
