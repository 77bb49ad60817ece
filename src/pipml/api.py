"""
High-level API for pipml inference runs.

:func:`run_inference` takes a validated :class:`RunConfig` through the whole
run: data loading, model dispatch, co-optimisation, reporting and writing of
the output artifacts.
"""

import logging
from pathlib import Path
from typing import Optional, Sequence

import numpy as np

from .config import RunConfig
from .dispatch import build_cost
from .driver import CoOptimisationDriver
from .exceptions import NumericalError, OutputError, PipmlError
from .io.loader import load_phylo_data
from .logs import close_run_logging, configure_run_logging
from .report import RunReport

logger = logging.getLogger(__name__)


def _write_text(path: Path, text: str) -> None:
    try:
        with open(path, 'w') as f:
            f.write(text)
    except OSError as e:
        raise OutputError(f"Could not write {path}: {e}") from e


def run_inference(config: RunConfig, quiet: bool = False) -> RunReport:
    """
    Run maximum-likelihood tree inference.

    Parameters
    ----------
    config : RunConfig
        Validated run configuration
    quiet : bool
        Only log warnings and errors to the console

    Returns
    -------
    RunReport
        Final score, tree and diagnostics

    Raises
    ------
    PipmlError
        On invalid data, numerical failure or unwritable output. Arithmetic
        failures while scoring the start tree surface as NumericalError

    Examples
    --------
    >>> config = RunConfig.build("HKY", "seqs.fasta", tree_file="tree.nwk")
    >>> report = run_inference(config)
    >>> print(report.summary())
    """
    config.prepare_output()
    configure_run_logging(config.log_file, quiet=quiet)
    try:
        logger.info("Configuration:\n%s", config.describe())

        data = load_phylo_data(config.seq_file, config.tree_file, alphabet=config.alphabet)
        start_tree = data.tree
        _write_text(config.start_tree, start_tree.to_newick() + "\n")
        logger.info("Start tree written to %s", config.start_tree)

        cost = build_cost(
            config.gap_handling,
            config.model,
            config.freqs,
            config.params,
            data.alignment,
            start_tree,
            matrix_dir=config.matrix_dir,
        )
        try:
            initial = cost.score()
        except (ArithmeticError, ValueError, np.linalg.LinAlgError) as e:
            raise NumericalError(f"Could not score the start tree: {e}") from e
        logger.info("Initial log-likelihood: %.6f", initial)

        rng = np.random.default_rng(config.prng_seed)
        driver = CoOptimisationDriver(cost, config.stopping_policy(), config.freq_opt, rng)
        result = driver.run()

        report = RunReport(config, result, start_tree)
        _write_text(config.out_tree, report.final_tree_newick() + "\n")
        _write_text(config.out_logl, f"{result.score:.6f}\n")
        try:
            report.to_json(str(config.report_file))
        except OSError as e:
            raise OutputError(f"Could not write {config.report_file}: {e}") from e

        logger.info("Final log-likelihood: %.6f", result.score)
        logger.info("Final tree written to %s", config.out_tree)
        logger.debug("Run summary:\n%s", report.summary())
        return report
    except PipmlError as e:
        logger.error("Run failed: %s", e)
        raise
    finally:
        close_run_logging()


def infer(
    model: str,
    seq_file: Path | str,
    tree_file: Optional[Path | str] = None,
    gap_handling: str = "pip",
    params: Sequence[float] = (),
    freqs: Sequence[float] = (),
    freq_opt: str = "empirical",
    epsilon: Optional[float] = 1e-5,
    max_iterations: Optional[int] = 5,
    seed: Optional[int] = None,
    out_folder: Path | str = ".",
    run_name: Optional[str] = None,
    matrix_dir: Optional[Path | str] = None,
    quiet: bool = False,
) -> RunReport:
    """
    Build a configuration from plain values and run inference.

    Parameters
    ----------
    model : str
        Substitution model (JC69, K80, HKY/HKY85, TN93, GTR, WAG, HIVB,
        BLOSUM), case-insensitive
    seq_file : Path or str
        FASTA or PHYLIP alignment
    tree_file : Path or str, optional
        Newick starting tree; neighbor-joining when omitted
    gap_handling : str
        'pip' or 'missing'
    params : sequence of float
        Model parameters, lambda and mu first under PIP
    freqs : sequence of float
        Nucleotide frequencies (T, C, A, G)
    freq_opt : str
        'fixed', 'empirical' or 'estimated'
    epsilon : float, optional
        Convergence threshold on the log-likelihood gain
    max_iterations : int, optional
        Cap on outer iterations, 0 or None for no cap
    seed : int, optional
        Random seed; time-derived when omitted
    out_folder : Path or str
        Parent folder of the run output directory
    run_name : str, optional
        Prefix of the run id
    matrix_dir : Path or str, optional
        Folder with PAML ``.dat`` files overriding the bundled matrices
    quiet : bool
        Only log warnings and errors to the console

    Returns
    -------
    RunReport
        Final score, tree and diagnostics
    """
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
    return run_inference(config, quiet=quiet)
