"""Main CLI application for pipml."""

import typer
from pathlib import Path
from typing import List, Optional

from ..models.ids import FrequencyOptimisation, GapHandling

app = typer.Typer(
    name="pipml",
    help="Maximum-likelihood phylogenetic inference with indel-aware (PIP) models",
    no_args_is_help=True,
)


@app.command()
def infer(
    seq_file: Path = typer.Option(
        ...,
        "--seq-file", "-s",
        help="Sequence alignment file (FASTA or PHYLIP)",
    ),
    model: str = typer.Option(
        ...,
        "--model", "-m",
        help="Substitution model (JC69, K80, HKY, HKY85, TN93, GTR, WAG, HIVB, BLOSUM)",
    ),
    tree_file: Optional[Path] = typer.Option(
        None,
        "--tree-file", "-t",
        help="Starting tree file (Newick); neighbor-joining if omitted",
    ),
    out_folder: Path = typer.Option(
        Path("."),
        "--out-folder", "-d",
        help="Folder in which the run output folder is created",
    ),
    run_name: Optional[str] = typer.Option(
        None,
        "--run-name", "-r",
        help="Prefix of the run id",
    ),
    max_iterations: int = typer.Option(
        5,
        "--max-iterations", "-x",
        help="Maximum outer iterations (0 for no cap)",
        min=0,
    ),
    params: Optional[List[float]] = typer.Option(
        None,
        "--params", "-p",
        help="Model parameter, repeat in order (lambda and mu first under PIP)",
    ),
    freqs: Optional[List[float]] = typer.Option(
        None,
        "--freqs", "-f",
        help="Nucleotide frequency, repeat in order T C A G",
    ),
    freq_opt: FrequencyOptimisation = typer.Option(
        FrequencyOptimisation.EMPIRICAL,
        "--freq-opt", "-o",
        help="Frequency handling during model optimisation",
    ),
    gap_handling: GapHandling = typer.Option(
        GapHandling.PIP,
        "--gap-handling", "-g",
        help="Gap handling: indel-aware PIP or missing data",
    ),
    epsilon: float = typer.Option(
        1e-5,
        "--epsilon", "-e",
        help="Stop when an iteration gains less log-likelihood than this",
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Random seed for reproducibility (default: derived from the start time)",
    ),
    matrix_dir: Optional[Path] = typer.Option(
        None,
        "--matrix-dir",
        help="Folder with PAML .dat files overriding the bundled protein matrices",
        envvar="PIPML_MATRIX_DIR",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet", "-q",
        help="Only show warnings and errors",
    ),
):
    """
    Infer a tree by alternating model and topology optimisation.

    Example:
        pipml infer -s seqs.fasta -t tree.nwk -m HKY -g pip -d results
        pipml infer -s seqs.fasta -m GTR -g missing -x 0 -e 1e-3
    """
    from .commands.infer import run_infer

    run_infer(
        seq_file=seq_file,
        model=model,
        tree_file=tree_file,
        out_folder=out_folder,
        run_name=run_name,
        max_iterations=max_iterations,
        params=params or [],
        freqs=freqs or [],
        freq_opt=freq_opt.value,
        gap_handling=gap_handling.value,
        epsilon=epsilon,
        seed=seed,
        matrix_dir=matrix_dir,
        quiet=quiet,
    )


@app.command()
def models():
    """
    List the available substitution models and their parameters.
    """
    from .commands.models import run_models

    run_models()


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
