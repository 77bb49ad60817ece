"""
Run configuration.

A :class:`RunConfig` is built once from raw user input by
:meth:`RunConfig.build`, which performs every check that can be made without
reading the data. A configuration that builds successfully names all output
artifacts through its run id and is never modified afterwards.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence, Type

import numpy as np

from .exceptions import ConfigurationError, OutputError
from .models.ids import (
    MODEL_ALPHABET,
    Alphabet,
    FrequencyOptimisation,
    GapHandling,
    SubstModelId,
    parameter_names,
    parse_model_id,
)
from .stopping import StoppingPolicy

N_NUCLEOTIDES = 4


def _coerce_enum(enum_cls: Type[Enum], value, what: str):
    """Convert a raw value to ``enum_cls`` or raise ConfigurationError."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        valid = ", ".join(member.value for member in enum_cls)
        raise ConfigurationError(f"Unknown {what} '{value}'. Valid values: {valid}")


@dataclass(frozen=True)
class RunConfig:
    """
    Validated, immutable parameters of one inference run.

    Attributes
    ----------
    model : SubstModelId
        Substitution model
    gap_handling : GapHandling
        Indel-aware (PIP) or gaps-as-missing-data likelihood
    params : tuple of float
        Model parameters; empty means model defaults. Under PIP the indel
        rates lambda and mu come first.
    freqs : tuple of float
        Stationary frequencies (T, C, A, G), normalised; empty means default
    freq_opt : FrequencyOptimisation
        Frequency handling during model optimisation
    epsilon : float or None
        Convergence threshold on the log-likelihood gain
    max_iterations : int or None
        Cap on outer iterations (None or 0 means uncapped)
    prng_seed : int
        Seed of the random source; time-derived when not given by the user
    seq_file : Path
        Sequence alignment (FASTA or PHYLIP)
    tree_file : Path or None
        Starting tree (Newick); built by neighbor-joining when None
    out_folder : Path
        Parent folder for the run output directory
    run_name : str or None
        Optional prefix of the run id
    matrix_dir : Path or None
        Folder with PAML ``.dat`` files overriding the bundled protein matrices
    timestamp : int
        Run start time in microseconds since the epoch
    """

    model: SubstModelId
    gap_handling: GapHandling
    params: tuple
    freqs: tuple
    freq_opt: FrequencyOptimisation
    epsilon: Optional[float]
    max_iterations: Optional[int]
    prng_seed: int
    seq_file: Path
    tree_file: Optional[Path]
    out_folder: Path
    run_name: Optional[str]
    matrix_dir: Optional[Path]
    timestamp: int

    @classmethod
    def build(
        cls,
        model: str | SubstModelId,
        seq_file: Path | str,
        gap_handling: str | GapHandling = GapHandling.PIP,
        params: Sequence[float] = (),
        freqs: Sequence[float] = (),
        freq_opt: str | FrequencyOptimisation = FrequencyOptimisation.EMPIRICAL,
        epsilon: Optional[float] = 1e-5,
        max_iterations: Optional[int] = 5,
        prng_seed: Optional[int] = None,
        tree_file: Optional[Path | str] = None,
        out_folder: Path | str = ".",
        run_name: Optional[str] = None,
        matrix_dir: Optional[Path | str] = None,
        timestamp: Optional[int] = None,
    ) -> "RunConfig":
        """
        Validate raw input and build a configuration.

        Nothing is read, created or written here apart from existence checks
        on the input paths.

        Raises
        ------
        ConfigurationError
            On an unknown model, a parameter vector of the wrong length,
            malformed frequencies, a missing input file, or a degenerate
            stopping rule
        """
        try:
            model_id = parse_model_id(model)
        except KeyError:
            valid = ", ".join(SubstModelId.__members__)
            raise ConfigurationError(f"Unknown model '{model}'. Valid models: {valid}")

        gap_mode = _coerce_enum(GapHandling, gap_handling, "gap handling mode")
        freq_mode = _coerce_enum(FrequencyOptimisation, freq_opt, "frequency optimisation mode")

        params = tuple(float(p) for p in params)
        expected = parameter_names(model_id, gap_mode)
        if params and len(params) != len(expected):
            names = " ".join(expected) if expected else "none"
            raise ConfigurationError(
                f"Model {model_id} with {gap_mode} gap handling takes {len(expected)} "
                f"parameters ({names}), got {len(params)}"
            )
        if any(not np.isfinite(p) or p <= 0 for p in params):
            raise ConfigurationError(f"Model parameters must be positive, got {list(params)}")

        freqs = tuple(float(f) for f in freqs)
        if freqs:
            if MODEL_ALPHABET[model_id] is not Alphabet.DNA:
                raise ConfigurationError(
                    f"Frequencies cannot be set for protein model {model_id}"
                )
            if len(freqs) != N_NUCLEOTIDES:
                raise ConfigurationError(
                    f"Expected {N_NUCLEOTIDES} frequencies (pi_t pi_c pi_a pi_g), got {len(freqs)}"
                )
            if any(not np.isfinite(f) or f <= 0 for f in freqs):
                raise ConfigurationError(f"Frequencies must be positive, got {list(freqs)}")
            total = sum(freqs)
            freqs = tuple(f / total for f in freqs)

        if epsilon is not None and not (np.isfinite(epsilon) and epsilon > 0):
            raise ConfigurationError(f"Epsilon must be positive, got {epsilon}")
        if max_iterations is not None and max_iterations < 0:
            raise ConfigurationError(f"Max iterations must be non-negative, got {max_iterations}")
        if not max_iterations and epsilon is None:
            raise ConfigurationError(
                "Max iterations is 0 and no epsilon is set: the optimisation would never run"
            )

        seq_file = Path(seq_file)
        if not seq_file.is_file():
            raise ConfigurationError(f"Sequence file not found: {seq_file}")
        if tree_file is not None:
            tree_file = Path(tree_file)
            if not tree_file.is_file():
                raise ConfigurationError(f"Tree file not found: {tree_file}")

        if matrix_dir is not None:
            matrix_dir = Path(matrix_dir)
            if not matrix_dir.is_dir():
                raise ConfigurationError(f"Matrix folder not found: {matrix_dir}")

        if timestamp is None:
            timestamp = time.time_ns() // 1000
        if prng_seed is None:
            prng_seed = timestamp
        elif prng_seed < 0:
            raise ConfigurationError(f"PRNG seed must be non-negative, got {prng_seed}")

        return cls(
            model=model_id,
            gap_handling=gap_mode,
            params=params,
            freqs=freqs,
            freq_opt=freq_mode,
            epsilon=epsilon,
            max_iterations=max_iterations,
            prng_seed=int(prng_seed),
            seq_file=seq_file,
            tree_file=tree_file,
            out_folder=Path(out_folder),
            run_name=run_name,
            matrix_dir=matrix_dir,
            timestamp=int(timestamp),
        )

    @property
    def run_id(self) -> str:
        """Identifier used to name all output artifacts."""
        if self.run_name:
            return f"{self.run_name}_{self.timestamp}"
        return str(self.timestamp)

    @property
    def out_dir(self) -> Path:
        return self.out_folder / f"{self.run_id}_out"

    @property
    def out_tree(self) -> Path:
        return self.out_dir / f"{self.run_id}_tree.newick"

    @property
    def start_tree(self) -> Path:
        return self.out_dir / f"{self.run_id}_start_tree.newick"

    @property
    def out_logl(self) -> Path:
        return self.out_dir / f"{self.run_id}_logl.out"

    @property
    def log_file(self) -> Path:
        return self.out_dir / f"{self.run_id}.log"

    @property
    def report_file(self) -> Path:
        return self.out_dir / f"{self.run_id}_report.json"

    @property
    def alphabet(self) -> Alphabet:
        return MODEL_ALPHABET[self.model]

    @property
    def parameter_names(self) -> tuple[str, ...]:
        return parameter_names(self.model, self.gap_handling)

    def stopping_policy(self) -> StoppingPolicy:
        """Outer-loop stopping policy for this run."""
        return StoppingPolicy.from_config(self.max_iterations, self.epsilon)

    def prepare_output(self) -> Path:
        """
        Create the run output directory.

        Raises
        ------
        OutputError
            If the directory cannot be created
        """
        try:
            self.out_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OutputError(f"Could not create output folder {self.out_dir}: {e}")
        return self.out_dir

    def describe(self) -> str:
        """Human-readable description of the run setup."""
        started = datetime.fromtimestamp(self.timestamp / 1e6).isoformat(timespec="seconds")
        overmodel = "PIP" if self.gap_handling is GapHandling.PIP else "Substitution"
        lines = [
            f"Run start time: {started}",
            f"Run ID: {self.run_id}",
            f"Input sequence file: {self.seq_file}",
        ]
        if self.tree_file is not None:
            lines.append(f"Input tree file: {self.tree_file}")
        else:
            lines.append("No input tree file provided.")
        lines.append(f"Output folder: {self.out_dir}")
        lines.append(f"Model setup: {overmodel} model with {self.model} Q")
        if self.params:
            named = ", ".join(f"{n}={v:g}" for n, v in zip(self.parameter_names, self.params))
            lines.append(f"Model parameters: {named}")
        else:
            lines.append("Model parameters: defaults")
        if self.freqs:
            lines.append(f"Model frequencies: {', '.join(f'{f:.4f}' for f in self.freqs)}")
        else:
            lines.append("Model frequencies: defaults")
        lines.append(
            f"Optimisation setup: frequencies: {self.freq_opt}, "
            f"max iterations: {self.max_iterations or 'none'}, epsilon: {self.epsilon}"
        )
        lines.append(f"PRNG seed: {self.prng_seed}")
        return "\n".join(lines)


