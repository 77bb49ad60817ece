"""
Exception hierarchy for pipml.

Every error raised by the library derives from :class:`PipmlError`. Errors
raised inside the co-optimisation loop carry the outer iteration and the
phase in which they happened, so a failed run can be traced back to the
step where the optimisation diverged.
"""

from typing import Optional


class PipmlError(Exception):
    """
    Base class for all pipml errors.

    Attributes
    ----------
    iteration : int or None
        Outer driver iteration during which the error was raised
    phase : str or None
        Driver phase ('model' or 'topology') during which the error was raised
    """

    def __init__(
        self,
        message: str,
        iteration: Optional[int] = None,
        phase: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.iteration = iteration
        self.phase = phase

    def add_context(self, iteration: int, phase: str) -> "PipmlError":
        """Attach driver context unless a deeper frame already did."""
        if self.iteration is None:
            self.iteration = iteration
        if self.phase is None:
            self.phase = phase
        return self

    def __str__(self) -> str:
        if self.iteration is None and self.phase is None:
            return self.message
        where = []
        if self.iteration is not None:
            where.append(f"iteration {self.iteration}")
        if self.phase is not None:
            where.append(f"{self.phase} phase")
        return f"{self.message} ({', '.join(where)})"


class ConfigurationError(PipmlError):
    """Invalid or missing run configuration."""


class UnsupportedCombination(ConfigurationError):
    """A (gap handling, model) pair has no construction path."""


class DataError(PipmlError):
    """Malformed sequence or tree input."""

    def __init__(self, message: str, path=None, **kwargs):
        if path is not None:
            message = f"{message} [{path}]"
        super().__init__(message, **kwargs)
        self.path = path


class NumericalError(PipmlError):
    """Optimisation failed, diverged, or produced a non-finite score."""


class OutputError(PipmlError):
    """Output directory or artifact could not be written."""
