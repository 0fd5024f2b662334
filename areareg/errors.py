"""Exception and warning types raised across areareg.

Partition-level failures (``DataError``, ``PartitionSizeError``) are caught by
the region driver and reported as omitted partitions; replicate-level failures
(``ConvergenceError``, ``NumericalError``) are caught by the bootstrap and
counted.
"""

from __future__ import annotations

__all__ = [
    "AreaRegError",
    "BootstrapCancelled",
    "ConfigurationError",
    "ConvergenceError",
    "ConvergenceWarning",
    "DataError",
    "NumericalError",
    "PartitionSizeError",
]


class AreaRegError(Exception):
    """Base class for all areareg errors."""


class DataError(AreaRegError, ValueError):
    """Missing or non-numeric covariate/outcome, or an empty categorical domain."""


class PartitionSizeError(AreaRegError, ValueError):
    """A (super-)region has fewer observations than the minimum-sample policy."""

    def __init__(self, partition: str, n_obs: int, min_samples: int) -> None:
        self.partition = partition
        self.n_obs = int(n_obs)
        self.min_samples = int(min_samples)
        super().__init__(
            f"partition {partition!r} has {self.n_obs} observations after merging; "
            f"at least {self.min_samples} are required.",
        )


class ConfigurationError(AreaRegError, ValueError):
    """Invalid or incomplete configuration (e.g. regions missing from the mapping)."""


class NumericalError(AreaRegError, ArithmeticError):
    """Singular design or non-finite iterate in the solver."""


class ConvergenceError(AreaRegError, RuntimeError):
    """Coordinate descent hit the iteration cap (raised only in strict mode)."""


class BootstrapCancelled(AreaRegError, RuntimeError):
    """Bootstrap stopped by a cancellation request; no replicate is kept."""


class ConvergenceWarning(UserWarning):
    """Coordinate descent hit the iteration cap; the last iterate was returned."""
