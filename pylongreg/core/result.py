"""
Generic result container for pylongreg computations.

Every fitter produces its domain payload wrapped in a Result so that
timing, optimizer metadata and non-fatal warnings travel with the
estimates instead of being printed or logged.

Design decisions:
    - Generic over parameter payload P for type safety
    - info dict for flexible metadata (converged, iterations, method)
    - timing is optional (don't burden unit tests)
    - Immutable (frozen=True) for reproducibility
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TypeVar, Generic, Any

P = TypeVar('P')  # Parameter payload type


@dataclass(frozen=True)
class Result(Generic[P]):
    """
    Immutable result envelope for model fits.

    Attributes:
        params: Domain-specific parameters (coefficients, variance parameters)
        info: Structured metadata (method, convergence, optimizer)
        timing: Execution timing breakdown, or None if not measured
        backend_name: Identifier of the algorithm that produced this result
        warnings: Non-fatal issues encountered during computation

    Examples:
        >>> Result(
        ...     params=GLSParams(...),
        ...     info={'method': 'REML', 'optimizer': 'L-BFGS-B', 'n_iter': 12},
        ...     timing={'total_seconds': 0.05, 'optimization': 0.04},
        ...     backend_name='cpu_gls',
        ... )
    """
    params: P
    info: dict[str, Any]
    timing: dict[str, float] | None
    backend_name: str
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def has_warning(self, substring: str) -> bool:
        """Check if any warning contains the given substring."""
        return any(substring in w for w in self.warnings)

    def with_info(self, **extra: Any) -> Result[P]:
        """Return a copy with additional info entries merged in."""
        info = dict(self.info)
        info.update(extra)
        return replace(self, info=info)
