"""
Core protocols for pylongreg.

Inference, comparison and selection operate on any fitted model that
exposes a small structural interface. We use Protocol (structural typing)
rather than an ABC so that the closed set of fit kinds stays a tagged
variant on FittedModel instead of a class hierarchy.

Design Principles:
    - Minimal contracts: prescribe only what inference needs
    - The fit kind is data (a string tag), not a subclass
"""

from __future__ import annotations

from typing import Protocol, Any, runtime_checkable

import numpy as np
from numpy.typing import NDArray


@runtime_checkable
class WorkingModelLike(Protocol):
    """
    Working-scale view of a fit consumed by sandwich estimators.

    The estimating equations of every supported fit kind can be written
    as Σ_i X_i' Φ_i⁻¹ e_i = 0, where Φ_i is the relative working
    covariance of cluster i and e_i are the working residuals.
    """

    @property
    def X(self) -> NDArray[np.floating[Any]]:
        ...

    @property
    def residuals(self) -> NDArray[np.floating[Any]]:
        ...

    @property
    def clusters(self) -> tuple[NDArray[np.intp], ...]:
        ...

    @property
    def phi_blocks(self) -> tuple[NDArray[np.floating[Any]], ...]:
        ...

    @property
    def scale(self) -> float:
        ...


@runtime_checkable
class InferenceCapable(Protocol):
    """
    Capability interface shared by all fit kinds.

    Anything satisfying this protocol can be passed to the inference
    engine (standard errors, Wald and Satterthwaite tests, intervals)
    and to the model selector.
    """

    @property
    def kind(self) -> str:
        """One of the KIND_* constants in pylongreg.core.capabilities."""
        ...

    @property
    def coefficient_names(self) -> tuple[str, ...]:
        ...

    @property
    def beta(self) -> NDArray[np.floating[Any]]:
        ...

    @property
    def vcov_model(self) -> NDArray[np.floating[Any]]:
        """Model-based coefficient covariance matrix."""
        ...

    @property
    def log_likelihood(self) -> float:
        ...

    @property
    def n_params(self) -> int:
        """Number of estimated parameters, used for AIC/BIC."""
        ...

    @property
    def n_obs(self) -> int:
        ...

    @property
    def working(self) -> WorkingModelLike:
        ...
