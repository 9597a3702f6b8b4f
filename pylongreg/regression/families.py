"""
Binomial family and logit link for logistic regression.

A Family defines:
- A variance function V(μ) relating variance to the mean
- A link function g(μ) mapping the mean to the linear predictor
- A deviance and a log-likelihood
- Starting values for IRLS

A Link defines:
- g(μ) → η  (link)
- g⁻¹(η) → μ  (inverse link)
- dμ/dη  (derivative of inverse link, for IRLS weights)

Only the binomial family with the logit link is provided; the abstract
bases keep the IRLS loop independent of the family arithmetic.

References:
    McCullagh, P., & Nelder, J. A. (1989). Generalized Linear Models (2nd ed.)
    R Core Team. stats::binomial, stats::make.link
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import numpy as np
from numpy.typing import NDArray

# Fitted probabilities closer than this to 0 or 1 are reported
# (glm.fit's "fitted probabilities numerically 0 or 1 occurred").
BOUNDARY_EPS = 10 * np.finfo(np.float64).eps


# =====================================================================
# Link functions
# =====================================================================

class Link(ABC):
    """Abstract link function g(μ) mapping mean to linear predictor."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def link(self, mu: NDArray) -> NDArray:
        """g(μ) → η."""
        ...

    @abstractmethod
    def linkinv(self, eta: NDArray) -> NDArray:
        """g⁻¹(η) → μ."""
        ...

    @abstractmethod
    def mu_eta(self, eta: NDArray) -> NDArray:
        """dμ/dη = (g⁻¹)'(η)."""
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class LogitLink(Link):
    """Logit link: g(μ) = log(μ/(1-μ))."""

    @property
    def name(self) -> str:
        return 'logit'

    def link(self, mu: NDArray) -> NDArray:
        mu = np.clip(mu, 1e-10, 1 - 1e-10)
        return np.log(mu / (1 - mu))

    def linkinv(self, eta: NDArray) -> NDArray:
        # Clip to prevent overflow in exp
        eta = np.clip(eta, -500, 500)
        return 1.0 / (1.0 + np.exp(-eta))

    def mu_eta(self, eta: NDArray) -> NDArray:
        eta = np.clip(eta, -500, 500)
        p = 1.0 / (1.0 + np.exp(-eta))
        return np.maximum(p * (1.0 - p), 1e-10)


# =====================================================================
# Families
# =====================================================================

class Family(ABC):
    """
    GLM family specification.

    Defines the relationship between the mean and variance of the
    response distribution, along with a link function.
    """

    def __init__(self, link: Link | None = None):
        self._link = link if link is not None else self._default_link()

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def _default_link(self) -> Link:
        ...

    @property
    def link(self) -> Link:
        return self._link

    @abstractmethod
    def variance(self, mu: NDArray) -> NDArray:
        """Variance function V(μ)."""
        ...

    @abstractmethod
    def unit_deviance(self, y: NDArray, mu: NDArray) -> NDArray:
        """Per-observation deviance contributions d(y_i, μ_i)."""
        ...

    def deviance(self, y: NDArray, mu: NDArray, wt: NDArray) -> float:
        """Total deviance 2 Σ wt_i d(y_i, μ_i) / 2, i.e. Σ wt_i d_i."""
        return float(np.sum(wt * self.unit_deviance(y, mu)))

    @abstractmethod
    def initialize(self, y: NDArray) -> NDArray:
        """Initialize μ from y for IRLS starting values."""
        ...

    @abstractmethod
    def log_likelihood(self, y: NDArray, mu: NDArray, wt: NDArray) -> float:
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(link={self._link.name!r})"


class Binomial(Family):
    """Binomial family for binary (0/1) responses. Default link: logit.

    V(μ) = μ(1-μ)
    d(y, μ) = 2 [y log(y/μ) + (1-y) log((1-y)/(1-μ))]
    """

    @property
    def name(self) -> str:
        return 'binomial'

    def _default_link(self) -> Link:
        return LogitLink()

    def variance(self, mu: NDArray) -> NDArray:
        mu = np.clip(mu, 1e-10, 1 - 1e-10)
        return mu * (1.0 - mu)

    def initialize(self, y: NDArray) -> NDArray:
        # R's default: (y + 0.5) / 2 for binary data
        return (y + 0.5) / 2.0

    def unit_deviance(self, y: NDArray, mu: NDArray) -> NDArray:
        mu = np.clip(mu, 1e-10, 1 - 1e-10)
        # 0*log(0) = 0. np.where evaluates both branches, so suppress
        # warnings from the unused one.
        with np.errstate(divide='ignore', invalid='ignore'):
            term1 = np.where(y > 0, y * np.log(y / mu), 0.0)
            term2 = np.where(y < 1, (1 - y) * np.log((1 - y) / (1 - mu)), 0.0)
        return 2.0 * (term1 + term2)

    def log_likelihood(self, y: NDArray, mu: NDArray, wt: NDArray) -> float:
        # For binary data the saturated log-likelihood is 0, so ℓ = -deviance/2
        mu = np.clip(mu, 1e-10, 1 - 1e-10)
        return float(np.sum(wt * (y * np.log(mu) + (1 - y) * np.log(1 - mu))))

    def boundary_fits(self, mu: NDArray) -> int:
        """Number of fitted probabilities numerically 0 or 1."""
        return int(np.sum((mu < BOUNDARY_EPS) | (mu > 1 - BOUNDARY_EPS)))
