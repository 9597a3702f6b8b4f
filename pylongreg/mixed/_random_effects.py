"""
Random effects design, Z matrix construction, and Λ_θ parameterization.

A model has one grouping factor with q random terms ('1' for the
intercept, otherwise a numeric covariate). The θ parameterization
follows Bates et al. (2015): θ holds the lower-triangular elements of
the q x q Cholesky factor T of the *relative* covariance of the random
effects (their covariance divided by σ²), row by row.
"""

from __future__ import annotations

from dataclasses import dataclass
import numpy as np
from numpy.typing import NDArray


RANDOM_INTERCEPT = '1'


@dataclass(frozen=True)
class RandomEffectSpec:
    """Random effects for the model's grouping factor.

    Attributes:
        group_name: Name of the grouping column (e.g. 'Subject').
        group_ids: 0-indexed cluster code per observation (n,).
        terms: Random terms, e.g. ('1',) or ('1', 'age').
        covariates: Per-observation value of each term (n, q); a column
            of ones for the intercept.
        n_groups: Number of clusters (J).
    """
    group_name: str
    group_ids: NDArray
    terms: tuple[str, ...]
    covariates: NDArray
    n_groups: int

    @property
    def n_terms(self) -> int:
        return len(self.terms)

    @property
    def theta_size(self) -> int:
        q = self.n_terms
        return q * (q + 1) // 2

    def clusters(self) -> tuple[NDArray, ...]:
        """Row indices of each cluster."""
        return tuple(
            np.flatnonzero(self.group_ids == j) for j in range(self.n_groups)
        )


def build_random_effects(
    group_name: str,
    group_ids: NDArray,
    terms: tuple[str, ...],
    data: dict[str, NDArray],
) -> RandomEffectSpec:
    """Assemble the random-effect covariates for one grouping factor.

    Args:
        group_name: Grouping column name.
        group_ids: 0-indexed cluster codes (n,).
        terms: Random terms.
        data: Values of each non-intercept term (n,).

    Raises:
        ValueError: If a slope term has no data.
    """
    n = len(group_ids)
    cols = []
    for term in terms:
        if term == RANDOM_INTERCEPT:
            cols.append(np.ones(n))
        else:
            if term not in data:
                raise ValueError(
                    f"Random slope term '{term}' has no data. "
                    f"Available: {list(data.keys())}"
                )
            cols.append(np.asarray(data[term], dtype=np.float64))
    return RandomEffectSpec(
        group_name=group_name,
        group_ids=np.asarray(group_ids, dtype=np.intp),
        terms=tuple(terms),
        covariates=np.column_stack(cols),
        n_groups=int(np.max(group_ids)) + 1,
    )


def build_z_matrix(spec: RandomEffectSpec) -> NDArray:
    """Random effects design matrix Z, shape (n, J*q).

    Columns are term-major: [term0_grp0, ..., term0_grpJ, term1_grp0, ...].
    Z[i, t*J + j] is the value of term t for observation i when i
    belongs to group j, and zero otherwise.
    """
    n = len(spec.group_ids)
    J = spec.n_groups
    Z = np.zeros((n, J * spec.n_terms), dtype=np.float64)
    rows = np.arange(n)
    for t in range(spec.n_terms):
        Z[rows, t * J + spec.group_ids] = spec.covariates[:, t]
    return Z


def theta_to_factor(theta: NDArray, q: int) -> NDArray:
    """Form the q x q lower-triangular factor T from θ."""
    T = np.zeros((q, q), dtype=np.float64)
    T[np.tril_indices(q)] = theta
    return T


def build_lambda(theta: NDArray, spec: RandomEffectSpec) -> NDArray:
    """Relative covariance factor Λ_θ = T ⊗ I_J.

    Z is term-major, so the spherical random effects u are term-major
    too and Λ must be T ⊗ I_J (not I_J ⊗ T).
    """
    T = theta_to_factor(theta, spec.n_terms)
    return np.kron(T, np.eye(spec.n_groups))


def marginal_blocks(
    theta: NDArray,
    spec: RandomEffectSpec,
    clusters: tuple[NDArray, ...],
) -> tuple[NDArray, ...]:
    """Relative marginal covariance V*_i = Z_i T T' Z_i' + I per cluster."""
    T = theta_to_factor(theta, spec.n_terms)
    G = T @ T.T
    blocks = []
    for idx in clusters:
        Zi = spec.covariates[idx]
        blocks.append(Zi @ G @ Zi.T + np.eye(len(idx)))
    return tuple(blocks)


def theta_lower_bounds(spec: RandomEffectSpec) -> NDArray:
    """Lower bounds on θ for L-BFGS-B.

    Diagonal elements of the Cholesky factor are ≥ 0; off-diagonal
    elements are unbounded (correlations can be negative).
    """
    q = spec.n_terms
    rows, cols = np.tril_indices(q)
    return np.where(rows == cols, 0.0, -np.inf)


def theta_diagonal(spec: RandomEffectSpec) -> NDArray:
    """Positions in θ of the diagonal elements of T."""
    rows, cols = np.tril_indices(spec.n_terms)
    return np.flatnonzero(rows == cols)


def theta_start(spec: RandomEffectSpec) -> NDArray:
    """Starting θ: identity factor (σ_b/σ = 1, no correlation)."""
    q = spec.n_terms
    rows, cols = np.tril_indices(q)
    return np.where(rows == cols, 1.0, 0.0)


def theta_starts(spec: RandomEffectSpec) -> list[NDArray]:
    """Starting points for the optimizer.

    With random slopes the profiled deviance can have local minima, so
    variants with smaller slope diagonals are tried as well.
    """
    theta0 = theta_start(spec)
    if spec.n_terms == 1:
        return [theta0]
    starts = [theta0]
    diag = theta_diagonal(spec)
    for scale in (0.2, 0.5):
        alt = theta0.copy()
        alt[diag[1:]] = scale
        starts.append(alt)
    return starts
