"""
Residual covariance structures for GLS.

A CovarianceStructure is a tagged variant. The within-cluster
covariance of the residuals is

    Var(ε_i) = σ² Φ_i,   Φ_i = D_i R_i D_i

where R_i is the correlation matrix (identity, compound symmetry or
AR(1)) and D_i is diagonal with the SD multiplier of each observation's
variance stratum (all ones without `variance_by`).

Parameters given at construction are held fixed; parameters left as
None are estimated:

    CovarianceStructure.compound_symmetry()            # ρ estimated
    CovarianceStructure.compound_symmetry(rho=0.0)     # ρ fixed (OLS)
    CovarianceStructure.ar1(time='age')                # lags from ranks of age
    CovarianceStructure.compound_symmetry(variance_by='Sex')
    CovarianceStructure.identity_by_group('Sex', multipliers={'Male': 1.0,
                                                            'Female': 0.6})
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

import numpy as np
from numpy.typing import NDArray

from pylongreg.core.capabilities import (
    ALL_STRUCTURES, CORRELATED_STRUCTURES, STRUCTURE_AR1,
    STRUCTURE_COMPOUND_SYMMETRY, STRUCTURE_IDENTITY_BY_GROUP,
    STRUCTURE_INDEPENDENT,
)
from pylongreg.core.exceptions import ValidationError
from pylongreg.core.validation import check_choice

_BOUNDARY = 1e-6
_LOG_DELTA_BOUND = 10.0

_DISPLAY_NAMES = {
    STRUCTURE_INDEPENDENT: 'Independent',
    STRUCTURE_COMPOUND_SYMMETRY: 'Compound symmetry',
    STRUCTURE_AR1: 'AR(1)',
    STRUCTURE_IDENTITY_BY_GROUP: 'Identity by group',
}


@dataclass(frozen=True)
class CovarianceStructure:
    """
    Residual covariance structure for a GLS fit.

    Attributes:
        kind: 'independent', 'compound_symmetry', 'ar1' or
            'identity_by_group'.
        rho: Within-cluster correlation; None to estimate it.
        time: Column giving measurement times for AR(1) lags; None to
            use the order of rows within each cluster.
        variance_by: Column whose levels get separate residual SDs.
        multipliers: Level → SD multiplier for every level of
            variance_by (the first level must be 1); None to estimate.
    """
    kind: str
    rho: float | None = None
    time: str | None = None
    variance_by: str | None = None
    multipliers: Mapping[str, float] | None = field(default=None, hash=False)

    def __post_init__(self) -> None:
        check_choice(self.kind, ALL_STRUCTURES, 'kind')
        if self.rho is not None:
            if self.kind not in CORRELATED_STRUCTURES:
                raise ValidationError(f"rho is not a parameter of a {self.kind} structure")
            if not -1.0 < self.rho < 1.0:
                raise ValidationError(f"rho: must be in (-1, 1), got {self.rho}")
        if self.time is not None and self.kind != STRUCTURE_AR1:
            raise ValidationError("time only applies to an ar1 structure")
        if self.kind == STRUCTURE_IDENTITY_BY_GROUP and self.variance_by is None:
            raise ValidationError("identity_by_group requires variance_by")
        if self.multipliers is not None:
            if self.variance_by is None:
                raise ValidationError("multipliers require variance_by")
            bad = {k: v for k, v in self.multipliers.items() if not v > 0}
            if bad:
                raise ValidationError(f"multipliers must be positive, got {bad}")

    # === Constructors ===

    @classmethod
    def independent(cls) -> CovarianceStructure:
        return cls(STRUCTURE_INDEPENDENT)

    @classmethod
    def compound_symmetry(
        cls,
        rho: float | None = None,
        *,
        variance_by: str | None = None,
        multipliers: Mapping[str, float] | None = None,
    ) -> CovarianceStructure:
        return cls(STRUCTURE_COMPOUND_SYMMETRY, rho=rho,
                   variance_by=variance_by, multipliers=multipliers)

    @classmethod
    def ar1(
        cls,
        rho: float | None = None,
        *,
        time: str | None = None,
        variance_by: str | None = None,
        multipliers: Mapping[str, float] | None = None,
    ) -> CovarianceStructure:
        return cls(STRUCTURE_AR1, rho=rho, time=time,
                   variance_by=variance_by, multipliers=multipliers)

    @classmethod
    def identity_by_group(
        cls,
        variance_by: str,
        multipliers: Mapping[str, float] | None = None,
    ) -> CovarianceStructure:
        return cls(STRUCTURE_IDENTITY_BY_GROUP,
                   variance_by=variance_by, multipliers=multipliers)

    # === Introspection ===

    @property
    def is_correlated(self) -> bool:
        return self.kind in CORRELATED_STRUCTURES

    @property
    def estimates_rho(self) -> bool:
        return self.is_correlated and self.rho is None

    @property
    def estimates_multipliers(self) -> bool:
        return self.variance_by is not None and self.multipliers is None

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self.kind]

    def __str__(self) -> str:
        parts = [self.kind]
        if self.rho is not None:
            parts.append(f"rho={self.rho:g}")
        if self.time is not None:
            parts.append(f"time={self.time}")
        if self.variance_by is not None:
            parts.append(f"variance_by={self.variance_by}")
        return f"CovarianceStructure({', '.join(parts)})"


@dataclass(frozen=True, eq=False)
class ResolvedStructure:
    """
    A CovarianceStructure bound to the rows of one dataset.

    Maps the free-parameter vector φ = [ρ?] + [log δ for each
    non-reference variance level] to per-cluster Φ_i blocks.

    Attributes:
        structure: The user-level structure.
        clusters: Row indices of each cluster.
        positions: Per cluster, the time index of each row (AR(1) lags).
        levels: Variance strata in order (reference first).
        level_codes: Stratum code per row, or None.
        fixed_log_delta: Log multipliers when they are held fixed.
        rho_bounds: Admissible (lower, upper) for ρ.
    """
    structure: CovarianceStructure
    clusters: tuple[NDArray, ...]
    positions: tuple[NDArray, ...]
    levels: tuple[str, ...]
    level_codes: NDArray | None
    fixed_log_delta: NDArray | None
    rho_bounds: tuple[float, float]

    @property
    def n_rho(self) -> int:
        return 1 if self.structure.estimates_rho else 0

    @property
    def n_delta(self) -> int:
        return len(self.levels) - 1 if self.structure.estimates_multipliers else 0

    @property
    def n_free(self) -> int:
        return self.n_rho + self.n_delta

    def parameter_names(self) -> list[str]:
        names = ['rho'] * self.n_rho
        names += [f"log_delta[{lv}]" for lv in self.levels[1:self.n_delta + 1]]
        return names

    def bounds(self) -> tuple[NDArray, NDArray]:
        lower = [self.rho_bounds[0]] * self.n_rho + [-_LOG_DELTA_BOUND] * self.n_delta
        upper = [self.rho_bounds[1]] * self.n_rho + [_LOG_DELTA_BOUND] * self.n_delta
        return np.array(lower, dtype=np.float64), np.array(upper, dtype=np.float64)

    def unpack(self, phi: NDArray) -> tuple[float, NDArray]:
        """(ρ, log δ per level) at φ; ρ is 0 for uncorrelated kinds."""
        if self.structure.estimates_rho:
            rho = float(phi[0])
        elif self.structure.rho is not None:
            rho = float(self.structure.rho)
        else:
            rho = 0.0
        if self.structure.estimates_multipliers:
            log_delta = np.concatenate([[0.0], phi[self.n_rho:]])
        elif self.fixed_log_delta is not None:
            log_delta = self.fixed_log_delta
        else:
            log_delta = np.zeros(max(len(self.levels), 1))
        return rho, log_delta

    def phi_blocks(self, phi: NDArray) -> tuple[NDArray, ...]:
        """Relative covariance Φ_i = D_i R_i D_i for every cluster."""
        rho, log_delta = self.unpack(phi)
        kind = self.structure.kind
        blocks = []
        for idx, pos in zip(self.clusters, self.positions):
            m = len(idx)
            if kind == STRUCTURE_COMPOUND_SYMMETRY:
                R = np.full((m, m), rho)
                np.fill_diagonal(R, 1.0)
            elif kind == STRUCTURE_AR1:
                lags = np.abs(pos[:, None] - pos[None, :])
                R = rho ** lags
            else:
                R = np.eye(m)
            if self.level_codes is not None:
                d = np.exp(log_delta[self.level_codes[idx]])
                R = d[:, None] * R * d[None, :]
            blocks.append(R)
        return tuple(blocks)

    def start(self, residuals: NDArray) -> NDArray:
        """Starting φ: ρ = 0, log δ from stratum SDs of OLS residuals."""
        phi = [0.0] * self.n_rho
        if self.n_delta:
            codes = self.level_codes
            sd_ref = np.std(residuals[codes == 0])
            for k in range(1, len(self.levels)):
                sd_k = np.std(residuals[codes == k])
                ratio = sd_k / sd_ref if sd_ref > 0 and sd_k > 0 else 1.0
                phi.append(float(np.clip(np.log(ratio), -5.0, 5.0)))
        return np.array(phi, dtype=np.float64)

    def multipliers(self, phi: NDArray) -> dict[str, float]:
        """Level → SD multiplier at φ (empty without variance_by)."""
        if self.level_codes is None:
            return {}
        _, log_delta = self.unpack(phi)
        return {lv: float(np.exp(log_delta[k])) for k, lv in enumerate(self.levels)}

    def with_estimates(self, phi: NDArray) -> CovarianceStructure:
        """The user-level structure with every parameter filled in."""
        rho, _ = self.unpack(phi)
        s = self.structure
        return CovarianceStructure(
            kind=s.kind,
            rho=rho if s.is_correlated else None,
            time=s.time,
            variance_by=s.variance_by,
            multipliers=self.multipliers(phi) or None,
        )


def resolve_structure(
    structure: CovarianceStructure,
    clusters: tuple[NDArray, ...],
    n: int,
    time: NDArray | None = None,
    strata: NDArray | None = None,
    strata_levels: tuple[str, ...] | None = None,
) -> ResolvedStructure:
    """
    Bind a structure to the rows of a dataset.

    Args:
        structure: User-level covariance structure.
        clusters: Row indices of each cluster.
        n: Number of rows.
        time: Measurement time per row (AR(1) only). Lags are differences
            of the dense ranks of these values.
        strata: Variance-stratum label per row (variance_by only).
        strata_levels: Stratum labels in order; the first is the
            reference. Defaults to sorted unique labels.

    Raises:
        ValidationError: If ρ cannot be estimated (all clusters of size
            one), a fixed ρ is inadmissible for the cluster sizes, or
            fixed multipliers do not match the strata.
    """
    m_max = max((len(idx) for idx in clusters), default=1)

    if structure.kind == STRUCTURE_COMPOUND_SYMMETRY:
        if m_max < 2 and structure.estimates_rho:
            raise ValidationError(
                "Compound symmetry needs clusters with at least 2 observations "
                "to estimate rho"
            )
        lower = -1.0 / (m_max - 1) + _BOUNDARY if m_max > 1 else -1.0 + _BOUNDARY
        rho_bounds = (lower, 1.0 - _BOUNDARY)
    else:
        if structure.kind == STRUCTURE_AR1 and m_max < 2 and structure.estimates_rho:
            raise ValidationError(
                "AR(1) needs clusters with at least 2 observations to estimate rho"
            )
        rho_bounds = (-1.0 + _BOUNDARY, 1.0 - _BOUNDARY)

    if structure.rho is not None and not rho_bounds[0] <= structure.rho <= rho_bounds[1]:
        raise ValidationError(
            f"rho={structure.rho} is not admissible for clusters of size up to "
            f"{m_max}; must lie in ({rho_bounds[0]:.4f}, {rho_bounds[1]:.4f})"
        )

    if time is not None:
        _, ranks = np.unique(np.asarray(time), return_inverse=True)
        positions = tuple(ranks[idx].astype(np.float64) for idx in clusters)
    else:
        positions = tuple(np.arange(len(idx), dtype=np.float64) for idx in clusters)

    levels: tuple[str, ...] = ()
    level_codes = None
    fixed_log_delta = None
    if structure.variance_by is not None:
        if strata is None:
            raise ValidationError(
                f"variance_by='{structure.variance_by}' requires per-row strata"
            )
        strata = np.asarray(strata, dtype=object)
        levels = tuple(strata_levels) if strata_levels is not None else tuple(
            sorted({str(s) for s in strata})
        )
        lookup = {lv: k for k, lv in enumerate(levels)}
        level_codes = np.array([lookup[str(s)] for s in strata], dtype=np.intp)
        if structure.multipliers is not None:
            fixed_log_delta = _fixed_log_delta(structure, levels)

    return ResolvedStructure(
        structure=structure,
        clusters=clusters,
        positions=positions,
        levels=levels,
        level_codes=level_codes,
        fixed_log_delta=fixed_log_delta,
        rho_bounds=rho_bounds,
    )


def _fixed_log_delta(structure: CovarianceStructure, levels: tuple[str, ...]) -> NDArray:
    given = {str(k): float(v) for k, v in structure.multipliers.items()}
    missing = [lv for lv in levels if lv not in given]
    extra = [k for k in given if k not in levels]
    if missing or extra:
        raise ValidationError(
            f"multipliers must name every level of '{structure.variance_by}' "
            f"{list(levels)}; missing {missing}, unknown {extra}"
        )
    if not np.isclose(given[levels[0]], 1.0):
        raise ValidationError(
            f"The reference level '{levels[0]}' must have multiplier 1, "
            f"got {given[levels[0]]}"
        )
    return np.log(np.array([given[lv] for lv in levels]))
