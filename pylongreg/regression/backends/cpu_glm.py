"""
CPU backend for logistic regression via IRLS.

Implements Iteratively Reweighted Least Squares (Fisher scoring) to match
R's glm.fit(). Each IRLS iteration solves a weighted least squares
problem via pivoted QR on the transformed system √W·X, √W·z.

Algorithm (matching R's glm.fit in src/library/stats/R/glm.R):
    Initialize: μ = family.initialize(y), η = link(μ)
    For iteration 1..max_iter:
        dμ/dη = link.mu_eta(η)
        V(μ) = family.variance(μ)
        z = η - offset + (y - μ) / dμ_dη     # working response
        w = (dμ/dη)² / V(μ)                  # working weights
        Solve WLS: min_β || √w·z - √w·X·β ||²  via QR
        η_new = X @ β + offset
        μ_new = linkinv(η_new)
        dev_new = family.deviance(y, μ_new, wt)
        Check: |dev_new - dev_old| / (|dev_old| + 0.1) < tol
"""

from __future__ import annotations

from dataclasses import dataclass
import warnings
import numpy as np
from numpy.typing import NDArray
from scipy import stats

from pylongreg.core.result import Result
from pylongreg.core.compute.timing import Timer
from pylongreg.core.compute.linalg.qr import qr_solve
from pylongreg.core.exceptions import NonConvergenceError, SingularMatrixError
from pylongreg.regression.families import Family
from pylongreg.regression._common import LogisticParams


@dataclass(frozen=True)
class _IRLSState:
    beta: NDArray
    eta: NDArray
    mu: NDArray
    deviance: float
    n_iter: int


class CPUIRLSBackend:
    """CPU backend using IRLS with QR inner solve.

    Matches R's glm.fit() algorithm including:
    - Same convergence criterion: |dev - dev_old| / (|dev_old| + 0.1) < tol
    - Same defaults: tol=1e-8, max_iter=25
    - Null deviance from mean(y) with an intercept, or an intercept-only
      IRLS when an offset is present

    Unlike glm.fit, an exhausted iteration budget is an error: no
    partially converged model is returned.
    """

    @property
    def name(self) -> str:
        return 'cpu_irls'

    def solve(
        self,
        X: NDArray,
        y: NDArray,
        family: Family,
        *,
        offset: NDArray | None = None,
        intercept: bool = True,
        coefficient_names: tuple[str, ...] | None = None,
        tol: float = 1e-8,
        max_iter: int = 25,
    ) -> Result[LogisticParams]:
        """Run IRLS to fit the model.

        Args:
            X: Design matrix (n, p), full column rank.
            y: Binary response (n,).
            family: GLM family specification.
            offset: Known component of the linear predictor (n,).
            intercept: Whether X carries an intercept column (affects
                the null deviance only).
            coefficient_names: Names of the columns of X.
            tol: Convergence tolerance (relative deviance change).
            max_iter: Maximum IRLS iterations.

        Returns:
            Result[LogisticParams].

        Raises:
            NonConvergenceError: If IRLS does not converge in max_iter.
            SingularMatrixError: If the weighted design loses rank.
        """
        timer = Timer()
        timer.start()

        n, p = X.shape
        link = family.link
        offset = np.zeros(n) if offset is None else np.asarray(offset, dtype=np.float64)

        # Prior weights (binary data: one trial per row)
        wt = np.ones(n, dtype=np.float64)

        warnings_list: list[str] = []

        with timer.section('irls'):
            state = _irls(X, y, family, offset, wt, tol, max_iter)

        mu, eta = state.mu, state.eta
        if family.boundary_fits(mu):
            msg = "fitted probabilities numerically 0 or 1 occurred"
            warnings.warn(msg, RuntimeWarning, stacklevel=3)
            warnings_list.append(msg)

        with timer.section('null_deviance'):
            null_deviance = self._null_deviance(
                y, wt, family, offset, intercept, tol, max_iter,
            )

        # ------------------------------------------------------------------
        # Covariance and hat values at the converged weights
        # ------------------------------------------------------------------
        with timer.section('influence'):
            mu_eta_val = link.mu_eta(eta)
            w = wt * mu_eta_val ** 2 / family.variance(mu)
            X_tilde = X * np.sqrt(w)[:, np.newaxis]
            xtwx = X_tilde.T @ X_tilde
            try:
                vcov = np.linalg.inv(xtwx)
            except np.linalg.LinAlgError as e:
                raise SingularMatrixError(
                    f"X'WX is singular at the IRLS solution: {e}",
                    matrix_name="X'WX",
                ) from e
            hat = np.einsum('ij,jk,ik->i', X_tilde, vcov, X_tilde)
            hat = np.clip(hat, 0.0, 1.0)

        with timer.section('residuals'):
            resid_response = y - mu
            resid_pearson = resid_response / np.sqrt(family.variance(mu))
            resid_deviance = np.sign(resid_response) * np.sqrt(
                np.maximum(wt * family.unit_deviance(y, mu), 0.0)
            )
            resid_working = resid_response / mu_eta_val
            one_minus_h = np.maximum(1.0 - hat, 1e-12)
            std_deviance = resid_deviance / np.sqrt(one_minus_h)
            std_pearson = resid_pearson / np.sqrt(one_minus_h)
            cooks = resid_pearson ** 2 * hat / (p * one_minus_h ** 2) if p else np.zeros(n)

        se = np.sqrt(np.maximum(np.diag(vcov), 0.0))
        z_vals = state.beta / se
        p_vals = 2.0 * stats.norm.sf(np.abs(z_vals))

        ll = family.log_likelihood(y, mu, wt)
        ll_null = -0.5 * null_deviance
        pseudo_r2 = 1.0 - ll / ll_null if ll_null != 0 else float('nan')

        timer.stop()

        params = LogisticParams(
            coefficients=state.beta,
            coefficient_names=tuple(coefficient_names or [f'X{j}' for j in range(p)]),
            vcov=vcov,
            se=se,
            z_values=z_vals,
            p_values=p_vals,
            fitted_values=mu,
            linear_predictor=eta,
            working_weights=w,
            residuals_response=resid_response,
            residuals_working=resid_working,
            residuals_deviance=resid_deviance,
            residuals_pearson=resid_pearson,
            hat_values=hat,
            std_deviance_residuals=std_deviance,
            std_pearson_residuals=std_pearson,
            cooks_distance=cooks,
            deviance=state.deviance,
            null_deviance=null_deviance,
            log_likelihood=ll,
            aic=-2.0 * ll + 2.0 * p,
            pseudo_r_squared=pseudo_r2,
            df_residual=n - p,
            df_null=n - 1 if intercept else n,
            n_params=p,
            n_obs=n,
            converged=True,
            n_iter=state.n_iter,
            family_name=family.name,
            link_name=link.name,
        )

        return Result(
            params=params,
            info={
                'method': 'irls_qr',
                'converged': True,
                'n_iter': state.n_iter,
                'deviance': state.deviance,
            },
            timing=timer.result(),
            backend_name=self.name,
            warnings=tuple(warnings_list),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _null_deviance(
        y: NDArray,
        wt: NDArray,
        family: Family,
        offset: NDArray,
        intercept: bool,
        tol: float,
        max_iter: int,
    ) -> float:
        """Compute null deviance matching R's glm.fit().

        Without an intercept the null model is μ = linkinv(offset). With
        an intercept and no offset it is μ = weighted mean of y; with an
        offset the intercept-only model is fitted by IRLS.
        """
        if not intercept:
            return family.deviance(y, family.link.linkinv(offset), wt)
        if not np.any(offset):
            mu_null = np.full_like(y, np.sum(wt * y) / np.sum(wt))
            return family.deviance(y, mu_null, wt)
        ones = np.ones((len(y), 1), dtype=np.float64)
        return _irls(ones, y, family, offset, wt, tol, max_iter).deviance


def _irls(
    X: NDArray,
    y: NDArray,
    family: Family,
    offset: NDArray,
    wt: NDArray,
    tol: float,
    max_iter: int,
) -> _IRLSState:
    """The IRLS loop shared by the full and intercept-only fits."""
    n, p = X.shape
    link = family.link

    mu = family.initialize(y)
    eta = link.link(mu)
    dev_old = family.deviance(y, mu, wt)
    dev_new = dev_old
    change = float('nan')
    beta = np.zeros(p, dtype=np.float64)

    if p == 0:
        eta = offset.copy()
        mu = link.linkinv(eta)
        return _IRLSState(beta, eta, mu, family.deviance(y, mu, wt), 0)

    for iteration in range(1, max_iter + 1):
        # Working quantities
        mu_eta_val = link.mu_eta(eta)
        var_mu = family.variance(mu)

        # Working response on the offset-free scale
        z = eta - offset + (y - mu) / mu_eta_val

        # Working weights: w = (dμ/dη)² / V(μ), guarded against zero
        w = np.maximum(wt * (mu_eta_val ** 2) / var_mu, 1e-30)

        sqrt_w = np.sqrt(w)
        beta, qr_result = qr_solve(X * sqrt_w[:, np.newaxis], z * sqrt_w)
        if qr_result.rank < p:
            raise SingularMatrixError(
                f"Weighted design lost rank during IRLS iteration {iteration}: "
                f"rank={qr_result.rank}, expected={p}",
                matrix_name='sqrt(W) X',
                rank=qr_result.rank,
                expected_rank=p,
            )

        eta = X @ beta + offset
        mu = link.linkinv(eta)
        dev_new = family.deviance(y, mu, wt)

        # R's convergence criterion
        change = abs(dev_new - dev_old)
        if change / (abs(dev_old) + 0.1) < tol:
            return _IRLSState(beta, eta, mu, dev_new, iteration)
        dev_old = dev_new

    raise NonConvergenceError(
        f"IRLS did not converge in {max_iter} iterations "
        f"(deviance={dev_new:.6f})",
        iterations=max_iter,
        final_change=change,
        reason='max_iterations',
        threshold=tol,
    )
