"""
Design validation for mixed models.

MixedDesign validates and organizes the array-level inputs for an LMM:
the response y, fixed effects matrix X, the grouping factor, and the
data behind random slope terms.
"""

from __future__ import annotations

from dataclasses import dataclass
import numpy as np
from numpy.typing import NDArray

from pylongreg.core.exceptions import ValidationError
from pylongreg.core.validation import check_1d, check_2d, check_finite
from pylongreg.mixed._random_effects import RANDOM_INTERCEPT


@dataclass(frozen=True)
class MixedDesign:
    """Validated design for a linear mixed model.

    Attributes:
        y: Response vector (n,).
        X: Fixed effects design matrix (n, p).
        group_ids: 0-indexed cluster code per observation (n,).
        group_labels: Label of each cluster code.
        random_terms: Random effect terms, e.g. ('1', 'age').
        random_data: Term name → data array (n,) for slope terms.
        n: Number of observations.
        p: Number of fixed effect columns.
    """
    y: NDArray
    X: NDArray
    group_ids: NDArray
    group_labels: tuple[str, ...]
    random_terms: tuple[str, ...]
    random_data: dict[str, NDArray]
    n: int
    p: int

    @staticmethod
    def validate(
        y: NDArray,
        X: NDArray,
        groups: NDArray,
        random_terms: tuple[str, ...] = (RANDOM_INTERCEPT,),
        random_data: dict[str, NDArray] | None = None,
    ) -> 'MixedDesign':
        """Validate inputs and create a MixedDesign.

        Args:
            y: Response vector.
            X: Fixed effects design matrix. If 1-D, treated as a single
               column (include an intercept column explicitly).
            groups: Cluster label per observation.
            random_terms: Random effect terms.
            random_data: Data for every non-intercept random term.

        Returns:
            Validated MixedDesign.

        Raises:
            ValidationError: On invalid inputs.
        """
        y = np.asarray(y, dtype=np.float64)
        if y.ndim == 2 and y.shape[1] == 1:
            y = y.ravel()
        check_1d(y, 'y')
        n = len(y)

        if n < 3:
            raise ValidationError(f"Need at least 3 observations, got {n}")

        X = np.asarray(X, dtype=np.float64)
        if X.ndim == 1:
            X = X.reshape(-1, 1)
        check_2d(X, 'X')
        if X.shape[0] != n:
            raise ValidationError(
                f"X has {X.shape[0]} rows, expected {n} (matching y)"
            )
        p = X.shape[1]
        if n <= p:
            raise ValidationError(
                f"Need more observations ({n}) than fixed effects ({p})"
            )

        groups = np.asarray(groups)
        if groups.shape[0] != n:
            raise ValidationError(
                f"groups has {groups.shape[0]} elements, expected {n}"
            )
        unique, group_ids = np.unique(groups, return_inverse=True)
        if len(unique) < 2:
            raise ValidationError(
                f"Grouping factor has only {len(unique)} level(s), need at least 2"
            )

        random_terms = tuple(random_terms)
        if not random_terms:
            raise ValidationError("At least one random effect term required")
        if len(set(random_terms)) != len(random_terms):
            raise ValidationError(f"Duplicate random effect terms: {random_terms}")

        data = {}
        for term in random_terms:
            if term == RANDOM_INTERCEPT:
                continue
            if random_data is None or term not in random_data:
                raise ValidationError(
                    f"Random slope term '{term}' requires data in random_data"
                )
            values = np.asarray(random_data[term], dtype=np.float64)
            if values.shape[0] != n:
                raise ValidationError(
                    f"Random data '{term}' has {values.shape[0]} elements, "
                    f"expected {n}"
                )
            check_finite(values, term)
            data[term] = values

        check_finite(y, 'y')
        check_finite(X, 'X')

        return MixedDesign(
            y=y,
            X=X,
            group_ids=group_ids.astype(np.intp),
            group_labels=tuple(str(u) for u in unique),
            random_terms=random_terms,
            random_data=data,
            n=n,
            p=p,
        )
