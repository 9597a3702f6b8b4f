"""
pytest configuration and shared fixtures.

The two table fixtures mimic the teaching datasets the package was built
around: dental growth measurements (repeated measures per subject) and
graduate admissions (binary outcome).
"""

import numpy as np
import pytest
from scipy.optimize import minimize

from pylongreg.data import Table, coerce_categorical


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return np.random.default_rng(42)


def make_orthodont(rng, *, n_male=16, n_female=11, sd_subject=1.8, sd_resid=1.4):
    """Orthodont-like growth data: distance ~ age * Sex, 4 ages per subject."""
    ages = np.array([8.0, 10.0, 12.0, 14.0])
    rows = {'distance': [], 'age': [], 'Sex': [], 'Subject': []}
    subjects = [('M', i, 'Male') for i in range(1, n_male + 1)]
    subjects += [('F', i, 'Female') for i in range(1, n_female + 1)]
    for prefix, i, sex in subjects:
        b0 = rng.normal(0.0, sd_subject)
        for age in ages:
            if sex == 'Male':
                mean = 16.3 + 0.78 * age
            else:
                mean = 17.4 + 0.48 * age
            rows['distance'].append(mean + b0 + rng.normal(0.0, sd_resid))
            rows['age'].append(age)
            rows['Sex'].append(sex)
            rows['Subject'].append(f"{prefix}{i:02d}")
    return Table.from_arrays(
        distance=np.array(rows['distance']),
        age=np.array(rows['age']),
        Sex=np.array(rows['Sex'], dtype=object),
        Subject=np.array(rows['Subject'], dtype=object),
    )


def make_admissions(rng, n=400):
    """Admissions-like data: admit ~ gre + gpa + rank (rank has 4 levels)."""
    gre = np.clip(np.round(rng.normal(588.0, 115.0, n) / 20.0) * 20.0, 220.0, 800.0)
    gpa = np.clip(np.round(rng.normal(3.39, 0.38, n), 2), 2.26, 4.0)
    rank = rng.choice(np.array(['1', '2', '3', '4'], dtype=object), size=n,
                      p=[0.15, 0.38, 0.30, 0.17])
    rank_effect = {'1': 0.0, '2': -0.68, '3': -1.34, '4': -1.55}
    eta = -3.99 + 0.0023 * gre + 0.80 * gpa + np.array([rank_effect[r] for r in rank])
    admit = (rng.random(n) < 1.0 / (1.0 + np.exp(-eta))).astype(float)
    table = Table.from_arrays(admit=admit, gre=gre, gpa=gpa, rank=rank)
    return coerce_categorical(table, 'rank', ('1', '2', '3', '4'))


@pytest.fixture
def orthodont(rng):
    return make_orthodont(rng)


@pytest.fixture
def admissions(rng):
    return make_admissions(rng)


@pytest.fixture
def stall_optimizer(monkeypatch):
    """Patch a solver module's minimize so results report a failed line search.

    Call with the module and, optionally, the 0-based call numbers to fail
    (default: every call).
    """
    def patch(module, calls=None):
        count = [0]

        def run(*args, **kwargs):
            res = minimize(*args, **kwargs)
            if calls is None or count[0] in calls:
                res.success = False
                res.status = 2
                res.message = 'ABNORMAL_TERMINATION_IN_LNSRCH'
            count[0] += 1
            return res

        monkeypatch.setattr(module, 'minimize', run)

    return patch
