"""
Shared fixtures for hierarchical logistic model tests.

Provides simulated datasets with known structure (random intercept,
nested, crossed, no group variance, separation) and fitted models that
are reused across test modules.
"""

import warnings

import numpy as np
import pytest
from scipy.special import expit

from pymultilevel.mixed import ModelSpec, Numeric, Boolean, GroupingFactor, fit


def make_random_intercept(seed=11, n_groups=30, n_per=20, sigma=1.0):
    """y ~ x + treated + (1 | group), group SD = sigma.

    30 groups of 20 observations; beta = (-0.3, 0.8, 0.5).
    """
    rng = np.random.default_rng(seed)
    n = n_groups * n_per
    codes = np.repeat(np.arange(n_groups), n_per)
    group = np.array([f"g{j:02d}" for j in range(n_groups)])[codes]
    x = rng.standard_normal(n)
    treated = rng.integers(0, 2, size=n).astype(bool)
    b = rng.normal(0.0, sigma, size=n_groups)
    eta = -0.3 + 0.8 * x + 0.5 * treated + b[codes]
    y = rng.binomial(1, expit(eta)).astype(float)
    return {'y': y, 'x': x, 'treated': treated, 'group': group}


def make_nested(seed=7, n_schools=10, n_classes=4, n_per=15,
                sigma_school=1.0, sigma_class=0.6):
    """y ~ x + (1 | school/class) with class labels repeated across schools.

    Every school has classes 'c1'..'c4', so 'c1' in s01 and 'c1' in s02
    are different classes.
    """
    rng = np.random.default_rng(seed)
    n = n_schools * n_classes * n_per
    school_code = np.repeat(np.arange(n_schools), n_classes * n_per)
    class_code = np.tile(np.repeat(np.arange(n_classes), n_per), n_schools)
    school = np.array([f"s{j:02d}" for j in range(n_schools)])[school_code]
    klass = np.array([f"c{j + 1}" for j in range(n_classes)])[class_code]

    b_school = rng.normal(0.0, sigma_school, size=n_schools)
    b_class = rng.normal(0.0, sigma_class, size=(n_schools, n_classes))
    x = rng.standard_normal(n)
    eta = 0.2 + 0.7 * x + b_school[school_code] + b_class[school_code, class_code]
    y = rng.binomial(1, expit(eta)).astype(float)
    return {'y': y, 'x': x, 'school': school, 'class': klass}


def make_crossed(seed=5, n_subjects=25, n_items=16,
                 sigma_subject=1.0, sigma_item=0.8):
    """y ~ x + (1 | subject) + (1 | item), every subject sees every item."""
    rng = np.random.default_rng(seed)
    n = n_subjects * n_items
    s_code = np.repeat(np.arange(n_subjects), n_items)
    i_code = np.tile(np.arange(n_items), n_subjects)
    subject = np.array([f"s{j:02d}" for j in range(n_subjects)])[s_code]
    item = np.array([f"i{j:02d}" for j in range(n_items)])[i_code]

    b_s = rng.normal(0.0, sigma_subject, size=n_subjects)
    b_i = rng.normal(0.0, sigma_item, size=n_items)
    x = rng.standard_normal(n)
    eta = -0.2 + 0.6 * x + b_s[s_code] + b_i[i_code]
    y = rng.binomial(1, expit(eta)).astype(float)
    return {'y': y, 'x': x, 'subject': subject, 'item': item}


def make_identical_groups(n_groups=10):
    """Every group holds exactly the same (x, y) rows.

    The groups carry no between-group variation, so the variance
    component sits on the zero boundary.
    """
    x_block = np.linspace(-1.0, 1.0, 20)
    y_block = np.array([0, 0, 1, 0, 0, 1, 0, 1, 1, 0,
                        1, 0, 1, 1, 0, 1, 1, 1, 0, 1], dtype=float)
    group = np.repeat([f"g{j}" for j in range(n_groups)], x_block.shape[0])
    return {
        'y': np.tile(y_block, n_groups),
        'x': np.tile(x_block, n_groups),
        'group': group,
    }


def make_separated():
    """Four rows: G1 always succeeds, G2 always fails, x is uninformative."""
    return {
        'y': np.array([1.0, 1.0, 0.0, 0.0]),
        'x': np.array([0.0, 1.0, 0.0, 1.0]),
        'group': np.array(['G1', 'G1', 'G2', 'G2']),
    }


RANDOM_INTERCEPT_SPEC = ModelSpec(
    'y', (Numeric('x'), Boolean('treated')), (GroupingFactor('group', 'group'),)
)
NESTED_SPEC = ModelSpec.nested('y', [Numeric('x')], 'school', 'class')
CROSSED_SPEC = ModelSpec('y', (Numeric('x'),), (
    GroupingFactor('subject', 'subject', crossed=True),
    GroupingFactor('item', 'item', crossed=True),
))


def _quiet_fit(data, spec, **kwargs):
    with warnings.catch_warnings():
        warnings.simplefilter('ignore')
        return fit(data, spec, **kwargs)


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return np.random.default_rng(2024)


@pytest.fixture(scope='session')
def random_intercept_data():
    return make_random_intercept()


@pytest.fixture(scope='session')
def nested_data():
    return make_nested()


@pytest.fixture(scope='session')
def crossed_data():
    return make_crossed()


@pytest.fixture
def identical_groups_data():
    return make_identical_groups()


@pytest.fixture
def separated_data():
    return make_separated()


@pytest.fixture(scope='session')
def random_intercept_model(random_intercept_data):
    return _quiet_fit(random_intercept_data, RANDOM_INTERCEPT_SPEC)


@pytest.fixture(scope='session')
def nested_model(nested_data):
    return _quiet_fit(nested_data, NESTED_SPEC)


@pytest.fixture(scope='session')
def crossed_model(crossed_data):
    return _quiet_fit(crossed_data, CROSSED_SPEC)
