"""
Solver dispatch for hierarchical logistic regression.

Public API:
    fit() - fit a Bernoulli-logit model with nested and/or crossed random
            intercepts by Laplace approximation
"""

from __future__ import annotations

import logging
import threading
import warnings
from typing import Any

import numpy as np
from scipy import stats

from pymultilevel.core.datasource import DataSource
from pymultilevel.core.result import Result, STATUS_CONVERGED, STATUS_MAX_ITERATIONS
from pymultilevel.core.exceptions import (
    ConfigurationError, ConvergenceFailure, SingularFitWarning,
)
from pymultilevel.core.compute.timing import Timer, Deadline
from pymultilevel.regression.families import Binomial
from pymultilevel.regression.backends.cpu_glm import CPUIRLSBackend

from pymultilevel.mixed.spec import ModelSpec
from pymultilevel.mixed.control import FitControl
from pymultilevel.mixed.design import MixedDesign
from pymultilevel.mixed._common import FitParams, VarCompSummary
from pymultilevel.mixed._random_effects import (
    build_random_effects, build_z_matrix, split_by_factor, theta_start,
    theta_lower_bounds,
)
from pymultilevel.mixed._pls import fixed_effect_vcov, conditional_variances
from pymultilevel.mixed._laplace import LaplaceProblem, laplace_evaluate
from pymultilevel.mixed._optimizer import ObjectiveTracker, optimize_theta
from pymultilevel.mixed.solution import FittedModel

logger = logging.getLogger(__name__)


def fit(
    data: Any,
    spec: ModelSpec,
    *,
    control: FitControl | None = None,
    cancel: threading.Event | None = None,
    **overrides: Any,
) -> FittedModel:
    """Fit a hierarchical logistic regression model.

    The marginal likelihood is approximated by the Laplace method at the
    PIRLS conditional mode; the variance components θ are optimized with
    L-BFGS-B (Nelder-Mead fallback) and the fixed effects are profiled
    through the inner loop.

    Args:
        data: DataSource, pandas DataFrame, mapping of column arrays, or a
            path to a CSV/TSV file.
        spec: Model declaration.
        control: Fit configuration. Defaults to FitControl().
        cancel: Optional event; when set, the fit stops at the next outer
            iteration boundary with FitCancelled.
        **overrides: Individual FitControl fields, e.g. max_outer_iterations=50.

    Returns:
        FittedModel. Its status is 'converged' or 'max_iterations_exceeded';
        in the latter case the best estimates found are still reported.

    Raises:
        ConfigurationError: Malformed spec, unknown columns, non-binary
            response, rank-deficient fixed effects, or ambiguous grouping.
        ValidationError: Invalid control values or non-finite data.
        FitCancelled: The cancel event was set during the fit.
        NotPositiveDefiniteError: No θ could be evaluated.

    Example:
        >>> spec = ModelSpec.nested('passed', [Numeric('hours')], 'school', 'class')
        >>> model = fit(df, spec)
        >>> print(model.summary())
    """
    if not isinstance(spec, ModelSpec):
        raise ConfigurationError(
            f"spec must be a ModelSpec, got {type(spec).__name__}"
        )
    spec.validate()

    control = control if control is not None else FitControl()
    if overrides:
        control = control.with_overrides(**overrides)

    timer = Timer()
    timer.start()

    source = DataSource.build(data)

    with timer.section('design'):
        design = MixedDesign.build(source, spec)
        specs = build_random_effects(design.index)
        Z = build_z_matrix(specs, design.n)
    logger.debug("fit: n=%d p=%d factors=%s", design.n, design.p,
                 design.index.n_groups())

    family = Binomial()

    # Ordinary logistic fit: PIRLS starting point for every θ
    with timer.section('start_values'):
        start = CPUIRLSBackend().solve(
            design.X, design.y, family, max_iter=control.max_inner_iterations
        )
    beta_start = start.params.coefficients
    if not np.all(np.isfinite(beta_start)):
        beta_start = np.zeros(design.p, dtype=np.float64)

    problem = LaplaceProblem(
        X=design.X,
        Z=Z,
        y=design.y,
        specs=tuple(specs),
        family=family,
        beta_start=beta_start,
        inner_tolerance=control.inner_tolerance,
        max_inner_iterations=control.max_inner_iterations,
        max_retries=control.max_retries,
    )
    tracker = ObjectiveTracker(problem, control, cancel, Deadline(control.time_budget))

    with timer.section('optimization'):
        opt = optimize_theta(tracker, theta_start(specs), theta_lower_bounds(specs))

    with timer.section('final_solve'):
        evaluation = laplace_evaluate(opt.theta, problem)
        pirls = evaluation.pirls

    theta_hat = opt.theta
    singular = tuple(
        s.group_name for k, s in enumerate(specs)
        if theta_hat[k] < control.singular_tol
    )

    with timer.section('variance_components'):
        parents = {g.name: g.parent for g in spec.groups}
        var_comps = tuple(
            VarCompSummary(
                group=s.group_name,
                name='(Intercept)',
                variance=float(theta_hat[k] ** 2),
                std_dev=float(theta_hat[k]),
                parent=parents[s.group_name],
                n_levels=s.n_groups,
                singular=s.group_name in singular,
            )
            for k, s in enumerate(specs)
        )

    with timer.section('random_effects'):
        random_effs = split_by_factor(pirls.pls.b, specs)
        cond_var = split_by_factor(
            conditional_variances(pirls.pls.L, evaluation.lam), specs
        )

    # Wald z-statistics from Var(β̂) = (RX RX')⁻¹
    with timer.section('inference'):
        vcov = fixed_effect_vcov(pirls.pls.RX)
        se = np.sqrt(np.maximum(np.diag(vcov), 0.0))
        z_vals = pirls.pls.beta / se
        p_vals = 2.0 * stats.norm.sf(np.abs(z_vals))

    with timer.section('model_fit'):
        ll = evaluation.log_likelihood
        n_params = design.p + len(theta_hat)
        aic = -2.0 * ll + 2.0 * n_params
        bic = -2.0 * ll + np.log(design.n) * n_params
        cond_dev = family.deviance(design.y, pirls.mu, np.ones(design.n))

    timer.stop()

    status = STATUS_CONVERGED
    warn_list: list[str] = []

    if opt.status == STATUS_MAX_ITERATIONS:
        status = STATUS_MAX_ITERATIONS
        msg = (f"Variance-component optimizer stopped after {opt.n_iter} "
               f"iterations without converging: {opt.message}")
        warn_list.append(msg)
        warnings.warn(msg, ConvergenceFailure, stacklevel=2)
    if not pirls.converged:
        status = STATUS_MAX_ITERATIONS
        msg = (f"PIRLS did not converge after {pirls.n_iter} iterations "
               f"at the final variance components")
        warn_list.append(msg)
        warnings.warn(msg, ConvergenceFailure, stacklevel=2)
    if singular:
        msg = (f"Singular fit: variance component(s) of {list(singular)} "
               f"estimated at (or near) zero")
        warn_list.append(msg)
        warnings.warn(msg, SingularFitWarning, stacklevel=2)
    if opt.fallback_used:
        warn_list.append("L-BFGS-B terminated abnormally; continued with Nelder-Mead")
    if opt.n_failures:
        warn_list.append(
            f"{opt.n_failures} objective evaluation(s) failed to factorize "
            f"and were treated as +inf"
        )
    if pirls.n_retries:
        warn_list.append(
            f"Final PIRLS solve restarted {pirls.n_retries} time(s) from a damped start"
        )

    params = FitParams(
        coefficients=pirls.pls.beta,
        coefficient_names=design.column_names,
        se=se,
        z_values=z_vals,
        p_values=p_vals,
        vcov=vcov,
        var_components=var_comps,
        theta=theta_hat,
        random_effects=random_effs,
        conditional_variances=cond_var,
        log_likelihood=ll,
        deviance=-2.0 * ll,
        conditional_deviance=cond_dev,
        aic=aic,
        bic=bic,
        n_obs=design.n,
        n_groups=design.index.n_groups(),
        fitted_values=pirls.mu,
        linear_predictor=pirls.eta,
        residuals=design.y - pirls.mu,
        n_iter=opt.n_iter,
        pirls_iter=pirls.n_iter,
        pirls_converged=pirls.converged,
        singular=singular,
    )

    result = Result(
        params=params,
        status=status,
        info={
            'method': 'Laplace',
            'family': family.name,
            'link': family.link.name,
            'optimizer': opt.method,
            'fallback_used': opt.fallback_used,
            'n_iter': opt.n_iter,
            'n_evaluations': opt.n_evaluations,
            'n_failures': opt.n_failures,
            'pirls_iter': pirls.n_iter,
            'pirls_retries': pirls.n_retries,
            'pirls_converged': pirls.converged,
            'objective': evaluation.objective,
            'optimizer_message': opt.message,
            'start_converged': start.params.converged,
        },
        timing=timer.result(),
        backend_name='cpu_laplace',
        warnings=tuple(warn_list),
    )
    logger.debug("fit finished: status=%s theta=%s objective=%.8f",
                 status, theta_hat, evaluation.objective)

    return FittedModel(
        _result=result,
        spec=spec,
        encoding=design.encoding,
        index=design.index,
        control=control,
    )
