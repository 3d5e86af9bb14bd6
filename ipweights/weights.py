import warnings
import numpy as np
import statsmodels.api as sm
import statsmodels.formula.api as smf
from statsmodels.tools.sm_exceptions import (ConvergenceWarning, IterationLimitWarning, PerfectSeparationError,
                                             PerfectSeparationWarning)

from .errors import DegenerateWeightError, ConvergenceError, SpecificationError
from .specification import EVAL_ENV, as_specification


def fit_nuisance_model(data, target, model, verbose=False, label=None):
    """Fits a logistic regression model for a binary `target` with the right-hand side given by `model`. Used for both
    the treatment and the censoring nuisance models.

    Parameters
    ----------
    data : DataFrame
        Data to fit the model to
    target : str
        Column name of the binary variable to predict
    model : str, ModelSpecification
        Right-hand side of the model, as a patsy string or a ModelSpecification
    verbose : bool, optional
        Whether to print the statsmodels summary of the fitted model. Default is False
    label : str, optional
        Name to display above the printed model summary

    Returns
    -------
    statsmodels GLMResults
    """
    spec = as_specification(model)
    rhs = spec.resolve(data)
    if target not in data.columns:
        raise SpecificationError("The column '" + target + "' is not in the data set")
    if data[target].isnull().any():
        raise SpecificationError("The column '" + target + "' has missing values")

    f = sm.families.Binomial()
    fm = _fit_with_convergence_check_(lambda: smf.glm(target + " ~ " + rhs, data, family=f, eval_env=EVAL_ENV).fit(),
                                      description=label if label is not None else target + " model")

    if verbose:
        print('==============================================================================')
        print(label if label is not None else target + ' Model')
        print(fm.summary())
        print('==============================================================================')
    return fm


def check_probability(pr, label="probability"):
    """Checks predicted probabilities that are used in the denominator of a weight. Any value of exactly 0 or 1 (or
    outside of the unit interval, or missing) results in an undefined weight.

    Parameters
    ----------
    pr : array
        Predicted probabilities
    label : str, optional
        Name of the probability to display in the error message
    """
    pr = np.asarray(pr, dtype=float)
    bad = ~np.isfinite(pr) | (pr <= 0) | (pr >= 1)
    if np.any(bad):
        raise DegenerateWeightError("The predicted " + label + " was 0, 1, or undefined for " + str(np.sum(bad))
                                    + " observation(s), which results in an infinite or undefined weight. Check "
                                    "for positivity violations or perfect prediction in the model")
    return pr


def iptw_weights(a, pr_a, stabilized=False):
    r"""Inverse probability of treatment weights,

    .. math::

        \frac{A}{\Pr(A=1|W)} + \frac{1-A}{1-\Pr(A=1|W)}

    Stabilized weights replace the numerator by the marginal probability of the observed treatment.

    Parameters
    ----------
    a : array
        Binary treatment indicator
    pr_a : array
        Predicted probability of treatment, Pr(A=1 | W)
    stabilized : bool, optional
        Whether to return stabilized weights. Default is False

    Returns
    -------
    numpy.array
    """
    a = np.asarray(a, dtype=float)
    pr_a = np.asarray(pr_a, dtype=float)
    check_probability(pr_a, label="probability of treatment")

    if stabilized:
        prev = np.mean(a)
        numerator_1, numerator_0 = prev, 1 - prev
    else:
        numerator_1, numerator_0 = 1, 1
    return a * numerator_1 / pr_a + (1 - a) * numerator_0 / (1 - pr_a)


def smr_weights(a, pr_a):
    r"""Standardized mortality ratio weights. Treated observations receive a weight of 1, and untreated observations
    receive the odds of treatment,

    .. math::

        A + (1-A) \frac{\Pr(A=1|W)}{1-\Pr(A=1|W)}

    which standardizes the untreated to the covariate distribution of the treated.

    Note
    ----
    As with IPTW, a predicted probability of exactly 0 or 1 raises a DegenerateWeightError. For untreated
    observations a probability of 1 is an infinite weight. Values are never truncated
    unless requested via `bound_probability`.

    Parameters
    ----------
    a : array
        Binary treatment indicator
    pr_a : array
        Predicted probability of treatment, Pr(A=1 | W)

    Returns
    -------
    numpy.array
    """
    a = np.asarray(a, dtype=float)
    pr_a = np.asarray(pr_a, dtype=float)
    check_probability(pr_a, label="probability of treatment")
    odds = np.ones(pr_a.shape)
    odds[a == 0] = pr_a[a == 0] / (1 - pr_a[a == 0])
    return np.where(a == 1, 1., odds)


def ipcw_weights(c, pr_c):
    r"""Inverse probability of censoring weights,

    .. math::

        \frac{C}{\Pr(C=1|W,A)}

    where C=1 indicates the observation remained uncensored. Censored observations do not contribute to the
    outcome model, so their weight is returned as missing (NaN) rather than zero.

    Parameters
    ----------
    c : array
        Indicator for remaining uncensored (1) or being censored (0)
    pr_c : array
        Predicted probability of remaining uncensored, Pr(C=1 | W, A)

    Returns
    -------
    numpy.array
    """
    c = np.asarray(c, dtype=float)
    pr_c = np.asarray(pr_c, dtype=float)
    check_probability(pr_c, label="probability of remaining uncensored")
    w = np.full(pr_c.shape, np.nan)
    w[c == 1] = 1 / pr_c[c == 1]
    return w


def bound_probability(v, bounds):
    """Truncates predicted probabilities. Only used when explicitly requested, since truncating probabilities leads to
    some residual confounding.

    Parameters
    ----------
    v : array
        Predicted probabilities
    bounds : float, list
        A single float between (0, 1) for symmetric truncation at (bounds, 1 - bounds), or a pair of floats for
        asymmetric truncation (lower, upper)

    Returns
    -------
    numpy.array
    """
    v = np.array(v, dtype=float)
    if isinstance(bounds, bool) or isinstance(bounds, (str, int)):
        raise ValueError('Bounds must either be a float between (0, 1), or a collection of floats between (0, 1)')

    if isinstance(bounds, float):  # Symmetric bounding
        if bounds <= 0 or bounds >= 0.5:
            raise ValueError('Bound value must be between (0, 0.5)')
        lower, upper = bounds, 1 - bounds
    else:  # Asymmetric bounds
        if len(bounds) > 2:
            warnings.warn('It looks like your specified bounds is more than two floats. Only the first two '
                          'specified bounds are used by the bound statement. So only ' +
                          str(list(bounds[0:2])) + ' will be used', UserWarning)
        lower, upper = bounds[0], bounds[1]
        if isinstance(lower, str) or isinstance(upper, str):
            raise ValueError('Bounds must be floats between (0, 1)')
        if lower > upper:
            raise ValueError('Bound thresholds must be listed in ascending order')
        if lower <= 0 or upper >= 1:
            raise ValueError('Both bound values must be between (0, 1)')

    v[v < lower] = lower
    v[v > upper] = upper
    return v


def _fit_with_convergence_check_(fit, description):
    """Calls `fit` and turns statsmodels convergence problems into a ConvergenceError. The statsmodels message is
    kept as the error message."""
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", ConvergenceWarning)
        warnings.simplefilter("always", PerfectSeparationWarning)
        warnings.simplefilter("always", IterationLimitWarning)
        try:
            results = fit()
        except PerfectSeparationError as e:
            raise ConvergenceError(description + ": " + str(e)) from e

    for w in caught:
        if issubclass(w.category, (ConvergenceWarning, IterationLimitWarning, PerfectSeparationWarning)):
            raise ConvergenceError(description + ": " + str(w.message))
        # Re-issue everything else so the caller still sees it
        warnings.warn_explicit(w.message, w.category, w.filename, w.lineno)
    return results
