import warnings
import numpy as np
import pandas as pd
from scipy.stats import norm
from lifelines import KaplanMeierFitter, CoxPHFitter
from lifelines.exceptions import StatisticalWarning

from .errors import SpecificationError


def weighted_kaplan_meier(df, time, delta, treatment, weight=None):
    """Kaplan-Meier risk functions for each treatment group, optionally weighted (e.g., by inverse probability of
    treatment weights). Risks are aligned on the union of event times, so the risk difference is available at every
    time.

    Parameters
    ----------
    df : DataFrame
        Data set with one row per individual
    time : str
        Column name of the follow-up time
    delta : str
        Column name of the event indicator
    treatment : str
        Column name of the binary treatment
    weight : str, None, optional
        Column name of the weights. Observations with a missing weight are dropped. Default is None (unweighted)

    Returns
    -------
    pandas.DataFrame
        Indexed by time, with columns 'risk_a1', 'risk_a0', and 'risk_difference'
    """
    columns = [time, delta, treatment] + ([] if weight is None else [weight])
    for column in columns:
        if column not in df.columns:
            raise SpecificationError("The column '" + column + "' is not in the data set")
    d = df[columns].dropna()

    risks = []
    for a in [1, 0]:
        da = d.loc[d[treatment] == a]
        km = KaplanMeierFitter()
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", StatisticalWarning)  # non-integer weights
            km.fit(da[time], event_observed=da[delta],
                   weights=None if weight is None else da[weight])
        risk = 1 - km.survival_function_.iloc[:, 0]
        risk.name = "risk_a" + str(a)
        risks.append(risk)

    results = pd.concat(risks, axis=1).sort_index()
    results = results.ffill()                                   # step functions, so carry forward
    results = results.fillna(0.)                                # before the first time of a group
    results.index.name = time
    results['risk_difference'] = results['risk_a1'] - results['risk_a0']
    return results


def weighted_cox(df, time, delta, treatment, weight=None, covariates=None):
    """Weighted Cox proportional hazards model with the robust (sandwich) variance, which is needed for valid
    confidence intervals when the weights are estimated.

    Parameters
    ----------
    df : DataFrame
        Data set with one row per individual
    time : str
        Column name of the follow-up time
    delta : str
        Column name of the event indicator
    treatment : str
        Column name of the binary treatment
    weight : str, None, optional
        Column name of the weights. Observations with a missing weight are dropped. Default is None (unweighted)
    covariates : list, None, optional
        Additional columns to include in the model. Default is None

    Returns
    -------
    lifelines.CoxPHFitter
        Fitted model. The hazard ratio is available via ``hazard_ratios_[treatment]``
    """
    covariates = [] if covariates is None else list(covariates)
    columns = [time, delta, treatment] + covariates + ([] if weight is None else [weight])
    for column in columns:
        if column not in df.columns:
            raise SpecificationError("The column '" + column + "' is not in the data set")
    d = df[columns].dropna()

    cph = CoxPHFitter()
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", StatisticalWarning)
        cph.fit(d, duration_col=time, event_col=delta, weights_col=weight, robust=True)
    return cph


def hazard_ratio(cph, treatment, alpha=0.05):
    """Extracts the hazard ratio and its confidence interval for `treatment` from a fitted Cox model

    Returns
    -------
    tuple
        (hazard ratio, lower limit, upper limit)
    """
    zalpha = norm.ppf(1 - alpha / 2)
    coef = cph.params_[treatment]
    se = cph.standard_errors_[treatment]
    return np.exp(coef), np.exp(coef - zalpha * se), np.exp(coef + zalpha * se)
