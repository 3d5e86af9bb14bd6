import numpy as np
import pandas as pd
from statsmodels.stats.weightstats import DescrStatsW

from .errors import SpecificationError


def standardized_mean_difference(df, treatment, variable, weight=None, var_type=None):
    r"""Standardized mean difference between the treated and untreated for a single covariate. For a continuous
    variable

    .. math::

        \frac{\bar{X}_1 - \bar{X}_0}{\sqrt{(s_1^2 + s_0^2) / 2}}

    and for a binary variable the variances are replaced by :math:`p(1-p)`. When `weight` is given, the weighted means
    and standard deviations are used instead. Observations with a missing weight (e.g., censored) are ignored.

    Parameters
    ----------
    df : DataFrame
        Data set containing the treatment, the covariate, and (optionally) the weights
    treatment : str
        Column name of the binary treatment
    variable : str
        Column name of the covariate
    weight : str, None, optional
        Column name of the weights. Default is None, which computes the unweighted SMD
    var_type : str, None, optional
        Either 'binary' or 'continuous'. Default is None, which treats variables with only 0 and 1 values as binary

    Returns
    -------
    float
    """
    for column in [treatment, variable] + ([] if weight is None else [weight]):
        if column not in df.columns:
            raise SpecificationError("The column '" + column + "' is not in the data set")

    columns = [treatment, variable] if weight is None else [treatment, variable, weight]
    d = df[columns].dropna()
    if var_type is None:
        var_type = 'binary' if d[variable].isin([0, 1]).all() else 'continuous'

    w = np.ones(d.shape[0]) if weight is None else np.asarray(d[weight])
    treated = np.asarray(d[treatment] == 1)
    x1 = DescrStatsW(np.asarray(d[variable], dtype=float)[treated], weights=w[treated], ddof=1)
    x0 = DescrStatsW(np.asarray(d[variable], dtype=float)[~treated], weights=w[~treated], ddof=1)

    if var_type == 'binary':
        p1, p0 = x1.mean, x0.mean
        denominator = np.sqrt((p1 * (1 - p1) + p0 * (1 - p0)) / 2)
    elif var_type == 'continuous':
        denominator = np.sqrt((x1.std ** 2 + x0.std ** 2) / 2)
    else:
        raise SpecificationError("The only variable types currently supported are 'binary' and 'continuous'")
    return float((x1.mean - x0.mean) / denominator)


def balance_table(df, treatment, covariates, weight=None):
    """Unweighted and weighted standardized mean differences for a set of covariates. An absolute SMD below 0.1 is
    commonly taken to indicate balance.

    Parameters
    ----------
    df : DataFrame
        Data set containing the treatment, covariates, and weights
    treatment : str
        Column name of the binary treatment
    covariates : list
        Column names of the covariates to assess
    weight : str, None, optional
        Column name of the weights. Default is None, which only computes the unweighted SMD

    Returns
    -------
    pandas.DataFrame
        Indexed by covariate, with columns 'var_type', 'smd', and (when weighted) 'weighted_smd'
    """
    rows = []
    for v in covariates:
        if v not in df.columns:
            raise SpecificationError("The column '" + v + "' is not in the data set")
        var_type = 'binary' if df[v].dropna().isin([0, 1]).all() else 'continuous'
        row = {"variable": v,
               "var_type": var_type,
               "smd": standardized_mean_difference(df, treatment, v, var_type=var_type)}
        if weight is not None:
            row["weighted_smd"] = standardized_mean_difference(df, treatment, v, weight=weight, var_type=var_type)
        rows.append(row)
    return pd.DataFrame(rows).set_index("variable")


def descriptive_table(df, treatment, covariates, weight=None):
    """Means and standard deviations of covariates by treatment group, optionally weighted. For binary covariates the
    mean is the proportion.

    Parameters
    ----------
    df : DataFrame
        Data set containing the treatment and covariates
    treatment : str
        Column name of the binary treatment
    covariates : list
        Column names of the covariates to describe
    weight : str, None, optional
        Column name of the weights. Default is None

    Returns
    -------
    pandas.DataFrame
        Indexed by covariate, with the count, mean and standard deviation for each treatment group
    """
    rows = []
    for v in covariates:
        if v not in df.columns:
            raise SpecificationError("The column '" + v + "' is not in the data set")
        row = {"variable": v}
        for a in [1, 0]:
            columns = [v] if weight is None else [v, weight]
            d = df.loc[df[treatment] == a, columns].dropna()
            w = None if weight is None else np.asarray(d[weight])
            stats = DescrStatsW(np.asarray(d[v], dtype=float), weights=w, ddof=1)
            row["n_a" + str(a)] = d.shape[0]
            row["mean_a" + str(a)] = stats.mean
            row["sd_a" + str(a)] = stats.std
        rows.append(row)
    return pd.DataFrame(rows).set_index("variable")


def positivity(weights):
    """Summary of the weight distribution, following Cole & Hernan (2008). A mean far from the minimum or maximum, or
    very large weights, may indicate a misspecified model or violations of positivity. Missing weights are ignored.

    Cole SR, Hernan MA. Constructing inverse probability weights for marginal structural models.
    American Journal of Epidemiology 2008; 168(6):656-664.

    Parameters
    ----------
    weights : array, Series
        Weights to summarize

    Returns
    -------
    pandas.Series
        With entries 'mean', 'sd', 'min', and 'max'
    """
    w = pd.Series(np.asarray(weights, dtype=float)).dropna()
    return pd.Series({"mean": np.mean(w),
                      "sd": np.std(w, ddof=1),
                      "min": np.min(w),
                      "max": np.max(w)})
