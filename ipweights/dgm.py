import numpy as np
import pandas as pd
from scipy.stats import logistic


def simulate_cohort(n=10000, seed=None):
    """Simulates a confounded cohort with informative loss to follow-up. The true average causal effect of `statin` on
    the continuous outcome `y` is 1 (mean difference).

    Confounders (`age`, `ldl`, `diabetes`) affect both statin use and the outcome, so the crude comparison is biased
    upwards. Remaining uncensored depends on `age` and `statin`, and `y` is missing for censored individuals.

    Parameters
    ----------
    n : int, optional
        Number of individuals. Default is 10000
    seed : int, None, optional
        Seed for the random number generator. Default is None

    Returns
    -------
    pandas.DataFrame
        Columns: id, age, ldl, diabetes, statin, uncensored, y
    """
    rng = np.random.default_rng(seed)

    df = pd.DataFrame()
    df['id'] = np.arange(1, n + 1)

    # Confounders
    df['age'] = np.round(rng.normal(55, 8, size=n), 0)
    df['ldl'] = np.round(rng.normal(130, 30, size=n), 0)
    df['diabetes'] = rng.binomial(n=1, p=logistic.cdf(-2 + 0.04 * (df['age'] - 55)), size=n)

    # Treatment mechanism
    pr_a = logistic.cdf(-1
                        + 0.05 * (df['age'] - 55)
                        + 0.02 * (df['ldl'] - 130)
                        + 0.8 * df['diabetes'])
    df['statin'] = rng.binomial(n=1, p=pr_a, size=n)

    # Potential outcomes
    error = rng.normal(0, 2, size=n)
    y0 = 0.1 * (df['age'] - 55) + 0.05 * (df['ldl'] - 130) + 2 * df['diabetes'] + error
    y1 = y0 + 1
    y = np.where(df['statin'] == 1, y1, y0)  # causal consistency

    # Loss to follow-up
    pr_c = logistic.cdf(2 - 0.05 * (df['age'] - 55) - 0.5 * df['statin'])
    df['uncensored'] = rng.binomial(n=1, p=pr_c, size=n)
    df['y'] = np.where(df['uncensored'] == 1, y, np.nan)
    return df


def simulate_survival(n=5000, seed=None):
    """Simulates a confounded cohort with time-to-event outcomes. Event times are exponential with a conditional hazard
    ratio of 0.7 for `statin`. Follow-up is administratively censored at 10 and subject to random drop out.

    Parameters
    ----------
    n : int, optional
        Number of individuals. Default is 5000
    seed : int, None, optional
        Seed for the random number generator. Default is None

    Returns
    -------
    pandas.DataFrame
        Columns: id, age, diabetes, statin, t, delta
    """
    rng = np.random.default_rng(seed)

    df = pd.DataFrame()
    df['id'] = np.arange(1, n + 1)
    df['age'] = np.round(rng.normal(55, 8, size=n), 0)
    df['diabetes'] = rng.binomial(n=1, p=logistic.cdf(-2 + 0.04 * (df['age'] - 55)), size=n)
    df['statin'] = rng.binomial(n=1, p=logistic.cdf(-0.5 + 0.05 * (df['age'] - 55) + 0.8 * df['diabetes']), size=n)

    # Event and censoring times
    hazard = 0.05 * np.exp(0.04 * (df['age'] - 55) + 0.6 * df['diabetes'] + np.log(0.7) * df['statin'])
    event_time = rng.exponential(1 / hazard)
    drop_time = rng.exponential(1 / 0.02, size=n)
    df['t'] = np.round(np.minimum(np.minimum(event_time, drop_time), 10), 2)
    df['t'] = np.where(df['t'] <= 0, 0.01, df['t'])
    df['delta'] = np.where((event_time <= drop_time) & (event_time <= 10), 1, 0)
    return df
