import warnings
import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf
from scipy.stats import norm
from statsmodels.tools.sm_exceptions import DomainWarning

from .errors import SpecificationError, IdentifierUniquenessError, DegenerateWeightError, ConvergenceError
from .specification import OutcomeConfig, as_specification
from .weights import (fit_nuisance_model, iptw_weights, smr_weights, ipcw_weights, bound_probability,
                      _fit_with_convergence_check_)
from .diagnostics import balance_table, positivity


class WeightedEstimator:
    r"""Inverse probability weighted estimator with inverse probability of censoring weights. The treatment
    coefficient of a weighted regression of the outcome on treatment, fit among uncensored observations, estimates the
    marginal causal contrast.

    The procedure is

    1. a logistic model for treatment, :math:`\Pr(A=1|W)`, fit to all observations
    2. a logistic model for remaining uncensored, :math:`\Pr(C=1|W,A)`, fit to all observations
    3. weights :math:`\frac{A}{\Pr(A=1|W)} + \frac{1-A}{1-\Pr(A=1|W)}` times :math:`\frac{C}{\Pr(C=1|W,A)}`
    4. a generalized estimating equation with an independent working correlation and one cluster per identifier,
       weighted by the combined weight. The robust (sandwich) variance accounts for the estimated weights,
       conservatively

    Note
    ----
    Standardized mortality ratio weights (``weighting='smr'``) instead estimate the effect among the treated.

    Parameters
    ----------
    df : DataFrame
        Pandas DataFrame object containing all variables of interest. One row per unique individual
    treatment : str
        Column name of the treatment variable. Must be coercible to 0 or 1
    outcome : str
        Column name of the outcome variable. May be missing for censored observations
    idvar : str
        Column name of the unique identifier
    censor : str, None, optional
        Column name of the indicator for remaining uncensored (1) versus censored (0). Default is None, in which case
        observations with a missing outcome are considered censored
    weighting : str, optional
        Either 'iptw' (average causal effect) or 'smr' (average causal effect among the treated). Default is 'iptw'
    stabilized : bool, optional
        Whether to use stabilized treatment weights. Only available for 'iptw'. Default is False
    alpha : float, optional
        Alpha for confidence interval level. Default is 0.05, returning the 95% CL
    verbose : bool, optional
        Whether to display all nuisance model results as procedure runs. Default is False, which does not output to
        console

    Examples
    --------
    >>> from ipweights import WeightedEstimator, simulate_cohort
    >>> d = simulate_cohort(n=10000, seed=2023)
    >>> ipw = WeightedEstimator(d, treatment='statin', outcome='y', idvar='id', censor='uncensored')
    >>> ipw.treatment_model("age + ldl + diabetes")
    >>> ipw.censoring_model("age + statin")
    >>> ipw.outcome_model(family='gaussian', link='identity')
    >>> ipw.fit()
    >>> ipw.summary()
    """
    def __init__(self, df, treatment, outcome, idvar, censor=None, weighting='iptw', stabilized=False, alpha=0.05,
                 verbose=False):
        for column in [treatment, outcome, idvar] + ([] if censor is None else [censor]):
            if column not in df.columns:
                raise SpecificationError("The column '" + str(column) + "' is not in the data set")
        if weighting.lower() not in ['iptw', 'smr']:
            raise SpecificationError("The weighting option '" + str(weighting) + "' is not supported. Only 'iptw' "
                                     "and 'smr' are currently supported.")
        if stabilized and weighting.lower() == 'smr':
            raise SpecificationError("Stabilized weights are only available for weighting='iptw'")
        if alpha <= 0 or alpha >= 1:
            raise SpecificationError("`alpha` must be between (0, 1)")

        # Checking the identifier supports one cluster per individual
        if df[idvar].isnull().any():
            raise SpecificationError("The identifier column '" + idvar + "' contains missing values")
        if df[idvar].duplicated().any():
            n_dup = int(df[idvar].duplicated(keep=False).sum())
            raise IdentifierUniquenessError("The identifier column '" + idvar + "' must be unique, but " + str(n_dup)
                                            + " rows share an identifier with another row")

        # Augmented copy of the input data; the input is never modified
        self.df = df.copy().reset_index(drop=True)
        self.treatment = treatment
        self.outcome = outcome
        self.idvar = idvar
        self.df[treatment] = _binary_column_(self.df, treatment)
        if censor is None:
            self.censor = '_uncensored_'
            self.df[self.censor] = np.where(self.df[outcome].isnull(), 0, 1)
        else:
            self.censor = censor
            self.df[censor] = _binary_column_(self.df, censor)

        if self.df.loc[self.df[self.censor] == 1, outcome].isnull().any():
            raise SpecificationError("The outcome '" + outcome + "' is missing for uncensored observations")
        if np.all(self.df[self.censor] == 0):
            raise SpecificationError("All observations are censored")

        # Results storage
        self.results = None
        self.point_estimate = None
        self.standard_error = None
        self.confidence_interval = None

        # Storage for later procedures
        self._weighting_ = weighting.lower()
        self._stabilized_ = stabilized
        self._alpha_ = alpha
        self._verbose_ = verbose
        self._fit_treatment_, self._fit_censor_ = False, False
        self._treatment_spec_, self._censor_spec_ = None, None
        self._nuisance_treatment_, self._nuisance_censoring_ = None, None
        self._outcome_config_ = OutcomeConfig(family='gaussian', link='identity')

    def treatment_model(self, model, bound=False):
        r"""Treatment model, which predicts the probability of :math:`A=1` given the baseline covariates via logistic
        regression fit to all observations.

        Note
        ----
        For a randomized trial, use a null model. This is implemented via ``model="1"``.

        Parameters
        ----------
        model : str, ModelSpecification
            Variables to predict treatment via the patsy format. For example, 'var1 + var2 + var3'
        bound : float, list, optional
            Value between 0,1 to truncate predicted probabilities. Truncating weights leads to additional confounding,
            so this is only applied when requested. Default is False, meaning no truncation of predicted probabilities
            occurs. A predicted probability of exactly 0 or 1 raises a DegenerateWeightError
        """
        self._treatment_spec_ = as_specification(model)
        if self.df[self.treatment].nunique() < 2:
            raise DegenerateWeightError("Every observation has the same treatment, so the probability of the other "
                                        "treatment is zero")

        fm = fit_nuisance_model(self.df, self.treatment, self._treatment_spec_,
                                verbose=self._verbose_, label='Treatment Model')
        self._nuisance_treatment_ = fm
        pr_a = np.asarray(fm.predict(self.df), dtype=float)
        if bound:
            pr_a = bound_probability(pr_a, bounds=bound)

        a = self.df[self.treatment]
        if self._weighting_ == 'smr':
            iptw = smr_weights(a, pr_a)
        else:
            iptw = iptw_weights(a, pr_a, stabilized=self._stabilized_)

        self.df['_pr_treat_'] = pr_a
        self.df['_iptw_'] = iptw
        self._fit_treatment_ = True

    def censoring_model(self, model, bound=False):
        r"""Censoring model, which predicts the probability of remaining uncensored, :math:`\Pr(C=1|W,A)`, via logistic
        regression fit to all observations. Include the treatment in `model` if censoring depends on treatment.

        Note
        ----
        When no observation is censored, the model is not fit and every censoring weight is 1.

        Parameters
        ----------
        model : str, ModelSpecification
            Variables to predict remaining uncensored via the patsy format. For example, 'var1 + var2 + var3'
        bound : float, list, optional
            Value between 0,1 to truncate predicted probabilities of remaining uncensored. Default is False, meaning no
            truncation of predicted probabilities occurs
        """
        self._censor_spec_ = as_specification(model)
        c = self.df[self.censor]

        if np.all(c == 1):
            # Every observation is uncensored, so Pr(C=1) is 1 for all
            self._censor_spec_.resolve(self.df)
            self.df['_pr_uncens_'] = 1.
            self.df['_ipcw_'] = 1.
            if self._verbose_:
                print('==============================================================================')
                print('Censoring Model')
                print('No observations were censored. All censoring weights are 1')
                print('==============================================================================')
        else:
            fm = fit_nuisance_model(self.df, self.censor, self._censor_spec_,
                                    verbose=self._verbose_, label='Censoring Model')
            self._nuisance_censoring_ = fm
            pr_c = np.asarray(fm.predict(self.df), dtype=float)
            if bound:
                pr_c = bound_probability(pr_c, bounds=bound)
            self.df['_pr_uncens_'] = pr_c
            self.df['_ipcw_'] = ipcw_weights(c, pr_c)

        self._fit_censor_ = True

    def outcome_model(self, family='gaussian', link=None):
        """Distribution and link for the weighted outcome regression of the outcome on treatment. An identity link
        estimates additive contrasts and a log or logit link estimates multiplicative contrasts.

        Parameters
        ----------
        family : str, optional
            One of 'gaussian', 'binomial', 'poisson', or 'gamma'. Default is 'gaussian'
        link : str, None, optional
            Link function. Default is None, which uses the canonical link of `family`
        """
        self._outcome_config_ = OutcomeConfig(family=family, link=link)

    def fit(self):
        """Estimates the weighted outcome model. Called after `treatment_model()` and, when any observation is
        censored, `censoring_model()`.

        Returns
        -------
        statsmodels GEEResultsWrapper
        """
        if not self._fit_treatment_:
            raise SpecificationError("`treatment_model()` must be specified before calling `fit()`")
        if not self._fit_censor_:
            if np.any(self.df[self.censor] == 0):
                raise SpecificationError("Some observations are censored, so `censoring_model()` must be specified "
                                         "before calling `fit()`")
            self.df['_pr_uncens_'] = 1.
            self.df['_ipcw_'] = 1.

        # Combined weight, which is only defined for the uncensored
        self.df['_weight_'] = np.where(self.df[self.censor] == 1,
                                       self.df['_iptw_'] * self.df['_ipcw_'],
                                       np.nan)

        d = self.df.loc[self.df[self.censor] == 1].copy()
        config = self._outcome_config_
        if config.exponentiate:
            # Ratio measures are undefined when an arm has no events (or, for odds, only events)
            for a in [1, 0]:
                ya = d.loc[d[self.treatment] == a, self.outcome]
                if np.all(ya == 0) or (config.link == 'logit' and np.all(ya == 1)):
                    raise ConvergenceError("Outcome Model: the uncensored observations with " + self.treatment + "="
                                           + str(a) + " have no outcome variation, so the "
                                           + config.measure.lower() + " is not defined")
        ind = sm.cov_struct.Independence()
        with warnings.catch_warnings():
            warnings.simplefilter('ignore', DomainWarning)  # non-canonical links
            fm = _fit_with_convergence_check_(
                lambda: smf.gee(self.outcome + " ~ " + self.treatment, self.idvar, d,
                                cov_struct=ind, family=config.statsmodels_family(),
                                weights=np.asarray(d['_weight_'])).fit(),
                description='Outcome Model')

        if self._verbose_:
            print('==============================================================================')
            print('Outcome Model')
            print(fm.summary())
            print('==============================================================================')

        self.results = fm
        self.point_estimate = float(fm.params[self.treatment])
        self.standard_error = float(fm.bse[self.treatment])
        zalpha = norm.ppf(1 - self._alpha_ / 2, loc=0, scale=1)
        self.confidence_interval = (self.point_estimate - zalpha * self.standard_error,
                                    self.point_estimate + zalpha * self.standard_error)
        return fm

    def summary(self, decimal=3):
        """Prints summary of the estimated treatment effect

        Parameters
        ----------
        decimal : int, optional
            Number of decimal places to display. Default is 3
        """
        if self.results is None:
            raise SpecificationError("`fit()` must be called before `summary()`")

        config = self._outcome_config_
        print('======================================================================')
        print('          Inverse Probability of Treatment & Censoring Weights        ')
        print('======================================================================')
        fmt = 'Treatment:        {:<15} No. Observations:     {:<20}'
        print(fmt.format(self.treatment, self.df.shape[0]))
        fmt = 'Outcome:          {:<15} No. Uncensored:       {:<20}'
        print(fmt.format(self.outcome, int(self.df[self.censor].sum())))
        fmt = 'Weighting:        {:<15} Model:                {:<20}'
        print(fmt.format(self._weighting_.upper(), config.family + ", " + config.link))
        print('======================================================================')
        if config.exponentiate:
            print(config.measure + ': ', np.round(np.exp(self.point_estimate), decimal))
            print('SE(log):  ', np.round(self.standard_error, decimal))
            print(str(round(100 * (1 - self._alpha_), 1)) + '% CL: ',
                  np.round(np.exp(self.confidence_interval), decimal))
        else:
            print(config.measure + ': ', np.round(self.point_estimate, decimal))
            print('SE:       ', np.round(self.standard_error, decimal))
            print(str(round(100 * (1 - self._alpha_), 1)) + '% CL: ',
                  np.round(self.confidence_interval, decimal))
        print('======================================================================')

    def balance(self, covariates=None):
        """Standardized mean differences before and after applying the treatment weights.

        Parameters
        ----------
        covariates : list, None, optional
            Columns to assess. Default is None, which uses the variables in the treatment model

        Returns
        -------
        pandas.DataFrame
        """
        if not self._fit_treatment_:
            raise SpecificationError("`treatment_model()` must be specified before calling `balance()`")
        if covariates is None:
            covariates = self._treatment_spec_.variables
        return balance_table(self.df, treatment=self.treatment, covariates=covariates, weight='_iptw_')

    def positivity(self):
        """Summary of the distribution of the combined weights (mean, standard deviation, minimum, and maximum)

        Returns
        -------
        pandas.Series
        """
        if '_weight_' not in self.df.columns:
            raise SpecificationError("`fit()` must be called before `positivity()`")
        return positivity(self.df['_weight_'])


def estimate(data, treatment_model, censoring_model, treatment_column, censoring_column, outcome_column, id_column,
             outcome_family='gaussian', link_function=None, weighting='iptw', verbose=False):
    """Fits the treatment and censoring models, computes the combined weights, and fits the weighted outcome model in
    a single call.

    Parameters
    ----------
    data : DataFrame
        Data set with one row per unique individual
    treatment_model : str, ModelSpecification
        Right-hand side for the treatment model. Use '1' for an intercept-only model
    censoring_model : str, ModelSpecification, None
        Right-hand side for the censoring model. May be None only if no observation is censored
    treatment_column : str
        Column name of the binary treatment
    censoring_column : str
        Column name of the indicator for remaining uncensored
    outcome_column : str
        Column name of the outcome
    id_column : str
        Column name of the unique identifier
    outcome_family : str, optional
        Distribution for the outcome model. Default is 'gaussian'
    link_function : str, None, optional
        Link for the outcome model. Default is the canonical link of `outcome_family`
    weighting : str, optional
        Either 'iptw' or 'smr'. Default is 'iptw'
    verbose : bool, optional
        Whether to print the nuisance model results. Default is False

    Returns
    -------
    statsmodels GEEResultsWrapper
    """
    est = WeightedEstimator(data, treatment=treatment_column, outcome=outcome_column, idvar=id_column,
                            censor=censoring_column, weighting=weighting, verbose=verbose)
    est.treatment_model(treatment_model)
    if censoring_model is not None:
        est.censoring_model(censoring_model)
    est.outcome_model(family=outcome_family, link=link_function)
    return est.fit()


def _binary_column_(df, column):
    """Coerces a column to integer 0/1, raising a SpecificationError when that is not possible"""
    values = df[column]
    if values.isnull().any():
        raise SpecificationError("The column '" + column + "' contains missing values")
    if pd.api.types.is_bool_dtype(values):
        return values.astype(int)
    try:
        values = pd.to_numeric(values)
    except (ValueError, TypeError) as e:
        raise SpecificationError("The column '" + column + "' must be coercible to 0 or 1") from e
    if not values.isin([0, 1]).all():
        raise SpecificationError("The column '" + column + "' must only contain 0 or 1")
    return values.astype(int)
