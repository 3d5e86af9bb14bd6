import numpy as np
import patsy
import statsmodels.api as sm

from .errors import SpecificationError

# Namespace for evaluating terms, shared by the checks here and the statsmodels fits
EVAL_ENV = patsy.EvalEnvironment([{"np": np}])


class ModelSpecification:
    """Right-hand side of a nuisance model, stored as an explicit collection of covariate terms and an intercept flag.
    Terms follow the patsy format, so transformations like ``C(race)`` or ``I(age**2)`` are allowed as single terms.

    Parameters
    ----------
    covariates : list, tuple, optional
        Covariate terms to include in the model. Default is an empty list, which gives the intercept-only model
    intercept : bool, optional
        Whether to include an intercept. Default is True

    Examples
    --------
    >>> ModelSpecification(["age", "ldl", "C(diabetes)"])
    >>> ModelSpecification.from_formula("age + ldl + C(diabetes)")
    >>> ModelSpecification()   # intercept-only, i.e. complete randomization
    """
    def __init__(self, covariates=(), intercept=True):
        if isinstance(covariates, str):
            raise SpecificationError("`covariates` must be a list of terms. Use ModelSpecification.from_formula() "
                                     "to build a specification from a patsy string")
        covariates = tuple(str(c).strip() for c in covariates)
        if any(c == "" for c in covariates):
            raise SpecificationError("Empty covariate terms are not allowed")
        if len(covariates) == 0 and not intercept:
            raise SpecificationError("A model with no covariates and no intercept cannot be estimated")

        self.covariates = covariates
        self.intercept = bool(intercept)

    @classmethod
    def from_formula(cls, formula):
        """Builds a specification from the right-hand side of a patsy formula. For example, ``'age + ldl'``,
        ``'1'`` (intercept-only), or ``'age + ldl - 1'`` (no intercept).

        Parameters
        ----------
        formula : str
            Right-hand side of a patsy formula. Should not contain a '~'

        Returns
        -------
        ModelSpecification
        """
        if "~" in formula:
            raise SpecificationError("Only the right-hand side of the formula should be provided, but '"
                                     + formula + "' contains a '~'")
        try:
            desc = patsy.ModelDesc.from_formula(formula)
        except patsy.PatsyError as e:
            raise SpecificationError("Unable to parse the model '" + formula + "': " + str(e)) from e

        intercept = patsy.INTERCEPT in desc.rhs_termlist
        covariates = [term.name() for term in desc.rhs_termlist if term != patsy.INTERCEPT]
        return cls(covariates=covariates, intercept=intercept)

    @property
    def formula(self):
        """Right-hand side in the patsy format"""
        if len(self.covariates) == 0:
            return "1"
        rhs = " + ".join(self.covariates)
        if not self.intercept:
            rhs = rhs + " - 1"
        return rhs

    @property
    def variables(self):
        """Plain column names referenced by the terms. Terms that are expressions (e.g. ``C(race)``) contribute the
        column names they reference when those are simple identifiers."""
        names = []
        for term in self.covariates:
            for factor in _term_factors_(term):
                code = factor.code.strip()
                if code.isidentifier() and code not in names:
                    names.append(code)
                else:
                    for inner in _inner_identifiers_(code):
                        if inner not in names:
                            names.append(inner)
        return names

    def resolve(self, data):
        """Checks the specification against the columns of a data set. Fails fast when a referenced column is absent,
        contains missing values, or when patsy cannot evaluate a term.

        Parameters
        ----------
        data : DataFrame
            Data set the specification will be fit to

        Returns
        -------
        str
            The right-hand side formula, ready to pass to statsmodels
        """
        for term in self.covariates:
            for factor in _term_factors_(term):
                code = factor.code.strip()
                if code.isidentifier() and code not in data.columns:
                    raise SpecificationError("The covariate '" + code + "' is not a column in the data set")

        for v in self.variables:
            if v in data.columns and data[v].isnull().any():
                raise SpecificationError("The covariate '" + v + "' has " + str(int(data[v].isnull().sum()))
                                         + " missing value(s). Missing covariate values are not supported")

        try:
            patsy.dmatrix(self.formula, data, eval_env=EVAL_ENV, return_type='dataframe')
        except patsy.PatsyError as e:
            raise SpecificationError("Unable to evaluate the model '" + self.formula + "': " + str(e)) from e
        return self.formula

    def __eq__(self, other):
        if not isinstance(other, ModelSpecification):
            return NotImplemented
        return self.covariates == other.covariates and self.intercept == other.intercept

    def __hash__(self):
        return hash((self.covariates, self.intercept))

    def __repr__(self):
        return "ModelSpecification(" + repr(list(self.covariates)) + ", intercept=" + str(self.intercept) + ")"


def as_specification(model):
    """Converts a patsy string or ModelSpecification into a ModelSpecification"""
    if isinstance(model, ModelSpecification):
        return model
    if isinstance(model, str):
        return ModelSpecification.from_formula(model)
    raise SpecificationError("Model must be a patsy string or a ModelSpecification, not " + type(model).__name__)


def _term_factors_(term):
    try:
        desc = patsy.ModelDesc.from_formula(term)
    except patsy.PatsyError as e:
        raise SpecificationError("Unable to parse the term '" + term + "': " + str(e)) from e
    factors = []
    for t in desc.rhs_termlist:
        factors.extend(t.factors)
    return factors


def _inner_identifiers_(code):
    # Column names nested inside patsy expressions, e.g. 'race' in 'C(race)' or 'age' in 'I(age**2)'
    known_calls = {"C", "I", "Q", "np", "center", "standardize", "scale", "bs", "cr", "cc", "te", "log", "exp",
                   "sqrt", "Treatment", "Sum", "Poly", "Diff", "Helmert"}
    tokens = []
    current = ""
    for ch in code:
        if ch.isalnum() or ch == "_":
            current += ch
        else:
            if current:
                tokens.append(current)
            current = ""
    if current:
        tokens.append(current)
    return [t for t in tokens if t.isidentifier() and t not in known_calls]


class OutcomeConfig:
    """Distribution and link for the weighted outcome regression. Invalid combinations are rejected when the
    configuration is created.

    ============  ===============================================
    family        links
    ============  ===============================================
    gaussian      identity, log, inverse_power
    binomial      logit, identity, log, probit, cloglog
    poisson       log, identity, sqrt
    gamma         inverse_power, log, identity
    ============  ===============================================

    Parameters
    ----------
    family : str, optional
        Distribution for the outcome model. Default is 'gaussian'
    link : str, None, optional
        Link function for the outcome model. Default is None, which uses the canonical link for the family
    """
    families = {"gaussian": sm.families.Gaussian,
                "binomial": sm.families.Binomial,
                "poisson": sm.families.Poisson,
                "gamma": sm.families.Gamma}
    links = {"identity": sm.families.links.Identity,
             "logit": sm.families.links.Logit,
             "log": sm.families.links.Log,
             "probit": sm.families.links.Probit,
             "cloglog": sm.families.links.CLogLog,
             "inverse_power": sm.families.links.InversePower,
             "sqrt": sm.families.links.Sqrt}
    supported = {"gaussian": ("identity", "log", "inverse_power"),
                 "binomial": ("logit", "identity", "log", "probit", "cloglog"),
                 "poisson": ("log", "identity", "sqrt"),
                 "gamma": ("inverse_power", "log", "identity")}

    def __init__(self, family="gaussian", link=None):
        family = str(family).lower()
        if family == "normal":
            family = "gaussian"
        if family not in self.supported:
            raise SpecificationError("The family '" + family + "' is not supported. Options are: "
                                     + ", ".join(self.supported))
        if link is None:
            link = self.supported[family][0]
        link = str(link).lower()
        if link not in self.supported[family]:
            raise SpecificationError("The link '" + link + "' is not supported for the " + family + " family. "
                                     "Options are: " + ", ".join(self.supported[family]))
        self.family = family
        self.link = link

    @property
    def canonical(self):
        """Whether the link is the canonical link of the family"""
        return self.link == self.supported[self.family][0]

    @property
    def exponentiate(self):
        """Whether the treatment coefficient is on the log scale (ratio measures)"""
        return self.link in ("log", "logit")

    @property
    def measure(self):
        """Name of the contrast the treatment coefficient corresponds to"""
        if self.link == "identity":
            return "Risk Difference" if self.family == "binomial" else "Mean Difference"
        if self.link == "logit":
            return "Odds Ratio"
        if self.link == "log":
            return {"binomial": "Risk Ratio", "poisson": "Rate Ratio"}.get(self.family, "Mean Ratio")
        return "Coefficient"

    def statsmodels_family(self):
        """Returns the corresponding statsmodels family object"""
        return self.families[self.family](link=self.links[self.link]())

    def __repr__(self):
        return "OutcomeConfig(family='" + self.family + "', link='" + self.link + "')"
