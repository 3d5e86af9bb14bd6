class IPWError(Exception):
    """
    Base class for errors in the ipweights package
    """
    pass


class SpecificationError(IPWError, ValueError):
    """Raised when a model specification references a column or term that cannot be resolved against the data, or
    when an input column or option is invalid.
    """
    pass


class DegenerateWeightError(IPWError, ValueError):
    """Raised when a predicted probability used in the denominator of a weight is exactly 0 or 1, which results in an
    infinite or undefined weight.
    """
    pass


class IdentifierUniquenessError(IPWError, ValueError):
    """Raised when the identifier column contains duplicated values. The robust variance uses one cluster per unique
    identifier, so duplicates would silently change the variance estimator.
    """
    pass


class ConvergenceError(IPWError, RuntimeError):
    """Raised when statsmodels fails to converge while fitting a nuisance or outcome model. The message from
    statsmodels is passed along as-is.
    """
    pass
