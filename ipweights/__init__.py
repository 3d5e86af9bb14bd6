"""ipweights is a small library for inverse probability weighting in cohort studies. Treatment is addressed with
inverse probability of treatment weights (or standardized mortality ratio weights) and loss to follow-up with inverse
probability of censoring weights. Nuisance models are logistic regressions and the weighted outcome model is a
generalized estimating equation with the robust variance.
"""

from .version import __version__

from .errors import (IPWError, SpecificationError, DegenerateWeightError, IdentifierUniquenessError,
                     ConvergenceError)
from .specification import ModelSpecification, OutcomeConfig
from .weights import (fit_nuisance_model, iptw_weights, smr_weights, ipcw_weights, check_probability,
                      bound_probability)
from .estimator import WeightedEstimator, estimate
from .diagnostics import standardized_mean_difference, balance_table, descriptive_table, positivity
from .survival import weighted_kaplan_meier, weighted_cox, hazard_ratio
from .dgm import simulate_cohort, simulate_survival
