import pytest

import numpy as np
import pandas as pd
import statsmodels.api as sm

from ipweights import ModelSpecification, OutcomeConfig, SpecificationError
from ipweights.specification import as_specification


@pytest.fixture
def data():
    d = pd.DataFrame()
    d['age'] = [40, 52, 61, 47, 55]
    d['ldl'] = [110, 150, 132, 98, 170]
    d['race'] = ['a', 'b', 'c', 'a', 'b']
    d['statin'] = [1, 0, 1, 0, 1]
    return d


class TestModelSpecification:

    def test_from_formula(self):
        spec = ModelSpecification.from_formula("age + ldl")
        assert spec.covariates == ("age", "ldl")
        assert spec.intercept
        assert spec.formula == "age + ldl"

    def test_intercept_only(self):
        spec = ModelSpecification.from_formula("1")
        assert spec.covariates == ()
        assert spec.intercept
        assert spec.formula == "1"
        assert ModelSpecification() == spec

    def test_no_intercept(self):
        spec = ModelSpecification.from_formula("age - 1")
        assert spec.covariates == ("age", )
        assert not spec.intercept
        assert spec.formula == "age - 1"

    def test_patsy_terms(self):
        spec = ModelSpecification.from_formula("C(race) + age:ldl")
        assert spec.covariates == ("C(race)", "age:ldl")

    def test_variables(self):
        spec = ModelSpecification(["C(race)", "I(age**2)", "ldl"])
        assert spec.variables == ["race", "age", "ldl"]

    def test_error_string_covariates(self):
        with pytest.raises(SpecificationError):
            ModelSpecification("age + ldl")

    def test_error_empty_model(self):
        with pytest.raises(SpecificationError):
            ModelSpecification([], intercept=False)

    def test_error_lhs_given(self):
        with pytest.raises(SpecificationError):
            ModelSpecification.from_formula("statin ~ age")

    def test_error_unparseable(self):
        with pytest.raises(SpecificationError):
            ModelSpecification.from_formula("age +")

    def test_resolve(self, data):
        spec = ModelSpecification(["age", "C(race)"])
        assert spec.resolve(data) == "age + C(race)"

    def test_error_missing_covariate(self, data):
        spec = ModelSpecification(["age", "bmi"])
        with pytest.raises(SpecificationError, match="bmi"):
            spec.resolve(data)

    def test_error_missing_in_expression(self, data):
        spec = ModelSpecification(["C(smoking)"])
        with pytest.raises(SpecificationError):
            spec.resolve(data)

    def test_resolve_numpy_transform(self, data):
        spec = ModelSpecification.from_formula("np.log(age) + ldl")
        assert spec.variables == ["age", "ldl"]
        assert spec.resolve(data) == "np.log(age) + ldl"

    def test_error_missing_values(self, data):
        data.loc[3, 'ldl'] = np.nan
        with pytest.raises(SpecificationError, match="ldl"):
            ModelSpecification(["age", "ldl"]).resolve(data)
        with pytest.raises(SpecificationError, match="ldl"):
            ModelSpecification(["I(ldl / 10)"]).resolve(data)
        assert ModelSpecification(["age"]).resolve(data) == "age"

    def test_specification_error_is_value_error(self, data):
        with pytest.raises(ValueError):
            ModelSpecification(["bmi"]).resolve(data)

    def test_as_specification(self):
        spec = ModelSpecification(["age"])
        assert as_specification(spec) is spec
        assert as_specification("age") == spec
        with pytest.raises(SpecificationError):
            as_specification(5)


class TestOutcomeConfig:

    def test_defaults(self):
        config = OutcomeConfig()
        assert config.family == 'gaussian'
        assert config.link == 'identity'
        assert config.canonical

    def test_canonical_link(self):
        assert OutcomeConfig('binomial').link == 'logit'
        assert OutcomeConfig('poisson').link == 'log'

    def test_case_insensitive(self):
        config = OutcomeConfig('Binomial', 'LOG')
        assert config.family == 'binomial'
        assert config.link == 'log'
        assert not config.canonical

    def test_error_family(self):
        with pytest.raises(SpecificationError):
            OutcomeConfig('tweedie')

    def test_error_combination(self):
        with pytest.raises(SpecificationError):
            OutcomeConfig('gaussian', 'logit')
        with pytest.raises(SpecificationError):
            OutcomeConfig('poisson', 'probit')

    def test_statsmodels_family(self):
        f = OutcomeConfig('binomial', 'log').statsmodels_family()
        assert isinstance(f, sm.families.Binomial)
        assert isinstance(f.link, sm.families.links.Log)

    def test_measure(self):
        assert OutcomeConfig('gaussian', 'identity').measure == 'Mean Difference'
        assert OutcomeConfig('binomial', 'identity').measure == 'Risk Difference'
        assert OutcomeConfig('binomial', 'log').measure == 'Risk Ratio'
        assert OutcomeConfig('binomial', 'logit').measure == 'Odds Ratio'
        assert OutcomeConfig('poisson', 'log').measure == 'Rate Ratio'
        assert OutcomeConfig('binomial', 'log').exponentiate
        assert not OutcomeConfig('binomial', 'identity').exponentiate
