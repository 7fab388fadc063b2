from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Tuple

import numpy as np
import pandas as pd
import patsy
import statsmodels.api as sm
import statsmodels.formula.api as smf
from statsmodels.othermod.betareg import BetaModel


def _inverse_logit(x):
    return 1.0 / (1.0 + np.exp(-np.asarray(x, dtype=float)))


@dataclass(frozen=True)
class Family:
    name: str
    link: str
    mean_label: str
    effect_label: str
    auxiliary_params: Tuple[str, ...]
    fitter: Callable
    supports_offset: bool = False

    def inverse_link(self, eta):
        if self.link == "log":
            return np.exp(np.asarray(eta, dtype=float))
        if self.link == "logit":
            return _inverse_logit(eta)
        raise ValueError(f"Unsupported link: {self.link}")

    def fit(self, formula: str, data: pd.DataFrame, *, offset=None, options: Optional[Mapping] = None):
        if offset is not None and not self.supports_offset:
            raise ValueError(f"Family {self.name} does not support an offset.")
        return self.fitter(formula, data, offset, dict(options or {}))


def _split_formula(formula: str) -> Tuple[str, str]:
    if formula.count("~") != 1:
        raise ValueError(f"Formula must contain exactly one '~': {formula!r}")
    lhs, rhs = (part.strip() for part in formula.split("~"))
    if not lhs or not rhs:
        raise ValueError(f"Formula needs a response and predictors: {formula!r}")
    return lhs, rhs


def _fit_negative_binomial(formula, data, offset, options):
    # NB2 with the dispersion (alpha) estimated jointly with the coefficients.
    kwargs = {} if offset is None else {"offset": offset}
    model = smf.negativebinomial(formula, data, loglike_method="nb2", **kwargs)
    return model.fit(**{"disp": False, "maxiter": 500, **options})


def _fit_gamma(formula, data, offset, options):
    kwargs = {} if offset is None else {"offset": offset}
    family = sm.families.Gamma(link=sm.families.links.Log())
    return smf.glm(formula, data, family=family, **kwargs).fit(**options)


def _fit_lognormal(formula, data, offset, options):
    response, rhs = _split_formula(formula)
    if response not in data.columns:
        raise ValueError(f"Response column {response!r} not in data")
    values = data[response].to_numpy(dtype=float)
    if (values <= 0).any():
        raise ValueError(f"Lognormal response {response!r} must be strictly positive")
    log_response = f"log_{response}"
    logged = data.assign(**{log_response: np.log(values)})
    return smf.ols(f"{log_response} ~ {rhs}", logged).fit(**options)


def _fit_beta(formula, data, offset, options):
    # BetaModel.from_formula keeps patsy design objects on the model, which
    # cannot be pickled; fit on the design matrices so results can be cached.
    y, X = patsy.dmatrices(formula, data, return_type="dataframe")
    model = BetaModel(y.iloc[:, 0], X)
    return model.fit(**{"disp": False, "maxiter": 1000, **options})


FAMILIES: Dict[str, Family] = {
    "negative_binomial": Family(
        name="negative_binomial",
        link="log",
        mean_label="rate",
        effect_label="rate ratio",
        auxiliary_params=("alpha",),
        fitter=_fit_negative_binomial,
        supports_offset=True,
    ),
    "gamma": Family(
        name="gamma",
        link="log",
        mean_label="mean",
        effect_label="ratio of means",
        auxiliary_params=(),
        fitter=_fit_gamma,
        supports_offset=True,
    ),
    "lognormal": Family(
        name="lognormal",
        link="log",
        mean_label="geometric mean",
        effect_label="ratio of geometric means",
        auxiliary_params=(),
        fitter=_fit_lognormal,
    ),
    "beta": Family(
        name="beta",
        link="logit",
        mean_label="mean proportion",
        effect_label="odds ratio",
        auxiliary_params=("precision",),
        fitter=_fit_beta,
    ),
}


def get_family(name: str) -> Family:
    if name not in FAMILIES:
        raise ValueError(f"Unknown family: {name}. Available: {list(FAMILIES.keys())}")
    return FAMILIES[name]
