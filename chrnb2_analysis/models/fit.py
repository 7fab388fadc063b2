from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional

import numpy as np
import pandas as pd

from chrnb2_analysis.data.validate import assert_required_columns

from .families import get_family


@dataclass(frozen=True)
class FitSpec:
    """Everything that determines a fitted model, apart from the data.

    Attributes:
        name: Label used in artifact file names and logs
        formula: patsy formula, e.g. "head_dips ~ C(genotype, Treatment(reference='WT'))"
        family: Key into models.families.FAMILIES
        options: Keyword arguments for the engine's fit() call
        offset: Column whose log enters the linear predictor with coefficient 1
    """

    name: str
    formula: str
    family: str
    options: Mapping[str, Any] = field(default_factory=dict)
    offset: Optional[str] = None

    def canonical(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "formula": " ".join(self.formula.split()),
            "family": self.family,
            "options": {k: self.options[k] for k in sorted(self.options)},
            "offset": self.offset,
        }


def treatment_formula(response: str, factor: str, reference: str, covariates: Iterable[str] = ()) -> str:
    terms = [f"C({factor}, Treatment(reference={reference!r}))"]
    terms += [f"C({cov})" for cov in covariates]
    return f"{response} ~ " + " + ".join(terms)


def fit_model(spec: FitSpec, data: pd.DataFrame):
    family = get_family(spec.family)

    offset = None
    if spec.offset is not None:
        assert_required_columns(data, [spec.offset])
        exposure = data[spec.offset].to_numpy(dtype=float)
        if not (exposure > 0).all():
            raise ValueError(f"Offset column {spec.offset!r} must be strictly positive")
        offset = np.log(exposure)

    return family.fit(spec.formula, data, offset=offset, options=spec.options)
