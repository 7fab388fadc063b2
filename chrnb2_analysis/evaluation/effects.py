from __future__ import annotations

from typing import List, Sequence

import numpy as np
import pandas as pd

from chrnb2_analysis.models.families import Family

INTERCEPT = "Intercept"


def param_names(result) -> List[str]:
    return [str(n) for n in result.params.index]


def factor_term(names: Sequence[str], factor: str, level: str) -> str:
    """Name of the treatment-coded coefficient for factor == level."""

    prefixes = (f"C({factor})", f"C({factor},")
    suffix = f"[T.{level}]"
    matches = [n for n in names if n.startswith(prefixes) and n.endswith(suffix)]
    if len(matches) != 1:
        raise ValueError(f"Expected one coefficient for {factor}={level!r}; found {matches} among {list(names)}")
    return matches[0]


def coefficient_table(result, family: Family, *, alpha: float = 0.05) -> pd.DataFrame:
    names = param_names(result)
    est = np.asarray(result.params, dtype=float)
    ci = np.asarray(result.conf_int(alpha=alpha), dtype=float)
    pvalues = np.asarray(result.pvalues, dtype=float)

    table = pd.DataFrame(
        {
            "term": names,
            "estimate": est,
            "ci_low": ci[:, 0],
            "ci_high": ci[:, 1],
            "p_value": pvalues,
            "auxiliary": [n in family.auxiliary_params for n in names],
        }
    )
    # exp() of a log/logit coefficient is the ratio reported in the paper tables.
    is_effect = ~table["auxiliary"] & (table["term"] != INTERCEPT)
    for col in ["estimate", "ci_low", "ci_high"]:
        table[f"exp_{col}"] = np.where(is_effect, np.exp(table[col]), np.nan)
    table["effect"] = np.where(is_effect, family.effect_label, "")
    table["conf_level"] = 1.0 - alpha
    return table


def level_effects(
    result,
    family: Family,
    *,
    factor: str,
    levels: Sequence[str],
    reference: str,
    alpha: float = 0.05,
) -> pd.DataFrame:
    coefs = coefficient_table(result, family, alpha=alpha).set_index("term")
    rows = []
    for level in levels:
        if level == reference:
            continue
        term = factor_term(coefs.index.tolist(), factor, level)
        row = coefs.loc[term]
        rows.append(
            {
                "level": level,
                "reference": reference,
                "term": term,
                "estimate": float(row["estimate"]),
                "ratio": float(np.exp(row["estimate"])),
                "ratio_ci_low": float(np.exp(row["ci_low"])),
                "ratio_ci_high": float(np.exp(row["ci_high"])),
                "p_value": float(row["p_value"]),
                "effect": family.effect_label,
                "conf_level": 1.0 - alpha,
            }
        )
    return pd.DataFrame(rows)


def group_means(
    result,
    family: Family,
    *,
    factor: str,
    levels: Sequence[str],
    reference: str,
    alpha: float = 0.05,
    log_offset: float = 0.0,
) -> pd.DataFrame:
    """Model-estimated mean per factor level on the response scale.

    Other covariates are held at their reference levels. log_offset is added
    to the linear predictor, e.g. log(10000) for rates per 10k UMI.
    """

    names = param_names(result)
    if INTERCEPT not in names:
        raise ValueError("group_means requires a model with an intercept")

    L = np.zeros((len(levels), len(names)))
    for i, level in enumerate(levels):
        L[i, names.index(INTERCEPT)] = 1.0
        if level != reference:
            L[i, names.index(factor_term(names, factor, level))] = 1.0

    contrast = result.t_test(L)
    eta = np.asarray(contrast.effect, dtype=float).ravel() + log_offset
    ci = np.asarray(contrast.conf_int(alpha=alpha), dtype=float) + log_offset

    return pd.DataFrame(
        {
            "level": list(levels),
            "linear_predictor": eta,
            "mean": family.inverse_link(eta),
            "ci_low": family.inverse_link(ci[:, 0]),
            "ci_high": family.inverse_link(ci[:, 1]),
            "statistic": family.mean_label,
            "conf_level": 1.0 - alpha,
        }
    )
