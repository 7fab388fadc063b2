from __future__ import annotations

from typing import Dict, Iterable, Tuple

import numpy as np
import pandas as pd


def _resampled_mean(values: np.ndarray, rng: np.random.Generator) -> float:
    if values.size == 0:
        return np.nan
    sample = values[rng.integers(0, values.size, size=values.size, endpoint=False)]
    return float(sample.mean())


def stratified_bootstrap_ratio_draws(
    *,
    values: np.ndarray,
    groups: np.ndarray,
    reference: str,
    other: str,
    n_boot: int,
    seed: int,
) -> pd.DataFrame:
    """Bootstrap the ratio mean(other) / mean(reference), resampling within each group.

    Group sizes stay fixed across draws, matching the cohort design.
    """

    columns = ["iter", "mean_reference", "mean_other", "ratio"]
    if n_boot <= 0:
        return pd.DataFrame(columns=columns)
    v = np.asarray(values, dtype=float)
    g = np.asarray(groups, dtype=object)
    v_ref = v[g == reference]
    v_other = v[g == other]
    if v_ref.size == 0 or v_other.size == 0:
        raise ValueError(f"Both groups need observations: {reference}={v_ref.size}, {other}={v_other.size}")

    rng = np.random.default_rng(seed)
    rows = []
    for i in range(n_boot):
        m_ref = _resampled_mean(v_ref, rng)
        m_other = _resampled_mean(v_other, rng)
        ratio = m_other / m_ref if m_ref > 0 else np.nan
        rows.append({"iter": i, "mean_reference": m_ref, "mean_other": m_other, "ratio": ratio})
    return pd.DataFrame(rows, columns=columns)


def summarize_bootstrap_ci(
    draws: pd.DataFrame,
    *,
    alpha: float = 0.05,
    metrics: Iterable[str] = ("ratio",),
) -> Dict[str, Tuple[float, float]]:
    if draws.empty:
        return {m: (np.nan, np.nan) for m in metrics}
    lo = float(100.0 * (alpha / 2.0))
    hi = float(100.0 * (1.0 - alpha / 2.0))
    out: Dict[str, Tuple[float, float]] = {}
    for m in metrics:
        vals = draws[m].dropna().to_numpy(dtype=float)
        if vals.size == 0:
            out[m] = (np.nan, np.nan)
        else:
            out[m] = (float(np.percentile(vals, lo)), float(np.percentile(vals, hi)))
    return out
