from __future__ import annotations

import re
from typing import Dict, Iterable, Mapping

import numpy as np
import pandas as pd


_NORMALIZE_RE = re.compile(r"[^0-9a-zA-Z]+")

GENOTYPE_WT_VALUES = ("wt", "+/+", "wild type", "wildtype", "wild-type", "b2+/+", "chrnb2+/+")
GENOTYPE_KO_VALUES = ("ko", "-/-", "knockout", "knock-out", "b2-/-", "b2ko", "chrnb2-/-", "chrnb2 ko")
GENOTYPE_MISSING_VALUES = ("", "na", "n/a", "nan", "?")

SEX_CODES = {"m": "M", "male": "M", "f": "F", "female": "F"}


def _normalize_name(name: str) -> str:
    return _NORMALIZE_RE.sub("_", name).strip("_").lower()


def normalize_column_names(df: pd.DataFrame) -> Dict[str, str]:
    """Return a normalized-name -> exact-name mapping for df columns.

    This does not modify the DataFrame. It exists to support resilient lookups
    across workbooks where header casing/spacing might differ.
    """

    mapping: Dict[str, str] = {}
    collisions: Dict[str, list[str]] = {}

    for col in df.columns.astype(str).tolist():
        norm = _normalize_name(col)
        if norm in mapping and mapping[norm] != col:
            collisions.setdefault(norm, sorted({mapping[norm], col}))
        mapping[norm] = col

    if collisions:
        raise ValueError(f"Normalized column name collisions: {collisions}")

    return mapping


def resolve_columns(df: pd.DataFrame, header_map: Mapping[str, str]) -> pd.DataFrame:
    """Select and rename source headers to analysis names, in header_map order."""

    lookup = normalize_column_names(df)
    missing = [src for src in header_map if _normalize_name(src) not in lookup]
    if missing:
        raise ValueError(f"Missing expected headers: {missing}; found: {df.columns.astype(str).tolist()}")

    exact = {lookup[_normalize_name(src)]: dst for src, dst in header_map.items()}
    out = df[list(exact.keys())].rename(columns=exact)
    return out.reset_index(drop=True)


def recode_genotype(
    series: pd.Series,
    *,
    wt_values: Iterable[str] = GENOTYPE_WT_VALUES,
    ko_values: Iterable[str] = GENOTYPE_KO_VALUES,
    missing_values: Iterable[str] = GENOTYPE_MISSING_VALUES,
) -> pd.Series:
    """Recode free-text genotype labels to an ordered {WT, KO} categorical.

    - wt_values map to WT, ko_values to KO (case/whitespace-insensitive)
    - missing_values and NaN stay missing

    Raises ValueError if unexpected non-missing values are observed.
    """

    wt = {v.lower() for v in wt_values}
    ko = {v.lower() for v in ko_values}
    miss = {v.lower() for v in missing_values}

    key = series.astype("string").str.strip().str.lower()
    is_na = key.isna()
    is_wt = key.isin(wt).fillna(False)
    is_ko = key.isin(ko).fillna(False)
    is_missing_code = key.isin(miss).fillna(False)

    unexpected = series.loc[~(is_wt | is_ko | is_missing_code | is_na)].dropna().unique()
    if len(unexpected) > 0:
        raise ValueError(
            "Unexpected genotype labels. "
            f"Observed unexpected values: {sorted(map(str, unexpected))}; "
            f"expected WT={sorted(wt)}, KO={sorted(ko)}."
        )

    out = pd.Series(np.nan, index=series.index, dtype=object)
    out.loc[is_wt.to_numpy(dtype=bool)] = "WT"
    out.loc[is_ko.to_numpy(dtype=bool)] = "KO"
    return pd.Series(pd.Categorical(out, categories=["WT", "KO"]), index=series.index, name=series.name)


def recode_sex(series: pd.Series) -> pd.Series:
    """Map M/F spellings to a {F, M} categorical; anything else raises."""

    key = series.astype("string").str.strip().str.lower()
    mapped = key.map(SEX_CODES)
    unexpected = series.loc[key.notna() & (key != "") & mapped.isna()].unique()
    if len(unexpected) > 0:
        raise ValueError(f"Unexpected sex codes: {sorted(map(str, unexpected))}; expected one of {sorted(SEX_CODES)}.")
    return pd.Series(
        pd.Categorical(mapped.astype(object).where(mapped.notna(), np.nan), categories=["F", "M"]),
        index=series.index,
        name=series.name,
    )


def summarize_missingness(df: pd.DataFrame) -> pd.DataFrame:
    """Return per-column missingness summary in stable column order."""

    n = len(df)
    rows = []
    for col in df.columns.astype(str).tolist():
        n_missing = int(df[col].isna().sum())
        missing_rate = round(n_missing / n, 6) if n else np.nan
        rows.append({"column": col, "n": n, "n_missing": n_missing, "missing_rate": missing_rate})
    return pd.DataFrame(rows)
