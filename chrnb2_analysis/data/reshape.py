from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import pandas as pd

from .validate import assert_required_columns


def to_long(wide: pd.DataFrame, id_cols: Sequence[str], var_name: str, value_name: str) -> pd.DataFrame:
    """Melt a wide table to one row per (id, variable), row-major.

    All value columns of the first id row come first, in column order; this is
    the order to_wide relies on to restore the original layout.
    """

    id_cols = list(id_cols)
    assert_required_columns(wide, id_cols)
    value_cols = [c for c in wide.columns if c not in id_cols]
    if not value_cols:
        raise ValueError("Nothing to reshape: every column is an id column.")
    for name in (var_name, value_name):
        if name in id_cols:
            raise ValueError(f"{name!r} is already used as an id column.")

    long = wide.melt(id_vars=id_cols, value_vars=value_cols, var_name=var_name, value_name=value_name)
    # melt stacks column by column; transpose the positions to go row by row.
    order = np.arange(len(long)).reshape(len(value_cols), len(wide)).T.ravel()
    return long.iloc[order].reset_index(drop=True)

def to_wide(
    long: pd.DataFrame,
    id_cols: Sequence[str],
    var_name: str,
    value_name: str,
    *,
    columns: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Pivot a long table back to one row per id key.

    Rows follow the first appearance of each id key and columns the first
    appearance of each variable, so to_wide(to_long(w)) reproduces w.

    columns fixes the value columns and their order. Without it, a categorical
    var_name column contributes its categories; otherwise the columns are the
    variables present, which is nothing for an empty table.
    """

    id_cols = list(id_cols)
    assert_required_columns(long, id_cols + [var_name, value_name])

    dup = long.duplicated(subset=id_cols + [var_name], keep=False)
    if dup.any():
        examples = long.loc[dup, id_cols + [var_name]].drop_duplicates().head(5).to_dict("records")
        raise ValueError(f"Duplicate (id, {var_name}) pairs; cannot pivot. Examples: {examples}")

    if columns is not None:
        var_order = list(columns)
        unknown = sorted(set(map(str, pd.unique(long[var_name]))) - set(map(str, var_order)))
        if unknown:
            raise ValueError(f"{var_name} values not listed in columns: {unknown}")
    elif isinstance(long[var_name].dtype, pd.CategoricalDtype):
        var_order = list(long[var_name].cat.categories)
    else:
        var_order = pd.unique(long[var_name]).tolist()

    if long.empty:
        wide = long[id_cols].iloc[:0].reset_index(drop=True)
        for col in var_order:
            wide[col] = pd.Series([], dtype=long[value_name].dtype)
        return wide

    keys = long[id_cols].drop_duplicates()
    if len(id_cols) == 1:
        wide = long.pivot(index=id_cols[0], columns=var_name, values=value_name)
        wide = wide.reindex(pd.Index(keys[id_cols[0]], name=id_cols[0]))
    else:
        wide = long.pivot(index=id_cols, columns=var_name, values=value_name)
        wide = wide.reindex(pd.MultiIndex.from_frame(keys))
    wide = wide.reindex(columns=var_order)
    wide.columns = pd.Index(list(wide.columns))
    return wide.reset_index()
