from typing import Iterable, Sequence

import numpy as np
import pandas as pd


class RowOrderMismatchError(ValueError):
    """Two tables that are about to be combined positionally are not aligned."""


def assert_required_columns(df, required: Iterable[str]) -> None:
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")


def assert_same_row_order(derived: pd.DataFrame, reference: pd.DataFrame, key_cols: Sequence[str]) -> None:
    """Halt unless derived lists exactly the same keys as reference, in the same order.

    Must hold before any positional column binding of a joined/reshaped table.
    """

    key_cols = list(key_cols)
    assert_required_columns(derived, key_cols)
    assert_required_columns(reference, key_cols)

    if len(derived) != len(reference):
        raise RowOrderMismatchError(
            f"Row count mismatch on {key_cols}: derived has {len(derived)} rows, reference has {len(reference)}."
        )

    left = derived[key_cols].reset_index(drop=True)
    right = reference[key_cols].reset_index(drop=True)
    same = np.ones(len(left), dtype=bool)
    for col in key_cols:
        # A key missing at the same position on both sides counts as aligned.
        equal = (left[col].astype(object) == right[col].astype(object)).to_numpy(dtype=bool)
        both_missing = (left[col].isna() & right[col].isna()).to_numpy(dtype=bool)
        same &= equal | both_missing
    if not same.all():
        pos = int((~same).argmax())
        raise RowOrderMismatchError(
            f"Row order mismatch on {key_cols} at position {pos}: "
            f"derived={left.iloc[pos].tolist()} reference={right.iloc[pos].tolist()}."
        )


def bind_columns(
    reference: pd.DataFrame, derived: pd.DataFrame, key_cols: Sequence[str], columns: Sequence[str]
) -> pd.DataFrame:
    """Copy columns from derived onto reference by position, after checking alignment."""

    assert_same_row_order(derived, reference, key_cols)
    assert_required_columns(derived, columns)
    out = reference.reset_index(drop=True).copy()
    for col in columns:
        out[col] = derived[col].to_numpy()
    return out
