from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class GroupAdequacy:
    n: int
    n_detected: int
    detection_rate: float
    adequate: bool
    reason: str


def evaluate_group_adequacy(
    values: np.ndarray,
    *,
    min_n: int,
    min_detected: int = 0,
) -> GroupAdequacy:
    """Decide whether a group has enough observations to enter a model.

    "Detected" means a strictly positive value (a cell with at least one UMI of
    the gene, or an animal with a non-zero response). A group with no detected
    values makes its log-rate coefficient diverge.
    """

    v = np.asarray(values, dtype=float)
    n = int(v.size)
    n_detected = int(np.sum(v > 0))
    detection_rate = float(n_detected / n) if n > 0 else np.nan

    reasons = []
    if n < int(min_n):
        reasons.append(f"n<{int(min_n)}")
    if n_detected < int(min_detected):
        reasons.append(f"detected<{int(min_detected)}")

    reason = ";".join(reasons)
    return GroupAdequacy(
        n=n,
        n_detected=n_detected,
        detection_rate=detection_rate,
        adequate=(len(reasons) == 0),
        reason=reason,
    )
