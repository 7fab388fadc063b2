"""Behavioral assay definitions for the Chrnb2 knockout cohort.

Each assay lives on its own sheet of the behavior workbook. The sheet ranges
are fixed: results are only reproducible when exactly these cells are read.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(frozen=True)
class SheetSpec:
    """Spreadsheet range for one assay.

    Attributes:
        sheet: Sheet name in the workbook
        usecols: Excel column range (e.g. "A:D")
        skiprows: Rows above the header row
        nrows: Data rows to read (None reads to the end of the sheet)
        header_map: Source header -> analysis column name. Headers are matched
            after normalization (case, spacing, punctuation).
    """

    sheet: str
    usecols: str
    header_map: Dict[str, str]
    skiprows: int = 0
    nrows: Optional[int] = None


@dataclass(frozen=True)
class AssayConfig:
    name: str
    title: str
    sheet: SheetSpec
    response: str
    family: str
    response_label: str
    # Proportions bounded to [0, 1]; exact 0/1 values are squeezed for Beta fits.
    bounded_unit_interval: bool = False
    covariates: List[str] = field(default_factory=lambda: ["sex"])


_ID_HEADERS = {"Animal ID": "animal_id", "Genotype": "genotype", "Sex": "sex"}


ASSAYS: Dict[str, AssayConfig] = {
    "head_dipping": AssayConfig(
        name="head_dipping",
        title="Head-dipping",
        sheet=SheetSpec(
            sheet="Head dipping",
            usecols="A:D",
            header_map={**_ID_HEADERS, "Head dips": "head_dips"},
        ),
        response="head_dips",
        family="negative_binomial",
        response_label="Head dips (count)",
    ),
    "nest_building": AssayConfig(
        name="nest_building",
        title="Nest building",
        sheet=SheetSpec(
            sheet="Nest building",
            usecols="A:D",
            header_map={**_ID_HEADERS, "Fraction shredded": "fraction_shredded"},
        ),
        response="fraction_shredded",
        family="beta",
        response_label="Nestlet shredded (fraction)",
        bounded_unit_interval=True,
    ),
    "forced_swim_immobility": AssayConfig(
        name="forced_swim_immobility",
        title="Forced swim: immobility",
        sheet=SheetSpec(
            sheet="Forced swim",
            usecols="A:E",
            header_map={**_ID_HEADERS, "Immobility (s)": "immobility_s"},
        ),
        response="immobility_s",
        family="gamma",
        response_label="Immobility time (s)",
    ),
    "forced_swim_latency": AssayConfig(
        name="forced_swim_latency",
        title="Forced swim: latency to immobility",
        sheet=SheetSpec(
            sheet="Forced swim",
            usecols="A:E",
            header_map={**_ID_HEADERS, "Latency (s)": "latency_s"},
        ),
        response="latency_s",
        family="lognormal",
        response_label="Latency to first immobility (s)",
    ),
    "social_preference": AssayConfig(
        name="social_preference",
        title="Social preference",
        sheet=SheetSpec(
            sheet="Social preference",
            usecols="A:D",
            header_map={**_ID_HEADERS, "Preference index": "preference_index"},
        ),
        response="preference_index",
        family="beta",
        response_label="Social preference index",
        bounded_unit_interval=True,
    ),
}


def get_available_assays() -> List[str]:
    return list(ASSAYS.keys())


def get_assay_config(name: str) -> AssayConfig:
    if name not in ASSAYS:
        raise ValueError(f"Unknown assay: {name}. Available: {get_available_assays()}")
    return ASSAYS[name]
