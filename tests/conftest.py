from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Chrnb2 UMI rate (per cell, before library size) for each synthetic cluster label.
SYNTHETIC_CLUSTERS = {
    "D1 MSN": 3.0,
    "D2-MSN": 3.0,
    "Astro": 0.6,
    "OPC": 0.0,
    "Doublet": 1.0,
}
CELLS_PER_CLUSTER = 40


@pytest.fixture
def repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


@pytest.fixture
def cells_by_genes_counts(tmp_path: Path) -> Path:
    """Small gzip CSV laid out like GSE82187: annotations first, then one column per gene."""

    rng = np.random.default_rng(7)
    rows = []
    for label, rate in SYNTHETIC_CLUSTERS.items():
        for i in range(CELLS_PER_CLUSTER):
            row = {
                "cell.name": f"{label.replace(' ', '_')}_{i:03d}",
                "experiment": "exp1",
                "protocol": "dropseq",
                "type": label,
            }
            for g in range(5):
                row[f"Gene{g}"] = int(rng.poisson(20))
            row["Chrnb2"] = int(rng.negative_binomial(2.0, 2.0 / (2.0 + rate)))
            rows.append(row)
    df = pd.DataFrame(rows)
    path = tmp_path / "cells_by_genes.csv.gz"
    df.to_csv(path, index=False, compression="gzip")
    return path


def _assay_frame(rng: np.random.Generator, n_per_genotype: int, make_response) -> pd.DataFrame:
    genotypes = ["WT"] * n_per_genotype + ["KO"] * n_per_genotype
    return pd.DataFrame(
        {
            "Animal ID": [f"m{i:02d}" for i in range(2 * n_per_genotype)],
            "Genotype": genotypes,
            "Sex": ["M", "F"] * n_per_genotype,
            **make_response(rng, genotypes),
        }
    )


def _nb_counts(rng, means):
    size = 4.0
    return [int(rng.negative_binomial(size, size / (size + mu))) for mu in means]


@pytest.fixture
def behavior_workbook(tmp_path: Path) -> Path:
    rng = np.random.default_rng(11)
    n = 10

    def head_dips(rng, genotypes):
        return {"Head dips": _nb_counts(rng, [12.0 if g == "WT" else 24.0 for g in genotypes])}

    def nest(rng, genotypes):
        values = [float(np.clip(rng.beta(6, 4) if g == "WT" else rng.beta(3, 7), 0.01, 0.99)) for g in genotypes]
        values[0] = 1.0
        return {"Fraction shredded": values}

    def forced_swim(rng, genotypes):
        return {
            "Immobility (s)": [float(rng.gamma(6.0, (100.0 if g == "WT" else 140.0) / 6.0)) for g in genotypes],
            "Latency (s)": [float(np.exp(rng.normal(4.0 if g == "WT" else 3.6, 0.3))) for g in genotypes],
        }

    def social(rng, genotypes):
        return {"Preference index": [float(rng.beta(7, 3) if g == "WT" else rng.beta(5, 5)) for g in genotypes]}

    sheets = {
        "Head dipping": _assay_frame(rng, n, head_dips),
        "Nest building": _assay_frame(rng, n, nest),
        "Forced swim": _assay_frame(rng, n, forced_swim),
        "Social preference": _assay_frame(rng, n, social),
    }
    path = tmp_path / "behavior.xlsx"
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for name, frame in sheets.items():
            frame.to_excel(writer, sheet_name=name, index=False)
    return path
