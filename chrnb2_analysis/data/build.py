from __future__ import annotations

from typing import List, Tuple

import numpy as np
import pandas as pd

from .assays import AssayConfig
from .cell_groups import UNMAPPED, map_cluster_labels
from .coding import recode_genotype, recode_sex, resolve_columns
from .datasets import DatasetConfig
from .ingest import iter_gzip_table, read_gzip_table, read_table_header
from .validate import assert_required_columns, bind_columns

FAMILY_RESPONSE_RULES = {
    "negative_binomial": "non-negative integer counts",
    "gamma": "strictly positive values",
    "lognormal": "strictly positive values",
    "beta": "proportions in [0, 1]",
}


def umi_column(gene: str) -> str:
    return f"umi_{gene}"


def _summarize_genes_by_cells(config: DatasetConfig, gene: str, chunksize: int) -> pd.DataFrame:
    header = read_table_header(config.counts_path)
    if config.gene_column not in header:
        raise ValueError(f"Gene column {config.gene_column!r} not found in {config.counts_path}")
    cells = [c for c in header if c != config.gene_column]

    totals = np.zeros(len(cells), dtype=np.int64)
    gene_rows: List[np.ndarray] = []
    for chunk in iter_gzip_table(config.counts_path, chunksize=chunksize):
        values = chunk[cells].to_numpy(dtype=np.int64)
        totals += values.sum(axis=0)
        hit = (chunk[config.gene_column].astype(str) == gene).to_numpy()
        gene_rows.extend(values[hit])

    if not gene_rows:
        raise ValueError(f"Gene {gene!r} not found in {config.counts_path}")
    if len(gene_rows) > 1:
        raise ValueError(f"Gene {gene!r} appears {len(gene_rows)} times in {config.counts_path}")

    return pd.DataFrame({"cell_id": [str(c) for c in cells], umi_column(gene): gene_rows[0], "total_umi": totals})


def _summarize_cells_by_genes(config: DatasetConfig, gene: str, chunksize: int) -> pd.DataFrame:
    header = read_table_header(config.counts_path)
    if config.cell_id_column not in header:
        raise ValueError(f"Cell id column {config.cell_id_column!r} not found in {config.counts_path}")
    if gene not in header:
        raise ValueError(f"Gene {gene!r} not found in {config.counts_path}")
    non_gene = set(config.metadata_columns) | {config.cell_id_column, config.cluster_column}
    genes = [c for c in header if c not in non_gene]

    parts = []
    for chunk in iter_gzip_table(config.counts_path, chunksize=chunksize):
        parts.append(
            pd.DataFrame(
                {
                    "cell_id": chunk[config.cell_id_column].astype(str).to_numpy(),
                    umi_column(gene): chunk[gene].to_numpy(dtype=np.int64),
                    "total_umi": chunk[genes].to_numpy(dtype=np.int64).sum(axis=1),
                }
            )
        )
    return pd.concat(parts, ignore_index=True)


def summarize_gene_counts(config: DatasetConfig, gene: str, *, chunksize: int) -> pd.DataFrame:
    """One row per cell, in matrix order: cell_id, umi_<gene>, total_umi."""

    if config.orientation == "genes_by_cells":
        counts = _summarize_genes_by_cells(config, gene, chunksize)
    else:
        counts = _summarize_cells_by_genes(config, gene, chunksize)

    if counts["cell_id"].duplicated().any():
        dups = counts.loc[counts["cell_id"].duplicated(), "cell_id"].head(5).tolist()
        raise ValueError(f"Duplicate cell ids in counts matrix, e.g. {dups}")
    return counts


def load_cell_metadata(config: DatasetConfig) -> pd.DataFrame:
    source = config.counts_path if config.embedded_metadata else config.metadata_path
    usecols = [config.cell_id_column, config.cluster_column]
    header = read_table_header(source)
    missing = [c for c in usecols if c not in header]
    if missing:
        raise ValueError(f"Missing metadata columns {missing} in {source}")

    meta = read_gzip_table(source, usecols=usecols)
    meta = meta.rename(columns={config.cell_id_column: "cell_id", config.cluster_column: "cluster"})
    meta = meta[["cell_id", "cluster"]]
    meta["cell_id"] = meta["cell_id"].astype(str)
    return meta


def build_expression_table(counts: pd.DataFrame, metadata: pd.DataFrame, gene: str) -> Tuple[pd.DataFrame, dict]:
    umi_col = umi_column(gene)
    assert_required_columns(counts, ["cell_id", umi_col, "total_umi"])
    assert_required_columns(metadata, ["cell_id", "cluster"])

    if metadata["cell_id"].duplicated().any():
        dups = metadata.loc[metadata["cell_id"].duplicated(), "cell_id"].head(5).tolist()
        raise ValueError(f"Duplicate cell ids in cell metadata, e.g. {dups}")

    decisions: dict = {"gene": gene, "n_cells_matrix": int(len(counts)), "row_filters": []}

    # A left merge keeps the counts order; the alignment check makes that explicit
    # before the cluster column is attached by position.
    joined = counts[["cell_id"]].merge(metadata, on="cell_id", how="left", validate="one_to_one")
    table = bind_columns(counts, joined, ["cell_id"], ["cluster"])
    decisions["n_cells_without_metadata"] = int(table["cluster"].isna().sum())

    table["group"] = map_cluster_labels(table["cluster"])
    unmapped = table.loc[table["group"] == UNMAPPED, "cluster"].astype("string").fillna("<NA>")
    decisions["unmapped_labels"] = {str(k): int(v) for k, v in unmapped.value_counts().sort_index().items()}

    n_before = len(table)
    table = table.loc[table["group"] != UNMAPPED]
    decisions["row_filters"].append({"rule": "drop_unmapped_group", "dropped_rows": n_before - len(table)})

    n_before = len(table)
    table = table.loc[table["total_umi"] > 0]
    decisions["row_filters"].append({"rule": "drop_zero_library", "dropped_rows": n_before - len(table)})

    table = table.reset_index(drop=True)
    table["group"] = table["group"].cat.remove_unused_categories()
    table["detected"] = table[umi_col] > 0

    decisions["n_cells_modeling"] = int(len(table))
    decisions["cells_per_group"] = {str(k): int(v) for k, v in table["group"].value_counts(sort=False).items()}

    ordered_cols = ["cell_id", "cluster", "group", umi_col, "total_umi", "detected"]
    return table[ordered_cols], decisions


def _numeric_response(series: pd.Series, name: str) -> pd.Series:
    numeric = pd.to_numeric(series, errors="coerce")
    bad = series.loc[numeric.isna() & series.notna()]
    bad = bad.loc[bad.astype(str).str.strip() != ""]
    if len(bad) > 0:
        raise ValueError(f"Non-numeric values in {name}: {sorted(map(str, bad.unique()))}")
    return numeric.astype(float)


def _check_response_support(values: pd.Series, family: str, name: str) -> None:
    v = values.to_numpy(dtype=float)
    if family == "negative_binomial":
        ok = (v >= 0) & (np.floor(v) == v)
    elif family in {"gamma", "lognormal"}:
        ok = v > 0
    elif family == "beta":
        ok = (v >= 0) & (v <= 1)
    else:
        raise ValueError(f"Unknown family: {family}")
    if not ok.all():
        raise ValueError(
            f"{name} must contain {FAMILY_RESPONSE_RULES[family]} for a {family} model; "
            f"offending values: {sorted(set(v[~ok].tolist()))[:10]}"
        )


def squeeze_unit_interval(values: pd.Series) -> pd.Series:
    """Smithson & Verkuilen (2006) transform: (y * (n - 1) + 0.5) / n."""

    n = len(values)
    return (values * (n - 1) + 0.5) / n


def build_assay_table(raw: pd.DataFrame, assay: AssayConfig) -> Tuple[pd.DataFrame, dict]:
    table = resolve_columns(raw, assay.sheet.header_map)
    table = table.dropna(how="all").reset_index(drop=True)
    assert_required_columns(table, ["animal_id", "genotype", assay.response])

    decisions: dict = {
        "assay": assay.name,
        "sheet": assay.sheet.sheet,
        "usecols": assay.sheet.usecols,
        "skiprows": assay.sheet.skiprows,
        "nrows": assay.sheet.nrows,
        "family": assay.family,
        "raw_rows": int(len(table)),
        "row_filters": [],
    }

    table["genotype"] = recode_genotype(table["genotype"])
    if "sex" in table.columns:
        table["sex"] = recode_sex(table["sex"])
    table[assay.response] = _numeric_response(table[assay.response], assay.response)

    for col in ["genotype", assay.response]:
        n_before = len(table)
        table = table.loc[table[col].notna()]
        decisions["row_filters"].append({"rule": f"drop_missing_{col}", "dropped_rows": n_before - len(table)})
    table = table.reset_index(drop=True)

    if table["animal_id"].duplicated().any():
        dups = table.loc[table["animal_id"].duplicated(), "animal_id"].astype(str).tolist()
        raise ValueError(f"{assay.name}: duplicate animal ids {dups}")

    _check_response_support(table[assay.response], assay.family, assay.response)

    decisions["squeezed_unit_interval"] = False
    if assay.family == "beta" and assay.bounded_unit_interval:
        at_bounds = table[assay.response].isin([0.0, 1.0])
        if at_bounds.any():
            table[assay.response] = squeeze_unit_interval(table[assay.response])
            decisions["squeezed_unit_interval"] = True
            decisions["n_at_bounds"] = int(at_bounds.sum())

    covariates_used = []
    for cov in assay.covariates:
        if cov in table.columns and table[cov].notna().all() and table[cov].nunique() >= 2:
            covariates_used.append(cov)
    decisions["covariates_used"] = covariates_used
    decisions["modeling_rows"] = int(len(table))
    decisions["animals_per_genotype"] = {str(k): int(v) for k, v in table["genotype"].value_counts(sort=False).items()}

    ordered_cols = ["animal_id", "genotype"] + (["sex"] if "sex" in table.columns else []) + [assay.response]
    return table[ordered_cols], decisions
