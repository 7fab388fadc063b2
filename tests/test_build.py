from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from chrnb2_analysis.data.assays import get_assay_config
from chrnb2_analysis.data.build import (
    build_assay_table,
    build_expression_table,
    load_cell_metadata,
    summarize_gene_counts,
)
from chrnb2_analysis.data.cell_groups import UNMAPPED
from chrnb2_analysis.data.datasets import DatasetConfig, get_dataset_config


def _genes_by_cells(tmp_path: Path) -> DatasetConfig:
    counts = pd.DataFrame(
        {
            "GENE": ["Actb", "Chrnb2", "Gad1", "Drd1"],
            "AAAC": [5, 1, 2, 0],
            "CCGT": [3, 0, 0, 4],
            "GGTA": [0, 0, 0, 0],
            "TTAG": [7, 2, 1, 1],
        }
    )
    counts_path = tmp_path / "dge.txt.gz"
    counts.to_csv(counts_path, sep="\t", index=False, compression="gzip")

    meta = pd.DataFrame(
        {
            "cell": ["TTAG", "AAAC", "GGTA", "CCGT"],
            "subcluster": ["D2 MSN", "D1 MSN", "D1 MSN", "Doublet"],
        }
    )
    meta_path = tmp_path / "outcomes.csv.gz"
    meta.to_csv(meta_path, index=False, compression="gzip")

    return DatasetConfig(
        name="toy",
        accession="none",
        counts_path=counts_path,
        orientation="genes_by_cells",
        gene_column="GENE",
        cluster_column="subcluster",
        cell_id_column="cell",
        metadata_path=meta_path,
    )


def test_genes_by_cells_streams_in_chunks(tmp_path: Path):
    config = _genes_by_cells(tmp_path)
    counts = summarize_gene_counts(config, "Chrnb2", chunksize=1)

    assert counts["cell_id"].tolist() == ["AAAC", "CCGT", "GGTA", "TTAG"]
    assert counts["umi_Chrnb2"].tolist() == [1, 0, 0, 2]
    assert counts["total_umi"].tolist() == [8, 7, 0, 11]


def test_missing_gene_raises(tmp_path: Path):
    config = _genes_by_cells(tmp_path)
    with pytest.raises(ValueError, match="not found"):
        summarize_gene_counts(config, "Chrna4", chunksize=2)


def test_expression_table_keeps_matrix_order_and_records_drops(tmp_path: Path):
    config = _genes_by_cells(tmp_path)
    counts = summarize_gene_counts(config, "Chrnb2", chunksize=3)
    metadata = load_cell_metadata(config)
    table, decisions = build_expression_table(counts, metadata, "Chrnb2")

    # CCGT is unmapped (Doublet); GGTA has an empty library.
    assert table["cell_id"].tolist() == ["AAAC", "TTAG"]
    assert table["group"].astype(str).tolist() == ["D1 SPN", "D2 SPN"]
    assert table["detected"].tolist() == [True, True]
    assert decisions["unmapped_labels"] == {"Doublet": 1}
    drops = {f["rule"]: f["dropped_rows"] for f in decisions["row_filters"]}
    assert drops == {"drop_unmapped_group": 1, "drop_zero_library": 1}
    assert UNMAPPED not in table["group"].cat.categories


def test_cells_by_genes_excludes_annotation_columns(cells_by_genes_counts: Path):
    config = get_dataset_config("gokce2016", counts_path=cells_by_genes_counts)
    counts = summarize_gene_counts(config, "Chrnb2", chunksize=50)
    raw = pd.read_csv(cells_by_genes_counts)

    genes = [c for c in raw.columns if c.startswith("Gene")] + ["Chrnb2"]
    assert counts["total_umi"].tolist() == raw[genes].sum(axis=1).tolist()
    assert counts["umi_Chrnb2"].tolist() == raw["Chrnb2"].tolist()

    metadata = load_cell_metadata(config)
    table, decisions = build_expression_table(counts, metadata, "Chrnb2")
    assert set(table["group"].astype(str)) == {"D1 SPN", "D2 SPN", "Astrocyte", "OPC"}
    assert decisions["unmapped_labels"] == {"Doublet": 40}


def test_duplicate_metadata_cells_raise():
    counts = pd.DataFrame({"cell_id": ["a", "b"], "umi_Chrnb2": [1, 0], "total_umi": [10, 12]})
    metadata = pd.DataFrame({"cell_id": ["a", "a"], "cluster": ["D1", "D2"]})
    with pytest.raises(ValueError, match="Duplicate cell ids"):
        build_expression_table(counts, metadata, "Chrnb2")


def _nest_sheet(values, genotypes=None, sexes=None):
    n = len(values)
    return pd.DataFrame(
        {
            "Animal ID": [f"m{i}" for i in range(n)],
            "Genotype": genotypes or (["WT", "KO"] * n)[:n],
            "Sex": sexes or (["M", "F"] * n)[:n],
            "Fraction shredded": values,
        }
    )


def test_assay_table_squeezes_beta_bounds():
    assay = get_assay_config("nest_building")
    raw = _nest_sheet([1.0, 0.5, 0.0, 0.25])
    table, decisions = build_assay_table(raw, assay)

    n = 4
    expected = [(v * (n - 1) + 0.5) / n for v in [1.0, 0.5, 0.0, 0.25]]
    assert np.allclose(table["fraction_shredded"], expected)
    assert ((table["fraction_shredded"] > 0) & (table["fraction_shredded"] < 1)).all()
    assert decisions["squeezed_unit_interval"] is True
    assert decisions["covariates_used"] == ["sex"]


def test_assay_table_drops_missing_and_skips_constant_covariate():
    assay = get_assay_config("nest_building")
    raw = _nest_sheet([0.4, None, 0.6, 0.7], genotypes=["WT", "KO", "n/a", "KO"], sexes=["M", "M", "M", "M"])
    table, decisions = build_assay_table(raw, assay)

    assert table["animal_id"].tolist() == ["m0", "m3"]
    assert decisions["covariates_used"] == []
    assert decisions["squeezed_unit_interval"] is False


def test_assay_table_rejects_out_of_range_response():
    assay = get_assay_config("nest_building")
    with pytest.raises(ValueError, match="proportions"):
        build_assay_table(_nest_sheet([0.4, 1.2]), assay)


def test_assay_table_rejects_duplicate_animals():
    assay = get_assay_config("nest_building")
    raw = _nest_sheet([0.4, 0.5])
    raw["Animal ID"] = ["m1", "m1"]
    with pytest.raises(ValueError, match="duplicate animal ids"):
        build_assay_table(raw, assay)
