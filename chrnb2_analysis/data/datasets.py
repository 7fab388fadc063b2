"""Registry of public striatal single-cell RNA-seq datasets."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from chrnb2_analysis.config import RAW_DIR

ORIENTATIONS = ("genes_by_cells", "cells_by_genes")


@dataclass
class DatasetConfig:
    """Location and column layout of one UMI count dataset.

    Attributes:
        name: Short identifier used on the command line
        accession: Public archive accession the raw files come from
        counts_path: gzip-compressed count matrix
        orientation: "genes_by_cells" (one row per gene, one column per cell)
            or "cells_by_genes" (one row per cell, one column per gene)
        gene_column: Column holding gene symbols (genes_by_cells only)
        cell_id_column: Column holding cell barcodes (cells_by_genes, and the
            metadata table)
        cluster_column: Cell-type / cluster label column in the metadata
        metadata_path: Separate cell metadata table; None when the metadata
            columns are embedded in the counts file
        metadata_columns: Non-gene columns of a cells_by_genes matrix
    """

    name: str
    accession: str
    counts_path: Path
    orientation: str
    cluster_column: str
    cell_id_column: str = "cell_id"
    gene_column: Optional[str] = None
    metadata_path: Optional[Path] = None
    metadata_columns: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.orientation not in ORIENTATIONS:
            raise ValueError(f"Unknown orientation {self.orientation!r}; expected one of {ORIENTATIONS}")
        if self.orientation == "genes_by_cells" and not self.gene_column:
            raise ValueError(f"Dataset {self.name}: genes_by_cells layout requires gene_column")
        if self.metadata_path is None and self.orientation == "genes_by_cells":
            raise ValueError(f"Dataset {self.name}: genes_by_cells layout requires a separate metadata_path")

    @property
    def embedded_metadata(self) -> bool:
        return self.metadata_path is None

    def input_paths(self) -> List[Path]:
        paths = [self.counts_path]
        if self.metadata_path is not None:
            paths.append(self.metadata_path)
        return paths


def get_gokce2016_config() -> DatasetConfig:
    # Gokce et al. 2016, Cell Reports: striatal cells, cells x genes with the
    # cell annotations in the leading columns.
    return DatasetConfig(
        name="gokce2016",
        accession="GSE82187",
        counts_path=RAW_DIR / "GSE82187_cast_all_forGEO.csv.gz",
        orientation="cells_by_genes",
        cluster_column="type",
        cell_id_column="cell.name",
        metadata_columns=["cell.name", "experiment", "protocol", "type"],
    )


def get_saunders2018_config() -> DatasetConfig:
    # Saunders et al. 2018, Cell (DropViz): P60 striatum digital expression
    # matrix plus the exported cluster assignment table.
    return DatasetConfig(
        name="saunders2018",
        accession="DropViz P60 Striatum",
        counts_path=RAW_DIR / "F_GRCm38.81.P60Striatum.raw.dge.txt.gz",
        orientation="genes_by_cells",
        gene_column="GENE",
        cluster_column="subcluster",
        cell_id_column="cell",
        metadata_path=RAW_DIR / "F_GRCm38.81.P60Striatum.cell_cluster_outcomes.csv.gz",
    )


DATASETS = {
    "gokce2016": get_gokce2016_config,
    "saunders2018": get_saunders2018_config,
}


def get_available_datasets() -> List[str]:
    return list(DATASETS.keys())


def get_dataset_config(name: str, **overrides) -> DatasetConfig:
    """Get configuration for a dataset, optionally overriding fields.

    Overrides with a value of None are ignored so argparse defaults can be
    passed straight through.
    """

    if name not in DATASETS:
        raise ValueError(f"Unknown dataset: {name}. Available: {get_available_datasets()}")
    config = DATASETS[name]()
    values: Dict[str, object] = {k: v for k, v in overrides.items() if v is not None}
    unknown = sorted(k for k in values if not hasattr(config, k))
    if unknown:
        raise ValueError(f"Unknown DatasetConfig fields: {unknown}")
    if not values:
        return config
    merged = {**config.__dict__, **values}
    return DatasetConfig(**merged)
