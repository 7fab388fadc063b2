import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import argparse

from chrnb2_analysis.config import (
    COUNTS_CHUNKSIZE,
    EXPRESSION_DATASET_DEFAULT,
    GENE,
    LOGS_DIR,
    PROCESSED_DIR,
    TABLES_DIR,
)
from chrnb2_analysis.data.build import build_expression_table, load_cell_metadata, summarize_gene_counts
from chrnb2_analysis.data.datasets import get_available_datasets, get_dataset_config
from chrnb2_analysis.models.cache import sha256_df
from chrnb2_analysis.utils.logging import run_metadata, write_json


def main() -> None:
    parser = argparse.ArgumentParser(description="Build the per-cell expression table for one gene.")
    parser.add_argument("--dataset", choices=get_available_datasets(), default=EXPRESSION_DATASET_DEFAULT)
    parser.add_argument("--gene", default=GENE)
    parser.add_argument("--counts", type=Path, default=None, help="Override the dataset's counts file.")
    parser.add_argument("--metadata", type=Path, default=None, help="Override the dataset's cell metadata file.")
    parser.add_argument("--cluster-column", default=None, help="Override the cluster label column.")
    parser.add_argument("--cell-id-column", default=None, help="Override the cell id column.")
    parser.add_argument("--chunksize", type=int, default=COUNTS_CHUNKSIZE)
    parser.add_argument("--out-parquet", type=Path, default=None, help="Output parquet path.")
    parser.add_argument("--group-counts-csv", type=Path, default=None, help="Output cells-per-group CSV path.")
    parser.add_argument("--decisions-json", type=Path, default=None, help="Output JSON of filter decisions.")
    args = parser.parse_args()

    if args.chunksize <= 0:
        raise SystemExit("--chunksize must be a positive integer.")

    try:
        config = get_dataset_config(
            args.dataset,
            counts_path=args.counts,
            metadata_path=args.metadata,
            cluster_column=args.cluster_column,
            cell_id_column=args.cell_id_column,
        )
    except ValueError as exc:
        raise SystemExit(str(exc))

    for path in config.input_paths():
        if not path.exists():
            raise SystemExit(f"Input file not found: {path}")

    stem = f"{config.name}_{args.gene.lower()}"
    out_parquet = args.out_parquet or PROCESSED_DIR / f"{stem}_cells.parquet"
    group_counts_csv = args.group_counts_csv or TABLES_DIR / f"{stem}_cells_per_group.csv"
    decisions_json = args.decisions_json or LOGS_DIR / f"{stem}_build_decisions.json"

    try:
        counts = summarize_gene_counts(config, args.gene, chunksize=args.chunksize)
        metadata = load_cell_metadata(config)
        table, decisions = build_expression_table(counts, metadata, args.gene)
    except ValueError as exc:
        raise SystemExit(f"{config.name}: {exc}")

    if table.empty:
        raise SystemExit(f"{config.name}: no cells left after mapping clusters to cell groups.")

    out_parquet.parent.mkdir(parents=True, exist_ok=True)
    table.to_parquet(out_parquet, index=False)

    group_counts = (
        table.groupby("group", observed=True)
        .agg(n_cells=("cell_id", "size"), n_detected=("detected", "sum"), median_total_umi=("total_umi", "median"))
        .reset_index()
    )
    group_counts["group"] = group_counts["group"].astype(str)
    group_counts_csv.parent.mkdir(parents=True, exist_ok=True)
    group_counts.to_csv(group_counts_csv, index=False)

    payload = {
        **decisions,
        "dataset": config.name,
        "accession": config.accession,
        "orientation": config.orientation,
        "cluster_column": config.cluster_column,
        "output_parquet": str(out_parquet),
        "content_hash_sha256": sha256_df(table),
        "runtime": run_metadata(
            PROJECT_ROOT, {"counts": config.counts_path, **({"metadata": config.metadata_path} if config.metadata_path else {})}
        ),
    }
    write_json(decisions_json, payload)

    print(f"Wrote {out_parquet}")
    print(f"Wrote {group_counts_csv}")
    print(f"Wrote {decisions_json}")


if __name__ == "__main__":
    main()
