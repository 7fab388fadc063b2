from __future__ import annotations

import argparse
import os
import sys
import tempfile
from pathlib import Path

_mpl_cache_dir = Path(tempfile.gettempdir()) / "matplotlib"
_mpl_cache_dir.mkdir(parents=True, exist_ok=True)
os.environ.setdefault("MPLCONFIGDIR", str(_mpl_cache_dir))

import numpy as np
import pandas as pd
import matplotlib

matplotlib.use("Agg")


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from chrnb2_analysis.config import (  # noqa: E402
    ALPHA,
    ANALYSIS_VERSION,
    CACHE_DIR,
    EXPRESSION_MIN_GROUP_CELLS,
    EXPRESSION_MIN_GROUP_DETECTED,
    EXPRESSION_RATE_SCALE,
    EXPRESSION_REFERENCE_GROUP,
    FIGURE_FORMAT,
    GENE,
    OUTPUTS_DIR,
)
from chrnb2_analysis.data.build import umi_column  # noqa: E402
from chrnb2_analysis.data.cell_groups import CELL_GROUPS  # noqa: E402
from chrnb2_analysis.data.validate import assert_required_columns  # noqa: E402
from chrnb2_analysis.evaluation.effects import coefficient_table, group_means, level_effects  # noqa: E402
from chrnb2_analysis.evaluation.group_adequacy import evaluate_group_adequacy  # noqa: E402
from chrnb2_analysis.models.cache import FitCache  # noqa: E402
from chrnb2_analysis.models.families import get_family  # noqa: E402
from chrnb2_analysis.models.fit import FitSpec, treatment_formula  # noqa: E402
from chrnb2_analysis.reporting.context import AnalysisContext  # noqa: E402
from chrnb2_analysis.reporting.plots import plot_detection_rates, plot_group_expression  # noqa: E402
from chrnb2_analysis.utils.logging import run_metadata, write_json  # noqa: E402


def group_adequacy_table(table: pd.DataFrame, umi_col: str, groups, *, min_n: int, min_detected: int) -> pd.DataFrame:
    rows = []
    for group in groups:
        values = table.loc[table["group"] == group, umi_col].to_numpy()
        adequacy = evaluate_group_adequacy(values, min_n=min_n, min_detected=min_detected)
        rows.append(
            {
                "group": group,
                "n_cells": adequacy.n,
                "n_detected": adequacy.n_detected,
                "detection_rate": adequacy.detection_rate,
                "adequate": adequacy.adequate,
                "reason": adequacy.reason,
            }
        )
    return pd.DataFrame(rows)


def observed_pooled_rates(table: pd.DataFrame, umi_col: str, groups, scale: int) -> pd.Series:
    sums = table.groupby(table["group"].astype(str))[[umi_col, "total_umi"]].sum()
    rates = sums[umi_col] / sums["total_umi"] * scale
    return rates.reindex(list(groups))


def main() -> None:
    parser = argparse.ArgumentParser(description="Negative binomial model of one gene's UMI counts across cell groups.")
    parser.add_argument("--in-parquet", type=Path, required=True, help="Per-cell table from 01_build_expression_table.py.")
    parser.add_argument("--gene", default=GENE)
    parser.add_argument("--reference", default=EXPRESSION_REFERENCE_GROUP, help="Reference cell group.")
    parser.add_argument("--min-cells", type=int, default=EXPRESSION_MIN_GROUP_CELLS)
    parser.add_argument("--min-detected", type=int, default=EXPRESSION_MIN_GROUP_DETECTED)
    parser.add_argument("--outdir", type=Path, default=OUTPUTS_DIR, help="Output directory (default: outputs/).")
    parser.add_argument("--cache-dir", type=Path, default=CACHE_DIR, help="Fitted-model cache directory.")
    parser.add_argument("--refit", action="store_true", help="Discard a cached fit for this exact model and data first.")
    args = parser.parse_args()

    if not args.in_parquet.exists():
        raise SystemExit(f"Expression table not found: {args.in_parquet}. Run scripts/01_build_expression_table.py first.")

    umi_col = umi_column(args.gene)
    table = pd.read_parquet(args.in_parquet)
    try:
        assert_required_columns(table, ["cell_id", "group", umi_col, "total_umi"])
    except ValueError as exc:
        raise SystemExit(f"{args.in_parquet}: {exc}")

    present = set(table["group"].astype(str))
    groups = [g for g in CELL_GROUPS if g in present]
    if args.reference not in groups:
        raise SystemExit(f"Reference group {args.reference!r} has no cells; groups present: {groups}")

    tables_dir = args.outdir / "tables"
    logs_dir = args.outdir / "logs"
    tables_dir.mkdir(parents=True, exist_ok=True)
    stem = f"{args.in_parquet.stem}_nb"

    adequacy = group_adequacy_table(table, umi_col, groups, min_n=args.min_cells, min_detected=args.min_detected)
    adequacy_path = tables_dir / f"{stem}_group_adequacy.csv"
    adequacy.to_csv(adequacy_path, index=False)

    modeled = adequacy.loc[adequacy["adequate"], "group"].tolist()
    if args.reference not in modeled:
        reason = adequacy.set_index("group").loc[args.reference, "reason"]
        raise SystemExit(f"Reference group {args.reference!r} fails the adequacy gate ({reason}).")
    if len(modeled) < 2:
        raise SystemExit(f"Need at least two adequate groups to compare; adequate: {modeled}")

    model_data = table.loc[table["group"].astype(str).isin(modeled), [umi_col, "total_umi"]].copy()
    model_data.insert(0, "group", pd.Categorical(table.loc[model_data.index, "group"].astype(str), categories=modeled))
    model_data = model_data.reset_index(drop=True)

    family = get_family("negative_binomial")
    spec = FitSpec(
        name=stem,
        formula=treatment_formula(umi_col, "group", args.reference),
        family=family.name,
        options={"maxiter": 500},
        offset="total_umi",
    )
    cache = FitCache(args.cache_dir)
    if args.refit:
        cache.discard(spec, model_data)
    result, from_cache = cache.load_or_fit(spec, model_data)
    print(f"{'Loaded cached' if from_cache else 'Fitted'} {spec.name}: {cache.path_for(spec, model_data)}")

    coefs = coefficient_table(result, family, alpha=ALPHA)
    coefs_path = tables_dir / f"{stem}_coefficients.csv"
    coefs.to_csv(coefs_path, index=False)

    ratios = level_effects(result, family, factor="group", levels=modeled, reference=args.reference, alpha=ALPHA)
    ratios_path = tables_dir / f"{stem}_rate_ratios.csv"
    ratios.to_csv(ratios_path, index=False)
    print(f"{family.effect_label.capitalize()} vs {args.reference} ({1 - ALPHA:.0%} CI):")
    print(ratios[["level", "ratio", "ratio_ci_low", "ratio_ci_high", "p_value"]].to_string(index=False))

    means = group_means(
        result,
        family,
        factor="group",
        levels=modeled,
        reference=args.reference,
        alpha=ALPHA,
        log_offset=float(np.log(EXPRESSION_RATE_SCALE)),
    )
    means["observed_pooled_rate"] = observed_pooled_rates(model_data, umi_col, modeled, EXPRESSION_RATE_SCALE).to_numpy()
    means["rate_scale"] = EXPRESSION_RATE_SCALE
    means_path = tables_dir / f"{stem}_group_rates.csv"
    means.to_csv(means_path, index=False)

    ctx = AnalysisContext(outdir=args.outdir, figure_format=FIGURE_FORMAT)
    ctx = plot_group_expression(ctx, means, gene=args.gene, rate_scale=EXPRESSION_RATE_SCALE)
    ctx = plot_detection_rates(ctx, adequacy, gene=args.gene)
    figure_paths = ctx.save_figures()

    run_log = {
        "analysis_version": ANALYSIS_VERSION,
        "gene": args.gene,
        "reference_group": args.reference,
        "groups_modeled": modeled,
        "groups_excluded": adequacy.loc[~adequacy["adequate"], ["group", "reason"]].to_dict("records"),
        "n_cells_modeled": int(len(model_data)),
        "fit": {
            "spec": spec.canonical(),
            "artifact": str(cache.path_for(spec, model_data)),
            "from_cache": from_cache,
            "converged": bool(result.mle_retvals.get("converged", True)) if hasattr(result, "mle_retvals") else None,
        },
        "artifacts": {
            "group_adequacy_csv": str(adequacy_path),
            "coefficients_csv": str(coefs_path),
            "rate_ratios_csv": str(ratios_path),
            "group_rates_csv": str(means_path),
            "figures": [str(p) for p in figure_paths],
        },
        "runtime": run_metadata(PROJECT_ROOT, {"expression_table": args.in_parquet}),
    }
    log_path = logs_dir / f"{stem}_run.json"
    write_json(log_path, run_log)

    for path in [adequacy_path, coefs_path, ratios_path, means_path, *figure_paths, log_path]:
        print(f"Wrote {path}")


if __name__ == "__main__":
    main()
