from __future__ import annotations

import argparse
import os
import sys
import tempfile
from pathlib import Path

_mpl_cache_dir = Path(tempfile.gettempdir()) / "matplotlib"
_mpl_cache_dir.mkdir(parents=True, exist_ok=True)
os.environ.setdefault("MPLCONFIGDIR", str(_mpl_cache_dir))

import pandas as pd
import matplotlib

matplotlib.use("Agg")


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from chrnb2_analysis.config import (  # noqa: E402
    ALPHA,
    ANALYSIS_VERSION,
    BEHAVIOR_MIN_GROUP_ANIMALS,
    BEHAVIOR_WORKBOOK,
    CACHE_DIR,
    FIGURE_FORMAT,
    GENOTYPE_LEVELS,
    GENOTYPE_REFERENCE,
    N_BOOT,
    OUTPUTS_DIR,
    RANDOM_SEED,
)
from chrnb2_analysis.data.assays import get_assay_config, get_available_assays  # noqa: E402
from chrnb2_analysis.data.build import build_assay_table  # noqa: E402
from chrnb2_analysis.data.coding import summarize_missingness  # noqa: E402
from chrnb2_analysis.data.ingest import read_sheet  # noqa: E402
from chrnb2_analysis.data.reshape import to_wide  # noqa: E402
from chrnb2_analysis.evaluation.bootstrap import stratified_bootstrap_ratio_draws, summarize_bootstrap_ci  # noqa: E402
from chrnb2_analysis.evaluation.effects import coefficient_table, group_means, level_effects  # noqa: E402
from chrnb2_analysis.evaluation.group_adequacy import evaluate_group_adequacy  # noqa: E402
from chrnb2_analysis.models.cache import FitCache, sha256_df  # noqa: E402
from chrnb2_analysis.models.families import get_family  # noqa: E402
from chrnb2_analysis.models.fit import FitSpec, treatment_formula  # noqa: E402
from chrnb2_analysis.reporting.context import AnalysisContext  # noqa: E402
from chrnb2_analysis.reporting.plots import plot_assay  # noqa: E402
from chrnb2_analysis.utils.logging import run_metadata, write_json  # noqa: E402


def genotype_adequacy(table: pd.DataFrame, response: str, *, min_n: int) -> pd.DataFrame:
    rows = []
    for level in GENOTYPE_LEVELS:
        values = table.loc[table["genotype"] == level, response].to_numpy()
        adequacy = evaluate_group_adequacy(values, min_n=min_n)
        rows.append({"genotype": level, "n_animals": adequacy.n, "adequate": adequacy.adequate, "reason": adequacy.reason})
    return pd.DataFrame(rows)


def main() -> None:
    parser = argparse.ArgumentParser(description="Genotype models for the Chrnb2 KO behavioral assays.")
    parser.add_argument("--workbook", type=Path, default=BEHAVIOR_WORKBOOK, help="Behavior workbook (.xlsx).")
    parser.add_argument(
        "--assay",
        action="append",
        choices=get_available_assays(),
        default=None,
        help="Assay to model (repeatable; default: all).",
    )
    parser.add_argument("--outdir", type=Path, default=OUTPUTS_DIR, help="Output directory (default: outputs/).")
    parser.add_argument("--cache-dir", type=Path, default=CACHE_DIR, help="Fitted-model cache directory.")
    parser.add_argument("--n-boot", type=int, default=N_BOOT, help="Bootstrap draws for the sensitivity interval.")
    parser.add_argument("--seed", type=int, default=RANDOM_SEED)
    parser.add_argument("--min-animals", type=int, default=BEHAVIOR_MIN_GROUP_ANIMALS)
    parser.add_argument("--refit", action="store_true", help="Discard cached fits for these exact models and data first.")
    args = parser.parse_args()

    if not args.workbook.exists():
        raise SystemExit(f"Behavior workbook not found: {args.workbook}")
    if args.n_boot < 0:
        raise SystemExit("--n-boot must be non-negative.")

    assays = [get_assay_config(name) for name in (args.assay or get_available_assays())]
    other_levels = [lvl for lvl in GENOTYPE_LEVELS if lvl != GENOTYPE_REFERENCE]

    tables_dir = args.outdir / "tables"
    logs_dir = args.outdir / "logs"
    tables_dir.mkdir(parents=True, exist_ok=True)

    cache = FitCache(args.cache_dir)
    ctx = AnalysisContext(outdir=args.outdir, figure_format=FIGURE_FORMAT)

    written = []
    summary_rows = []
    mean_rows = []
    assay_logs = {}

    for assay in assays:
        try:
            raw = read_sheet(args.workbook, assay.sheet)
            table, decisions = build_assay_table(raw, assay)
        except ValueError as exc:
            raise SystemExit(f"{assay.name}: {exc}")

        missingness_path = tables_dir / f"behavior_{assay.name}_missingness.csv"
        summarize_missingness(raw).to_csv(missingness_path, index=False)
        table_path = tables_dir / f"behavior_{assay.name}_table.csv"
        table.to_csv(table_path, index=False)
        written.extend([missingness_path, table_path])

        adequacy = genotype_adequacy(table, assay.response, min_n=args.min_animals)
        decisions["genotype_adequacy"] = adequacy.to_dict("records")
        decisions["table_sha256"] = sha256_df(table)
        assay_logs[assay.name] = decisions

        if not adequacy["adequate"].all():
            failing = adequacy.loc[~adequacy["adequate"], ["genotype", "reason"]].to_dict("records")
            decisions["status"] = "skipped"
            summary_rows.append({"assay": assay.name, "family": assay.family, "status": f"skipped: {failing}"})
            print(f"Skipping {assay.name}: inadequate genotype groups {failing}")
            continue

        family = get_family(assay.family)
        covariates = decisions["covariates_used"]
        spec = FitSpec(
            name=f"behavior_{assay.name}_{family.name}",
            formula=treatment_formula(assay.response, "genotype", GENOTYPE_REFERENCE, covariates),
            family=family.name,
        )
        if args.refit:
            cache.discard(spec, table)
        result, from_cache = cache.load_or_fit(spec, table)
        decisions["fit"] = {
            "spec": spec.canonical(),
            "artifact": str(cache.path_for(spec, table)),
            "from_cache": from_cache,
        }

        coefs = coefficient_table(result, family, alpha=ALPHA)
        coefs_path = tables_dir / f"behavior_{assay.name}_coefficients.csv"
        coefs.to_csv(coefs_path, index=False)

        effects = level_effects(
            result, family, factor="genotype", levels=GENOTYPE_LEVELS, reference=GENOTYPE_REFERENCE, alpha=ALPHA
        )
        means = group_means(
            result, family, factor="genotype", levels=GENOTYPE_LEVELS, reference=GENOTYPE_REFERENCE, alpha=ALPHA
        )
        means_path = tables_dir / f"behavior_{assay.name}_group_means.csv"
        means.to_csv(means_path, index=False)

        # Model-free sensitivity check on the ratio of arithmetic means.
        boot_cis = {}
        for level in other_levels:
            draws = stratified_bootstrap_ratio_draws(
                values=table[assay.response].to_numpy(dtype=float),
                groups=table["genotype"].astype(str).to_numpy(),
                reference=GENOTYPE_REFERENCE,
                other=level,
                n_boot=args.n_boot,
                seed=args.seed,
            )
            boot_cis[level] = summarize_bootstrap_ci(draws, alpha=ALPHA)["ratio"]
        effects["bootstrap_mean_ratio_ci_low"] = [boot_cis[lvl][0] for lvl in effects["level"]]
        effects["bootstrap_mean_ratio_ci_high"] = [boot_cis[lvl][1] for lvl in effects["level"]]
        effects["n_boot"] = args.n_boot
        effects_path = tables_dir / f"behavior_{assay.name}_genotype_effect.csv"
        effects.to_csv(effects_path, index=False)
        written.extend([coefs_path, means_path, effects_path])

        ctx = plot_assay(
            ctx,
            table,
            means,
            name=assay.name,
            title=assay.title,
            response=assay.response,
            response_label=assay.response_label,
            levels=GENOTYPE_LEVELS,
            seed=args.seed,
        )

        counts = table["genotype"].value_counts()
        for row in effects.itertuples(index=False):
            summary_rows.append(
                {
                    "assay": assay.name,
                    "family": family.name,
                    "status": "fitted",
                    "effect": family.effect_label,
                    "level": row.level,
                    "reference": row.reference,
                    "n_reference": int(counts.get(GENOTYPE_REFERENCE, 0)),
                    "n_level": int(counts.get(row.level, 0)),
                    "ratio": row.ratio,
                    "ratio_ci_low": row.ratio_ci_low,
                    "ratio_ci_high": row.ratio_ci_high,
                    "p_value": row.p_value,
                    "bootstrap_mean_ratio_ci_low": row.bootstrap_mean_ratio_ci_low,
                    "bootstrap_mean_ratio_ci_high": row.bootstrap_mean_ratio_ci_high,
                    "covariates": ";".join(covariates),
                    "from_cache": from_cache,
                }
            )
        for row in means.itertuples(index=False):
            mean_rows.append({"assay": assay.name, "statistic": row.statistic, "level": row.level, "mean": row.mean})
        decisions["status"] = "fitted"

    summary = pd.DataFrame(summary_rows)
    summary_path = tables_dir / "behavior_summary.csv"
    summary.to_csv(summary_path, index=False)
    written.append(summary_path)
    if "ratio" in summary.columns:
        fitted = summary.loc[summary["status"] == "fitted"]
        print(f"Genotype effects, {' / '.join(other_levels)} vs {GENOTYPE_REFERENCE} ({1 - ALPHA:.0%} CI):")
        print(fitted[["assay", "effect", "ratio", "ratio_ci_low", "ratio_ci_high", "p_value"]].to_string(index=False))

    if mean_rows:
        means_wide = to_wide(pd.DataFrame(mean_rows), ["assay", "statistic"], "level", "mean")
        means_wide_path = tables_dir / "behavior_group_means_wide.csv"
        means_wide.to_csv(means_wide_path, index=False)
        written.append(means_wide_path)

    figure_paths = ctx.save_figures()
    written.extend(figure_paths)

    run_log = {
        "analysis_version": ANALYSIS_VERSION,
        "alpha": ALPHA,
        "n_boot": args.n_boot,
        "seed": args.seed,
        "min_animals_per_genotype": args.min_animals,
        "assays": assay_logs,
        "n_fitted": int(sum(1 for d in assay_logs.values() if d.get("status") == "fitted")),
        "bootstrap_ci_method": "percentile" if args.n_boot > 0 else None,
        "artifacts": [str(p) for p in written],
        "runtime": run_metadata(PROJECT_ROOT, {"behavior_workbook": args.workbook}),
    }
    log_path = logs_dir / "behavior_models_run.json"
    write_json(log_path, run_log)
    written.append(log_path)

    for path in written:
        print(f"Wrote {path}")
    if run_log["n_fitted"] == 0:
        print("No assay was fitted; see the run log for adequacy decisions.")


if __name__ == "__main__":
    main()
