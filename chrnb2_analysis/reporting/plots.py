from __future__ import annotations

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from .context import AnalysisContext


def plot_group_expression(ctx: AnalysisContext, means: pd.DataFrame, *, gene: str, rate_scale: int) -> AnalysisContext:
    """Model-estimated UMI rate per cell group with confidence intervals (log axis)."""

    with plt.rc_context(ctx.theme.rc()):
        fig, ax = plt.subplots(figsize=(max(4.0, 0.55 * len(means) + 1.5), ctx.theme.figure_size[1]))
        x = np.arange(len(means))
        for i, row in enumerate(means.itertuples(index=False)):
            ax.errorbar(
                x[i],
                row.mean,
                yerr=[[row.mean - row.ci_low], [row.ci_high - row.mean]],
                fmt="o",
                color=ctx.theme.group_color(row.level),
                capsize=3,
            )
        ax.set_yscale("log")
        ax.set_xticks(x)
        ax.set_xticklabels(means["level"], rotation=45, ha="right")
        ax.set_ylabel(f"{gene} UMI per {rate_scale:,} UMI")
        ax.set_title(f"{gene} expression by striatal cell group")
        fig.tight_layout()
    return ctx.with_figure(f"{gene.lower()}_rate_by_group", fig)


def plot_detection_rates(ctx: AnalysisContext, adequacy: pd.DataFrame, *, gene: str) -> AnalysisContext:
    with plt.rc_context(ctx.theme.rc()):
        fig, ax = plt.subplots(figsize=(max(4.0, 0.55 * len(adequacy) + 1.5), ctx.theme.figure_size[1]))
        colors = [ctx.theme.group_color(g) if ok else ctx.theme.fallback_color for g, ok in zip(adequacy["group"], adequacy["adequate"])]
        ax.bar(adequacy["group"], adequacy["detection_rate"], color=colors)
        ax.set_ylim(0, 1)
        ax.set_ylabel(f"Fraction of cells with {gene} UMI > 0")
        ax.tick_params(axis="x", rotation=45)
        for label in ax.get_xticklabels():
            label.set_ha("right")
        ax.set_title(f"{gene} detection rate")
        fig.tight_layout()
    return ctx.with_figure(f"{gene.lower()}_detection_by_group", fig)


def plot_assay(
    ctx: AnalysisContext,
    table: pd.DataFrame,
    means: pd.DataFrame,
    *,
    name: str,
    title: str,
    response: str,
    response_label: str,
    levels,
    seed: int = 0,
) -> AnalysisContext:
    """Individual animals per genotype with the model-estimated mean and CI."""

    rng = np.random.default_rng(seed)
    with plt.rc_context(ctx.theme.rc()):
        fig, ax = plt.subplots(figsize=(2.6, ctx.theme.figure_size[1]))
        for i, level in enumerate(levels):
            y = table.loc[table["genotype"] == level, response].to_numpy(dtype=float)
            jitter = rng.uniform(-0.12, 0.12, size=y.size)
            ax.scatter(i + jitter, y, s=14, color=ctx.theme.genotype_color(level), alpha=0.7, linewidths=0)

            est = means.loc[means["level"] == level]
            if not est.empty:
                row = est.iloc[0]
                ax.errorbar(
                    i + 0.3,
                    row["mean"],
                    yerr=[[row["mean"] - row["ci_low"]], [row["ci_high"] - row["mean"]]],
                    fmt="s",
                    color="black",
                    capsize=3,
                    markersize=4,
                )
        ax.set_xticks(range(len(levels)))
        ax.set_xticklabels(list(levels))
        ax.set_xlim(-0.5, len(levels) - 0.3)
        ax.set_ylabel(response_label)
        ax.set_title(title)
        fig.tight_layout()
    return ctx.with_figure(f"behavior_{name}", fig)
