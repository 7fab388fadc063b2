"""Explicit state for figure-producing analysis steps.

Each plotting step takes an AnalysisContext and returns a new one with its
figure appended. Nothing is kept in module globals, and the matplotlib theme
is applied per figure through rc_context rather than by mutating rcParams.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Tuple

import matplotlib.pyplot as plt

from .figures import save_figure

DEFAULT_GROUP_COLORS = {
    "D1 SPN": "#1f77b4",
    "D2 SPN": "#d62728",
    "Cholinergic interneuron": "#2ca02c",
    "PV interneuron": "#9467bd",
    "SST interneuron": "#8c564b",
    "TH interneuron": "#e377c2",
    "Astrocyte": "#7f7f7f",
    "Oligodendrocyte": "#bcbd22",
    "OPC": "#17becf",
    "Microglia": "#ff7f0e",
    "Endothelial": "#aec7e8",
    "Ependymal": "#ffbb78",
    "Neuroblast": "#98df8a",
}

DEFAULT_GENOTYPE_COLORS = {"WT": "#4d4d4d", "KO": "#e66101"}


@dataclass(frozen=True)
class Theme:
    font_size: float = 9.0
    figure_size: Tuple[float, float] = (4.0, 3.2)
    group_colors: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_GROUP_COLORS))
    genotype_colors: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_GENOTYPE_COLORS))
    fallback_color: str = "#999999"

    def rc(self) -> dict:
        return {
            "font.size": self.font_size,
            "axes.titlesize": self.font_size + 1,
            "axes.labelsize": self.font_size,
            "xtick.labelsize": self.font_size - 1,
            "ytick.labelsize": self.font_size - 1,
            "axes.spines.top": False,
            "axes.spines.right": False,
            "svg.fonttype": "none",
            "pdf.fonttype": 42,
        }

    def group_color(self, group: str) -> str:
        return self.group_colors.get(group, self.fallback_color)

    def genotype_color(self, genotype: str) -> str:
        return self.genotype_colors.get(genotype, self.fallback_color)


@dataclass(frozen=True)
class AnalysisContext:
    outdir: Path
    theme: Theme = field(default_factory=Theme)
    figure_format: str = "svg"
    figures: Tuple[Tuple[str, object], ...] = ()

    @property
    def figures_dir(self) -> Path:
        return Path(self.outdir) / "figures"

    @property
    def figure_names(self) -> List[str]:
        return [name for name, _fig in self.figures]

    def with_figure(self, name: str, fig) -> "AnalysisContext":
        if name in self.figure_names:
            raise ValueError(f"Figure {name!r} already registered in this context")
        return replace(self, figures=self.figures + ((name, fig),))

    def save_figures(self) -> List[Path]:
        """Write every registered figure as a vector file and close it."""

        paths = []
        for name, fig in self.figures:
            path = self.figures_dir / f"{name}.{self.figure_format}"
            with plt.rc_context(self.theme.rc()):
                save_figure(fig, path)
            plt.close(fig)
            paths.append(path)
        return paths
