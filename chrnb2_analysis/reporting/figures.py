from pathlib import Path

VECTOR_FORMATS = {"svg", "pdf", "eps"}


def save_figure(fig, path: Path) -> None:
    path = Path(path)
    fmt = path.suffix.lstrip(".").lower()
    if fmt not in VECTOR_FORMATS:
        raise ValueError(f"Figures are saved as vector files ({sorted(VECTOR_FORMATS)}), got {path.name}")
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, format=fmt, bbox_inches="tight")
