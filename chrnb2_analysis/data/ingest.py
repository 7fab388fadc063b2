from pathlib import Path
from typing import Iterator, Optional, Sequence

import pandas as pd

_TAB_SUFFIXES = (".tsv.gz", ".txt.gz", ".tsv", ".txt")


def _infer_sep(path: Path) -> str:
    name = path.name.lower()
    return "\t" if name.endswith(_TAB_SUFFIXES) else ","


def _require_file(path: Path) -> Path:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    return path


def read_gzip_table(
    path: Path,
    *,
    sep: Optional[str] = None,
    usecols: Optional[Sequence[str]] = None,
    nrows: Optional[int] = None,
) -> pd.DataFrame:
    path = _require_file(path)
    return pd.read_csv(
        path,
        sep=sep or _infer_sep(path),
        compression="infer",
        usecols=list(usecols) if usecols is not None else None,
        nrows=nrows,
    )


def iter_gzip_table(
    path: Path,
    *,
    chunksize: int,
    sep: Optional[str] = None,
    usecols: Optional[Sequence[str]] = None,
) -> Iterator[pd.DataFrame]:
    """Yield a large delimited table in row chunks.

    Count matrices can be several GB uncompressed; only one chunk is held in
    memory at a time.
    """

    path = _require_file(path)
    if chunksize <= 0:
        raise ValueError(f"chunksize must be positive, got {chunksize}")
    reader = pd.read_csv(
        path,
        sep=sep or _infer_sep(path),
        compression="infer",
        usecols=list(usecols) if usecols is not None else None,
        chunksize=chunksize,
    )
    with reader:
        for chunk in reader:
            yield chunk


def read_table_header(path: Path, *, sep: Optional[str] = None) -> list:
    path = _require_file(path)
    return pd.read_csv(path, sep=sep or _infer_sep(path), compression="infer", nrows=0).columns.tolist()


def read_sheet(path: Path, spec) -> pd.DataFrame:
    """Read exactly the range described by a SheetSpec (see data.assays)."""

    path = _require_file(path)
    return pd.read_excel(
        path,
        sheet_name=spec.sheet,
        usecols=spec.usecols,
        skiprows=spec.skiprows,
        nrows=spec.nrows,
        header=0,
    )
