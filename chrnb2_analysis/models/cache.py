"""Fit-and-cache helper for slow model fits.

An artifact is keyed by a SHA-256 over the canonical FitSpec and the content
of the data table, so changing the formula, family, options, offset or data
yields a new artifact instead of silently returning an old one. Artifacts are
never invalidated automatically; FitCache.discard (or deleting the file) forces
a re-fit.
"""

from __future__ import annotations

import hashlib
import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Tuple

import joblib
import pandas as pd

from chrnb2_analysis.utils.logging import write_json

from .fit import FitSpec, fit_model


def sha256_df(df: pd.DataFrame) -> str:
    h = hashlib.sha256()
    h.update("||".join(df.columns.astype(str).tolist()).encode("utf-8"))
    h.update("||".join(map(str, df.dtypes.tolist())).encode("utf-8"))
    row_hashes = pd.util.hash_pandas_object(df, index=True).to_numpy()
    h.update(row_hashes.tobytes())
    return h.hexdigest()


def cache_key(spec: FitSpec, data: pd.DataFrame) -> str:
    h = hashlib.sha256()
    h.update(json.dumps(spec.canonical(), sort_keys=True, default=str).encode("utf-8"))
    h.update(sha256_df(data).encode("utf-8"))
    return h.hexdigest()


def _safe_filename(name: str) -> str:
    return "".join(ch if (ch.isalnum() or ch in {"_", "-", "."}) else "_" for ch in name)


class FitCache:
    def __init__(self, cache_dir: Path):
        self.cache_dir = Path(cache_dir)

    def _artifact_path(self, spec: FitSpec, key: str) -> Path:
        return self.cache_dir / f"{_safe_filename(spec.name)}-{key[:16]}.joblib"

    def path_for(self, spec: FitSpec, data: pd.DataFrame) -> Path:
        return self._artifact_path(spec, cache_key(spec, data))

    @staticmethod
    def meta_path(artifact: Path) -> Path:
        return artifact.with_suffix(".meta.json")

    def load_or_fit(
        self, spec: FitSpec, data: pd.DataFrame, *, fitter: Callable = fit_model
    ) -> Tuple[object, bool]:
        """Return (result, from_cache).

        A failing fit raises before anything is written. The artifact is
        written to a temporary file and renamed into place, so a partial
        artifact is never visible under the final name.
        """

        key = cache_key(spec, data)
        path = self._artifact_path(spec, key)
        if path.exists():
            return joblib.load(path), True

        result = fitter(spec, data)

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=f".{path.name}.", suffix=".tmp")
        os.close(fd)
        try:
            joblib.dump(result, tmp_name)
            os.replace(tmp_name, path)
        finally:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)

        write_json(
            self.meta_path(path),
            {
                "artifact": str(path),
                "cache_key_sha256": key,
                "spec": spec.canonical(),
                "data_sha256": sha256_df(data),
                "n_rows": int(len(data)),
                "columns": data.columns.astype(str).tolist(),
                "created_utc": datetime.now(timezone.utc).isoformat(),
            },
        )
        return result, False

    def discard(self, spec: FitSpec, data: pd.DataFrame) -> bool:
        path = self.path_for(spec, data)
        existed = path.exists()
        for p in (path, self.meta_path(path)):
            if p.exists():
                p.unlink()
        return existed


def fit_cached(spec: FitSpec, data: pd.DataFrame, cache_dir: Path):
    result, _from_cache = FitCache(cache_dir).load_or_fit(spec, data)
    return result
