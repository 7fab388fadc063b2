import json
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from chrnb2_analysis.models.cache import FitCache, cache_key, fit_cached
from chrnb2_analysis.models.fit import FitSpec, fit_model, treatment_formula


def _latency_table(seed: int = 3, n: int = 12) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    genotype = ["WT"] * n + ["KO"] * n
    latency = np.exp(rng.normal(4.0, 0.3, size=2 * n) - 0.4 * (np.array(genotype) == "KO"))
    return pd.DataFrame(
        {
            "animal_id": [f"m{i}" for i in range(2 * n)],
            "genotype": pd.Categorical(genotype, categories=["WT", "KO"]),
            "latency_s": latency,
        }
    )


def _spec(**overrides) -> FitSpec:
    values = {
        "name": "latency",
        "formula": treatment_formula("latency_s", "genotype", "WT"),
        "family": "lognormal",
    }
    values.update(overrides)
    return FitSpec(**values)


class CountingFitter:
    def __init__(self):
        self.calls = 0

    def __call__(self, spec, data):
        self.calls += 1
        return fit_model(spec, data)


def test_second_call_loads_without_refitting(tmp_path: Path):
    cache = FitCache(tmp_path / "cache")
    data = _latency_table()
    spec = _spec()
    fitter = CountingFitter()

    first, from_cache_1 = cache.load_or_fit(spec, data, fitter=fitter)
    artifact = cache.path_for(spec, data)
    stat_1 = artifact.stat()
    bytes_1 = artifact.read_bytes()

    second, from_cache_2 = cache.load_or_fit(spec, data, fitter=fitter)

    assert (from_cache_1, from_cache_2) == (False, True)
    assert fitter.calls == 1
    assert artifact.read_bytes() == bytes_1
    assert artifact.stat().st_mtime_ns == stat_1.st_mtime_ns
    pd.testing.assert_series_equal(first.params, second.params)


def test_sidecar_records_spec_and_data_hash(tmp_path: Path):
    cache = FitCache(tmp_path)
    data = _latency_table()
    spec = _spec(options={"cov_type": "HC3"})
    cache.load_or_fit(spec, data)

    meta = json.loads(FitCache.meta_path(cache.path_for(spec, data)).read_text(encoding="utf-8"))
    assert meta["cache_key_sha256"] == cache_key(spec, data)
    assert meta["spec"]["options"] == {"cov_type": "HC3"}
    assert meta["n_rows"] == len(data)


def test_key_changes_with_spec_and_data():
    data = _latency_table()
    base = cache_key(_spec(), data)

    assert cache_key(_spec(), data.copy()) == base
    assert cache_key(_spec(formula="latency_s ~ C(genotype)"), data) != base
    assert cache_key(_spec(options={"cov_type": "HC3"}), data) != base
    assert cache_key(_spec(family="gamma"), data) != base

    changed = data.copy()
    changed.loc[0, "latency_s"] += 1.0
    assert cache_key(_spec(), changed) != base


def test_whitespace_in_formula_does_not_change_key():
    data = _latency_table()
    spaced = _spec(formula="latency_s  ~   C(genotype, Treatment(reference='WT'))")
    assert cache_key(spaced, data) == cache_key(_spec(), data)


def test_failed_fit_leaves_no_artifact(tmp_path: Path):
    cache_dir = tmp_path / "cache"
    cache = FitCache(cache_dir)
    data = _latency_table()

    def broken(spec, data):
        raise RuntimeError("solver blew up")

    with pytest.raises(RuntimeError, match="solver blew up"):
        cache.load_or_fit(_spec(), data, fitter=broken)

    leftovers = list(cache_dir.iterdir()) if cache_dir.exists() else []
    assert leftovers == []

    result, from_cache = cache.load_or_fit(_spec(), data)
    assert from_cache is False
    assert "Intercept" in result.params.index


def test_engine_errors_propagate(tmp_path: Path):
    data = _latency_table()
    data.loc[0, "latency_s"] = -1.0
    with pytest.raises(ValueError, match="strictly positive"):
        fit_cached(_spec(), data, tmp_path)
    assert list(tmp_path.glob("*.joblib")) == []


def test_discard_forces_refit(tmp_path: Path):
    cache = FitCache(tmp_path)
    data = _latency_table()
    spec = _spec()
    fitter = CountingFitter()

    cache.load_or_fit(spec, data, fitter=fitter)
    assert cache.discard(spec, data) is True
    assert not cache.path_for(spec, data).exists()
    assert cache.discard(spec, data) is False

    _, from_cache = cache.load_or_fit(spec, data, fitter=fitter)
    assert from_cache is False
    assert fitter.calls == 2


def _nest_table(seed: int = 21, n: int = 15) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    genotype = ["WT"] * n + ["KO"] * n
    shredded = np.concatenate([rng.beta(6, 4, size=n), rng.beta(3, 7, size=n)])
    return pd.DataFrame(
        {
            "genotype": pd.Categorical(genotype, categories=["WT", "KO"]),
            "sex": pd.Categorical(["M", "F"] * n, categories=["F", "M"]),
            "fraction_shredded": shredded,
        }
    )


@pytest.mark.parametrize("family", ["beta", "gamma", "lognormal"])
def test_every_behavior_family_round_trips_through_cache(tmp_path: Path, family: str):
    data = _nest_table()
    spec = FitSpec(
        name=f"nest_{family}",
        formula=treatment_formula("fraction_shredded", "genotype", "WT", ["sex"]),
        family=family,
    )
    cache = FitCache(tmp_path)

    first, from_cache_1 = cache.load_or_fit(spec, data)
    second, from_cache_2 = cache.load_or_fit(spec, data)

    assert (from_cache_1, from_cache_2) == (False, True)
    pd.testing.assert_series_equal(first.params, second.params)
    assert "C(genotype, Treatment(reference='WT'))[T.KO]" in second.params.index


def test_beta_fit_keeps_term_names(tmp_path: Path):
    from chrnb2_analysis.evaluation.effects import param_names

    data = _nest_table()
    spec = FitSpec("nest_beta", treatment_formula("fraction_shredded", "genotype", "WT"), "beta")
    result = fit_cached(spec, data, tmp_path)

    assert param_names(result) == ["Intercept", "C(genotype, Treatment(reference='WT'))[T.KO]", "precision"]


def test_artifact_lands_at_path_for(tmp_path: Path):
    cache = FitCache(tmp_path)
    data = _latency_table()
    spec = _spec(name="latency run/1")
    cache.load_or_fit(spec, data)

    assert sorted(tmp_path.glob("*.joblib")) == [cache.path_for(spec, data)]
    assert cache.path_for(spec, data).name.startswith("latency_run_1-")
