"""Model construction only; nothing here runs a sampler."""
from pathlib import Path

import numpy as np
import pytest

from multilevel.models.pymc_models import build_admissions_model, build_plant_growth_model
from multilevel.models.stan_models import STAN_DIR, stan_file_path, fit_bayesian_cmdstanpy


def _names(model):
    return {v.name for v in model.free_RVs}, {v.name for v in model.deterministics}


def test_plant_growth_model_structure(plant_df):
    model = build_plant_growth_model(plant_df)
    free, det = _names(model)
    assert free == {"mu_site", "sigma_biol", "sigma_tech", "z_bottle"}
    assert det == {"mu_bottle"}
    assert list(model.coords["site"]) == ["A", "B", "C"]
    assert len(model.coords["bottle"]) == 9
    assert model.observed_RVs[0].name == "y"


def test_plant_growth_model_logp_is_finite(plant_df):
    model = build_plant_growth_model(plant_df)
    point = model.initial_point()
    assert np.isfinite(model.compile_logp()(point))


def test_admissions_model_structure(admissions_df):
    model = build_admissions_model(admissions_df)
    free, det = _names(model)
    assert free == {"a_bar", "sigma_dept", "z_dept", "b_male"}
    assert {"a_dept", "p_admit"} <= det
    assert list(model.coords["dept"]) == list("ABCDEF")


def test_admissions_varying_slopes(admissions_df):
    model = build_admissions_model(admissions_df, varying_slopes=True)
    free, det = _names(model)
    assert "b_male" not in free
    assert {"b_bar", "sigma_b", "z_b"} <= free
    assert "b_dept" in det


def test_bambi_models_build(plant_df, admissions_df):
    bmb = pytest.importorskip("bambi")
    from multilevel.models.formula import (
        ADMISSIONS_FORMULA,
        PLANT_GROWTH_FORMULA,
        build_bambi_admissions,
        build_bambi_plant_growth,
    )

    adm = build_bambi_admissions(admissions_df)
    assert isinstance(adm, bmb.Model)
    assert adm.family.name == "binomial"
    assert adm.formula.main == ADMISSIONS_FORMULA
    plants = build_bambi_plant_growth(plant_df)
    assert plants.family.name == "gaussian"
    assert plants.formula.main == PLANT_GROWTH_FORMULA


def test_shipped_stan_files():
    assert {p.stem for p in STAN_DIR.glob("*.stan")} == {"mean_means", "admissions"}
    assert stan_file_path("mean_means").name == "mean_means.stan"
    assert stan_file_path("admissions.stan").is_file()
    src = stan_file_path("mean_means").read_text()
    for name in ("mu_site", "mu_bottle", "sigma_tech", "sigma_biol", "bottle_site_idx"):
        assert name in src


def test_unknown_stan_file():
    with pytest.raises(FileNotFoundError, match="available"):
        stan_file_path("no_such_model")


def test_stan_fit_requires_exactly_one_source():
    with pytest.raises(ValueError):
        fit_bayesian_cmdstanpy({})
    with pytest.raises(ValueError):
        fit_bayesian_cmdstanpy({}, stan_file="x.stan", stan_code="model {}")


def test_stan_code_tempdir_removed_when_compile_fails(tmp_path, monkeypatch):
    import tempfile
    from multilevel.models import stan_models

    seen = []

    class _FailingModel:
        def __init__(self, stan_file, **kwargs):
            seen.append(Path(stan_file))
            raise RuntimeError("compile failed")

    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
    monkeypatch.setattr(stan_models, "CmdStanModel", _FailingModel)
    with pytest.raises(RuntimeError, match="compile failed"):
        fit_bayesian_cmdstanpy({}, stan_code="parameters { real mu; } model { mu ~ normal(0, 1); }")
    assert seen and seen[0].parent.parent == tmp_path
    assert not seen[0].parent.exists()


def test_plant_growth_model_constant_outcome(plant_df):
    df = plant_df.copy()
    df["y"] = 5.0
    model = build_plant_growth_model(df)
    assert np.isfinite(model.compile_logp()(model.initial_point()))


def test_mean_means_prior_scale_guards_zero_sd():
    src = stan_file_path("mean_means").read_text()
    assert "sd(y) > 0" in src


def test_formulas_built_from_schema_columns():
    pytest.importorskip("bambi")
    from multilevel.models.formula import ADMISSIONS_FORMULA, PLANT_GROWTH_FORMULA

    assert ADMISSIONS_FORMULA == "p(admit, applications) ~ 1 + male + (1 | dept)"
    assert PLANT_GROWTH_FORMULA == "y ~ 1 + (1 | site) + (1 | bottle_id)"


def test_default_prior_scale_follows_data():
    from multilevel.models.pymc_models import _data_scale

    y = np.array([4.0, 5.0, 6.0])
    assert _data_scale(y) == pytest.approx(1.0)
    assert _data_scale(2 * y) == pytest.approx(2.0)
    assert _data_scale(np.full(5, 3.0)) == 1.0
    assert _data_scale(np.array([7.0])) == 1.0
