"""
End-to-end fits with a tiny budget. Marked slow: each one compiles and
runs a real NUTS sampler.
"""
import numpy as np
import pytest

from multilevel.config import SamplerSettings


def cmdstan_installed() -> bool:
    try:
        import cmdstanpy
        cmdstanpy.cmdstan_path()
    except (ImportError, ValueError, RuntimeError):
        return False
    return True


QUICK = SamplerSettings.quick(chains=2, warmup=150, iter_sampling=150, thin=1, seed=11)

needs_cmdstan = pytest.mark.skipif(not cmdstan_installed(), reason="CmdStan not installed")


@pytest.mark.slow
def test_pymc_plant_growth_recovers_site_means(plant_df):
    from multilevel.models.pymc_models import fit_pymc_plant_growth

    idata = fit_pymc_plant_growth(plant_df, QUICK)
    assert {"mu_site", "mu_bottle", "sigma_tech", "sigma_biol"} <= set(idata.posterior.data_vars)
    assert "y" in idata.log_likelihood
    assert "y" in idata.posterior_predictive
    means = idata.posterior["mu_site"].mean(("chain", "draw")).values
    np.testing.assert_allclose(means, [5.0, 6.0, 7.0], atol=1.0)


@pytest.mark.slow
def test_pymc_thinning(plant_df):
    from multilevel.models.pymc_models import fit_pymc_plant_growth

    idata = fit_pymc_plant_growth(plant_df, QUICK.with_(thin=3))
    assert idata.posterior.sizes["draw"] == 50


@pytest.mark.slow
def test_pymc_admissions(admissions_df):
    from multilevel.models.pymc_models import fit_pymc_admissions

    idata = fit_pymc_admissions(admissions_df, QUICK)
    assert idata.posterior["a_dept"].shape[-1] == 6
    assert abs(float(idata.posterior["b_male"].mean())) < 0.5


@pytest.mark.slow
def test_bambi_plant_growth(plant_df):
    pytest.importorskip("bambi")
    from multilevel.models.formula import fit_bambi_plant_growth, group_effect_means

    idata = fit_bambi_plant_growth(plant_df, QUICK)
    assert "log_likelihood" in idata.groups()
    site = group_effect_means(idata, "site")
    assert list(site.index) == ["A", "B", "C"]
    assert site["A"] < site["C"]


@pytest.mark.slow
@needs_cmdstan
def test_stan_mean_of_means(plant_df):
    from multilevel.models.stan_models import fit_stan_plant_growth, sampler_diagnostics

    idata, fit = fit_stan_plant_growth(plant_df, QUICK, return_fit=True)
    assert list(idata.posterior["mu_site"].coords["site"].values) == ["A", "B", "C"]
    assert "y" in idata.log_likelihood
    assert "y_rep" in idata.posterior_predictive
    assert isinstance(sampler_diagnostics(fit), str)


@pytest.mark.slow
def test_bambi_admissions(admissions_df):
    pytest.importorskip("bambi")
    from multilevel.models.formula import fit_bambi_admissions, group_effect_means

    idata = fit_bambi_admissions(admissions_df, QUICK)
    assert "male" in idata.posterior
    assert abs(float(idata.posterior["male"].mean())) < 0.5
    dept = group_effect_means(idata, "dept")
    assert list(dept.index) == list("ABCDEF")
    assert dept.idxmax() == "A"


@pytest.mark.slow
@needs_cmdstan
def test_stan_admissions(admissions_df):
    from multilevel.models.stan_models import fit_stan_admissions

    idata = fit_stan_admissions(admissions_df, QUICK)
    assert list(idata.posterior["a_dept"].coords["dept"].values) == list("ABCDEF")
    assert "admit" in idata.log_likelihood
    assert "admit_rep" in idata.posterior_predictive
    p = idata.posterior["p_admit"].mean(("chain", "draw")).values
    np.testing.assert_allclose(p, admissions_df["admit_rate"], atol=0.1)


@pytest.mark.slow
@needs_cmdstan
def test_stan_from_code_string_cleans_up(tmp_path, monkeypatch):
    from multilevel.models.stan_models import fit_bayesian_cmdstanpy

    import tempfile
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))

    code = """
    data { int<lower=0> N; vector[N] y; }
    parameters { real mu; real<lower=0> sigma; }
    model { mu ~ normal(0, 10); sigma ~ exponential(1); y ~ normal(mu, sigma); }
    """
    idata = fit_bayesian_cmdstanpy({"N": 3, "y": [1.0, 2.0, 3.0]}, stan_code=code, settings=QUICK)
    assert "mu" in idata.posterior
    # neither the source nor the compiled executable is left behind
    assert not list(tmp_path.glob("multilevel_stan_*"))
