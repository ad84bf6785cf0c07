"""
Declarative hierarchical models written out in PyMC.

Both models use the non-centred parameterisation (``raw * sigma``) for
group effects, mirroring the Stan programs in ``models/stan``.
"""
from __future__ import annotations

import numpy as np
import pandas as pd
import pymc as pm

from multilevel.config import SamplerSettings, DEFAULT_SETTINGS
from multilevel.data.schema import admissions_cols, plant_cols
from multilevel.features.prepare import bottle_site_index, group_labels
from multilevel.utils.helpers import _timed_section, get_logger, thin_idata

logger = get_logger(__name__)


def _data_scale(y: np.ndarray) -> float:
    """Sample SD of the outcome; 1.0 when it is undefined or zero."""
    if len(y) < 2:
        return 1.0
    sd = float(np.std(y, ddof=1))
    return sd if sd > 0 else 1.0


def build_admissions_model(
    df: pd.DataFrame,
    *,
    a_bar_sd: float = 1.5,
    b_sd: float = 0.5,
    sigma_rate: float = 1.0,
    varying_slopes: bool = False,
) -> pm.Model:
    """
    Binomial logit with department intercepts:

        admit ~ Binomial(applications, p)
        logit(p) = a_dept[dept] + b_male * male

    With ``varying_slopes=True`` the gender effect also varies by
    department (``b_dept``), partially pooled around ``b_bar``.
    """
    labels = group_labels(df)
    dept_idx = df[admissions_cols.dept_idx()].to_numpy()
    male = df[admissions_cols.male()].to_numpy()
    coords = {"dept": labels["dept"], "obs": np.arange(len(df))}

    with pm.Model(coords=coords) as model:
        a_bar      = pm.Normal("a_bar", 0.0, a_bar_sd)
        sigma_dept = pm.Exponential("sigma_dept", sigma_rate)
        z_dept     = pm.Normal("z_dept", 0.0, 1.0, dims="dept")
        a_dept     = pm.Deterministic("a_dept", a_bar + z_dept * sigma_dept, dims="dept")

        if varying_slopes:
            b_bar   = pm.Normal("b_bar", 0.0, b_sd)
            sigma_b = pm.Exponential("sigma_b", sigma_rate)
            z_b     = pm.Normal("z_b", 0.0, 1.0, dims="dept")
            b_dept  = pm.Deterministic("b_dept", b_bar + z_b * sigma_b, dims="dept")
            slope   = b_dept[dept_idx]
        else:
            slope = pm.Normal("b_male", 0.0, b_sd)

        eta = a_dept[dept_idx] + slope * male
        p = pm.Deterministic("p_admit", pm.math.invlogit(eta), dims="obs")
        pm.Binomial(
            admissions_cols.target(),
            n=df[admissions_cols.trials()].to_numpy(),
            p=p,
            observed=df[admissions_cols.target()].to_numpy(),
            dims="obs",
        )
    return model


def build_plant_growth_model(
    df: pd.DataFrame,
    *,
    mu_sd: float | None = None,
    sigma_rate: float | None = None,
) -> pm.Model:
    """
    Two-level Gaussian "mean of means":

        mu_bottle[b] = mu_site[site of b] + z_bottle[b] * sigma_biol
        y            ~ Normal(mu_bottle[bottle], sigma_tech)

    Prior scales default to the data scale, as in ``mean_means.stan``.
    """
    labels = group_labels(df)
    y = df[plant_cols.target()].to_numpy().astype(float)
    y_scale = _data_scale(y)
    mu_sd = 5 * y_scale if mu_sd is None else mu_sd
    sigma_rate = 1.0 / y_scale if sigma_rate is None else sigma_rate

    bottle_idx = df[plant_cols.bottle_idx()].to_numpy()
    bottle_site = bottle_site_index(df)
    coords = {"site": labels["site"], "bottle": labels["bottle"], "obs": np.arange(len(y))}

    with pm.Model(coords=coords) as model:
        mu_site    = pm.Normal("mu_site", float(y.mean()), mu_sd, dims="site")
        sigma_biol = pm.Exponential("sigma_biol", sigma_rate)
        sigma_tech = pm.Exponential("sigma_tech", sigma_rate)
        z_bottle   = pm.Normal("z_bottle", 0.0, 1.0, dims="bottle")
        mu_bottle  = pm.Deterministic(
            "mu_bottle", mu_site[bottle_site] + z_bottle * sigma_biol, dims="bottle"
        )
        pm.Normal(plant_cols.target(), mu_bottle[bottle_idx], sigma_tech, observed=y, dims="obs")
    return model


def fit_pymc(
    model: pm.Model,
    settings: SamplerSettings = DEFAULT_SETTINGS,
    *,
    observed_name: str,
    nuts_sampler: str = "pymc",
    posterior_predictive: bool = True,
):
    """
    Sample ``model`` with NUTS, store the pointwise log-likelihood of
    ``observed_name`` and (optionally) posterior predictive draws.
    Thinning from ``settings`` is applied afterwards.
    """
    with model:
        with _timed_section("pymc sample", logger):
            idata = pm.sample(
                **settings.to_pymc(),
                nuts_sampler=nuts_sampler,
                idata_kwargs={"log_likelihood": [observed_name]},
            )
        if posterior_predictive:
            with _timed_section("posterior_predictive", logger):
                idata.extend(pm.sample_posterior_predictive(
                    idata,
                    var_names=[observed_name],
                    random_seed=settings.seed,
                    progressbar=settings.progressbar,
                ))

    idata = thin_idata(idata, settings.thin)
    idata.attrs["interface"] = "pymc"
    return idata


def fit_pymc_admissions(df, settings=DEFAULT_SETTINGS, **model_kw):
    return fit_pymc(build_admissions_model(df, **model_kw), settings, observed_name=admissions_cols.target())


def fit_pymc_plant_growth(df, settings=DEFAULT_SETTINGS, **model_kw):
    return fit_pymc(build_plant_growth_model(df, **model_kw), settings, observed_name=plant_cols.target())


# ───────────────────────────────────────────────────────────────────────
# Smoke test (only run when module executed directly)
# ───────────────────────────────────────────────────────────────────────
if __name__ == "__main__":
    import arviz as az
    from multilevel.data.datasets import load_admissions
    from multilevel.features.prepare import prepare_admissions

    df = prepare_admissions(load_admissions())
    idata = fit_pymc_admissions(df, SamplerSettings.quick())
    print(az.summary(idata, var_names=["a_bar", "sigma_dept", "b_male", "a_dept"]))
