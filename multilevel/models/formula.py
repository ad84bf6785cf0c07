"""
Formula interface to PyMC through Bambi (lme4 / brms-style syntax).

Formulas used:
    admissions   : p(admit, applications) ~ 1 + male + (1 | dept)
    plant growth : y ~ 1 + (1 | site) + (1 | bottle_id)

``bottle_id`` is unique across sites, so ``(1 | bottle_id)`` is the
same grouping as lme4's ``(1 | site/bottle)`` bottle term.
"""
from __future__ import annotations

import bambi as bmb
import numpy as np
import pandas as pd

from multilevel.config import SamplerSettings, DEFAULT_SETTINGS
from multilevel.data.schema import admissions_cols, plant_cols
from multilevel.utils.helpers import _timed_section, get_logger, thin_idata

logger = get_logger(__name__)

ADMISSIONS_FORMULA = (
    f"p({admissions_cols.target()}, {admissions_cols.trials()}) ~ "
    f"1 + {admissions_cols.male()} + (1 | {admissions_cols.dept()})"
)
PLANT_GROWTH_FORMULA = (
    f"{plant_cols.target()} ~ 1 + (1 | {plant_cols.site()}) + (1 | {plant_cols.bottle_id()})"
)


def build_bambi_admissions(df: pd.DataFrame, priors: dict | None = None) -> bmb.Model:
    dept = admissions_cols.dept()
    data = df[[dept, admissions_cols.male(), admissions_cols.target(), admissions_cols.trials()]].copy()
    data[dept] = data[dept].astype(str)
    return bmb.Model(ADMISSIONS_FORMULA, data, family="binomial", priors=priors)


def build_bambi_plant_growth(df: pd.DataFrame, priors: dict | None = None) -> bmb.Model:
    groups = plant_cols.group_cols()
    data = df[groups + [plant_cols.target()]].copy()
    data[groups] = data[groups].astype(str)
    return bmb.Model(PLANT_GROWTH_FORMULA, data, family="gaussian", priors=priors)


def fit_bambi(
    model: bmb.Model,
    settings: SamplerSettings = DEFAULT_SETTINGS,
    *,
    posterior_predictive: bool = True,
):
    """Sample a Bambi model; keeps log-likelihood for LOO / WAIC."""
    with _timed_section("bambi fit", logger):
        idata = model.fit(
            **settings.to_bambi(),
            idata_kwargs={"log_likelihood": True},
        )
    if posterior_predictive:
        model.predict(idata, kind="response", inplace=True)
    idata = thin_idata(idata, settings.thin)
    idata.attrs["interface"] = "bambi"
    return idata


def group_effect_means(idata, term: str, intercept: str = "Intercept") -> pd.Series:
    """
    Posterior mean of ``Intercept + (1 | term)`` per level, i.e. the group
    means on the linear-predictor scale.
    """
    post = idata.posterior
    key = f"1|{term}"
    if key not in post:
        raise KeyError(f"{key!r} not in posterior variables {list(post.data_vars)}")
    offsets = post[key]
    level_dim = [d for d in offsets.dims if d not in ("chain", "draw")][0]
    means = (post[intercept] + offsets).mean(("chain", "draw"))
    return pd.Series(np.asarray(means.values), index=[str(v) for v in offsets[level_dim].values],
                     name=f"{term}_mean")


def fit_bambi_admissions(df, settings=DEFAULT_SETTINGS, priors=None):
    return fit_bambi(build_bambi_admissions(df, priors), settings)


def fit_bambi_plant_growth(df, settings=DEFAULT_SETTINGS, priors=None):
    return fit_bambi(build_bambi_plant_growth(df, priors), settings)


if __name__ == "__main__":
    from multilevel.data.datasets import simulate_plant_growth
    from multilevel.features.prepare import prepare_plant_growth

    df = prepare_plant_growth(simulate_plant_growth())
    model = build_bambi_plant_growth(df)
    print(model)
    idata = fit_bambi(model, SamplerSettings.quick())
    print(group_effect_means(idata, plant_cols.site()))
