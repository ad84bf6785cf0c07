"""
Frequentist mixed-effects baselines using statsmodels ("the easier way").

Formulas implemented (lme4 notation):
    plant growth : y ~ 1 + (1 | site/bottle)
    admissions   : admitted ~ 1 + male + (1 | dept)   (binomial GLMM)

The plant-growth model is a MixedLM with ``site`` as the grouping factor
and a ``bottle`` variance component nested inside it. The admissions GLMM
is fitted with statsmodels' variational Bayes on the Bernoulli expansion.
"""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from statsmodels.genmod.bayes_mixed_glm import BinomialBayesMixedGLM

from multilevel.data.schema import admissions_cols, plant_cols
from multilevel.features.prepare import expand_admissions_to_bernoulli
from multilevel.utils.helpers import get_logger

logger = get_logger(__name__)


@dataclass
class MixedSummary:
    """Point estimates pulled out of a nested MixedLM fit."""
    intercept: float
    site_effects: pd.Series
    bottle_effects: pd.Series
    site_means: pd.Series
    bottle_means: pd.Series
    var_corr: pd.DataFrame


def _vc_label(name: str) -> str:
    # "bottle[C(bottle_id)[A_1]]" -> "A_1"
    return name.rsplit("[", 1)[-1].rstrip("]")


def fit_mixed_plant_growth(df: pd.DataFrame, *, reml: bool = True):
    """Return (fitted MixedLM result, MixedSummary)."""
    site, bottle_id, y = plant_cols.site(), plant_cols.bottle_id(), plant_cols.target()
    data = df[[site, bottle_id, y]].copy()
    data[[site, bottle_id]] = data[[site, bottle_id]].astype(str)

    mdl = smf.mixedlm(
        f"{y} ~ 1",                                   # a grand mean (intercept)
        data=data,
        groups=site,                                  # site-level offset
        re_formula="1",
        vc_formula={"bottle": f"0 + C({bottle_id})"},  # bottle offsets within site
    ).fit(reml=reml)

    return mdl, summarize_mixed(mdl, data)


def summarize_mixed(mdl, data: pd.DataFrame) -> MixedSummary:
    intercept = float(mdl.fe_params["Intercept"])

    site_effects: dict[str, float] = {}
    bottle_effects: dict[str, float] = {}
    bottle_site: dict[str, str] = {}
    for site, re in mdl.random_effects.items():
        site = str(site)
        # first entry is the site intercept, the rest are bottle components
        site_effects[site] = float(re.iloc[0])
        for name, value in re.iloc[1:].items():
            label = _vc_label(str(name))
            bottle_effects[label] = float(value)
            bottle_site[label] = site

    site_effects = pd.Series(site_effects, name="site_effect")
    bottle_effects = pd.Series(bottle_effects, name="bottle_effect")
    site_means = (intercept + site_effects).rename("site_mean")
    bottle_means = pd.Series(
        {b: intercept + site_effects[bottle_site[b]] + e for b, e in bottle_effects.items()},
        name="bottle_mean",
    )
    return MixedSummary(
        intercept=intercept,
        site_effects=site_effects,
        bottle_effects=bottle_effects,
        site_means=site_means,
        bottle_means=bottle_means,
        var_corr=var_corr(mdl),
    )


def var_corr(mdl) -> pd.DataFrame:
    """
    Variance / SD at each level, like lme4's ``VarCorr``:
      • Residual    – among technical replicates, within bottle
      • bottle:site – among bottles, within site
      • site        – among sites
    """
    site_var = float(np.asarray(mdl.cov_re)[0, 0])
    bottle_var = float(np.asarray(mdl.vcomp)[0]) if len(mdl.vcomp) else 0.0
    resid_var = float(mdl.scale)
    tbl = pd.DataFrame(
        {"variance": [site_var, bottle_var, resid_var]},
        index=pd.Index(["site", "bottle:site", "Residual"], name="group"),
    )
    tbl["sd"] = np.sqrt(tbl["variance"].clip(lower=0))
    return tbl


def predict_mixed(mdl, df: pd.DataFrame | None = None) -> np.ndarray:
    """
    Fitted values including the random effects (lme4's ``predict(m1)``).
    Only in-sample prediction is supported.
    """
    fitted = np.asarray(mdl.fittedvalues)
    if df is not None and len(df) != len(fitted):
        raise ValueError(
            f"predict_mixed only supports the fitted rows ({len(fitted)}), got {len(df)}"
        )
    return fitted


def fit_glmm_admissions(df: pd.DataFrame, *, vcp_p: float = 1.0, fe_p: float = 2.0):
    """
    Binomial GLMM ``admitted ~ male + (1 | dept)``.
    Returns (result, fixed-effects DataFrame with posterior mean / sd).
    """
    long = expand_admissions_to_bernoulli(df)
    dept = admissions_cols.dept()
    long[dept] = long[dept].astype(str)
    model = BinomialBayesMixedGLM.from_formula(
        f"{admissions_cols.bernoulli_target()} ~ {admissions_cols.male()}",
        {dept: f"0 + C({dept})"},
        long,
        vcp_p=vcp_p,
        fe_p=fe_p,
    )
    result = model.fit_vb()
    fixed = pd.DataFrame(
        {"mean": result.fe_mean, "sd": result.fe_sd},
        index=model.fep_names,
    )
    logger.info("GLMM fixed effects:\n%s", fixed)
    return result, fixed


def glmm_dept_effects(result) -> pd.DataFrame:
    """Department random intercepts (posterior mean / sd) from the GLMM."""
    re = result.random_effects(admissions_cols.dept())
    re.index = [_vc_label(str(i)) for i in re.index]
    return re


if __name__ == "__main__":
    from multilevel.data.datasets import simulate_plant_growth, load_admissions
    from multilevel.features.prepare import prepare_plant_growth, prepare_admissions

    plants = prepare_plant_growth(simulate_plant_growth())
    m1, summ = fit_mixed_plant_growth(plants)
    print(m1.summary())
    print("site means:\n", summ.site_means)
    print("bottle means:\n", summ.bottle_means)
    print(summ.var_corr)

    adm = prepare_admissions(load_admissions())
    glmm, fixed = fit_glmm_admissions(adm)
    print(fixed)
    print(glmm_dept_effects(glmm))
