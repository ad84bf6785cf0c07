# ─────────────────────────────────────────────────────────────
# multilevel/models/stan_models.py
# "The harder way": models written from scratch in Stan,
# compiled and sampled by CmdStan through CmdStanPy.
# Every fit comes back as arviz.InferenceData.
# ─────────────────────────────────────────────────────────────
from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Mapping, Sequence

import arviz as az
import pandas as pd
from cmdstanpy import CmdStanModel

from multilevel.config import SamplerSettings, DEFAULT_SETTINGS
from multilevel.data.schema import admissions_cols, plant_cols
from multilevel.features.prepare import (
    build_stan_data_admissions,
    build_stan_data_plant_growth,
    group_labels,
)
from multilevel.utils.helpers import _timed_section, get_logger

logger = get_logger(__name__)

STAN_DIR = Path(__file__).parent / "stan"


def stan_file_path(name: str) -> Path:
    """Path of a Stan program shipped with the package (``.stan`` optional)."""
    fname = name if name.endswith(".stan") else f"{name}.stan"
    path = STAN_DIR / fname
    if not path.is_file():
        available = sorted(p.stem for p in STAN_DIR.glob("*.stan"))
        raise FileNotFoundError(f"no Stan program {fname!r}; available: {available}")
    return path


def fit_bayesian_cmdstanpy(
    stan_data: dict,
    *,
    stan_file: str | Path | None = None,
    stan_code: str | None = None,
    settings: SamplerSettings = DEFAULT_SETTINGS,
    posterior_predictive: Sequence[str] | None = None,
    log_likelihood: str | Mapping[str, str] | None = None,
    observed_data: Mapping | None = None,
    coords: Mapping[str, Sequence] | None = None,
    dims: Mapping[str, Sequence[str]] | None = None,
    force_compile: bool = False,
    return_fit: bool = False,
):
    """
    Compile a Stan program and sample it with NUTS, returning ArviZ
    InferenceData.

    Exactly one of ``stan_file`` or ``stan_code`` must be given. Source code
    is written and compiled in a temporary directory that is removed
    afterwards (source and executable), even when compilation or sampling
    fails.

    With ``return_fit=True`` the raw ``CmdStanMCMC`` is returned alongside
    the InferenceData as ``(idata, fit)``.
    """
    if (stan_file is None) == (stan_code is None):
        raise ValueError("pass exactly one of stan_file or stan_code")

    tmp_dir = None
    if stan_code is not None:
        tmp_dir = tempfile.TemporaryDirectory(prefix="multilevel_stan_")
        stan_file = Path(tmp_dir.name) / "model.stan"
        stan_file.write_text(stan_code)

    try:
        with _timed_section("compile", logger):
            model = CmdStanModel(stan_file=str(stan_file), force_compile=force_compile)

        with _timed_section("sample", logger):
            fit = model.sample(data=stan_data, **settings.to_cmdstanpy())

        idata = az.from_cmdstanpy(
            posterior=fit,
            posterior_predictive=list(posterior_predictive) if posterior_predictive else None,
            log_likelihood=log_likelihood,
            observed_data=observed_data,
            coords=dict(coords) if coords else None,
            dims={k: list(v) for k, v in dims.items()} if dims else None,
        )
    finally:
        if tmp_dir is not None:
            tmp_dir.cleanup()

    idata.attrs["interface"] = "cmdstanpy"
    idata.attrs["stan_file"] = Path(stan_file).name
    if return_fit:
        return idata, fit
    return idata


def sampler_diagnostics(fit) -> str:
    """CmdStan's own ``diagnose`` report (divergences, tree depth, E-BFMI)."""
    report = fit.diagnose()
    logger.info("CmdStan diagnose:\n%s", report)
    return report


# ───────────────────────────────────────────────────────────────────────
# Dataset-specific fits
# ───────────────────────────────────────────────────────────────────────
def fit_stan_plant_growth(
    df: pd.DataFrame,
    settings: SamplerSettings = DEFAULT_SETTINGS,
    *,
    stan_file: str | Path | None = None,
    return_fit: bool = False,
):
    """Fit ``mean_means.stan`` to prepared plant-growth data."""
    stan_data = build_stan_data_plant_growth(df)
    labels = group_labels(df)
    y = plant_cols.target()
    return fit_bayesian_cmdstanpy(
        stan_data,
        stan_file=stan_file or stan_file_path("mean_means"),
        settings=settings,
        posterior_predictive=["y_rep"],
        log_likelihood={y: "log_lik"},
        observed_data={y: stan_data["y"]},
        coords={"site": labels["site"], "bottle": labels["bottle"],
                "obs": list(range(stan_data["N"]))},
        dims={"mu_site": ["site"], "mu_bottle": ["bottle"], "z_bottle": ["bottle"],
              "y_rep": ["obs"], y: ["obs"]},
        return_fit=return_fit,
    )


def fit_stan_admissions(
    df: pd.DataFrame,
    settings: SamplerSettings = DEFAULT_SETTINGS,
    *,
    stan_file: str | Path | None = None,
    return_fit: bool = False,
):
    """Fit ``admissions.stan`` to prepared admissions data."""
    stan_data = build_stan_data_admissions(df)
    labels = group_labels(df)
    admit = admissions_cols.target()
    return fit_bayesian_cmdstanpy(
        stan_data,
        stan_file=stan_file or stan_file_path("admissions"),
        settings=settings,
        posterior_predictive=["admit_rep"],
        log_likelihood={admit: "log_lik"},
        observed_data={admit: stan_data["admit"]},
        coords={"dept": labels["dept"], "obs": list(range(stan_data["N"]))},
        dims={"a_dept": ["dept"], "z_dept": ["dept"], "admit_rep": ["obs"],
              "p_admit": ["obs"], admit: ["obs"]},
        return_fit=return_fit,
    )


# ───────────────────────────────────────────────────────────────────────
# Smoke test (only run when module executed directly)
# ───────────────────────────────────────────────────────────────────────
if __name__ == "__main__":
    from multilevel.data.datasets import simulate_plant_growth
    from multilevel.features.prepare import prepare_plant_growth

    # === Editable settings ===
    SETTINGS = SamplerSettings.quick()

    df = prepare_plant_growth(simulate_plant_growth())
    idata, fit = fit_stan_plant_growth(df, SETTINGS, return_fit=True)
    print(az.summary(idata, var_names=["mu_site", "sigma_tech", "sigma_biol"]))
    sampler_diagnostics(fit)
