"""
End-to-end runs: prepare each dataset, fit it through every requested
interface, print summaries / diagnostics, and write plots plus NetCDF
files under ``out_dir``.
"""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Iterable

import matplotlib
import matplotlib.pyplot as plt
import pandas as pd

from multilevel.config import SamplerSettings, DEFAULT_SETTINGS
from multilevel.data.datasets import load_admissions, load_plant_growth
from multilevel.data.schema import admissions_cols, plant_cols
from multilevel.features.prepare import prepare_admissions, prepare_plant_growth
from multilevel.plotting import (
    plot_admit_rates,
    plot_forest_comparison,
    plot_observations,
    plot_observed_vs_predicted,
    plot_parameter,
    plot_ppc,
    plot_trace,
    save_figure,
)
from multilevel.utils.diagnostics import (
    compare_loo,
    compute_bayesian_metrics,
    compute_classical_metrics,
    compute_convergence_diagnostics,
    count_divergences,
)
from multilevel.utils.helpers import get_logger
from multilevel.utils.posterior import compare_interfaces, group_means_frame, save_model

logger = get_logger(__name__)

INTERFACES = ("statsmodels", "bambi", "pymc", "stan")

STAN_PPC_VAR = "y_rep"
PLANT_PARAMS = ["mu_site", "mu_bottle", "sigma_tech", "sigma_biol"]
ADMISSIONS_PARAMS = ["a_bar", "sigma_dept", "b_male", "a_dept"]


def _check_interfaces(interfaces: Iterable[str] | None) -> list[str]:
    chosen = list(INTERFACES if interfaces is None else interfaces)
    unknown = sorted(set(chosen) - set(INTERFACES))
    if unknown:
        raise ValueError(f"unknown interfaces {unknown}; choose from {list(INTERFACES)}")
    return chosen


def _report(name: str, idata, var_names, y_true=None, ppc_var=None) -> None:
    print(f"\n▼▼ {name}")
    compute_convergence_diagnostics(idata, var_names)
    n_div = count_divergences(idata)
    if n_div:
        print(f"⚠️ {n_div} divergent transitions")
    compute_bayesian_metrics(idata)
    if y_true is not None and ppc_var is not None:
        compute_classical_metrics(idata, y_true, var=ppc_var)


# ───────────────────────────────────────────────────────────────────────
# Plant growth (site / bottle / replicate)
# ───────────────────────────────────────────────────────────────────────
def run_plant_growth(
    settings: SamplerSettings = DEFAULT_SETTINGS,
    out_dir: str | Path = "outputs/plant_growth",
    interfaces: Iterable[str] | None = None,
    *,
    data_path: str | Path | None = None,
) -> dict:
    chosen = _check_interfaces(interfaces)
    out_dir = Path(out_dir)
    df = prepare_plant_growth(load_plant_growth(data_path))
    y = plant_cols.target()
    results: dict = {"data": df, "fits": {}}
    predictions: dict[str, object] = {}

    save_figure(plot_observations(df), out_dir / "observations.png")

    if "statsmodels" in chosen:
        from multilevel.models.frequentist import fit_mixed_plant_growth, predict_mixed

        mdl, summ = fit_mixed_plant_growth(df)
        print("\n▼▼ statsmodels MixedLM")
        print(mdl.summary())
        print("VarCorr:\n", summ.var_corr)
        results["statsmodels"] = summ
        predictions["MixedLM"] = predict_mixed(mdl, df)

    if "bambi" in chosen:
        from multilevel.models.formula import fit_bambi_plant_growth

        results["fits"]["bambi"] = fit_bambi_plant_growth(df, settings)
        _report("bambi", results["fits"]["bambi"], None, df[y], y)

    if "pymc" in chosen:
        from multilevel.models.pymc_models import fit_pymc_plant_growth

        results["fits"]["pymc"] = fit_pymc_plant_growth(df, settings)
        _report("pymc", results["fits"]["pymc"], PLANT_PARAMS, df[y], y)

    if "stan" in chosen:
        from multilevel.models.stan_models import fit_stan_plant_growth, sampler_diagnostics

        idata, fit = fit_stan_plant_growth(df, settings, return_fit=True)
        results["fits"]["stan"] = idata
        sampler_diagnostics(fit)
        _report("stan", idata, PLANT_PARAMS, df[y], STAN_PPC_VAR)

    bayes = {k: v for k, v in results["fits"].items() if k in ("pymc", "stan")}
    for name, idata in bayes.items():
        bottle_means = group_means_frame(idata, "mu_bottle")
        lookup = dict(zip(bottle_means["group"], bottle_means["mean"]))
        predictions[name] = df[plant_cols.bottle_id()].map(lookup).to_numpy()
        for var in PLANT_PARAMS:
            save_figure(plot_parameter(idata, var), out_dir / name / f"{var}.png")
        save_figure(plot_trace(idata, ["mu_site", "sigma_tech", "sigma_biol"]),
                    out_dir / name / "trace.png")
        pp_var = STAN_PPC_VAR if name == "stan" else None
        save_figure(plot_ppc(idata, y, pp_var, num_pp_samples=50), out_dir / name / "ppc.png")
        save_model(idata, out_dir / name / "posterior.nc")
        plt.close("all")

    if predictions:
        save_figure(plot_observed_vs_predicted(df, predictions),
                    out_dir / "observed_vs_predicted.png")

    if bayes:
        reference = results["statsmodels"].site_means if "statsmodels" in results else None
        results["site_means"] = compare_interfaces(
            bayes, {k: "mu_site" for k in bayes}, reference=reference
        )
        print("\n▶ Site means by interface:\n", results["site_means"])
        save_figure(plot_forest_comparison(bayes, ["sigma_tech", "sigma_biol"]),
                    out_dir / "sigma_comparison.png")
        results["loo"] = compare_loo(bayes)
    plt.close("all")
    return results


# ───────────────────────────────────────────────────────────────────────
# Admissions (binomial)
# ───────────────────────────────────────────────────────────────────────
def run_admissions(
    settings: SamplerSettings = DEFAULT_SETTINGS,
    out_dir: str | Path = "outputs/admissions",
    interfaces: Iterable[str] | None = None,
    *,
    varying_slopes: bool = False,
) -> dict:
    chosen = _check_interfaces(interfaces)
    out_dir = Path(out_dir)
    df = prepare_admissions(load_admissions())
    results: dict = {"data": df, "fits": {}}

    if "statsmodels" in chosen:
        from multilevel.models.frequentist import fit_glmm_admissions, glmm_dept_effects

        glmm, fixed = fit_glmm_admissions(df)
        print("\n▼▼ statsmodels BinomialBayesMixedGLM")
        print(glmm.summary())
        results["statsmodels"] = {"fixed": fixed, "dept": glmm_dept_effects(glmm)}

    if "bambi" in chosen:
        from multilevel.models.formula import fit_bambi_admissions

        results["fits"]["bambi"] = fit_bambi_admissions(df, settings)
        _report("bambi", results["fits"]["bambi"], None)

    if "pymc" in chosen:
        from multilevel.models.pymc_models import fit_pymc_admissions

        results["fits"]["pymc"] = fit_pymc_admissions(df, settings, varying_slopes=varying_slopes)
        _report("pymc", results["fits"]["pymc"],
                ["a_bar", "sigma_dept", "a_dept"] + ([] if varying_slopes else ["b_male"]))

    if "stan" in chosen:
        from multilevel.models.stan_models import fit_stan_admissions, sampler_diagnostics

        idata, fit = fit_stan_admissions(df, settings, return_fit=True)
        results["fits"]["stan"] = idata
        sampler_diagnostics(fit)
        _report("stan", idata, ADMISSIONS_PARAMS)

    for name in ("pymc", "stan"):
        idata = results["fits"].get(name)
        if idata is None:
            continue
        save_figure(plot_admit_rates(df, idata), out_dir / name / "admit_rates.png")
        save_figure(plot_parameter(idata, "a_dept"), out_dir / name / "a_dept.png")
        save_model(idata, out_dir / name / "posterior.nc")
        plt.close("all")

    male = admissions_cols.male()
    male_effect = {"bambi": male, "pymc": "b_male", "stan": "b_male"}
    fits = results["fits"]
    if fits:
        reference = None
        if "statsmodels" in results:
            reference = pd.Series({male: results["statsmodels"]["fixed"].loc[male, "mean"]})
        results["male_effect"] = compare_interfaces(fits, male_effect, reference=reference)
        print("\n▶ Gender (male) effect on the logit scale:\n", results["male_effect"])
    return results


# ───────────────────────────────────────────────────────────────────────
# Command line
# ───────────────────────────────────────────────────────────────────────
def main(argv=None):
    parser = argparse.ArgumentParser(description="Hierarchical model walkthrough")
    parser.add_argument("dataset", choices=["plants", "admissions", "all"])
    parser.add_argument("--interfaces", nargs="+", choices=INTERFACES, default=list(INTERFACES))
    parser.add_argument("--out-dir", default="outputs")
    parser.add_argument("--quick", action="store_true", help="small sampling budget")
    parser.add_argument("--data", default=None, help="plant-growth CSV (default: simulate)")
    args = parser.parse_args(argv)

    matplotlib.use("Agg")
    settings = SamplerSettings.from_env(quick=args.quick)
    logger.info("sampler settings: %s", settings.as_dict())

    out = Path(args.out_dir)
    if args.dataset in ("plants", "all"):
        run_plant_growth(settings, out / "plant_growth", args.interfaces, data_path=args.data)
    if args.dataset in ("admissions", "all"):
        run_admissions(settings, out / "admissions", args.interfaces)


if __name__ == "__main__":
    main()
