"""
Diagnostic and comparison plots.

Every function returns the matplotlib Figure so callers (tests, the
walkthrough) decide whether to show or save it.
"""
from __future__ import annotations

from pathlib import Path
from typing import Mapping, Sequence

import arviz as az
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from multilevel.data.schema import admissions_cols, plant_cols
from multilevel.utils.helpers import get_logger

logger = get_logger(__name__)


def save_figure(fig, path, dpi: int = 120) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=dpi, bbox_inches="tight")
    logger.info("saved figure → %s", path)
    return path


def plot_observations(df: pd.DataFrame, figsize=(8, 4)):
    """Growth per bottle, coloured by site."""
    site, bottle_id, y = plant_cols.site(), plant_cols.bottle_id(), plant_cols.target()
    fig, ax = plt.subplots(figsize=figsize)
    sites = list(dict.fromkeys(df[site]))
    colors = plt.cm.tab10(np.linspace(0, 1, max(len(sites), 1)))
    order = list(dict.fromkeys(df[bottle_id]))
    xpos = {b: i for i, b in enumerate(order)}
    for color, s in zip(colors, sites):
        sub = df[df[site] == s]
        ax.scatter(sub[bottle_id].map(xpos), sub[y], color=color, label=str(s), alpha=.8)
    ax.set_xticks(range(len(order)))
    ax.set_xticklabels(order, rotation=45, ha="right")
    ax.set_xlabel(bottle_id)
    ax.set_ylabel(y)
    ax.legend(title=site)
    fig.tight_layout()
    return fig


def plot_observed_vs_predicted(
    df: pd.DataFrame,
    predictions: Mapping[str, Sequence[float]] | Sequence[float],
    figsize=(10, 3.5),
):
    """
    One panel per site: observations (coloured) with per-row predictions
    as black markers. ``predictions`` may be a single array or a dict of
    label → array to overlay several fits.
    """
    if not isinstance(predictions, Mapping):
        predictions = {"prediction": predictions}
    for label, pred in predictions.items():
        if len(pred) != len(df):
            raise ValueError(f"{label}: {len(pred)} predictions for {len(df)} rows")

    site, bottle, y = plant_cols.site(), plant_cols.bottle(), plant_cols.target()
    sites = list(dict.fromkeys(df[site]))
    fig, axes = plt.subplots(1, len(sites), figsize=figsize, sharey=True, squeeze=False)
    markers = ["o", "D", "s", "^", "v"]
    for ax, s in zip(axes[0], sites):
        mask = (df[site] == s).to_numpy()
        sub = df[mask]
        ax.scatter(sub[bottle].astype(str), sub[y], alpha=.7, label="observed")
        for m, (label, pred) in zip(markers, predictions.items()):
            ax.scatter(sub[bottle].astype(str), np.asarray(pred)[mask],
                       color="black", marker=m, s=40, label=label)
        ax.set_title(f"{site} {s}")
        ax.set_xlabel(bottle)
    axes[0][0].set_ylabel(y)
    axes[0][-1].legend(fontsize="small")
    fig.tight_layout()
    return fig


def plot_parameter(idata, var: str, inner: float = 0.80, outer: float = 0.95, figsize=(6, 4)):
    """
    Interval plot of one parameter like rstan's ``plot(fit, pars=...)``:
    posterior median, thick ``inner`` and thin ``outer`` central intervals.
    """
    if var not in idata.posterior:
        raise KeyError(f"{var!r} not in posterior variables {list(idata.posterior.data_vars)}")
    if not 0 < inner < outer < 1:
        raise ValueError(f"need 0 < inner < outer < 1, got {inner}, {outer}")

    da = idata.posterior[var].stack(sample=("chain", "draw"))
    element_dims = [d for d in da.dims if d != "sample"]
    if element_dims:
        da = da.stack(element=element_dims).transpose("element", "sample")
        labels = []
        for v in da["element"].values:
            v = v if isinstance(v, tuple) else (v,)
            labels.append(f"{var}[{', '.join(str(i) for i in v)}]")
        values = da.values
    else:
        labels, values = [var], da.values[np.newaxis, :]

    pct = [(1 - outer) / 2, (1 - inner) / 2, 0.5, (1 + inner) / 2, (1 + outer) / 2]
    lo_out, lo_in, med, hi_in, hi_out = np.percentile(values, [100 * p for p in pct], axis=1)

    fig, ax = plt.subplots(figsize=figsize)
    ypos = np.arange(len(labels))
    ax.hlines(ypos, lo_out, hi_out, color="tab:red", linewidth=1)
    ax.hlines(ypos, lo_in, hi_in, color="tab:red", linewidth=4)
    ax.scatter(med, ypos, color="white", edgecolor="tab:red", zorder=3)
    ax.set_yticks(ypos)
    ax.set_yticklabels(labels)
    ax.invert_yaxis()
    ax.set_title(f"{var}: median, {inner:.0%} and {outer:.0%} intervals")
    fig.tight_layout()
    return fig


def plot_forest_comparison(results: Mapping[str, object], var_names, figsize=(7, 5)):
    """Same parameters from several interfaces on one forest plot (95% HDI)."""
    axes = az.plot_forest(list(results.values()), model_names=list(results.keys()),
                          var_names=list(var_names), combined=True, hdi_prob=0.95,
                          figsize=figsize)
    return np.ravel(axes)[0].figure


def plot_trace(idata, var_names=None):
    axes = az.plot_trace(idata, var_names=var_names)
    fig = np.ravel(axes)[0].figure
    fig.tight_layout()
    return fig


def plot_ppc(idata, var: str | None = None, pp_var: str | None = None,
             num_pp_samples: int = 100):
    """
    Posterior predictive density overlay. ``pp_var`` names the predictive
    variable when it differs from the observed one (Stan's ``y_rep``).
    """
    data_pairs = {var: pp_var} if var and pp_var else None
    ax = az.plot_ppc(idata, var_names=[var] if var else None, data_pairs=data_pairs,
                     num_pp_samples=num_pp_samples)
    return np.ravel(ax)[0].figure


def plot_admit_rates(df: pd.DataFrame, idata, var: str = "p_admit", figsize=(8, 4)):
    """
    Observed admission rate per department x gender against the posterior
    mean and 95% interval of the predicted rate.
    """
    if var not in idata.posterior:
        raise KeyError(f"{var!r} not in posterior variables {list(idata.posterior.data_vars)}")
    da = idata.posterior[var]
    obs_dim = [d for d in da.dims if d not in ("chain", "draw")][0]
    samples = da.stack(sample=("chain", "draw")).transpose(obs_dim, "sample").values
    mean = samples.mean(axis=1)
    lo, hi = np.percentile(samples, [2.5, 97.5], axis=1)

    fig, ax = plt.subplots(figsize=figsize)
    x = np.arange(len(df))
    ax.errorbar(x, mean, yerr=[mean - lo, hi - mean], fmt="o", color="black",
                mfc="none", label="posterior")
    ax.scatter(x, df[admissions_cols.rate()], color="tab:blue", zorder=3, label="observed")
    ax.set_xticks(x)
    ax.set_xticklabels([
        f"{d}\n{g[0].upper()}"
        for d, g in zip(df[admissions_cols.dept()], df[admissions_cols.gender()])
    ])
    ax.set_ylabel("admission rate")
    ax.set_ylim(0, 1)
    ax.legend()
    fig.tight_layout()
    return fig
