import arviz as az
import numpy as np
from sklearn.metrics import mean_squared_error, root_mean_squared_error, mean_absolute_error, r2_score


def _ppc_samples(idata, var):
    """Posterior predictive draws as (obs, samples)."""
    da = idata.posterior_predictive[var]
    obs_dims = [d for d in da.dims if d not in ("chain", "draw")]
    return da.stack(samples=("chain", "draw")).transpose(*obs_dims, "samples").values


def compute_classical_metrics(idata, y_true, var="y"):
    """Compute MSE, RMSE, MAE & R² from the posterior predictive mean."""
    if "posterior_predictive" not in idata.groups() or var not in idata.posterior_predictive:
        print(f"⚠️ No posterior_predictive[{var!r}]; skipping classical metrics.")
        return None
    y_pred = _ppc_samples(idata, var).mean(axis=-1)
    y_true = np.asarray(y_true)

    mse = mean_squared_error(y_true, y_pred)
    rmse = root_mean_squared_error(y_true, y_pred)
    mae = mean_absolute_error(y_true, y_pred)
    r2 = r2_score(y_true, y_pred)

    print(f"▶ Classical MSE : {mse:.3f}")
    print(f"▶ Classical RMSE: {rmse:.3f}")
    print(f"▶ Classical MAE : {mae:.3f}")
    print(f"▶ Classical R²  : {r2:.3f}")

    return {'mse': mse, 'rmse': rmse, 'mae': mae, 'r2': r2}


def compute_bayesian_metrics(idata):
    """PSIS-LOO, WAIC and Pareto k diagnostics for model comparison."""
    if 'log_likelihood' not in idata.groups():
        print("⚠️ InferenceData has no log_likelihood; skipping LOO/WAIC.")
        return None

    try:
        loo = az.loo(idata, pointwise=True)
        waic = az.waic(idata, pointwise=True)
    except Exception as e:
        print(f"⚠️ LOO/WAIC computation failed: {e}")
        return None

    looic = -2 * loo["elpd_loo"]
    waic_val = -2 * waic["elpd_waic"]
    prop_bad_k = float(np.mean(np.asarray(loo["pareto_k"]) > 0.7))

    print(f"▶ LOOIC       : {looic:.1f}, p_loo: {loo['p_loo']:.1f}")
    print(f"▶ WAIC        : {waic_val:.1f}, p_waic: {waic['p_waic']:.1f}")
    print(f"▶ Pareto k>0.7: {prop_bad_k:.2%} of observations")

    return {'loo': loo, 'waic': waic, 'prop_bad_k': prop_bad_k}


def compare_loo(results, ic="loo"):
    """Rank fits (all sharing one likelihood) with ``arviz.compare``."""
    usable = {k: v for k, v in results.items() if 'log_likelihood' in v.groups()}
    skipped = sorted(set(results) - set(usable))
    if skipped:
        print(f"⚠️ No log_likelihood for {skipped}; left out of comparison.")
    if len(usable) < 2:
        print("⚠️ Need at least two fits with log_likelihood to compare.")
        return None
    table = az.compare(usable, ic=ic)
    print("▶ Model comparison:")
    print(table)
    return table


def compute_convergence_diagnostics(idata, var_names=None):
    """Print R̂ and ESS bulk/tail for key parameters."""
    if 'posterior' not in idata.groups():
        print("No posterior group in InferenceData; skipping convergence diagnostics.")
        return None

    try:
        summary = az.summary(idata, var_names=var_names, kind="diagnostics", round_to=2)
    except KeyError as e:
        print(f"Convergence diagnostics skipped: missing vars {e}")
        return None

    print("▶ Convergence diagnostics (R̂, ESS):")
    print(summary[["r_hat", "ess_bulk", "ess_tail"]])
    bad = summary.index[summary["r_hat"] > 1.01].tolist()
    if bad:
        print(f"⚠️ R̂ > 1.01 for: {bad}")
    return summary


def count_divergences(idata):
    if 'sample_stats' not in idata.groups() or 'diverging' not in idata.sample_stats:
        return 0
    return int(idata.sample_stats["diverging"].sum())


def compute_calibration(idata, y_true, var="y", hdi_prob=0.95):
    """
    Fraction of observations inside the central posterior predictive
    interval.
    """
    if "posterior_predictive" not in idata.groups() or var not in idata.posterior_predictive:
        print(f"⚠️ No posterior_predictive[{var!r}]; skipping calibration.")
        return None
    y_ppc = _ppc_samples(idata, var)
    lower = np.percentile(y_ppc, (1 - hdi_prob) / 2 * 100, axis=-1)
    upper = np.percentile(y_ppc, (1 + hdi_prob) / 2 * 100, axis=-1)
    y_true = np.asarray(y_true)
    within = ((y_true >= lower) & (y_true <= upper)).mean()
    print(f"▶ Calibration: {within:.2%} of true values within {int(hdi_prob*100)}% interval")
    return within


if __name__ == "__main__":
    np.random.seed(42)
    y_true = np.random.normal(0, 1, size=10)
    y_obs = np.random.normal(loc=y_true, scale=0.5, size=(2, 5, 10))
    idata = az.from_dict(
        posterior={
            'mu_site': np.random.normal(0, 1, size=(2, 5, 3)),
            'sigma_tech': np.abs(np.random.normal(1, 0.2, size=(2, 5))),
        },
        posterior_predictive={'y': y_obs},
        log_likelihood={'y': np.random.normal(-1, 0.5, size=(2, 5, 10))},
        observed_data={'y': y_true},
        dims={'y': ['obs'], 'mu_site': ['site']},
    )

    print("=== Classical Metrics ===")
    compute_classical_metrics(idata, y_true)
    print("\n=== Calibration ===")
    compute_calibration(idata, y_true)
    print("\n=== Bayesian Metrics ===")
    compute_bayesian_metrics(idata)
    print("\n=== Convergence Diagnostics ===")
    compute_convergence_diagnostics(idata, ["mu_site", "sigma_tech"])
