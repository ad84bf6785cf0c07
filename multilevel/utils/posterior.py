# multilevel/utils/posterior.py
from __future__ import annotations

from pathlib import Path
from typing import Mapping, Sequence

import arviz as az
import numpy as np
import pandas as pd

from multilevel.utils.helpers import get_logger

logger = get_logger(__name__)


def save_model(idata, file_path, overwrite: bool = True):
    """Save ArviZ InferenceData to NetCDF."""
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    if file_path.exists() and not overwrite:
        raise FileExistsError(f"{file_path} exists and overwrite=False")
    idata.to_netcdf(str(file_path), engine="h5netcdf")
    print(f"✔︎ saved model → {file_path}")
    return file_path


def load_model(file_path):
    """Load ArviZ InferenceData from NetCDF."""
    idata = az.from_netcdf(str(file_path), engine="h5netcdf")
    print(f"✔︎ loaded model ← {file_path}")
    return idata


def summarize(idata, var_names: Sequence[str] | None = None, hdi_prob: float = 0.95) -> pd.DataFrame:
    """Mean, sd, HDI, R̂ and ESS for the selected variables."""
    return az.summary(idata, var_names=list(var_names) if var_names else None, hdi_prob=hdi_prob)


def group_means_frame(
    idata,
    var: str,
    labels: Sequence | None = None,
    *,
    offset: str | None = None,
) -> pd.DataFrame:
    """
    Per-group posterior mean and 2.5 / 50 / 97.5 % quantiles of ``var``
    (plus the scalar ``offset`` variable, e.g. an intercept, when given).
    """
    post = idata.posterior
    if var not in post:
        raise KeyError(f"{var!r} not in posterior variables {list(post.data_vars)}")
    da = post[var]
    if offset is not None:
        da = da + post[offset]
    group_dims = [d for d in da.dims if d not in ("chain", "draw")]
    if len(group_dims) != 1:
        raise ValueError(f"{var!r} must have exactly one group dimension, has {group_dims}")
    dim = group_dims[0]

    samples = da.stack(sample=("chain", "draw")).transpose(dim, "sample").values
    if labels is None:
        labels = [str(v) for v in da[dim].values]
    if len(labels) != samples.shape[0]:
        raise ValueError(f"got {len(labels)} labels for {samples.shape[0]} groups")

    return pd.DataFrame({
        "group": list(labels),
        "mean": samples.mean(axis=1),
        "sd": samples.std(axis=1),
        "q2.5": np.percentile(samples, 2.5, axis=1),
        "q50": np.percentile(samples, 50.0, axis=1),
        "q97.5": np.percentile(samples, 97.5, axis=1),
    })


def posterior_to_frame(idata, var: str, labels: Sequence | None = None,
                       output_parquet: str | Path | None = None) -> pd.DataFrame:
    """`group_means_frame` that also writes a Parquet side-car when asked."""
    df = group_means_frame(idata, var, labels)
    if output_parquet is not None:
        output_parquet = Path(output_parquet)
        output_parquet.parent.mkdir(parents=True, exist_ok=True)
        df.to_parquet(output_parquet, index=False)
        logger.info("wrote %s summary → %s", var, output_parquet)
    return df


def compare_interfaces(
    results: Mapping[str, object],
    var_map: Mapping[str, str],
    *,
    reference: Mapping[str, float] | pd.Series | None = None,
    reference_name: str = "statsmodels",
) -> pd.DataFrame:
    """
    Posterior means of the same quantity across interfaces.

    ``var_map`` maps interface name → posterior variable holding the
    quantity; ``reference`` adds a column of point estimates (e.g. the
    frequentist fit). Interfaces whose variable is missing are skipped
    with a warning.
    """
    columns: dict[str, pd.Series] = {}
    for name, idata in results.items():
        var = var_map.get(name)
        if var is None:
            continue
        post = idata.posterior
        if var not in post:
            logger.warning("compare_interfaces: %r missing from %s posterior; skipping", var, name)
            continue
        da = post[var].mean(("chain", "draw"))
        if da.ndim == 0:
            columns[name] = pd.Series([float(da)], index=[var])
        else:
            dim = da.dims[0]
            columns[name] = pd.Series(da.values, index=[str(v) for v in da[dim].values])
    if reference is not None:
        columns[reference_name] = pd.Series(reference, dtype=float)
    if not columns:
        return pd.DataFrame()

    label_sets = {frozenset(s.index) for s in columns.values()}
    if len(label_sets) == 1:
        return pd.DataFrame(columns)
    # align on position when the interfaces label groups differently
    lengths = {len(s) for s in columns.values()}
    if len(lengths) == 1:
        index = next(iter(columns.values())).index
        return pd.DataFrame({k: s.to_numpy() for k, s in columns.items()}, index=index)
    return pd.DataFrame(columns)
