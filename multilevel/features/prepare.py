"""
Dataset preparation for the mixed-effects, PyMC, Bambi and Stan fits.

Each `prepare_*` function returns a *fresh copy* with integer group
indices added; the `build_stan_data_*` helpers turn a prepared frame into
the dictionary CmdStan reads (1-based indices).
"""
from __future__ import annotations

import numpy as np
import pandas as pd

from multilevel.data.schema import admissions_cols, plant_cols


def _first_appearance_codes(series: pd.Series) -> tuple[np.ndarray, pd.Index]:
    """0-based codes in order of first appearance (R's `match(x, unique(x))`)."""
    codes, uniques = pd.factorize(series, sort=False)
    return codes.astype(int), pd.Index(uniques)


# ───────────────────────────────────────────────────────────────────────
# Admissions
# ───────────────────────────────────────────────────────────────────────
def prepare_admissions(df: pd.DataFrame) -> pd.DataFrame:
    """
    Validate counts and add model columns:
      • male       (1 for male applicants, 0 otherwise)
      • dept       (categorical)
      • dept_idx   (0-based department code)
      • admit_rate (observed admit / applications)
    """
    if df.empty:
        raise ValueError("admissions data is empty")
    missing = [c for c in admissions_cols.required() if c not in df.columns]
    if missing:
        raise ValueError(f"admissions data is missing columns: {missing}")

    dept, gender = admissions_cols.dept(), admissions_cols.gender()
    target, failures, trials = (admissions_cols.target(), admissions_cols.failures(),
                                admissions_cols.trials())

    out = df.copy()
    if out[[dept, gender]].isna().any().any():
        raise ValueError("admissions department / gender labels contain NaN")
    counts = out[[target, failures, trials]]
    if counts.isna().any().any():
        raise ValueError("admissions counts contain NaN")
    if (counts < 0).any().any():
        raise ValueError("admissions counts must be non-negative")
    bad = out[target] + out[failures] != out[trials]
    if bad.any():
        raise ValueError(
            f"admit + reject != applications for rows {out.index[bad].tolist()}"
        )

    out[gender] = out[gender].str.strip().str.lower()
    unknown = set(out[gender]) - {"male", "female"}
    if unknown:
        raise ValueError(f"unexpected gender labels: {sorted(unknown)}")
    out[admissions_cols.male()] = (out[gender] == "male").astype(int)

    out[dept] = pd.Categorical(out[dept], categories=sorted(out[dept].unique()))
    out[admissions_cols.dept_idx()] = out[dept].cat.codes.astype(int)
    out[admissions_cols.rate()] = out[target] / out[trials]
    return out


def expand_admissions_to_bernoulli(df: pd.DataFrame) -> pd.DataFrame:
    """
    Long format: one row per applicant with ``admitted`` in {0, 1}.
    Required by GLMM routines that only accept Bernoulli outcomes.
    """
    prepared = df if admissions_cols.male() in df.columns else prepare_admissions(df)
    outcome = admissions_cols.bernoulli_target()
    admitted = prepared.loc[prepared.index.repeat(prepared[admissions_cols.target()])].copy()
    admitted[outcome] = 1
    rejected = prepared.loc[prepared.index.repeat(prepared[admissions_cols.failures()])].copy()
    rejected[outcome] = 0
    long = pd.concat([admitted, rejected], axis=0, ignore_index=True)
    keep = [admissions_cols.dept(), admissions_cols.dept_idx(), admissions_cols.gender(),
            admissions_cols.male(), outcome]
    return long[keep]


def build_stan_data_admissions(df: pd.DataFrame) -> dict:
    prepared = df if admissions_cols.dept_idx() in df.columns else prepare_admissions(df)
    return {
        "N": int(len(prepared)),
        "Ndept": int(prepared[admissions_cols.dept()].nunique()),
        "dept_idx": (prepared[admissions_cols.dept_idx()].to_numpy() + 1).astype(int),
        "male": prepared[admissions_cols.male()].to_numpy().astype(int),
        "applications": prepared[admissions_cols.trials()].to_numpy().astype(int),
        "admit": prepared[admissions_cols.target()].to_numpy().astype(int),
    }


# ───────────────────────────────────────────────────────────────────────
# Plant growth (site / bottle / replicate)
# ───────────────────────────────────────────────────────────────────────
def prepare_plant_growth(df: pd.DataFrame) -> pd.DataFrame:
    """
    Validate the nested layout and add 0-based ``site_idx`` and
    ``bottle_idx`` (order of first appearance).
    """
    if df.empty:
        raise ValueError("plant-growth data is empty")
    missing = [c for c in plant_cols.required() if c not in df.columns]
    if missing:
        raise ValueError(f"plant-growth data is missing columns: {missing}")

    site, bottle_id = plant_cols.site(), plant_cols.bottle_id()
    out = df.copy()
    if out[plant_cols.target()].isna().any():
        raise ValueError("plant-growth outcome contains NaN")
    labels = [site, plant_cols.bottle()] + ([bottle_id] if bottle_id in out.columns else [])
    nan_labels = [c for c in labels if out[c].isna().any()]
    if nan_labels:
        raise ValueError(f"plant-growth group labels contain NaN in columns: {nan_labels}")
    if bottle_id not in out.columns:
        out[bottle_id] = out[site].astype(str) + "_" + out[plant_cols.bottle()].astype(str)

    sites_per_bottle = out.groupby(bottle_id)[site].nunique()
    shared = sites_per_bottle[sites_per_bottle > 1]
    if not shared.empty:
        raise ValueError(f"bottle ids appear under more than one site: {shared.index.tolist()}")

    out[plant_cols.site_idx()] = _first_appearance_codes(out[site])[0]
    out[plant_cols.bottle_idx()] = _first_appearance_codes(out[bottle_id])[0]
    return out


def bottle_site_index(df: pd.DataFrame) -> np.ndarray:
    """0-based site of each bottle, ordered like ``bottle_idx``."""
    prepared = df if plant_cols.bottle_idx() in df.columns else prepare_plant_growth(df)
    pairs = (
        prepared[[plant_cols.bottle_idx(), plant_cols.site_idx()]]
        .drop_duplicates()
        .sort_values(plant_cols.bottle_idx())
    )
    return pairs[plant_cols.site_idx()].to_numpy().astype(int)


def build_stan_data_plant_growth(df: pd.DataFrame) -> dict:
    """
    Stan data for the mean-of-means model. Indices are 1-based and
    ``bottle_site_idx[b]`` is the site of bottle ``b``.
    """
    prepared = df if plant_cols.bottle_idx() in df.columns else prepare_plant_growth(df)
    y = prepared[plant_cols.target()].to_numpy().astype(float)
    bottle_idx = prepared[plant_cols.bottle_idx()]
    site_idx = prepared[plant_cols.site_idx()]
    return {
        "N": int(len(y)),
        "y": y,
        "Nbottle": int(bottle_idx.nunique()),
        "Nsite": int(site_idx.nunique()),
        "bottle_idx": (bottle_idx.to_numpy() + 1).astype(int),
        "site_idx": (site_idx.to_numpy() + 1).astype(int),
        "bottle_site_idx": bottle_site_index(prepared) + 1,
    }


def _labels_in_index_order(df: pd.DataFrame, idx_col: str, label_col: str) -> list:
    return (
        df[[idx_col, label_col]].drop_duplicates().sort_values(idx_col)[label_col].tolist()
    )


def group_labels(df: pd.DataFrame) -> dict[str, list]:
    """Coordinate labels for ArviZ (site, bottle, dept) in index order."""
    labels: dict[str, list] = {}
    if plant_cols.site_idx() in df.columns:
        labels["site"] = _labels_in_index_order(df, plant_cols.site_idx(), plant_cols.site())
    if plant_cols.bottle_idx() in df.columns:
        labels["bottle"] = _labels_in_index_order(
            df, plant_cols.bottle_idx(), plant_cols.bottle_id()
        )
    if admissions_cols.dept_idx() in df.columns:
        labels["dept"] = [str(d) for d in _labels_in_index_order(
            df, admissions_cols.dept_idx(), admissions_cols.dept()
        )]
    return labels
