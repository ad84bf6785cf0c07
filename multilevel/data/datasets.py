from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping

import numpy as np
import pandas as pd

from multilevel.data.schema import admissions_cols, plant_cols

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent
ADMISSIONS_CSV = DATA_DIR / "admissions.csv"

# site-level means used by the nested simulation
DEFAULT_SITE_MEANS = {"A": 5.0, "B": 6.0, "C": 7.0}


def _check_columns(df: pd.DataFrame, required: list[str], source: str) -> None:
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"{source} is missing required columns: {missing}")


def load_admissions(path: str | Path | None = None) -> pd.DataFrame:
    """
    Load the aggregated UC Berkeley admissions table (1973).

    Returns:
        pd.DataFrame: one row per department x applicant gender with
        admit / reject / applications counts.
    """
    path = Path(path) if path is not None else ADMISSIONS_CSV
    df = pd.read_csv(path)
    _check_columns(df, admissions_cols.required(), str(path))
    logger.debug("loaded %d admission rows from %s", len(df), path)
    return df


def simulate_plant_growth(
    seed: int = 123,
    site_means: Mapping[str, float] | None = None,
    *,
    n_bottles: int = 3,
    n_reps: int = 3,
    bottle_sd: float = 0.5,
    rep_sd: float = 0.2,
) -> pd.DataFrame:
    """
    Simulate growth measurements with a nested structure.

    Each site gets ``n_bottles`` bottle means drawn around the site mean
    (bottle variation), and each bottle gets ``n_reps`` technical
    replicates drawn around its bottle mean (replicate variation).

    ``bottle_id`` combines site and bottle because bottle 1 in site A is a
    different bottle from bottle 1 in site B.
    """
    if n_bottles < 1 or n_reps < 1:
        raise ValueError("n_bottles and n_reps must both be >= 1")
    if bottle_sd < 0 or rep_sd < 0:
        raise ValueError("standard deviations must be non-negative")
    site_means = dict(DEFAULT_SITE_MEANS if site_means is None else site_means)
    if not site_means:
        raise ValueError("site_means must name at least one site")

    rng = np.random.default_rng(seed)
    rows = []
    for site, site_mean in site_means.items():
        bottle_means = rng.normal(site_mean, bottle_sd, size=n_bottles)
        for b, bottle_mean in enumerate(bottle_means, start=1):
            reps = rng.normal(bottle_mean, rep_sd, size=n_reps)
            for r, value in enumerate(reps, start=1):
                rows.append({
                    plant_cols.site(): site,
                    plant_cols.bottle(): b,
                    plant_cols.rep(): r,
                    plant_cols.bottle_id(): f"{site}_{b}",
                    plant_cols.target(): float(value),
                })
    return pd.DataFrame(rows)


def load_plant_growth(path: str | Path | None = None, **simulate_kw) -> pd.DataFrame:
    """
    Read plant-growth measurements from CSV, or simulate them when no
    path is given.
    """
    if path is None:
        return simulate_plant_growth(**simulate_kw)

    path = Path(path)
    df = pd.read_csv(path)
    _check_columns(df, plant_cols.required(), str(path))
    if plant_cols.bottle_id() not in df.columns:
        df[plant_cols.bottle_id()] = (
            df[plant_cols.site()].astype(str) + "_" + df[plant_cols.bottle()].astype(str)
        )
    logger.debug("loaded %d plant-growth rows from %s", len(df), path)
    return df


if __name__ == "__main__":
    adm = load_admissions()
    print(adm)
    plants = simulate_plant_growth()
    print(plants.head(9))
    print(plants.groupby(plant_cols.site())[plant_cols.target()].mean())
