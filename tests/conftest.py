# tests/conftest.py
import sys
from pathlib import Path

import matplotlib
import numpy as np
import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

matplotlib.use("Agg")

from multilevel.data.datasets import load_admissions, simulate_plant_growth  # noqa: E402
from multilevel.features.prepare import prepare_admissions, prepare_plant_growth  # noqa: E402


# Register custom markers
def pytest_configure(config):
    config.addinivalue_line("markers", "slow: marks tests that run an MCMC sampler")


@pytest.fixture
def plant_df():
    return prepare_plant_growth(simulate_plant_growth(seed=123))


@pytest.fixture
def admissions_df():
    return prepare_admissions(load_admissions())


@pytest.fixture
def fake_plant_idata(plant_df):
    """Small InferenceData shaped like a mean-of-means fit (2 chains x 50 draws)."""
    import arviz as az

    rng = np.random.default_rng(0)
    n_chain, n_draw, n_obs = 2, 50, len(plant_df)
    sites = ["A", "B", "C"]
    bottles = list(dict.fromkeys(plant_df["bottle_id"]))
    site_true = np.array([5.0, 6.0, 7.0])
    mu_site = site_true + rng.normal(0, 0.1, size=(n_chain, n_draw, 3))
    mu_bottle = np.repeat(mu_site, 3, axis=-1) + rng.normal(0, 0.3, size=(n_chain, n_draw, 9))
    y = plant_df["y"].to_numpy()
    return az.from_dict(
        posterior={
            "mu_site": mu_site,
            "mu_bottle": mu_bottle,
            "sigma_tech": np.abs(rng.normal(0.2, 0.02, size=(n_chain, n_draw))),
            "sigma_biol": np.abs(rng.normal(0.5, 0.05, size=(n_chain, n_draw))),
        },
        posterior_predictive={"y": y + rng.normal(0, 0.2, size=(n_chain, n_draw, n_obs))},
        log_likelihood={"y": rng.normal(-0.5, 0.1, size=(n_chain, n_draw, n_obs))},
        observed_data={"y": y},
        coords={"site": sites, "bottle": bottles, "obs": np.arange(n_obs)},
        dims={"mu_site": ["site"], "mu_bottle": ["bottle"], "y": ["obs"]},
    )
