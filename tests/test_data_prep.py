import numpy as np
import pandas as pd
import pytest

from multilevel.data.datasets import (
    load_admissions,
    load_plant_growth,
    simulate_plant_growth,
)
from multilevel.data.schema import admissions_cols, plant_cols
from multilevel.features.prepare import (
    bottle_site_index,
    build_stan_data_admissions,
    build_stan_data_plant_growth,
    expand_admissions_to_bernoulli,
    group_labels,
    prepare_admissions,
    prepare_plant_growth,
)


# ── datasets ──────────────────────────────────────────────────────────
def test_admissions_table():
    df = load_admissions()
    assert len(df) == 12
    assert df["applications"].sum() == 4526
    assert df["admit"].sum() == 1755
    assert set(df["dept"]) == set("ABCDEF")


def test_simulation_layout_and_reproducibility():
    a = simulate_plant_growth(seed=1)
    b = simulate_plant_growth(seed=1)
    pd.testing.assert_frame_equal(a, b)
    assert len(a) == 3 * 3 * 3
    assert a["bottle_id"].nunique() == 9
    assert a.groupby("bottle_id")["rep"].count().eq(3).all()
    # bottle 1 in site A is not bottle 1 in site B
    assert {"A_1", "B_1", "C_1"} <= set(a["bottle_id"])


def test_simulation_recovers_site_ordering():
    df = simulate_plant_growth(seed=123, n_bottles=20, n_reps=5)
    means = df.groupby("site")["y"].mean()
    assert means["A"] < means["B"] < means["C"]


def test_simulation_rejects_bad_arguments():
    with pytest.raises(ValueError):
        simulate_plant_growth(n_bottles=0)
    with pytest.raises(ValueError):
        simulate_plant_growth(rep_sd=-1)


def test_load_plant_growth_from_csv(tmp_path):
    src = simulate_plant_growth().drop(columns=["bottle_id"])
    path = tmp_path / "plants.csv"
    src.to_csv(path, index=False)
    df = load_plant_growth(path)
    assert "bottle_id" in df.columns
    assert df["bottle_id"].iloc[0] == "A_1"


def test_load_plant_growth_missing_columns(tmp_path):
    path = tmp_path / "bad.csv"
    pd.DataFrame({"site": ["A"], "y": [1.0]}).to_csv(path, index=False)
    with pytest.raises(ValueError, match="bottle"):
        load_plant_growth(path)


# ── admissions prep ───────────────────────────────────────────────────
def test_prepare_admissions_columns(admissions_df):
    df = admissions_df
    assert df["male"].sum() == 6
    assert df["dept_idx"].tolist() == [0, 0, 1, 1, 2, 2, 3, 3, 4, 4, 5, 5]
    assert df.loc[0, "admit_rate"] == pytest.approx(512 / 825)


def test_prepare_admissions_rejects_bad_counts():
    df = load_admissions()
    df.loc[0, "admit"] += 1
    with pytest.raises(ValueError, match="applications"):
        prepare_admissions(df)


def test_prepare_admissions_rejects_empty():
    with pytest.raises(ValueError):
        prepare_admissions(load_admissions().iloc[0:0])


def test_bernoulli_expansion_preserves_counts(admissions_df):
    long = expand_admissions_to_bernoulli(admissions_df)
    assert len(long) == 4526
    assert long["admitted"].sum() == 1755
    by_cell = long.groupby(["dept", "gender"], observed=True)["admitted"].agg(["sum", "count"])
    assert by_cell.loc[("A", "female"), "sum"] == 89
    assert by_cell.loc[("A", "female"), "count"] == 108


def test_stan_data_admissions(admissions_df):
    data = build_stan_data_admissions(admissions_df)
    assert data["N"] == 12
    assert data["Ndept"] == 6
    assert data["dept_idx"].min() == 1 and data["dept_idx"].max() == 6
    assert np.all(data["admit"] <= data["applications"])


# ── plant-growth prep ─────────────────────────────────────────────────
def test_prepare_plant_growth_indices(plant_df):
    assert plant_df["site_idx"].tolist()[:9] == [0] * 9
    assert sorted(plant_df["bottle_idx"].unique()) == list(range(9))


def test_prepare_plant_growth_adds_bottle_id():
    df = simulate_plant_growth().drop(columns=["bottle_id"])
    out = prepare_plant_growth(df)
    assert out["bottle_id"].nunique() == 9


def test_prepare_plant_growth_rejects_shared_bottle_ids():
    df = simulate_plant_growth()
    df.loc[df["site"] == "B", "bottle_id"] = df.loc[df["site"] == "B", "bottle"].map(
        lambda b: f"A_{b}"
    )
    with pytest.raises(ValueError, match="more than one site"):
        prepare_plant_growth(df)


def test_prepare_plant_growth_rejects_nan():
    df = simulate_plant_growth()
    df.loc[3, "y"] = np.nan
    with pytest.raises(ValueError, match="NaN"):
        prepare_plant_growth(df)


def test_stan_data_plant_growth_is_consistent(plant_df):
    data = build_stan_data_plant_growth(plant_df)
    assert data["N"] == 27
    assert data["Nbottle"] == 9
    assert data["Nsite"] == 3
    assert len(data["bottle_site_idx"]) == data["Nbottle"]
    # every measurement's bottle belongs to that measurement's site
    for b, s in zip(data["bottle_idx"], data["site_idx"]):
        assert data["bottle_site_idx"][b - 1] == s


def test_bottle_site_index_order_of_first_appearance():
    df = simulate_plant_growth().iloc[::-1].reset_index(drop=True)
    prepared = prepare_plant_growth(df)
    # reversed rows: site C now appears first
    assert prepared.loc[0, "site"] == "C"
    assert bottle_site_index(prepared).tolist() == [0, 0, 0, 1, 1, 1, 2, 2, 2]


def test_group_labels(plant_df, admissions_df):
    labels = group_labels(plant_df)
    assert labels["site"] == ["A", "B", "C"]
    assert labels["bottle"][0] == "A_1"
    assert group_labels(admissions_df)["dept"] == list("ABCDEF")


@pytest.mark.parametrize("column", ["site", "bottle", "bottle_id"])
def test_prepare_plant_growth_rejects_nan_group_labels(column):
    df = simulate_plant_growth()
    df[column] = df[column].astype(object)
    df.loc[0, column] = np.nan
    with pytest.raises(ValueError, match="group labels contain NaN"):
        prepare_plant_growth(df)


def test_stan_data_indices_stay_one_based_after_validation():
    df = simulate_plant_growth()
    df.loc[0, "site"] = np.nan
    with pytest.raises(ValueError):
        build_stan_data_plant_growth(df)


# ── schema ────────────────────────────────────────────────────────────
def test_schema_matches_prepared_frames(plant_df, admissions_df):
    assert set(plant_cols.required() + plant_cols.derived() + plant_cols.group_cols()
               + plant_cols.id()) <= set(plant_df.columns)
    assert set(admissions_cols.required() + admissions_cols.derived()) <= set(admissions_df.columns)
    assert admissions_cols.group_cols() == [admissions_cols.dept()]
