"""
Column schema helpers for the two walkthrough datasets.

Centralises raw and derived column names so downstream code never
hard-codes strings.

Usage
-----
>>> from multilevel.data.schema import admissions_cols, plant_cols
>>> admissions_cols.target()
'admit'
>>> plant_cols.group_cols()
['site', 'bottle_id']
"""
from typing import List


class _AdmissionsSchema:
    """Aggregated admissions table: one row per department x gender."""

    _DEPT_COL: str = "dept"
    _GENDER_COL: str = "gender"
    _TARGET_COL: str = "admit"
    _FAILURE_COL: str = "reject"
    _TRIALS_COL: str = "applications"

    # derived in features.prepare
    _MALE_COL: str = "male"
    _DEPT_IDX_COL: str = "dept_idx"
    _RATE_COL: str = "admit_rate"
    _BERNOULLI_TARGET: str = "admitted"

    # ────────────────────────────────────────────────────────────────────
    # Public helpers
    # ────────────────────────────────────────────────────────────────────
    def dept(self) -> str:
        return self._DEPT_COL

    def gender(self) -> str:
        return self._GENDER_COL

    def group_cols(self) -> List[str]:
        return [self._DEPT_COL]

    def target(self) -> str:
        return self._TARGET_COL

    def failures(self) -> str:
        return self._FAILURE_COL

    def trials(self) -> str:
        return self._TRIALS_COL

    def male(self) -> str:
        return self._MALE_COL

    def dept_idx(self) -> str:
        return self._DEPT_IDX_COL

    def rate(self) -> str:
        return self._RATE_COL

    def derived(self) -> List[str]:
        return [self._MALE_COL, self._DEPT_IDX_COL, self._RATE_COL]

    def bernoulli_target(self) -> str:
        return self._BERNOULLI_TARGET

    def required(self) -> List[str]:
        return [self._DEPT_COL, self._GENDER_COL,
                self._TARGET_COL, self._FAILURE_COL, self._TRIALS_COL]


class _PlantGrowthSchema:
    """Technical replicates nested in bottles nested in sites."""

    _SITE_COL: str = "site"
    _BOTTLE_COL: str = "bottle"
    _REP_COL: str = "rep"
    _BOTTLE_ID: str = "bottle_id"
    _TARGET_COL: str = "y"

    # derived in features.prepare
    _SITE_IDX_COL: str = "site_idx"
    _BOTTLE_IDX_COL: str = "bottle_idx"

    # ────────────────────────────────────────────────────────────────────
    # Public helpers
    # ────────────────────────────────────────────────────────────────────
    def site(self) -> str:
        return self._SITE_COL

    def bottle(self) -> str:
        return self._BOTTLE_COL

    def rep(self) -> str:
        return self._REP_COL

    def bottle_id(self) -> str:
        return self._BOTTLE_ID

    def target(self) -> str:
        return self._TARGET_COL

    def site_idx(self) -> str:
        return self._SITE_IDX_COL

    def bottle_idx(self) -> str:
        return self._BOTTLE_IDX_COL

    def group_cols(self) -> List[str]:
        return [self._SITE_COL, self._BOTTLE_ID]

    def id(self) -> List[str]:
        return [self._SITE_COL, self._BOTTLE_COL, self._REP_COL]

    def derived(self) -> List[str]:
        return [self._SITE_IDX_COL, self._BOTTLE_IDX_COL]

    def required(self) -> List[str]:
        return [self._SITE_COL, self._BOTTLE_COL, self._TARGET_COL]


admissions_cols = _AdmissionsSchema()
plant_cols = _PlantGrowthSchema()
