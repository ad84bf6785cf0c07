"""
Sampler settings shared by every Bayesian interface.

One dataclass holds the MCMC configuration of the walkthrough; small
converters translate it into the keyword arguments each engine expects, so
CmdStanPy, PyMC and Bambi fits are run with comparable budgets.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace, asdict
from typing import Any, Dict

VALID_METRICS = ("diag_e", "dense_e", "unit_e")


@dataclass(frozen=True)
class SamplerSettings:
    """MCMC budget and NUTS tuning knobs."""
    chains: int = 3
    warmup: int = 1000
    iter_sampling: int = 3000
    thin: int = 2
    max_treedepth: int = 12
    adapt_delta: float = 0.80
    step_size: float = 0.01
    metric: str = "diag_e"
    refresh: int = 10
    seed: int = 123
    cores: int | None = None
    progressbar: bool = True

    def __post_init__(self):
        for name in ("chains", "warmup", "iter_sampling", "max_treedepth", "refresh"):
            value = getattr(self, name)
            if name == "warmup":
                ok = value >= 0
            else:
                ok = value > 0
            if not ok:
                raise ValueError(f"{name} must be positive, got {value!r}")
        if self.thin < 1:
            raise ValueError(f"thin must be >= 1, got {self.thin!r}")
        if not 0.0 < self.adapt_delta < 1.0:
            raise ValueError(f"adapt_delta must lie in (0, 1), got {self.adapt_delta!r}")
        if self.step_size <= 0:
            raise ValueError(f"step_size must be positive, got {self.step_size!r}")
        if self.metric not in VALID_METRICS:
            raise ValueError(f"metric must be one of {VALID_METRICS}, got {self.metric!r}")

    # ────────────────────────────────────────────────────────────────────
    # Presets
    # ────────────────────────────────────────────────────────────────────
    @classmethod
    def quick(cls, **overrides) -> "SamplerSettings":
        """Tiny budget for smoke tests and CI."""
        base = dict(chains=2, warmup=200, iter_sampling=200, thin=1,
                    max_treedepth=10, refresh=50, progressbar=False)
        base.update(overrides)
        return cls(**base)

    @classmethod
    def from_env(cls, prefix: str = "MULTILEVEL_", *, quick: bool = False,
                 **overrides) -> "SamplerSettings":
        """
        Build settings from environment variables such as
        ``MULTILEVEL_CHAINS=4`` or ``MULTILEVEL_ADAPT_DELTA=0.95``.
        Explicit keyword overrides win over the environment. With
        ``quick=True`` the environment is applied on top of `quick()`.
        """
        values: Dict[str, Any] = {}
        for f in fields(cls):
            raw = os.environ.get(prefix + f.name.upper())
            if raw is None:
                continue
            values[f.name] = _coerce(f.name, raw, getattr(cls(), f.name))
        values.update(overrides)
        return cls.quick(**values) if quick else cls(**values)

    def with_(self, **changes) -> "SamplerSettings":
        return replace(self, **changes)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

    # ────────────────────────────────────────────────────────────────────
    # Engine-specific keyword arguments
    # ────────────────────────────────────────────────────────────────────
    def to_cmdstanpy(self) -> Dict[str, Any]:
        kw = dict(
            chains=self.chains,
            iter_warmup=self.warmup,
            iter_sampling=self.iter_sampling,
            thin=self.thin,
            max_treedepth=self.max_treedepth,
            adapt_delta=self.adapt_delta,
            step_size=self.step_size,
            metric=self.metric,
            refresh=self.refresh,
            seed=self.seed,
            show_progress=self.progressbar,
        )
        if self.cores is not None:
            kw["parallel_chains"] = self.cores
        return kw

    def to_pymc(self) -> Dict[str, Any]:
        # PyMC has no thinning or step-size argument; thinning is applied
        # after sampling by `thin_idata`.
        kw = dict(
            draws=self.iter_sampling,
            tune=self.warmup,
            chains=self.chains,
            target_accept=self.adapt_delta,
            random_seed=self.seed,
            progressbar=self.progressbar,
        )
        if self.cores is not None:
            kw["cores"] = self.cores
        return kw

    def to_bambi(self) -> Dict[str, Any]:
        return self.to_pymc()


def _coerce(name: str, raw: str, default: Any) -> Any:
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if name == "cores":
        return None if raw.strip().lower() in ("", "none") else int(raw)
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


DEFAULT_SETTINGS = SamplerSettings()
