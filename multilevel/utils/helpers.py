import logging
import time
from contextlib import contextmanager


def get_logger(name: str, level=logging.INFO) -> logging.Logger:
    """Module logger; configures the root handler only if nothing else has."""
    logger = logging.getLogger(name)
    if not logger.handlers and not logging.getLogger().handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    return logger


# ── Context manager for timing ─────────────────────────────────────────
@contextmanager
def _timed_section(label: str, logger: logging.Logger | None = None):
    t0 = time.perf_counter()
    yield
    msg = f"[{label}] finished in {time.perf_counter() - t0:,.1f} s"
    if logger is not None:
        logger.info(msg)
    else:
        print(msg)


def thin_idata(idata, thin: int):
    """Keep every ``thin``-th draw in every group that has a draw dimension."""
    if thin <= 1:
        return idata
    return idata.sel(draw=slice(None, None, thin))
