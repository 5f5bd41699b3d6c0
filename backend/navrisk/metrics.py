# backend/navrisk/metrics.py
import logging
import math
from typing import Iterable, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from .config import (
    DAYS_PER_YEAR,
    RISK_FREE_RATE,
    SHARPE_EPSILON,
    TRADING_DAYS,
    VAR_CONFIDENCE,
    VAR_MIN_DAILY,
    VAR_MIN_ROLLING,
    VAR_WINDOW,
)
from .schemas import BestWorstYears, CalendarYearReturn, PortfolioMetrics

logger = logging.getLogger(__name__)


def nav_to_series(nav: Iterable) -> pd.Series:
    """[NavPoint | {date, nav}] -> float Series on a DatetimeIndex, input order kept."""
    dates, values = [], []
    for p in nav or []:
        if isinstance(p, Mapping):
            dates.append(p["date"]); values.append(p["nav"])
        else:
            dates.append(p.date); values.append(p.nav)
    return pd.Series(values, index=pd.to_datetime(dates), dtype=float, name="nav")


def daily_returns(values: np.ndarray) -> np.ndarray:
    values = np.asarray(values, dtype=float)
    if values.size < 2:
        return np.empty(0, dtype=float)
    return values[1:] / values[:-1] - 1.0


def annualized_return(start_value: float, end_value: float, first_date, last_date) -> float:
    # elapsed calendar time, not point count
    days = (pd.Timestamp(last_date) - pd.Timestamp(first_date)).days
    years = days / DAYS_PER_YEAR if days >= 1 else 1.0
    return (end_value / start_value) ** (1.0 / years) - 1.0


def annualized_vol(daily: np.ndarray) -> float:
    if daily.size < 2:
        return 0.0
    return float(np.std(daily, ddof=1) * math.sqrt(TRADING_DAYS))


def max_drawdown(values: np.ndarray) -> float:
    values = np.asarray(values, dtype=float)
    peak = np.maximum.accumulate(values)
    return float(np.min(values / peak - 1.0))


def _tail_loss(returns: np.ndarray, confidence: float) -> Tuple[float, float]:
    srt = np.sort(returns)
    alpha = round(1.0 - confidence, 10)
    idx = int(math.floor(alpha * srt.size))
    var = abs(float(srt[idx]))
    cvar = abs(float(np.mean(srt[: idx + 1])))
    return var, cvar


def var_cvar(
    values: np.ndarray,
    window: int = VAR_WINDOW,
    confidence: float = VAR_CONFIDENCE,
) -> Tuple[Optional[float], Optional[float], Optional[str]]:
    """
    Historical VaR / CVaR as positive loss fractions.

    Rolling `window`-point returns are used when there are more than
    VAR_MIN_ROLLING of them; otherwise daily returns when there are more than
    VAR_MIN_DAILY, scaled by sqrt(TRADING_DAYS). Returns (var, cvar, method),
    all None when neither applies.
    """
    values = np.asarray(values, dtype=float)

    rolling = values[window:] / values[:-window] - 1.0 if values.size > window else np.empty(0)
    if rolling.size > VAR_MIN_ROLLING:
        var, cvar = _tail_loss(rolling, confidence)
        return var, cvar, "rolling"

    daily = daily_returns(values)
    if daily.size > VAR_MIN_DAILY:
        var, cvar = _tail_loss(daily, confidence)
        scale = math.sqrt(TRADING_DAYS)
        return var * scale, cvar * scale, "daily"

    return None, None, None


def compute_metrics(nav: Iterable, risk_free_rate: float = RISK_FREE_RATE) -> PortfolioMetrics:
    s = nav_to_series(nav)
    if len(s) < 2:
        return PortfolioMetrics()

    values = s.to_numpy()
    start, end = float(values[0]), float(values[-1])

    daily = daily_returns(values)
    ann_return = annualized_return(start, end, s.index[0], s.index[-1])
    ann_vol = annualized_vol(daily)
    # zero vol gives a very large finite ratio, not None
    sharpe = (ann_return - risk_free_rate) / max(ann_vol, SHARPE_EPSILON)

    var95, cvar95, method = var_cvar(values)
    logger.debug("metrics: %d points, ret=%.4f vol=%.4f var=%s (%s)", len(values), ann_return, ann_vol, var95, method)

    return PortfolioMetrics(
        annual_return=ann_return,
        annual_vol=ann_vol,
        sharpe=sharpe,
        var95=var95,
        cvar95=cvar95,
        final_value=end,
        max_drawdown=max_drawdown(values),
        var_method=method,
    )


def calendar_year_returns(nav: Iterable) -> List[CalendarYearReturn]:
    """
    Calendar-year returns from a NAV series: last NAV of the year / first NAV
    of the year - 1. A year with a single point returns 0.
    """
    s = nav_to_series(nav)
    if s.empty:
        return []
    grouped = s.groupby(s.index.year, sort=True).agg(["first", "last"])
    return [
        CalendarYearReturn(year=f"{int(year):04d}", year_return=float(row["last"] / row["first"] - 1.0))
        for year, row in grouped.iterrows()
    ]


def best_worst_years(rows: List[CalendarYearReturn], n: int = 3) -> BestWorstYears:
    ordered = sorted(rows, key=lambda r: r.year_return, reverse=True)
    return BestWorstYears(best=ordered[:n], worst=list(reversed(ordered[-n:])) if ordered else [])
