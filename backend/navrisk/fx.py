# backend/navrisk/fx.py
"""
Currency conversion.

Two sources of rates:
  * a static table of rates to a pivot currency (EUR by default), where
    rate(FROM, TO) = rate_to_pivot(FROM) / rate_to_pivot(TO);
  * historical per-pair series ("USD-EUR" = EUR per 1 USD), looked up with
    forward-fill (most recent observation on or before the date).

Identical codes always convert at exactly 1.0. Anything else without a rate
raises UnresolvableConversionError; there is no silent parity fallback.
"""
import logging
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

import numpy as np
import pandas as pd

from .config import FX_PIVOT, static_rates_to_pivot
from .errors import UnresolvableConversionError

logger = logging.getLogger(__name__)


def pair_key(from_ccy: str, to_ccy: str) -> str:
    return f"{from_ccy.upper()}-{to_ccy.upper()}"


def split_pair(key: str) -> Tuple[str, str]:
    from_ccy, _, to_ccy = key.partition("-")
    if not from_ccy or not to_ccy:
        raise ValueError(f"Invalid currency pair {key!r}, expected 'FROM-TO'")
    return from_ccy.upper(), to_ccy.upper()


def required_pairs(assets: Iterable, target_currency: str) -> List[str]:
    """Distinct non-identity pairs needed to value `assets` in `target_currency`, in first-seen order."""
    target = target_currency.upper()
    seen: Set[str] = set()
    out: List[str] = []
    for a in assets:
        ccy = (a.currency or target).upper()
        if ccy == target:
            continue
        key = pair_key(ccy, target)
        if key not in seen:
            seen.add(key)
            out.append(key)
    return out


def points_to_series(points, name: Optional[str] = None) -> pd.Series:
    """
    Turn [{date, close}, ...] (dicts or models) into a clean float Series:
    DatetimeIndex, sorted, duplicate dates collapsed (last wins), non-positive
    or non-finite values dropped.
    """
    dates, closes = [], []
    for p in points or []:
        if isinstance(p, Mapping):
            d, c = p.get("date"), p.get("close")
        else:
            d, c = p.date, p.close
        dates.append(d)
        closes.append(c)

    if not dates:
        return pd.Series(dtype=float, name=name)

    s = pd.Series(pd.to_numeric(closes, errors="coerce"), index=pd.to_datetime(dates), dtype=float, name=name)
    s = s.sort_index(kind="mergesort")
    s = s[~s.index.duplicated(keep="last")]
    clean = s[np.isfinite(s.values) & (s.values > 0)]
    if len(clean) < len(s):
        logger.debug("%s: dropped %d non-positive or missing closes", name, len(s) - len(clean))
    return clean


class CurrencyConverter:
    """Static cross rates through a pivot currency."""

    def __init__(self, rates_to_pivot: Optional[Dict[str, float]] = None, pivot: str = FX_PIVOT):
        table = static_rates_to_pivot() if rates_to_pivot is None else rates_to_pivot
        self.pivot = pivot.upper()
        self._rates = {k.upper(): float(v) for k, v in table.items()}
        self._rates.setdefault(self.pivot, 1.0)

    def rate_to_pivot(self, ccy: str) -> float:
        r = self._rates.get(ccy.upper())
        if r is None or not np.isfinite(r) or r <= 0:
            raise UnresolvableConversionError(ccy.upper(), self.pivot, "currency missing from static table")
        return r

    def rate(self, from_ccy: str, to_ccy: str) -> float:
        if from_ccy.upper() == to_ccy.upper():
            return 1.0
        return self.rate_to_pivot(from_ccy) / self.rate_to_pivot(to_ccy)

    def convert(self, amount: float, from_ccy: str, to_ccy: str) -> float:
        return float(amount) * self.rate(from_ccy, to_ccy)

    def __contains__(self, ccy: str) -> bool:
        return ccy.upper() in self._rates


class HistoricalRates:
    """One FROM-TO series with forward-fill lookups."""

    def __init__(self, pair: str, points):
        self.pair = pair.upper()
        self.from_ccy, self.to_ccy = split_pair(self.pair)
        self.series = points_to_series(points, name=self.pair)
        self._values = self.series.values

    def __len__(self) -> int:
        return len(self.series)

    @property
    def empty(self) -> bool:
        return self.series.empty

    @property
    def first_date(self) -> Optional[pd.Timestamp]:
        return None if self.empty else self.series.index[0]

    @property
    def last_date(self) -> Optional[pd.Timestamp]:
        return None if self.empty else self.series.index[-1]

    def rate_on(self, when) -> Optional[float]:
        """Rate in force on `when`; None before the first observation."""
        if self.from_ccy == self.to_ccy:
            return 1.0
        i = int(self.series.index.searchsorted(pd.Timestamp(when), side="right")) - 1
        if i < 0:
            return None
        return float(self._values[i])

    def aligned(self, calendar: pd.DatetimeIndex) -> pd.Series:
        """Forward-filled onto `calendar`; NaN before the first observation."""
        return self.series.reindex(calendar, method="ffill")


def load_fx_table(fx: Optional[Mapping[str, Iterable]]) -> Dict[str, HistoricalRates]:
    out: Dict[str, HistoricalRates] = {}
    for key, points in (fx or {}).items():
        try:
            hr = HistoricalRates(key, points)
        except ValueError as e:
            logger.warning("Skipping FX series: %s", e)
            continue
        if hr.from_ccy == hr.to_ccy:
            continue
        out[hr.pair] = hr
    return out
