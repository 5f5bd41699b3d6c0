# backend/navrisk/nav.py
"""
NAV series builder.

Merges per-asset price histories and historical FX series into a single
portfolio value series in the target currency:

  1. common start   = latest first date over all asset series and all
                      required (non-identity) FX series
  2. calendar       = sorted union of asset dates >= common start
  3. shares         = (weight% * capital) / price_in_target at common start
  4. daily NAV      = sum(shares * ffill(price) * ffill(rate))
  5. normalization  = drop zero days, rescale so the first point == capital

Forward-fill is "last known value carried forward", never interpolated.
"""
import logging
from typing import Dict, Iterable, List, Mapping, Optional, Union

import numpy as np
import pandas as pd

from .errors import InsufficientDataError, UnresolvableConversionError
from .fx import CurrencyConverter, HistoricalRates, load_fx_table, points_to_series, required_pairs, split_pair
from .schemas import Asset, NavPoint

logger = logging.getLogger(__name__)

RateSource = Union[HistoricalRates, float]


def _price_series(prices: Mapping[str, Iterable], assets: List[Asset]) -> Dict[str, pd.Series]:
    series_map: Dict[str, pd.Series] = {}
    for a in assets:
        if a.ticker in series_map:
            continue
        s = points_to_series((prices or {}).get(a.ticker), name=a.ticker)
        if s.empty:
            raise InsufficientDataError(f"No price data for {a.ticker}.")
        series_map[a.ticker] = s
    return series_map


def _rate_sources(
    assets: List[Asset],
    target: str,
    fx_table: Dict[str, HistoricalRates],
    converter: Optional[CurrencyConverter],
) -> Dict[str, RateSource]:
    sources: Dict[str, RateSource] = {}
    for key in required_pairs(assets, target):
        hr = fx_table.get(key)
        if hr is not None and not hr.empty:
            sources[key] = hr
            continue
        from_ccy, to_ccy = split_pair(key)
        if converter is None:
            raise UnresolvableConversionError(from_ccy, to_ccy, "no historical FX series")
        sources[key] = converter.rate(from_ccy, to_ccy)
        logger.warning("No FX history for %s, using static rate %.6f", key, sources[key])
    return sources


def _common_start(series_map: Dict[str, pd.Series], sources: Dict[str, RateSource]) -> pd.Timestamp:
    # (first date, fx pair or None); the latest one sets the start
    firsts = [(s.index[0], None) for s in series_map.values()]
    firsts += [(src.first_date, key) for key, src in sources.items() if isinstance(src, HistoricalRates)]
    start, late_pair = max(firsts, key=lambda f: f[0])

    for ticker, s in series_map.items():
        if s.index[-1] < start:
            if late_pair is not None:
                raise InsufficientDataError(
                    f"FX data for {late_pair} starts {start:%Y-%m-%d}, after the last price of {ticker}."
                )
            raise InsufficientDataError(f"No price data for {ticker} on or after {start:%Y-%m-%d}.")
    for key, src in sources.items():
        if isinstance(src, HistoricalRates) and src.last_date < start:
            raise InsufficientDataError(f"No FX data for {key} on or after {start:%Y-%m-%d}.")
    return start


def _trading_calendar(series_map: Dict[str, pd.Series], start: pd.Timestamp) -> pd.DatetimeIndex:
    calendar: Optional[pd.Index] = None
    for s in series_map.values():
        part = s.index[s.index >= start]
        calendar = part if calendar is None else calendar.union(part)
    return pd.DatetimeIndex(calendar).sort_values()


def _value_on(s: pd.Series, when: pd.Timestamp) -> Optional[float]:
    i = int(s.index.searchsorted(when, side="right")) - 1
    return float(s.iloc[i]) if i >= 0 else None


def _rate_on(ccy: str, target: str, sources: Dict[str, RateSource], when: pd.Timestamp) -> Optional[float]:
    if ccy == target:
        return 1.0
    src = sources[f"{ccy}-{target}"]
    return src.rate_on(when) if isinstance(src, HistoricalRates) else float(src)


def _rate_path(ccy: str, target: str, sources: Dict[str, RateSource], calendar: pd.DatetimeIndex) -> np.ndarray:
    if ccy == target:
        return np.ones(len(calendar))
    src = sources[f"{ccy}-{target}"]
    if isinstance(src, HistoricalRates):
        return src.aligned(calendar).to_numpy(dtype=float)
    return np.full(len(calendar), float(src))


def build_nav_series(
    prices: Mapping[str, Iterable],
    fx: Optional[Mapping[str, Iterable]],
    assets: List[Asset],
    initial_capital: float,
    target_currency: str,
    converter: Optional[CurrencyConverter] = None,
) -> List[NavPoint]:
    """
    Build the portfolio NAV series in `target_currency`.

    `prices` maps ticker -> [{date, close}, ...]; `fx` maps "FROM-TO" ->
    [{date, close}, ...]. Either may be unsorted. Pairs without history are
    valued at the static `converter` rate when one is given, otherwise they
    raise UnresolvableConversionError.

    Returns an empty list when no day could be valued; callers treat fewer
    than 2 points as insufficient data (see require_nav_series).
    """
    if not assets:
        raise ValueError("No assets provided.")
    if not (initial_capital > 0):
        raise ValueError("initial_capital must be > 0.")

    target = target_currency.upper().strip()
    capital = float(initial_capital)

    series_map = _price_series(prices, assets)
    sources = _rate_sources(assets, target, load_fx_table(fx), converter)
    start = _common_start(series_map, sources)
    calendar = _trading_calendar(series_map, start)
    logger.debug("NAV %s: common start %s, %d trading days", target, start.date(), len(calendar))

    nav = np.zeros(len(calendar), dtype=float)
    for a in assets:
        ccy = a.currency or target
        px0 = _value_on(series_map[a.ticker], start)
        fx0 = _rate_on(ccy, target, sources, start)
        price_in_target = px0 * fx0 if (px0 is not None and fx0 is not None) else 0.0

        if price_in_target <= 0:
            logger.warning("%s has no usable price/rate at %s, excluded", a.ticker, start.date())
            continue
        shares = (a.weight / 100.0) * capital / price_in_target
        if shares == 0:
            continue

        px = series_map[a.ticker].reindex(calendar, method="ffill").to_numpy(dtype=float)
        rates = _rate_path(ccy, target, sources, calendar)
        nav += shares * np.nan_to_num(px * rates, nan=0.0)

    return normalize_nav(calendar, nav, capital)


def normalize_nav(calendar: pd.DatetimeIndex, nav: np.ndarray, capital: float) -> List[NavPoint]:
    """Drop days valued at 0 and rescale so the first kept day is exactly `capital`."""
    nav = np.asarray(nav, dtype=float)
    keep = nav > 0
    if not keep.any():
        return []

    dates = pd.DatetimeIndex(calendar)[keep]
    values = nav[keep] * (capital / nav[keep][0])
    values[0] = capital

    return [NavPoint(date=d.date(), nav=float(v)) for d, v in zip(dates, values)]


def require_nav_series(*args, **kwargs) -> List[NavPoint]:
    """build_nav_series, raising InsufficientDataError below 2 points."""
    series = build_nav_series(*args, **kwargs)
    if len(series) < 2:
        raise InsufficientDataError("Insufficient data for the requested period. Try a longer lookback.")
    return series
