import datetime as dt

import pytest

from backend.navrisk.schemas import NavPoint, PricePoint


def _business_days(start: str, n: int):
    d = dt.date.fromisoformat(start)
    out = []
    while len(out) < n:
        if d.weekday() < 5:
            out.append(d)
        d += dt.timedelta(days=1)
    return out


@pytest.fixture
def business_days():
    return _business_days


@pytest.fixture
def make_prices():
    def _make(dates, closes, currency="EUR"):
        if not isinstance(closes, (list, tuple)):
            closes = [closes] * len(dates)
        return [PricePoint(date=d, close=c, currency=currency) for d, c in zip(dates, closes)]
    return _make


@pytest.fixture
def make_nav():
    def _make(dates, values):
        return [NavPoint(date=d, nav=v) for d, v in zip(dates, values)]
    return _make
