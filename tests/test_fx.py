import datetime as dt

import pytest

from backend.navrisk.config import currency_symbol, static_rates_to_pivot
from backend.navrisk.errors import UnresolvableConversionError
from backend.navrisk.fx import CurrencyConverter, HistoricalRates, load_fx_table, pair_key, required_pairs
from backend.navrisk.schemas import Asset, FxPoint


def test_identity_is_exactly_one_even_with_empty_table():
    conv = CurrencyConverter({}, pivot="EUR")
    assert conv.rate("USD", "USD") == 1.0
    assert conv.rate("xyz", "XYZ") == 1.0


def test_cross_rate_goes_through_pivot():
    conv = CurrencyConverter({"USD": 0.92, "GBP": 1.15}, pivot="EUR")
    assert conv.rate("USD", "GBP") == pytest.approx(0.92 / 1.15)
    assert conv.rate("EUR", "USD") == pytest.approx(1 / 0.92)
    assert conv.rate("USD", "EUR") == pytest.approx(0.92)


def test_round_trip_with_static_table():
    conv = CurrencyConverter()
    amount = 12_345.67
    for a, b in [("USD", "JPY"), ("GBP", "CHF"), ("HKD", "EUR")]:
        there = conv.convert(amount, a, b)
        assert conv.convert(there, b, a) == pytest.approx(amount, rel=1e-12)


def test_unknown_currency_is_an_error_not_parity():
    conv = CurrencyConverter({"USD": 0.92}, pivot="EUR")
    with pytest.raises(UnresolvableConversionError) as exc:
        conv.rate("USD", "BRL")
    assert "BRL" in str(exc.value)


def test_static_table_override_from_env(monkeypatch):
    monkeypatch.setenv("FX_STATIC_RATES", '{"usd": 0.5, "BRL": 0.2}')
    rates = static_rates_to_pivot()
    assert rates["USD"] == 0.5
    assert rates["BRL"] == 0.2
    assert rates["GBP"] == 1.15


def test_historical_rates_forward_fill_and_cleanup():
    hr = HistoricalRates("usd-eur", [
        {"date": "2024-01-05", "close": 0.95},
        {"date": "2024-01-02", "close": 0.90},
        {"date": "2024-01-03", "close": -1.0},      # dropped
        {"date": "2024-01-05", "close": 0.96},      # duplicate, last wins
    ])
    assert hr.pair == "USD-EUR"
    assert len(hr) == 2
    assert hr.rate_on(dt.date(2024, 1, 1)) is None
    assert hr.rate_on(dt.date(2024, 1, 2)) == 0.90
    assert hr.rate_on(dt.date(2024, 1, 4)) == 0.90
    assert hr.rate_on(dt.date(2024, 1, 5)) == 0.96
    assert hr.rate_on(dt.date(2030, 1, 1)) == 0.96


def test_historical_rates_accept_models():
    hr = HistoricalRates("GBP-USD", [FxPoint(date=dt.date(2024, 3, 1), close=1.27)])
    assert hr.first_date == hr.last_date
    assert hr.rate_on("2024-03-10") == 1.27


def test_load_fx_table_skips_identity_pairs():
    table = load_fx_table({"EUR-EUR": [{"date": "2024-01-02", "close": 1.0}], "USD-EUR": []})
    assert list(table) == ["USD-EUR"]
    assert table["USD-EUR"].empty


def test_required_pairs_are_distinct_and_skip_target():
    assets = [
        Asset(ticker="SPY", currency="usd", weight=40),
        Asset(ticker="QQQ", currency="USD", weight=20),
        Asset(ticker="ENI.MI", currency="EUR", weight=20),
        Asset(ticker="HSBA.L", currency="GBP", weight=20),
    ]
    assert required_pairs(assets, "eur") == ["USD-EUR", "GBP-EUR"]
    assert pair_key("usd", "eur") == "USD-EUR"


def test_load_fx_table_skips_malformed_keys():
    table = load_fx_table({
        "GBPUSD": [{"date": "2024-01-02", "close": 1.27}],
        "USD-EUR": [{"date": "2024-01-02", "close": 0.91}],
    })
    assert list(table) == ["USD-EUR"]


def test_currency_symbols():
    assert currency_symbol("gbp") == "£"
    assert currency_symbol("USD") == "$"
    assert currency_symbol("BRL") == "BRL"
