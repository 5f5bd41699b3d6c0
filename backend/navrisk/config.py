# backend/navrisk/config.py
import json
import os
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[2]  # repository root
load_dotenv(ROOT / ".env")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


# =========================
# Risk / statistics
# =========================
RISK_FREE_RATE = _env_float("RISK_FREE_RATE", 0.02)
TRADING_DAYS = _env_int("TRADING_DAYS", 252)
DAYS_PER_YEAR = 365.25
SHARPE_EPSILON = 1e-9

VAR_WINDOW = _env_int("VAR_WINDOW", 252)          # rolling window in NAV points (~1y)
VAR_CONFIDENCE = 0.95
VAR_MIN_ROLLING = _env_int("VAR_MIN_ROLLING", 10)  # need MORE than this many rolling returns
VAR_MIN_DAILY = _env_int("VAR_MIN_DAILY", 50)      # daily fallback needs MORE than this

# =========================
# FX
# =========================
FX_PIVOT = os.environ.get("FX_PIVOT", "EUR").upper().strip()

# currency -> (display symbol, units of pivot per 1 unit of currency)
DEFAULT_STATIC_RATES = {
    "USD": ("$", 0.92),
    "EUR": ("€", 1.0),
    "GBP": ("£", 1.15),
    "JPY": ("¥", 0.0067),
    "CHF": ("CHF", 0.93),
    "AUD": ("A$", 0.62),
    "CAD": ("C$", 0.69),
    "NZD": ("NZ$", 0.58),
    "SEK": ("kr", 0.086),
    "NOK": ("kr", 0.089),
    "DKK": ("kr", 0.134),
    "SGD": ("S$", 0.67),
    "HKD": ("HK$", 0.12),
}


def static_rates_to_pivot() -> dict:
    """Pivot rates, with FX_STATIC_RATES (JSON object {"USD": 0.91, ...}) applied on top."""
    rates = {ccy: rate for ccy, (_sym, rate) in DEFAULT_STATIC_RATES.items()}
    override = os.environ.get("FX_STATIC_RATES")
    if override:
        for ccy, rate in json.loads(override).items():
            rates[ccy.upper()] = float(rate)
    return rates


def currency_symbol(ccy: str) -> str:
    """Display symbol for `ccy`; unknown codes display as the code itself."""
    code = ccy.upper().strip()
    entry = DEFAULT_STATIC_RATES.get(code)
    return entry[0] if entry else code


# =========================
# Monte Carlo
# =========================
MC_MAX_SCENARIOS = _env_int("MC_MAX_SCENARIOS", 100_000)
MC_MAX_YEARS = _env_int("MC_MAX_YEARS", 100)
MC_CHUNK_SIZE = _env_int("MC_CHUNK_SIZE", 5_000)
MC_WORKERS = _env_int("MC_WORKERS", 2)
MC_PERCENTILES = (5, 25, 50, 75, 95)

# =========================
# API
# =========================
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
REPORT_DEBUG = os.environ.get("REPORT_DEBUG", "0") == "1"
