# backend/navrisk/schemas.py
import datetime as dt
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .config import MC_MAX_SCENARIOS, MC_MAX_YEARS


# =========================
# Engine data model
# =========================

class Asset(BaseModel):
    ticker: str                           # canonical symbol (e.g., AAPL, ENI.MI, IWDA.AS)
    isin: Optional[str] = None
    currency: str                         # native trading currency (USD, EUR, GBP, ...)
    weight: float = Field(ge=0.0, le=100.0)  # percent of initial capital

    @field_validator("currency")
    @classmethod
    def _upper_ccy(cls, v: str) -> str:
        return v.upper().strip()


class PricePoint(BaseModel):
    date: dt.date
    close: float
    currency: Optional[str] = None


class FxPoint(BaseModel):
    date: dt.date
    close: float                          # units of TO per 1 unit of FROM


class NavPoint(BaseModel):
    date: dt.date
    nav: float


class PortfolioMetrics(BaseModel):
    annual_return: Optional[float] = None
    annual_vol: Optional[float] = None
    sharpe: Optional[float] = None
    var95: Optional[float] = None
    cvar95: Optional[float] = None
    final_value: Optional[float] = None
    max_drawdown: Optional[float] = None
    var_method: Optional[str] = None      # "rolling" | "daily" | None


class CalendarYearReturn(BaseModel):
    year: str
    year_return: float


class SimulationYearPoint(BaseModel):
    year: int
    p5: float
    p25: float
    p50: float
    p75: float
    p95: float
    # stacked-band rendering: base + non-negative deltas
    base: float
    band_5_25: float
    band_25_75: float
    band_75_95: float


# =========================
# Request / response bodies
# =========================

class PortfolioIn(BaseModel):
    assets: List[Asset]
    prices: Dict[str, List[PricePoint]]               # ticker -> series
    fx: Dict[str, List[FxPoint]] = {}                 # "FROM-TO" -> series
    initial_capital: float = Field(10_000.0, gt=0)
    currency: str = "EUR"                             # target currency
    use_static_fallback: bool = False                 # static table for pairs without history


class BestWorstYears(BaseModel):
    best: List[CalendarYearReturn]
    worst: List[CalendarYearReturn]


class AnalyticsOut(BaseModel):
    currency: str
    nav: List[NavPoint]
    metrics: PortfolioMetrics
    calendar_years: List[CalendarYearReturn]
    best_worst: BestWorstYears


class MonteCarloIn(BaseModel):
    view_id: str = "default"
    metrics: PortfolioMetrics
    initial_capital: float = Field(gt=0)
    horizon_years: int = Field(30, ge=1, le=MC_MAX_YEARS)
    num_scenarios: int = Field(1000, ge=1, le=MC_MAX_SCENARIOS)
    seed: Optional[int] = None


class MonteCarloOut(BaseModel):
    view_id: str
    horizon_years: int
    num_scenarios: int
    data: List[SimulationYearPoint]


class FxRateOut(BaseModel):
    from_ccy: str
    to_ccy: str
    rate: float
    pivot: str
    symbol: str                                       # display symbol of to_ccy
