# backend/navrisk/main.py
import asyncio
import logging
import traceback
import warnings
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from .config import CORS_ORIGINS, LOG_LEVEL, REPORT_DEBUG, currency_symbol
from .errors import (
    InsufficientDataError,
    SimulationCancelledError,
    SimulationPreconditionError,
    UnresolvableConversionError,
)
from .fx import CurrencyConverter
from .metrics import best_worst_years, calendar_year_returns, compute_metrics
from .montecarlo import MonteCarloRunner
from .nav import require_nav_series
from .schemas import (
    AnalyticsOut,
    FxRateOut,
    MonteCarloIn,
    MonteCarloOut,
    NavPoint,
    PortfolioIn,
    SimulationYearPoint,
)

# =========================
# Config
# =========================

warnings.filterwarnings("default")
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger("portfolio-api")

# set by lifespan
runner: Optional[MonteCarloRunner] = None


@asynccontextmanager
async def lifespan(_app: FastAPI):
    global runner
    runner = MonteCarloRunner()
    try:
        yield
    finally:
        runner.shutdown()


# =========================
# FastAPI app & CORS
# =========================
app = FastAPI(title="Portfolio NAV & Risk API", lifespan=lifespan)


@app.exception_handler(Exception)
async def _debug_any_exc(request: Request, exc: Exception):
    if REPORT_DEBUG:
        return PlainTextResponse(traceback.format_exc(), status_code=500)
    raise exc


app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =========================
# Helpers
# =========================

def _nav_for(body: PortfolioIn) -> List[NavPoint]:
    if not body.assets:
        raise HTTPException(status_code=400, detail="No assets provided")
    converter = CurrencyConverter() if body.use_static_fallback else None
    return require_nav_series(
        body.prices,
        body.fx,
        body.assets,
        body.initial_capital,
        body.currency,
        converter=converter,
    )


# =========================
# Routes
# =========================

@app.get("/api/v1/health")
def health():
    return {"status": "ok"}


@app.get("/api/v1/fx/rate", response_model=FxRateOut)
def fx_rate(
    from_ccy: str = Query(..., alias="from", min_length=3, max_length=3),
    to_ccy: str = Query(..., alias="to", min_length=3, max_length=3),
):
    """Static cross rate through the pivot currency (no historical lookup)."""
    converter = CurrencyConverter()
    try:
        rate = converter.rate(from_ccy, to_ccy)
    except UnresolvableConversionError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return FxRateOut(
        from_ccy=from_ccy.upper(),
        to_ccy=to_ccy.upper(),
        rate=rate,
        pivot=converter.pivot,
        symbol=currency_symbol(to_ccy),
    )


@app.post("/api/v1/portfolio/nav", response_model=List[NavPoint])
def portfolio_nav(body: PortfolioIn):
    try:
        return _nav_for(body)
    except HTTPException:
        raise
    except (InsufficientDataError, UnresolvableConversionError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.error("portfolio_nav error:\n%s", traceback.format_exc())
        raise HTTPException(status_code=500, detail="NAV computation failed")


@app.post("/api/v1/portfolio/analytics", response_model=AnalyticsOut)
def analytics(body: PortfolioIn):
    """
    NAV series in the requested currency plus:
      metrics        (annual return/vol, Sharpe, VaR/CVaR 95, max drawdown)
      calendar_years (one row per calendar year)
      best_worst     (top/bottom 3 calendar years)
    """
    try:
        base = body.currency.upper().strip()
        logger.info("Analytics for %d assets (base=%s, capital=%.2f)", len(body.assets), base, body.initial_capital)

        nav = _nav_for(body)
        metrics = compute_metrics(nav)
        years = calendar_year_returns(nav)

        return AnalyticsOut(
            currency=base,
            nav=nav,
            metrics=metrics,
            calendar_years=years,
            best_worst=best_worst_years(years),
        )

    except HTTPException:
        raise
    except (InsufficientDataError, UnresolvableConversionError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.error("Error in portfolio analytics:\n%s", traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal error")


@app.post("/api/v1/montecarlo", response_model=MonteCarloOut)
async def montecarlo(body: MonteCarloIn):
    """
    GBM projection seeded by previously computed metrics. Runs on the worker
    pool; a newer request for the same view_id supersedes this one (409).
    """
    try:
        future = runner.submit(
            body.view_id,
            body.metrics,
            body.initial_capital,
            body.horizon_years,
            body.num_scenarios,
            seed=body.seed,
        )
        data = await asyncio.wrap_future(future)
        return MonteCarloOut(
            view_id=body.view_id,
            horizon_years=body.horizon_years,
            num_scenarios=body.num_scenarios,
            data=data,
        )

    except SimulationPreconditionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SimulationCancelledError as e:
        logger.info("Monte Carlo for %s discarded: %s", body.view_id, e)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.error("Monte Carlo error:\n%s", traceback.format_exc())
        raise HTTPException(status_code=500, detail="Simulation failed")


@app.get("/api/v1/montecarlo/{view_id}", response_model=List[SimulationYearPoint])
def montecarlo_latest(view_id: str):
    data = runner.latest(view_id)
    if data is None:
        raise HTTPException(status_code=404, detail="No completed simulation for this view")
    return data


@app.delete("/api/v1/montecarlo/{view_id}", status_code=204)
def montecarlo_cancel(view_id: str):
    if not runner.cancel(view_id):
        raise HTTPException(status_code=404, detail="No simulation for this view")
    return Response(status_code=204)
