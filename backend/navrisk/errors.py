# backend/navrisk/errors.py


class PortfolioEngineError(Exception):
    """Base class for every failure the engine reports to its caller."""


class InsufficientDataError(PortfolioEngineError):
    """Not enough price/FX history to value the portfolio for the requested period."""


class UnresolvableConversionError(PortfolioEngineError):
    """A non-identity currency pair has no rate. Never substituted with 1.0."""

    def __init__(self, from_ccy: str, to_ccy: str, reason: str = "no rate available"):
        self.from_ccy = from_ccy
        self.to_ccy = to_ccy
        super().__init__(f"Cannot convert {from_ccy} -> {to_ccy}: {reason}")


class SimulationPreconditionError(PortfolioEngineError):
    """Monte Carlo requested without annual return and volatility."""


class SimulationCancelledError(PortfolioEngineError):
    """The run was cancelled or superseded by a newer one for the same view."""
