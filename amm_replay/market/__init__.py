"""Market simulation components."""

from amm_replay.market.price_process import GBMPriceProcess
from amm_replay.market.arbitrageur import ArbCandidate, Arbitrageur, ArbResult
from amm_replay.market.retail import RetailTrader
from amm_replay.market.router import OrderRouter, RouterDecision

__all__ = [
    "GBMPriceProcess",
    "ArbCandidate",
    "Arbitrageur",
    "ArbResult",
    "RetailTrader",
    "OrderRouter",
    "RouterDecision",
]
