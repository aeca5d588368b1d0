"""Tracker layer: refresh scheduling, the portfolio view and the service facade."""

from .formatting import NOT_AVAILABLE, format_price, format_total, format_value, holding_value
from .pacing import RequestPacer
from .scheduler import RefreshScheduler
from .service import PortfolioTracker
from .tasks import BackgroundTasks
from .view import (
    CoinValuation,
    PortfolioRow,
    PortfolioSnapshot,
    PortfolioView,
    normalize_coin_id,
    parse_amount,
)

__all__ = [
    'NOT_AVAILABLE',
    'format_price',
    'format_total',
    'format_value',
    'holding_value',
    'RequestPacer',
    'RefreshScheduler',
    'PortfolioTracker',
    'BackgroundTasks',
    'CoinValuation',
    'PortfolioRow',
    'PortfolioSnapshot',
    'PortfolioView',
    'normalize_coin_id',
    'parse_amount',
]
