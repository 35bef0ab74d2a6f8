"""
Market Module
=============

Contains the price-series environments the agent can trade against.

Classes:
    TradingGame  - Single-asset hold/buy/sell simulation
    BaseMarket   - Abstract base class for creating new markets
    StateEncoder - MarketState -> tensor encoding

Market Registry:
    Use get_market(name) to get a market class by name
    Use list_markets() to get all available markets
"""

from typing import Any, Dict, List, Optional, Type

from .base_market import BaseMarket, StepResult
from .trading_game import (
    TradingGame, MarketState, cosine_prices,
    ACTION_HOLD, ACTION_BUY, ACTION_SELL, ALL_ACTIONS, NUM_ACTIONS, ACTION_NAMES,
)
from .encoder import StateEncoder


# =============================================================================
# MARKET REGISTRY
# =============================================================================
# To add a new market:
#   1. Create the market class inheriting from BaseMarket
#   2. Add an entry to MARKET_REGISTRY below

MARKET_REGISTRY: Dict[str, Dict[str, Any]] = {
    'cosine': {
        'class': TradingGame,
        'name': 'Cosine Series',
        'description': 'Single asset priced at BASE_PRICE + cos(t)',
        'actions': ACTION_NAMES,
    },
}


def get_market(name: str) -> Optional[Type[BaseMarket]]:
    """
    Get a market class by name.
    
    Example:
        >>> MarketClass = get_market('cosine')
        >>> market = MarketClass(config)
    """
    entry = MARKET_REGISTRY.get(name.lower())
    if entry:
        return entry['class']
    return None


def list_markets() -> List[str]:
    """Get a list of all available market names."""
    return list(MARKET_REGISTRY.keys())


__all__ = [
    'BaseMarket',
    'StepResult',
    'TradingGame',
    'MarketState',
    'StateEncoder',
    'cosine_prices',
    'ACTION_HOLD',
    'ACTION_BUY',
    'ACTION_SELL',
    'ALL_ACTIONS',
    'NUM_ACTIONS',
    'ACTION_NAMES',
    'MARKET_REGISTRY',
    'get_market',
    'list_markets',
]
