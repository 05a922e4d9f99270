"""
Discussion Strategies
=====================

Strategy implementations that define how agents answer a user message.

Available strategies:
    - ``ConcurrentStrategy``: All responders answer at once from one snapshot
    - ``TurnBasedStrategy``: Responders answer in order, seeing earlier answers
    - ``ModeratedStrategy``: A moderator picks each next speaker

``STRATEGY_MAP`` maps every ``DiscussionMode`` to exactly one strategy.
"""

from parley.models import DiscussionMode
from parley.strategies.base import BaseStrategy
from parley.strategies.concurrent import ConcurrentStrategy
from parley.strategies.moderated import ModeratedStrategy
from parley.strategies.turn_based import TurnBasedStrategy

STRATEGY_MAP: dict[DiscussionMode, type[BaseStrategy]] = {
    DiscussionMode.CONCURRENT: ConcurrentStrategy,
    DiscussionMode.TURN_BASED: TurnBasedStrategy,
    DiscussionMode.MODERATED: ModeratedStrategy,
}


def select_strategy(mode: DiscussionMode) -> type[BaseStrategy]:
    """
    Return the strategy class for a discussion mode.

    Raises:
        ValueError: If the mode is unknown
    """
    strategy_class = STRATEGY_MAP.get(DiscussionMode(mode))
    if strategy_class is None:
        raise ValueError(
            f"Unknown discussion mode '{mode}'. Available: {list(STRATEGY_MAP.keys())}"
        )
    return strategy_class


__all__ = [
    "BaseStrategy",
    "ConcurrentStrategy",
    "ModeratedStrategy",
    "STRATEGY_MAP",
    "TurnBasedStrategy",
    "select_strategy",
]
