from __future__ import annotations

from .cache import CacheEntry, CacheManager, cache_key
from .events import EventLog
from .healer import Healer, HealingLocator, HealingPage, with_healing
from .picker import PickResult, pick_strategy
from .ranking import DEFAULT_WEIGHTS, RankingWeights, rank_candidates, score_candidate

__all__ = [
    "CacheEntry",
    "CacheManager",
    "DEFAULT_WEIGHTS",
    "EventLog",
    "Healer",
    "HealingLocator",
    "HealingPage",
    "PickResult",
    "RankingWeights",
    "cache_key",
    "pick_strategy",
    "rank_candidates",
    "score_candidate",
    "with_healing",
]
