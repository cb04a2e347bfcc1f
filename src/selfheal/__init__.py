"""Self-healing locators for Playwright test suites."""

from __future__ import annotations

from .config import Settings
from .core import HealingLocator, HealingPage, with_healing
from .errors import (
    ConfigurationError,
    HealContext,
    HealingFailed,
    ParsingError,
    ProviderError,
    SelfHealError,
    StrategyValidationError,
)
from .logging import setup_logging
from .types import Candidate, HealPlan, PlanCandidate, StrategyPayload, validate_strategy

__all__ = [
    "Candidate",
    "ConfigurationError",
    "HealContext",
    "HealPlan",
    "HealingFailed",
    "HealingLocator",
    "HealingPage",
    "ParsingError",
    "PlanCandidate",
    "ProviderError",
    "SelfHealError",
    "Settings",
    "StrategyPayload",
    "StrategyValidationError",
    "setup_logging",
    "validate_strategy",
    "with_healing",
]
