"""Static rule checks."""

from review_forge.rules.base import Rule, RuleContext
from review_forge.rules.engine import RuleEngine, RuleRun

__all__ = ["Rule", "RuleContext", "RuleEngine", "RuleRun"]
