"""tripwire — trigger subsystem.

Package structure
-----------------
triggers/
  models.py     — Trigger, TriggerType, ReleaseParams, EvaluationContext
  versions.py   — semantic-version parsing and comparison
  handlers.py   — one handler per TriggerType
  evaluator.py  — TriggerEvaluator (type → handler lookup)
"""

from tripwire.triggers.evaluator import TriggerEvaluator
from tripwire.triggers.models import EvaluationContext, ReleaseParams, Trigger, TriggerType
from tripwire.triggers.versions import parse_version, should_fire

__all__ = [
    "EvaluationContext",
    "ReleaseParams",
    "Trigger",
    "TriggerEvaluator",
    "TriggerType",
    "parse_version",
    "should_fire",
]
