"""Alert rule evaluation.

Submodules:
    conditions -- One Condition per ConditionType (threshold, new_error, critical).
    evaluator  -- Pure evaluation of a snapshot into Violation records.
"""

from errorpulse.rules.conditions import CONDITIONS, Condition
from errorpulse.rules.evaluator import RuleEvaluator, evaluate

__all__ = ["CONDITIONS", "Condition", "RuleEvaluator", "evaluate"]
