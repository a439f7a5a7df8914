"""单条策略语句求值。"""

from __future__ import annotations

from typing import Any, Mapping

from .conditions import evaluate_condition
from .document import VALID_EFFECTS, as_list
from .patterns import matches
from .types import StatementOutcome


def evaluate_statement(
    statement: Mapping[str, Any],
    action: str,
    resource: str,
    context: Mapping[str, Any] | None = None,
) -> StatementOutcome:
    """把一条语句判定为 Allow / Deny / NotApplicable。"""

    if not isinstance(statement, Mapping):
        return StatementOutcome.NOT_APPLICABLE

    effect = statement.get("Effect")
    if effect not in VALID_EFFECTS:
        return StatementOutcome.NOT_APPLICABLE

    if not any(matches(action, pattern, context) for pattern in as_list(statement.get("Action"))):
        return StatementOutcome.NOT_APPLICABLE

    if not any(matches(resource, pattern, context) for pattern in as_list(statement.get("Resource"))):
        return StatementOutcome.NOT_APPLICABLE

    condition = statement.get("Condition")
    if condition is not None and not evaluate_condition(condition, context):
        return StatementOutcome.NOT_APPLICABLE

    return StatementOutcome(effect)
