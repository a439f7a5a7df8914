"""语句 Condition 块求值。"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping

from .patterns import matches, resolve_path, scalar_text, substitute_variables

logger = logging.getLogger(__name__)


class ConditionOperator(str, Enum):
    """支持的条件运算符（封闭集合）。"""

    STRING_EQUALS = "StringEquals"
    STRING_LIKE = "StringLike"
    NUMERIC_EQUALS = "NumericEquals"
    DATE_EQUALS = "DateEquals"

    @classmethod
    def parse(cls, name: Any) -> ConditionOperator | None:
        try:
            return cls(name)
        except ValueError:
            return None


def _to_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None


def _to_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _expected_text(expected: Any, context: Mapping[str, Any]) -> str | None:
    text = scalar_text(expected)
    if text is None:
        return None
    return substitute_variables(text, context)


def _compare(operator: ConditionOperator, actual: Any, expected: Any, context: Mapping[str, Any]) -> bool:
    """对单个期望值求值；每个运算符都有显式分支，落空即失败。"""

    if operator is ConditionOperator.STRING_EQUALS:
        actual_text = scalar_text(actual)
        expected_text = _expected_text(expected, context)
        return actual_text is not None and actual_text == expected_text

    if operator is ConditionOperator.STRING_LIKE:
        actual_text = scalar_text(actual)
        expected_text = scalar_text(expected)
        if actual_text is None or expected_text is None:
            return False
        return matches(actual_text, expected_text, context)

    if operator is ConditionOperator.NUMERIC_EQUALS:
        left = _to_decimal(actual)
        right = _to_decimal(_expected_text(expected, context))
        return left is not None and right is not None and left == right

    if operator is ConditionOperator.DATE_EQUALS:
        left = _to_datetime(actual)
        right = _to_datetime(_expected_text(expected, context))
        return left is not None and right is not None and left == right

    return False


def evaluate_condition(condition: Any, context: Mapping[str, Any] | None) -> bool:
    """判断上下文是否满足 Condition 块。

    所有运算符下的所有键都必须满足；期望值为列表时任一元素满足即可。
    未知运算符、结构错误或上下文缺键都视为不满足。
    """

    if condition is None:
        return True
    if not isinstance(condition, Mapping):
        return False

    context = context or {}
    for name, clauses in condition.items():
        operator = ConditionOperator.parse(name)
        if operator is None:
            logger.warning("未知的条件运算符 %s，条件按不满足处理", name)
            return False
        if not isinstance(clauses, Mapping):
            return False

        for key, expected in clauses.items():
            actual = resolve_path(context, str(key))
            if actual is None:
                return False
            candidates = expected if isinstance(expected, list) else [expected]
            if not any(_compare(operator, actual, item, context) for item in candidates):
                return False
    return True
