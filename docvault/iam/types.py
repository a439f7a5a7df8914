"""鉴权引擎的值类型。"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Effect(str, Enum):
    """策略语句的效果。"""

    ALLOW = "Allow"
    DENY = "Deny"


class Decision(str, Enum):
    """最终鉴权结论，只有允许与拒绝两种。"""

    ALLOW = "Allow"
    DENY = "Deny"


class StatementOutcome(str, Enum):
    """单条语句的三态结果。"""

    ALLOW = "Allow"
    DENY = "Deny"
    NOT_APPLICABLE = "NotApplicable"


@dataclass(frozen=True, slots=True)
class BoundPolicy:
    """绑定到主体上的一份策略文档（已由存储层解析）。"""

    name: str
    document: Any
    policy_id: str = ""

    @property
    def label(self) -> str:
        return self.name or self.policy_id or "<unnamed>"


@dataclass(frozen=True, slots=True)
class StatementMatch:
    """命中的语句，用于审计轨迹。"""

    policy: str
    index: int
    effect: Effect

    def describe(self) -> str:
        return f"{self.effect.value}: {self.policy}#{self.index}"


@dataclass(frozen=True, slots=True)
class AuthorizationResult:
    """鉴权结果：结论、原因以及可用于审计日志的明细。"""

    decision: Decision
    reason: str
    details: tuple[str, ...] = ()
    matched_statements: tuple[StatementMatch, ...] = field(default=())

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ALLOW

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision": self.decision.value,
            "reason": self.reason,
            "details": list(self.details),
        }


def deny(reason: str, *details: str) -> AuthorizationResult:
    """构造一个拒绝结果。"""

    return AuthorizationResult(decision=Decision.DENY, reason=reason, details=tuple(details))
