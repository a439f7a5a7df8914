"""多策略聚合：显式拒绝优先，默认拒绝。

归约规则（与语句顺序、文档顺序无关）::

    存在任一 Deny          -> Deny
    否则存在任一 Allow     -> Allow
    否则                   -> Deny（隐式拒绝）
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from .document import collect_document_errors
from .statements import evaluate_statement
from .types import (
    AuthorizationResult,
    BoundPolicy,
    Decision,
    Effect,
    StatementMatch,
    StatementOutcome,
)

logger = logging.getLogger(__name__)

REASON_NO_POLICIES = "no policies found"
REASON_EXPLICIT_DENY = "explicit deny"
REASON_ALLOWED = "allowed"
REASON_IMPLICIT_DENY = "implicit deny: no statement allows this request"


def _as_bound_policy(item: Any, position: int) -> BoundPolicy:
    if isinstance(item, BoundPolicy):
        return item
    return BoundPolicy(name=f"policy[{position}]", document=item)


def reduce_outcomes(outcomes: Iterable[StatementOutcome]) -> Decision:
    """三态折叠成最终结论。"""

    seen_allow = False
    for outcome in outcomes:
        if outcome is StatementOutcome.DENY:
            return Decision.DENY
        if outcome is StatementOutcome.ALLOW:
            seen_allow = True
    return Decision.ALLOW if seen_allow else Decision.DENY


def decide(
    policies: Iterable[BoundPolicy | Mapping[str, Any]],
    action: str,
    resource: str,
    context: Mapping[str, Any] | None = None,
) -> AuthorizationResult:
    """对主体绑定的全部策略求值并给出最终结论。

    ``policies`` 可以是 BoundPolicy，也可以直接是策略文档字典。
    结构不合法的文档会被跳过并记录告警，不会贡献任何 Allow。
    """

    bound = [_as_bound_policy(item, position) for position, item in enumerate(policies)]
    if not bound:
        return AuthorizationResult(decision=Decision.DENY, reason=REASON_NO_POLICIES)

    context = context or {}
    details: list[str] = []
    outcomes: list[StatementOutcome] = []
    denies: list[StatementMatch] = []
    allows: list[StatementMatch] = []

    for policy in bound:
        errors = collect_document_errors(policy.document)
        if errors:
            logger.warning("跳过不合法的策略 %s: %s", policy.label, "; ".join(errors))
            details.append(f"skipped malformed policy {policy.label}")
            continue

        for index, statement in enumerate(policy.document["Statement"]):
            outcome = evaluate_statement(statement, action, resource, context)
            outcomes.append(outcome)
            if outcome is StatementOutcome.DENY:
                denies.append(StatementMatch(policy=policy.label, index=index, effect=Effect.DENY))
            elif outcome is StatementOutcome.ALLOW:
                allows.append(StatementMatch(policy=policy.label, index=index, effect=Effect.ALLOW))

    matched = tuple(denies + allows)
    details.extend(item.describe() for item in matched)
    decision = reduce_outcomes(outcomes)

    if decision is Decision.ALLOW:
        reason = f"{REASON_ALLOWED} by {', '.join(sorted({item.policy for item in allows}))}"
    elif denies:
        reason = f"{REASON_EXPLICIT_DENY} by {', '.join(sorted({item.policy for item in denies}))}"
    else:
        reason = REASON_IMPLICIT_DENY

    return AuthorizationResult(
        decision=decision,
        reason=reason,
        details=tuple(details),
        matched_statements=matched,
    )
