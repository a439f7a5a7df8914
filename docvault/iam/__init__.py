"""基于策略的访问控制引擎（纯函数部分，不依赖存储）。"""

from .aggregator import REASON_NO_POLICIES, decide, reduce_outcomes
from .conditions import ConditionOperator, evaluate_condition
from .document import PolicyDocumentError, collect_document_errors, validate_policy_document
from .gate import AuthorizationGate, PolicyStore, PrincipalInfo, build_context
from .patterns import matches, resolve_path, substitute_variables
from .statements import evaluate_statement
from .types import (
    AuthorizationResult,
    BoundPolicy,
    Decision,
    Effect,
    StatementMatch,
    StatementOutcome,
)

__all__ = [
    "AuthorizationGate",
    "AuthorizationResult",
    "BoundPolicy",
    "ConditionOperator",
    "Decision",
    "Effect",
    "PolicyDocumentError",
    "PolicyStore",
    "PrincipalInfo",
    "REASON_NO_POLICIES",
    "StatementMatch",
    "StatementOutcome",
    "build_context",
    "collect_document_errors",
    "decide",
    "evaluate_condition",
    "evaluate_statement",
    "matches",
    "reduce_outcomes",
    "resolve_path",
    "substitute_variables",
    "validate_policy_document",
]
