"""策略文档结构校验。

文档形状::

    {
        "Version": "1.0",
        "Statement": [
            {
                "Effect": "Allow" | "Deny",
                "Action": "docs:Read" | ["docs:Read", ...],
                "Resource": "doc:public/*" | [...],
                "Condition": {"StringEquals": {"docs:author_id": "${user.id}"}},
            }
        ],
    }

写入时不合法的文档直接拒绝；读取时遇到的脏数据由聚合器跳过。
"""

from __future__ import annotations

from typing import Any, Mapping

VALID_EFFECTS = ("Allow", "Deny")


class PolicyDocumentError(ValueError):
    """策略文档不合法。"""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "策略文档不合法")


def as_list(value: Any) -> list[Any]:
    """Action / Resource 允许写成字符串或字符串列表，统一成列表。"""

    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _entry_errors(statement: Mapping[str, Any], key: str, index: int) -> list[str]:
    raw = statement.get(key)
    if isinstance(raw, str):
        entries = [raw]
    elif isinstance(raw, list):
        entries = raw
    else:
        return [f"Statement {index} 必须包含 {key}（字符串或字符串列表）"]

    if not entries:
        return [f"Statement {index} 的 {key} 至少需要一项"]
    if any(not isinstance(item, str) or not item for item in entries):
        return [f"Statement {index} 的 {key} 只能包含非空字符串"]
    return []


def _condition_errors(condition: Any, index: int) -> list[str]:
    if not isinstance(condition, Mapping):
        return [f"Statement {index} 的 Condition 必须是对象"]

    errors: list[str] = []
    for operator, clauses in condition.items():
        if not isinstance(clauses, Mapping):
            errors.append(f"Statement {index} 的 Condition.{operator} 必须是对象")
    return errors


def collect_document_errors(document: Any) -> list[str]:
    """返回文档的全部校验错误，空列表表示合法。"""

    if not isinstance(document, Mapping):
        return ["策略文档必须是 JSON 对象"]

    errors: list[str] = []
    version = document.get("Version")
    if not isinstance(version, str) or not version.strip():
        errors.append("策略文档必须包含 Version 字段")

    statements = document.get("Statement")
    if not isinstance(statements, list):
        errors.append("策略文档必须包含 Statement 数组")
        return errors
    if not statements:
        errors.append("Statement 数组不能为空")
        return errors

    for index, statement in enumerate(statements):
        if not isinstance(statement, Mapping):
            errors.append(f"Statement {index} 必须是对象")
            continue
        if statement.get("Effect") not in VALID_EFFECTS:
            errors.append(f"Statement {index} 的 Effect 必须是 Allow 或 Deny")
        errors.extend(_entry_errors(statement, "Action", index))
        errors.extend(_entry_errors(statement, "Resource", index))
        if "Condition" in statement and statement["Condition"] is not None:
            errors.extend(_condition_errors(statement["Condition"], index))
    return errors


def validate_policy_document(document: Any) -> dict[str, Any]:
    """校验策略文档，不合法时抛出 PolicyDocumentError。"""

    errors = collect_document_errors(document)
    if errors:
        raise PolicyDocumentError(errors)
    return dict(document)


def is_valid_policy_document(document: Any) -> bool:
    return not collect_document_errors(document)
