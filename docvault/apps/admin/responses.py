"""Admin JSON 接口公共工具。"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator

from fastapi import HTTPException

from docvault.iam import AuthorizationResult, PolicyDocumentError
from docvault.iam.document import is_valid_policy_document
from docvault.services.errors import IamServiceError, InUseError, NameConflictError, SystemProtectedError


def fmt_dt(value: datetime | None) -> str:
    """格式化日期时间，统一输出 ISO 格式。"""

    if not value:
        return ""
    return value.isoformat()


@contextmanager
def service_errors() -> Iterator[None]:
    """把服务层异常映射为 HTTP 错误。"""

    try:
        yield
    except PolicyDocumentError as exc:
        raise HTTPException(status_code=422, detail={"message": "策略文档不合法", "errors": exc.errors}) from exc
    except (NameConflictError, InUseError) as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except SystemProtectedError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except IamServiceError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def not_found(label: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"{label}不存在")


def serialize_policy(policy: Any) -> dict[str, Any]:
    return {
        "id": str(policy.id),
        "name": policy.name,
        "description": policy.description,
        "document": policy.document,
        "document_valid": is_valid_policy_document(policy.document),
        "is_system_policy": policy.is_system_policy,
        "created_at": fmt_dt(policy.created_at),
        "updated_at": fmt_dt(policy.updated_at),
    }


def serialize_role(role: Any, policies: list[Any] | None = None) -> dict[str, Any]:
    data = {
        "id": str(role.id),
        "name": role.name,
        "description": role.description,
        "is_system_role": role.is_system_role,
        "updated_at": fmt_dt(role.updated_at),
    }
    if policies is not None:
        data["policies"] = [{"id": str(item.id), "name": item.name} for item in policies]
    return data


def serialize_binding(binding: Any) -> dict[str, Any]:
    return {
        "principal_id": binding.principal_id,
        "role_id": str(binding.role_id),
        "assigned_by": binding.assigned_by,
        "assigned_at": fmt_dt(binding.assigned_at),
        "expires_at": fmt_dt(binding.expires_at),
    }


def serialize_result(result: AuthorizationResult) -> dict[str, Any]:
    data = result.to_dict()
    data["matched_statements"] = [item.describe() for item in result.matched_statements]
    return data
