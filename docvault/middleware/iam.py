"""IAM 鉴权依赖：在路由执行前检查当前主体的权限。"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping

from fastapi import HTTPException, Request

from docvault.iam import AuthorizationResult
from docvault.iam.gate import ResourceSpec
from docvault.services import authz_service

logger = logging.getLogger(__name__)

SESSION_PRINCIPAL_KEY = "user_id"

PermissionDependency = Callable[[Request], Awaitable[AuthorizationResult]]


def current_principal_id(request: Request) -> str | None:
    session = request.scope.get("session")
    if not isinstance(session, dict):
        return None
    value = session.get(SESSION_PRINCIPAL_KEY)
    return str(value) if value else None


def require_permission(
    action: str,
    resource: ResourceSpec,
    *,
    context: Mapping[str, Any] | None = None,
) -> PermissionDependency:
    """生成路由依赖：未登录返回 401，被拒绝返回 403。

    resource 可以是字面量，也可以是 ``request -> str`` 的函数。
    拒绝原因只写日志，不返回给调用方。
    """

    async def dependency(request: Request) -> AuthorizationResult:
        principal_id = current_principal_id(request)
        if not principal_id:
            raise HTTPException(status_code=401, detail="authentication required")

        result = await authz_service.authorize(
            principal_id,
            action,
            resource,
            context,
            request=request,
        )
        request.state.authorization = result
        if not result.allowed:
            logger.info(
                "请求被拒绝 %s %s action=%s reason=%s details=%s",
                request.method,
                request.url.path,
                action,
                result.reason,
                list(result.details),
            )
            raise HTTPException(status_code=403, detail="access denied")
        return result

    return dependency


def resource_guards(namespace: str) -> dict[str, PermissionDependency]:
    """按资源命名空间生成常用的 CRUD 鉴权依赖。"""

    collection = f"{namespace}/*"
    item = authz_service.path_resource(namespace)
    return {
        "list": require_permission(f"{namespace}:List", collection),
        "read": require_permission(f"{namespace}:Read", collection),
        "create": require_permission(f"{namespace}:Create", collection),
        "update": require_permission(f"{namespace}:Update", item),
        "delete": require_permission(f"{namespace}:Delete", item),
    }
