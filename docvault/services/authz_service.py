"""鉴权服务：组装网关并提供给中间件与控制器调用。"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Mapping

from pymongo.errors import ConnectionFailure
from starlette.requests import Request

from docvault.config import POLICY_FETCH_BACKOFF_MS, POLICY_FETCH_RETRIES, POLICY_FETCH_TIMEOUT_MS
from docvault.iam import AuthorizationGate, AuthorizationResult
from docvault.iam.gate import ResourceSpec
from docvault.services.policy_store import MongoPolicyStore

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (asyncio.TimeoutError, ConnectionError, ConnectionFailure)

_gate: AuthorizationGate | None = None


def build_gate() -> AuthorizationGate:
    return AuthorizationGate(
        MongoPolicyStore(),
        timeout_seconds=POLICY_FETCH_TIMEOUT_MS / 1000,
        retries=POLICY_FETCH_RETRIES,
        backoff_seconds=POLICY_FETCH_BACKOFF_MS / 1000,
        transient_errors=TRANSIENT_ERRORS,
    )


def get_gate() -> AuthorizationGate:
    global _gate
    if _gate is None:
        _gate = build_gate()
    return _gate


def path_resource(prefix: str, param: str = "id") -> Callable[[Request], str]:
    """按路径参数拼资源标识，例如 ``docs/{id}``。"""

    def resolver(request: Request) -> str:
        return f"{prefix}/{request.path_params[param]}"

    return resolver


def request_context(request: Request | None) -> dict[str, Any]:
    """附加到求值上下文中的请求信息。"""

    if request is None:
        return {}
    return {
        "request.method": request.method,
        "request.path": request.url.path,
        "request": {"method": request.method, "path": request.url.path},
    }


async def authorize(
    principal_id: str,
    action: str,
    resource: ResourceSpec,
    context: Mapping[str, Any] | None = None,
    *,
    request: Request | None = None,
) -> AuthorizationResult:
    """对当前请求做一次鉴权（每次都重新解析策略，不缓存）。"""

    merged = {**request_context(request), **dict(context or {})}
    return await get_gate().authorize(principal_id, action, resource, merged, request=request)
