"""鉴权入口：解析资源、拉取主体策略、聚合求值。

网关本身无状态、不缓存结论；任何异常路径都收敛为 Deny。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol, Union

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .aggregator import decide
from .types import AuthorizationResult, BoundPolicy, deny

logger = logging.getLogger(__name__)

ResourceResolver = Callable[[Any], str]
ResourceSpec = Union[str, ResourceResolver]

REASON_UNKNOWN_PRINCIPAL = "principal not found"
REASON_RESOURCE_FAILED = "resource resolution failed"
REASON_LOOKUP_FAILED = "policy lookup failed"
REASON_EVALUATION_FAILED = "policy evaluation failed"

IDENTITY_KEYS = ("userId", "username", "email", "user")


@dataclass(frozen=True, slots=True)
class PrincipalInfo:
    """参与求值的主体身份。"""

    id: str
    username: str = ""
    email: str = ""


class PolicyStore(Protocol):
    """策略存储协作方：只读，负责过滤过期的角色绑定。"""

    async def get_principal(self, principal_id: str) -> PrincipalInfo | None: ...

    async def list_principal_policies(self, principal_id: str) -> list[BoundPolicy]: ...


def build_context(principal: PrincipalInfo, overrides: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """构造求值上下文；身份字段不允许被调用方覆盖。"""

    # 扁平键 "user.id" 会优先于嵌套的 user.id 被解析，一并剔除
    context: dict[str, Any] = {
        key: value
        for key, value in (overrides or {}).items()
        if key not in IDENTITY_KEYS and not str(key).startswith("user.")
    }
    context.update(
        {
            "userId": principal.id,
            "username": principal.username,
            "email": principal.email,
            "user": {
                "id": principal.id,
                "username": principal.username,
                "email": principal.email,
            },
        }
    )
    return context


def resolve_resource(resource: ResourceSpec, request: Any = None) -> str:
    """资源可以是字面量，也可以是基于请求计算资源的函数。"""

    value = resource(request) if callable(resource) else resource
    if not isinstance(value, str) or not value:
        raise ValueError(f"资源标识不合法: {value!r}")
    return value


class AuthorizationGate:
    """鉴权网关。"""

    def __init__(
        self,
        store: PolicyStore,
        *,
        timeout_seconds: float = 2.0,
        retries: int = 2,
        backoff_seconds: float = 0.1,
        transient_errors: tuple[type[BaseException], ...] = (asyncio.TimeoutError, ConnectionError),
    ):
        self.store = store
        self.timeout_seconds = timeout_seconds
        self.retries = max(retries, 0)
        self.backoff_seconds = max(backoff_seconds, 0.0)
        self.transient_errors = transient_errors

    async def _with_retry(self, label: str, factory: Callable[[], Any]) -> Any:
        """带超时与瞬时错误重试地执行一次存储读取。"""

        def log_retry(retry_state: RetryCallState) -> None:
            logger.warning(
                "%s 读取失败，第 %d 次重试: %r",
                label,
                retry_state.attempt_number,
                retry_state.outcome.exception() if retry_state.outcome else None,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retries + 1),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=self.backoff_seconds * 8),
            retry=retry_if_exception_type(self.transient_errors),
            before_sleep=log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                result = await asyncio.wait_for(factory(), timeout=self.timeout_seconds)
        return result

    async def authorize(
        self,
        principal_id: str,
        action: str,
        resource: ResourceSpec,
        context_overrides: Mapping[str, Any] | None = None,
        *,
        request: Any = None,
    ) -> AuthorizationResult:
        """判定主体能否对资源执行动作。"""

        try:
            resource_value = resolve_resource(resource, request)
        except Exception as exc:
            logger.warning("解析资源失败 principal=%s action=%s: %r", principal_id, action, exc)
            return deny(REASON_RESOURCE_FAILED, repr(exc))

        try:
            principal = await self._with_retry(
                "主体", lambda: self.store.get_principal(principal_id)
            )
            if principal is None:
                logger.info("主体不存在，拒绝访问 principal=%s", principal_id)
                return deny(REASON_UNKNOWN_PRINCIPAL)
            policies = await self._with_retry(
                "策略", lambda: self.store.list_principal_policies(principal_id)
            )
        except Exception as exc:
            logger.warning("拉取主体策略失败 principal=%s: %r", principal_id, exc)
            return deny(REASON_LOOKUP_FAILED, repr(exc))

        try:
            context = build_context(principal, context_overrides)
            result = decide(policies, action, resource_value, context)
        except Exception as exc:
            logger.exception("策略求值异常 principal=%s action=%s resource=%s", principal_id, action, resource_value)
            return deny(REASON_EVALUATION_FAILED, repr(exc))

        if not result.allowed:
            logger.info(
                "拒绝访问 principal=%s action=%s resource=%s reason=%s",
                principal_id,
                action,
                resource_value,
                result.reason,
            )
        return result
