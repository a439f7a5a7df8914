"""基于 Mongo 的策略解析：主体 -> 有效角色 -> 策略文档。"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from beanie import PydanticObjectId
from beanie.operators import In
from bson.errors import InvalidId

from docvault.iam import BoundPolicy, PrincipalInfo
from docvault.models import Policy, PolicyDocumentView, RolePolicy, User, UserRole
from docvault.models.bindings import utc_now


def _unique(values: list[Any]) -> list[Any]:
    """保持顺序去重。"""

    return list(dict.fromkeys(values))


class MongoPolicyStore:
    """鉴权网关的只读存储协作方。

    过期的主体-角色绑定在这里被过滤，求值核心不感知绑定的生命周期。
    同一策略经多个角色绑定时只返回一次。
    """

    async def get_principal(self, principal_id: str) -> PrincipalInfo | None:
        try:
            object_id = PydanticObjectId(principal_id)
        except (InvalidId, TypeError):
            return None

        user = await User.get(object_id)
        if user is None or user.status != "enabled":
            return None
        return PrincipalInfo(id=str(user.id), username=user.username, email=user.email)

    async def active_role_ids(self, principal_id: str, now: datetime | None = None) -> list[PydanticObjectId]:
        now = now or utc_now()
        bindings = await UserRole.find(
            {
                "principal_id": str(principal_id),
                "$or": [{"expires_at": None}, {"expires_at": {"$gt": now}}],
            }
        ).to_list()
        return _unique([item.role_id for item in bindings if item.is_active(now)])

    async def list_principal_policies(self, principal_id: str, now: datetime | None = None) -> list[BoundPolicy]:
        role_ids = await self.active_role_ids(principal_id, now)
        if not role_ids:
            return []

        role_bindings = await RolePolicy.find(In(RolePolicy.role_id, role_ids)).to_list()
        policy_ids = _unique([item.policy_id for item in role_bindings])
        if not policy_ids:
            return []

        # 投影读取，document 结构不合法的历史数据也能取回，由聚合器跳过
        views = await Policy.find(In(Policy.id, policy_ids)).project(PolicyDocumentView).to_list()
        return [BoundPolicy(name=view.name, document=view.document, policy_id=str(view.id)) for view in views]
