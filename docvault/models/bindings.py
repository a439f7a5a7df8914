"""主体-角色、角色-策略绑定模型。"""

from __future__ import annotations

from datetime import datetime, timezone

from beanie import Document, PydanticObjectId
from pydantic import Field
from pymongo import IndexModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    # Mongo 取回的时间默认不带时区
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class UserRole(Document):
    """主体持有角色的记录，expires_at 为空表示永不过期。"""

    principal_id: str = Field(..., min_length=1, max_length=64)
    role_id: PydanticObjectId
    assigned_by: str | None = None
    assigned_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime | None = None

    def is_active(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return True
        return _aware(now or utc_now()) < _aware(self.expires_at)

    class Settings:
        name = "user_roles"
        indexes = [
            IndexModel([("principal_id", 1), ("role_id", 1)], name="uniq_principal_role", unique=True),
            IndexModel([("role_id", 1)], name="idx_user_role_role"),
            IndexModel([("expires_at", 1)], name="idx_user_role_expires_at"),
        ]


class RolePolicy(Document):
    """角色挂载策略的记录。"""

    role_id: PydanticObjectId
    policy_id: PydanticObjectId
    assigned_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "role_policies"
        indexes = [
            IndexModel([("role_id", 1), ("policy_id", 1)], name="uniq_role_policy", unique=True),
            IndexModel([("policy_id", 1)], name="idx_role_policy_policy"),
        ]
