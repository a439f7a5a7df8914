"""角色模型。"""

from __future__ import annotations

from datetime import datetime, timezone

from beanie import Document
from pydantic import Field
from pymongo import IndexModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Role(Document):
    """角色：一组策略的集合。"""

    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    is_system_role: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "roles"
        indexes = [
            IndexModel([("name", 1)], name="uniq_role_name", unique=True),
        ]
