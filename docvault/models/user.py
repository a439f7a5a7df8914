"""用户模型（归属用户子系统，这里只读取身份字段）。"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from beanie import Document
from pydantic import Field
from pymongo import IndexModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class User(Document):
    """用户。"""

    username: str = Field(..., min_length=1, max_length=64)
    email: str = Field(default="", max_length=254)
    status: Literal["enabled", "disabled"] = "enabled"
    created_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "users"
        indexes = [
            IndexModel([("username", 1)], name="uniq_username", unique=True),
        ]
