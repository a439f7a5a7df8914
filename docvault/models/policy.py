"""策略模型。"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from beanie import Document, Insert, PydanticObjectId, Replace, Save, before_event
from pydantic import BaseModel, Field
from pymongo import IndexModel

from docvault.iam.document import validate_policy_document


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Policy(Document):
    """IAM 风格的策略，document 原样保存策略文档。

    写入时由 check_document 校验；读取不做结构约束，历史脏数据仍可被列出和修复。
    """

    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    document: Any = None
    is_system_policy: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @before_event(Insert, Replace, Save)
    def check_document(self) -> None:
        """落库前再校验一次，不合法的文档永远不会被持久化。"""

        validate_policy_document(self.document)

    class Settings:
        name = "policies"
        indexes = [
            IndexModel([("name", 1)], name="uniq_policy_name", unique=True),
            IndexModel([("is_system_policy", 1)], name="idx_policy_system"),
        ]


class PolicyDocumentView(BaseModel):
    """求值用的策略投影；document 不做结构约束，脏数据交给聚合器跳过。"""

    id: PydanticObjectId
    name: str = ""
    document: Any = None

    class Settings:
        projection = {"id": "$_id", "name": 1, "document": 1}
