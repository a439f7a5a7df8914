"""数据库初始化与连接管理。"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, cast

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorClientSession
from beanie import init_beanie

from .config import MONGO_DB, MONGO_TRANSACTIONS, MONGO_URL
from .models import DOCUMENT_MODELS

_mongo_client: AsyncIOMotorClient | None = None


async def init_db(mongo_url: str = MONGO_URL, db_name: str = MONGO_DB) -> None:
    """初始化 Beanie，并保留客户端用于关闭和开启事务。"""
    global _mongo_client
    _mongo_client = AsyncIOMotorClient(mongo_url)
    await init_beanie(
        # Motor 与 Beanie 的类型标注来源不同，这里显式转换避免类型检查误报。
        database=cast(Any, _mongo_client[db_name]),
        document_models=list(DOCUMENT_MODELS),
    )


async def close_db() -> None:
    """关闭 Mongo 连接。"""
    global _mongo_client
    if _mongo_client is not None:
        _mongo_client.close()
        _mongo_client = None


@asynccontextmanager
async def transaction() -> AsyncIterator[AsyncIOMotorClientSession | None]:
    """开启 Mongo 事务；未启用事务或未初始化时返回 None 会话。

    调用方把返回值原样透传给 Beanie 的 ``session=`` 参数即可，
    None 表示普通的非事务写入。
    """

    if not MONGO_TRANSACTIONS or _mongo_client is None:
        yield None
        return

    async with await _mongo_client.start_session() as session:
        async with session.start_transaction():
            yield session


async def touch_document(model: Any, object_id: Any, session: AsyncIOMotorClientSession | None = None) -> bool:
    """在事务内刷新文档的 updated_at，返回文档是否存在。

    并发事务写同一文档会触发 WriteConflict，
    以此把“检查引用再删除”和“新增引用”串行化。
    """

    result = await model.get_motor_collection().update_one(
        {"_id": object_id},
        {"$set": {"updated_at": datetime.now(timezone.utc)}},
        session=session,
    )
    return result.matched_count > 0
