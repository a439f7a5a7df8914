"""测试公共 fixture。"""

from __future__ import annotations

import os
from typing import AsyncIterator
from uuid import uuid4

import pytest
import pytest_asyncio
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from docvault import db

TEST_MONGO_URL = os.getenv("TEST_MONGO_URL", os.getenv("MONGO_URL", "mongodb://localhost:27017"))


@pytest_asyncio.fixture
async def initialized_db() -> AsyncIterator[str]:
    """初始化一个独立的测试库，用完即删；连不上 Mongo 时跳过。"""

    admin_client = AsyncIOMotorClient(TEST_MONGO_URL, serverSelectionTimeoutMS=1500)
    try:
        await admin_client.admin.command("ping")
    except PyMongoError as exc:
        admin_client.close()
        pytest.skip(f"MongoDB 不可用: {exc}")

    db_name = f"docvault_test_{uuid4().hex[:8]}"
    await db.init_db(TEST_MONGO_URL, db_name)
    try:
        yield db_name
    finally:
        await db.close_db()
        await admin_client.drop_database(db_name)
        admin_client.close()
