"""FastAPI 应用入口。"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

from .apps.admin.controllers.policies import router as policies_router
from .apps.admin.controllers.roles import router as roles_router
from .config import APP_NAME, SECRET_KEY
from .db import close_db, init_db
from .services.role_service import ensure_default_roles


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """应用生命周期：启动时初始化数据库与系统角色，退出时释放资源。"""

    await init_db()
    await ensure_default_roles()
    try:
        yield
    finally:
        await close_db()


app = FastAPI(title=APP_NAME, lifespan=lifespan)
app.add_middleware(SessionMiddleware, secret_key=SECRET_KEY, session_cookie="docvault_session")
app.include_router(policies_router)
app.include_router(roles_router)


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}
