"""应用配置（通过 .env 覆盖）。"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# 优先加载项目根目录下的 .env
BASE_DIR = Path(__file__).resolve().parents[1]
load_dotenv(BASE_DIR / ".env")


def _to_int(value: str | None, default: int, *, minimum: int = 0) -> int:
    """安全解析整数环境变量。"""

    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= minimum else default


def _to_bool(value: str | None, default: bool = False) -> bool:
    """安全解析布尔环境变量。"""

    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "on", "yes"}


APP_NAME = os.getenv("APP_NAME", "docvault")
APP_ENV = os.getenv("APP_ENV", "dev")
APP_PORT = _to_int(os.getenv("APP_PORT"), 8000, minimum=1)
SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")

MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
MONGO_DB = os.getenv("MONGO_DB", "docvault")
# 事务依赖副本集，单机 Mongo 需保持关闭
MONGO_TRANSACTIONS = _to_bool(os.getenv("MONGO_TRANSACTIONS"), default=False)

POLICY_FETCH_TIMEOUT_MS = _to_int(os.getenv("POLICY_FETCH_TIMEOUT_MS"), 2000, minimum=50)
POLICY_FETCH_RETRIES = _to_int(os.getenv("POLICY_FETCH_RETRIES"), 2, minimum=0)
POLICY_FETCH_BACKOFF_MS = _to_int(os.getenv("POLICY_FETCH_BACKOFF_MS"), 100, minimum=0)

UVICORN_HOST = os.getenv("UVICORN_HOST", "0.0.0.0")
UVICORN_LOG_LEVEL = os.getenv("UVICORN_LOG_LEVEL", "info")
UVICORN_RELOAD = _to_bool(os.getenv("UVICORN_RELOAD"), default=False)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
