"""策略服务层。"""

from __future__ import annotations

import logging
import re
from typing import Any, Mapping

from beanie import PydanticObjectId
from bson.errors import InvalidId
from pymongo.errors import DuplicateKeyError

from docvault.db import transaction
from docvault.iam import AuthorizationResult, BoundPolicy, decide, validate_policy_document
from docvault.models import Policy, RolePolicy
from docvault.models.policy import utc_now
from docvault.services.errors import IamServiceError, InUseError, NameConflictError, SystemProtectedError

logger = logging.getLogger(__name__)

DEFAULT_VERSION = "1.0"


def _allow(actions: list[str], resources: list[str], **extra: Any) -> dict[str, Any]:
    return {"Effect": "Allow", "Action": actions, "Resource": resources, **extra}


def _crud(prefix: str, *, with_list: bool = True) -> list[str]:
    verbs = ["Create", "Read", "Update", "Delete"] + (["List"] if with_list else [])
    return [f"{prefix}:{verb}" for verb in verbs]


DEFAULT_POLICIES: list[dict[str, Any]] = [
    {
        "name": "SystemFullAccess",
        "description": "Full system access including admin functions",
        "statements": [_allow(["*"], ["*"])],
    },
    {
        "name": "DocumentFullAccess",
        "description": "Full access to document management",
        "statements": [_allow(_crud("docs"), ["docs/*"])],
    },
    {
        "name": "DocumentReadOnly",
        "description": "Read-only access to documents",
        "statements": [_allow(["docs:Read", "docs:List"], ["docs/*"])],
    },
    {
        "name": "OwnDocumentAccess",
        "description": "Access only to own documents",
        "statements": [
            _allow(
                _crud("docs", with_list=False),
                ["docs/*"],
                Condition={"StringEquals": {"docs:author_id": "${user.id}"}},
            )
        ],
    },
    {
        "name": "UserManagement",
        "description": "Full access to user management",
        "statements": [_allow(_crud("users"), ["users/*"])],
    },
    {
        "name": "RoleManagement",
        "description": "Full access to role management",
        "statements": [_allow(_crud("roles"), ["roles/*"])],
    },
    {
        "name": "PolicyManagement",
        "description": "Full access to policy management",
        "statements": [_allow(_crud("policies"), ["policies/*"])],
    },
]

POLICY_TEMPLATES: list[dict[str, Any]] = [
    {
        "name": "DocumentFullAccess",
        "description": "Full access to documents",
        "document": {"Version": DEFAULT_VERSION, "Statement": [_allow(_crud("docs"), ["docs/*"])]},
    },
    {
        "name": "DocumentReadOnly",
        "description": "Read-only access to documents",
        "document": {"Version": DEFAULT_VERSION, "Statement": [_allow(["docs:Read", "docs:List"], ["docs/*"])]},
    },
    {
        "name": "UserManagement",
        "description": "Full access to user management",
        "document": {"Version": DEFAULT_VERSION, "Statement": [_allow(_crud("users"), ["users/*"])]},
    },
    {
        "name": "OwnDocumentAccess",
        "description": "Access only to own documents",
        "document": {
            "Version": DEFAULT_VERSION,
            "Statement": [
                _allow(
                    ["docs:Read", "docs:Update", "docs:Delete"],
                    ["docs/*"],
                    Condition={"StringEquals": {"docs:author_id": "${user.id}"}},
                )
            ],
        },
    },
    {
        "name": "PersonalWorkspace",
        "description": "Documents under the caller's own prefix plus public reads",
        "document": {
            "Version": DEFAULT_VERSION,
            "Statement": [
                _allow(_crud("docs", with_list=False), ["doc:${user.id}/*"]),
                _allow(["docs:Read"], ["doc:public/*"]),
            ],
        },
    },
]


def list_policy_templates() -> list[dict[str, Any]]:
    return [dict(item) for item in POLICY_TEMPLATES]


async def list_policies(query: str | None = None) -> list[Policy]:
    if query:
        regex = {"$regex": re.escape(query), "$options": "i"}
        return await Policy.find({"$or": [{"name": regex}, {"description": regex}]}).sort("name").to_list()
    return await Policy.find_all().sort("name").to_list()


async def get_policy(item_id: PydanticObjectId | str) -> Policy | None:
    try:
        object_id = PydanticObjectId(item_id)
    except (InvalidId, TypeError):
        return None
    return await Policy.get(object_id)


async def get_policy_by_name(name: str) -> Policy | None:
    return await Policy.find_one(Policy.name == name)


async def create_policy(payload: Mapping[str, Any], *, is_system: bool = False) -> Policy:
    """创建策略；文档不合法时抛出 PolicyDocumentError。"""

    document = validate_policy_document(payload.get("document"))
    name = str(payload.get("name") or "").strip()
    if not name:
        raise IamServiceError("策略名称不能为空")
    if await get_policy_by_name(name):
        raise NameConflictError(f"策略名称已存在: {name}")

    policy = Policy(
        name=name,
        description=str(payload.get("description") or ""),
        document=document,
        is_system_policy=is_system,
        created_at=utc_now(),
        updated_at=utc_now(),
    )
    try:
        await policy.insert()
    except DuplicateKeyError as exc:
        raise NameConflictError(f"策略名称已存在: {name}") from exc
    logger.info("创建策略 name=%s system=%s", name, is_system)
    return policy


async def update_policy(policy: Policy, payload: Mapping[str, Any]) -> Policy:
    """更新策略；系统策略不可修改。"""

    if policy.is_system_policy:
        raise SystemProtectedError(f"系统策略不可修改: {policy.name}")

    if "document" in payload and payload["document"] is not None:
        policy.document = validate_policy_document(payload["document"])

    name = str(payload.get("name") or "").strip()
    if name and name != policy.name:
        existing = await get_policy_by_name(name)
        if existing and existing.id != policy.id:
            raise NameConflictError(f"策略名称已存在: {name}")
        policy.name = name

    if payload.get("description") is not None:
        policy.description = str(payload["description"])
    policy.updated_at = utc_now()
    await policy.save()
    return policy


async def count_policy_roles(policy_id: PydanticObjectId, session: Any = None) -> int:
    return await RolePolicy.find(RolePolicy.policy_id == policy_id, session=session).count()


async def delete_policy(policy: Policy) -> None:
    """删除策略；系统策略或仍挂在角色上的策略不可删除。

    引用检查与删除在同一事务内完成，attach_policy 会写同一策略文档，
    两者并发时其一因写冲突失败；MONGO_TRANSACTIONS 关闭（默认）时不是原子的。
    """

    if policy.is_system_policy:
        raise SystemProtectedError(f"系统策略不可删除: {policy.name}")
    async with transaction() as session:
        if await count_policy_roles(policy.id, session=session):
            raise InUseError(f"策略仍被角色引用，请先解除挂载: {policy.name}")
        await policy.delete(session=session)
    logger.info("删除策略 name=%s", policy.name)


def simulate_policy(
    policy: Policy,
    action: str,
    resource: str,
    context: Mapping[str, Any] | None = None,
) -> AuthorizationResult:
    """单独对一条策略做求值，用于后台调试。"""

    bound = BoundPolicy(name=policy.name, document=policy.document, policy_id=str(policy.id))
    return decide([bound], action, resource, dict(context or {}))


async def ensure_default_policies() -> dict[str, Policy]:
    """幂等地写入系统内置策略，返回 名称 -> 策略。"""

    seeded: dict[str, Policy] = {}
    for item in DEFAULT_POLICIES:
        policy = await get_policy_by_name(item["name"])
        if policy is None:
            policy = await create_policy(
                {
                    "name": item["name"],
                    "description": item["description"],
                    "document": {"Version": DEFAULT_VERSION, "Statement": item["statements"]},
                },
                is_system=True,
            )
        seeded[item["name"]] = policy
    return seeded
