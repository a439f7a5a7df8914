"""角色服务层。"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Mapping

from beanie import PydanticObjectId
from beanie.operators import In
from bson.errors import InvalidId
from pymongo.errors import DuplicateKeyError

from docvault.db import touch_document, transaction
from docvault.models import Policy, Role, RolePolicy, UserRole
from docvault.models.role import utc_now
from docvault.services import policy_service
from docvault.services.errors import IamServiceError, InUseError, NameConflictError, SystemProtectedError

logger = logging.getLogger(__name__)

DEFAULT_ROLES = [
    {
        "name": "Administrator",
        "description": "Full system administrator with all permissions",
        "policies": ["SystemFullAccess"],
    },
    {
        "name": "Editor",
        "description": "Document editor with full document management access",
        "policies": ["DocumentFullAccess"],
    },
    {
        "name": "Viewer",
        "description": "Read-only access to documents",
        "policies": ["DocumentReadOnly"],
    },
    {
        "name": "User",
        "description": "Basic user with access to own documents only",
        "policies": ["OwnDocumentAccess"],
    },
]

SYSTEM_ROLE_NAMES = {item["name"] for item in DEFAULT_ROLES}


def is_system_role(role: Any) -> bool:
    """按名称或角色对象判断是否为系统角色。"""

    if isinstance(role, str):
        return role in SYSTEM_ROLE_NAMES
    return bool(getattr(role, "is_system_role", False))


def _ensure_mutable(role: Any, verb: str) -> None:
    if is_system_role(role):
        raise SystemProtectedError(f"系统角色不可{verb}: {role.name}")


async def list_roles(query: str | None = None) -> list[Role]:
    if query:
        regex = {"$regex": re.escape(query), "$options": "i"}
        return await Role.find({"$or": [{"name": regex}, {"description": regex}]}).sort("name").to_list()
    return await Role.find_all().sort("name").to_list()


async def get_role(item_id: PydanticObjectId | str) -> Role | None:
    try:
        object_id = PydanticObjectId(item_id)
    except (InvalidId, TypeError):
        return None
    return await Role.get(object_id)


async def get_role_by_name(name: str) -> Role | None:
    return await Role.find_one(Role.name == name)


async def create_role(payload: Mapping[str, Any], *, is_system: bool = False) -> Role:
    name = str(payload.get("name") or "").strip()
    if not name:
        raise IamServiceError("角色名称不能为空")
    if await get_role_by_name(name):
        raise NameConflictError(f"角色名称已存在: {name}")

    role = Role(
        name=name,
        description=str(payload.get("description") or ""),
        is_system_role=is_system,
        created_at=utc_now(),
        updated_at=utc_now(),
    )
    try:
        await role.insert()
    except DuplicateKeyError as exc:
        raise NameConflictError(f"角色名称已存在: {name}") from exc
    logger.info("创建角色 name=%s system=%s", name, is_system)
    return role


async def update_role(role: Role, payload: Mapping[str, Any]) -> Role:
    _ensure_mutable(role, "修改")

    name = str(payload.get("name") or "").strip()
    if name and name != role.name:
        existing = await get_role_by_name(name)
        if existing and existing.id != role.id:
            raise NameConflictError(f"角色名称已存在: {name}")
        role.name = name
    if payload.get("description") is not None:
        role.description = str(payload["description"])
    role.updated_at = utc_now()
    await role.save()
    return role


async def role_in_use(role_id: PydanticObjectId, session: Any = None) -> bool:
    """是否仍有主体持有该角色（含已过期的绑定）。"""

    holder = await UserRole.find_one(UserRole.role_id == role_id, session=session)
    return holder is not None


async def delete_role(role: Role) -> None:
    """删除角色；检查持有者与删除在同一事务内完成。

    与 assign_role 并发时依赖两边都写角色文档触发写冲突；
    MONGO_TRANSACTIONS 关闭（默认）时检查与删除不是原子的。
    """

    _ensure_mutable(role, "删除")
    async with transaction() as session:
        if await role_in_use(role.id, session=session):
            raise InUseError(f"角色仍被主体持有，请先解除分配: {role.name}")
        await RolePolicy.find(RolePolicy.role_id == role.id, session=session).delete(session=session)
        await role.delete(session=session)
    logger.info("删除角色 name=%s", role.name)


async def list_role_policies(role: Role) -> list[Policy]:
    bindings = await RolePolicy.find(RolePolicy.role_id == role.id).to_list()
    policy_ids = [item.policy_id for item in bindings]
    if not policy_ids:
        return []
    return await Policy.find(In(Policy.id, policy_ids)).sort("name").to_list()


async def _bind_policy(role: Role, policy: Policy, session: Any = None) -> RolePolicy:
    existing = await RolePolicy.find_one(
        (RolePolicy.role_id == role.id) & (RolePolicy.policy_id == policy.id),
        session=session,
    )
    if existing:
        return existing
    binding = RolePolicy(role_id=role.id, policy_id=policy.id, assigned_at=utc_now())
    await binding.insert(session=session)
    return binding


async def attach_policy(role: Role, policy: Policy) -> RolePolicy:
    """给角色挂载策略，重复挂载幂等。

    事务内先写策略文档，与并发的 delete_policy 互斥；
    MONGO_TRANSACTIONS 关闭（默认）时不保证原子性。
    """

    _ensure_mutable(role, "修改")
    async with transaction() as session:
        if not await touch_document(Policy, policy.id, session=session):
            raise IamServiceError(f"策略不存在: {policy.name}")
        binding = await _bind_policy(role, policy, session=session)
    logger.info("角色挂载策略 role=%s policy=%s", role.name, policy.name)
    return binding


async def detach_policy(role: Role, policy: Policy) -> bool:
    _ensure_mutable(role, "修改")
    binding = await RolePolicy.find_one(
        (RolePolicy.role_id == role.id) & (RolePolicy.policy_id == policy.id)
    )
    if not binding:
        return False
    await binding.delete()
    logger.info("角色卸载策略 role=%s policy=%s", role.name, policy.name)
    return True


async def assign_role(
    principal_id: str,
    role: Role,
    *,
    assigned_by: str | None = None,
    expires_at: datetime | None = None,
) -> UserRole:
    """给主体分配角色；已存在时更新过期时间与分配人。

    事务内先写角色文档，与并发的 delete_role 互斥；
    MONGO_TRANSACTIONS 关闭（默认）时不保证原子性。
    """

    principal_id = str(principal_id).strip()
    if not principal_id:
        raise IamServiceError("主体标识不能为空")

    async with transaction() as session:
        if not await touch_document(Role, role.id, session=session):
            raise IamServiceError(f"角色不存在: {role.name}")

        binding = await UserRole.find_one(
            (UserRole.principal_id == principal_id) & (UserRole.role_id == role.id),
            session=session,
        )
        if binding:
            binding.expires_at = expires_at
            binding.assigned_by = assigned_by
            await binding.save(session=session)
        else:
            binding = UserRole(
                principal_id=principal_id,
                role_id=role.id,
                assigned_by=assigned_by,
                assigned_at=utc_now(),
                expires_at=expires_at,
            )
            await binding.insert(session=session)

    logger.info("分配角色 principal=%s role=%s expires_at=%s", principal_id, role.name, expires_at)
    return binding


async def revoke_role(principal_id: str, role: Role) -> bool:
    binding = await UserRole.find_one(
        (UserRole.principal_id == str(principal_id)) & (UserRole.role_id == role.id)
    )
    if not binding:
        return False
    await binding.delete()
    logger.info("收回角色 principal=%s role=%s", principal_id, role.name)
    return True


async def list_principal_bindings(principal_id: str) -> list[UserRole]:
    return await UserRole.find(UserRole.principal_id == str(principal_id)).sort("assigned_at").to_list()


async def ensure_default_roles() -> None:
    """初始化系统策略、系统角色以及两者的挂载关系。"""

    policies = await policy_service.ensure_default_policies()
    for item in DEFAULT_ROLES:
        role = await get_role_by_name(item["name"])
        if not role:
            role = await create_role(
                {"name": item["name"], "description": item["description"]},
                is_system=True,
            )

        for policy_name in item["policies"]:
            policy = policies.get(policy_name)
            if policy is None:
                logger.warning("系统角色 %s 引用的策略 %s 不存在", item["name"], policy_name)
                continue
            await _bind_policy(role, policy)
