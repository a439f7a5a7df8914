"""Admin 角色管理接口。"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from docvault.apps.admin.responses import (
    not_found,
    serialize_binding,
    serialize_role,
    service_errors,
)
from docvault.middleware.iam import current_principal_id, require_permission, resource_guards
from docvault.services import policy_service, role_service

router = APIRouter(prefix="/admin/iam")

guards = resource_guards("roles")


class RolePayload(BaseModel):
    name: str = Field(default="", max_length=100)
    description: str | None = Field(default=None, max_length=500)


class AssignmentPayload(BaseModel):
    principal_id: str = Field(..., min_length=1, max_length=64)
    expires_at: datetime | None = None


async def load_role(role_id: str) -> Any:
    role = await role_service.get_role(role_id)
    if not role:
        raise not_found("角色")
    return role


@router.get("/roles", dependencies=[Depends(guards["list"])])
async def role_list(q: str | None = None) -> dict[str, Any]:
    roles = await role_service.list_roles(q)
    return {"roles": [serialize_role(item) for item in roles], "total": len(roles)}


@router.get("/roles/{id}", dependencies=[Depends(guards["read"])])
async def role_detail(id: str) -> dict[str, Any]:
    role = await load_role(id)
    policies = await role_service.list_role_policies(role)
    return {"role": serialize_role(role, policies)}


@router.post("/roles", status_code=201, dependencies=[Depends(guards["create"])])
async def role_create(payload: RolePayload) -> dict[str, Any]:
    with service_errors():
        role = await role_service.create_role(payload.model_dump())
    return {"role": serialize_role(role, [])}


@router.put("/roles/{id}", dependencies=[Depends(guards["update"])])
async def role_update(id: str, payload: RolePayload) -> dict[str, Any]:
    role = await load_role(id)
    with service_errors():
        role = await role_service.update_role(role, payload.model_dump())
    return {"role": serialize_role(role)}


@router.delete("/roles/{id}", dependencies=[Depends(guards["delete"])])
async def role_delete(id: str) -> dict[str, Any]:
    role = await load_role(id)
    with service_errors():
        await role_service.delete_role(role)
    return {"deleted": id}


@router.put("/roles/{id}/policies/{policy_id}", dependencies=[Depends(guards["update"])])
async def role_attach_policy(id: str, policy_id: str) -> dict[str, Any]:
    role = await load_role(id)
    policy = await policy_service.get_policy(policy_id)
    if not policy:
        raise not_found("策略")
    with service_errors():
        await role_service.attach_policy(role, policy)
    policies = await role_service.list_role_policies(role)
    return {"role": serialize_role(role, policies)}


@router.delete("/roles/{id}/policies/{policy_id}", dependencies=[Depends(guards["update"])])
async def role_detach_policy(id: str, policy_id: str) -> dict[str, Any]:
    role = await load_role(id)
    policy = await policy_service.get_policy(policy_id)
    if not policy:
        raise not_found("策略")
    with service_errors():
        detached = await role_service.detach_policy(role, policy)
    if not detached:
        raise not_found("策略挂载")
    policies = await role_service.list_role_policies(role)
    return {"role": serialize_role(role, policies)}


@router.post("/roles/{id}/principals", dependencies=[Depends(guards["update"])])
async def role_assign(request: Request, id: str, payload: AssignmentPayload) -> dict[str, Any]:
    role = await load_role(id)
    with service_errors():
        binding = await role_service.assign_role(
            payload.principal_id,
            role,
            assigned_by=current_principal_id(request),
            expires_at=payload.expires_at,
        )
    return {"assignment": serialize_binding(binding)}


@router.delete("/roles/{id}/principals/{principal_id}", dependencies=[Depends(guards["update"])])
async def role_revoke(id: str, principal_id: str) -> dict[str, Any]:
    role = await load_role(id)
    if not await role_service.revoke_role(principal_id, role):
        raise not_found("角色分配")
    return {"revoked": principal_id, "role_id": id}


@router.get(
    "/principals/{principal_id}/roles",
    dependencies=[Depends(require_permission("roles:Read", "roles/*"))],
)
async def principal_roles(principal_id: str) -> dict[str, Any]:
    bindings = await role_service.list_principal_bindings(principal_id)
    return {"assignments": [serialize_binding(item) for item in bindings]}
