"""Admin 策略管理接口。"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from docvault.apps.admin.responses import not_found, serialize_policy, serialize_result, service_errors
from docvault.middleware.iam import require_permission, resource_guards
from docvault.services import authz_service, policy_service

router = APIRouter(prefix="/admin/iam")

guards = resource_guards("policies")


class PolicyPayload(BaseModel):
    name: str = Field(default="", max_length=100)
    description: str | None = Field(default=None, max_length=500)
    document: dict[str, Any] | None = None


class SimulatePayload(BaseModel):
    action: str = Field(..., min_length=1)
    resource: str = Field(..., min_length=1)
    context: dict[str, Any] = Field(default_factory=dict)


class PrincipalSimulatePayload(SimulatePayload):
    principal_id: str = Field(..., min_length=1)


@router.get("/policies", dependencies=[Depends(guards["list"])])
async def policy_list(q: str | None = None) -> dict[str, Any]:
    policies = await policy_service.list_policies(q)
    return {"policies": [serialize_policy(item) for item in policies], "total": len(policies)}


@router.get("/policies/templates", dependencies=[Depends(guards["read"])])
async def policy_templates() -> dict[str, Any]:
    return {"templates": policy_service.list_policy_templates()}


@router.get("/policies/{id}", dependencies=[Depends(guards["read"])])
async def policy_detail(id: str) -> dict[str, Any]:
    policy = await policy_service.get_policy(id)
    if not policy:
        raise not_found("策略")
    return {"policy": serialize_policy(policy)}


@router.post("/policies", status_code=201, dependencies=[Depends(guards["create"])])
async def policy_create(payload: PolicyPayload) -> dict[str, Any]:
    with service_errors():
        policy = await policy_service.create_policy(payload.model_dump())
    return {"policy": serialize_policy(policy)}


@router.put("/policies/{id}", dependencies=[Depends(guards["update"])])
async def policy_update(id: str, payload: PolicyPayload) -> dict[str, Any]:
    policy = await policy_service.get_policy(id)
    if not policy:
        raise not_found("策略")
    with service_errors():
        policy = await policy_service.update_policy(policy, payload.model_dump())
    return {"policy": serialize_policy(policy)}


@router.delete("/policies/{id}", dependencies=[Depends(guards["delete"])])
async def policy_delete(id: str) -> dict[str, Any]:
    policy = await policy_service.get_policy(id)
    if not policy:
        raise not_found("策略")
    with service_errors():
        await policy_service.delete_policy(policy)
    return {"deleted": id}


@router.post("/policies/{id}/simulate", dependencies=[Depends(guards["read"])])
async def policy_simulate(id: str, payload: SimulatePayload) -> dict[str, Any]:
    """只对这一条策略求值，便于调试策略文档。"""

    policy = await policy_service.get_policy(id)
    if not policy:
        raise not_found("策略")
    result = policy_service.simulate_policy(policy, payload.action, payload.resource, payload.context)
    return {"policy": policy.name, "result": serialize_result(result)}


@router.post("/authorize/simulate", dependencies=[Depends(require_permission("policies:Read", "policies/*"))])
async def principal_simulate(payload: PrincipalSimulatePayload) -> dict[str, Any]:
    """按某个主体当前的全部有效策略求值，返回结论与命中明细。

    不传入当前请求：request.* 条件只取 payload.context 中给出的值。
    """

    result = await authz_service.authorize(
        payload.principal_id,
        payload.action,
        payload.resource,
        payload.context,
        request=None,
    )
    return {"principal_id": payload.principal_id, "result": serialize_result(result)}
