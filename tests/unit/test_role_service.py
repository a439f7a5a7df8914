from __future__ import annotations

from types import SimpleNamespace

import pytest

from docvault.services import role_service
from docvault.services.errors import IamServiceError, InUseError, SystemProtectedError


def _role(name: str = "ops", *, system: bool = False) -> SimpleNamespace:
    return SimpleNamespace(id=f"id-{name}", name=name, description="", is_system_role=system)


@pytest.mark.unit
def test_is_system_role() -> None:
    assert role_service.is_system_role("Administrator") is True
    assert role_service.is_system_role("Viewer") is True
    assert role_service.is_system_role("ops") is False
    assert role_service.is_system_role(_role(system=True)) is True
    assert role_service.is_system_role(_role()) is False


@pytest.mark.unit
def test_default_roles_reference_default_policies() -> None:
    from docvault.services import policy_service

    policy_names = {item["name"] for item in policy_service.DEFAULT_POLICIES}
    for item in role_service.DEFAULT_ROLES:
        assert set(item["policies"]) <= policy_names


@pytest.mark.unit
@pytest.mark.asyncio
async def test_system_role_is_immutable() -> None:
    role = _role("Editor", system=True)
    policy = SimpleNamespace(id="p1", name="Custom")

    with pytest.raises(SystemProtectedError):
        await role_service.update_role(role, {"description": "x"})
    with pytest.raises(SystemProtectedError):
        await role_service.delete_role(role)
    with pytest.raises(SystemProtectedError):
        await role_service.attach_policy(role, policy)
    with pytest.raises(SystemProtectedError):
        await role_service.detach_policy(role, policy)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delete_role_held_by_principal_is_refused(monkeypatch) -> None:
    async def fake_role_in_use(_role_id, session=None):
        return True

    monkeypatch.setattr(role_service, "role_in_use", fake_role_in_use)

    with pytest.raises(InUseError):
        await role_service.delete_role(_role())


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_role_requires_name() -> None:
    with pytest.raises(IamServiceError):
        await role_service.create_role({"name": ""})


@pytest.mark.unit
@pytest.mark.asyncio
async def test_assign_role_requires_principal() -> None:
    with pytest.raises(IamServiceError):
        await role_service.assign_role("  ", _role())


@pytest.mark.unit
@pytest.mark.asyncio
async def test_ensure_default_roles_binds_seeded_policies(monkeypatch) -> None:
    seeded = {
        name: SimpleNamespace(id=f"p-{name}", name=name)
        for name in ["SystemFullAccess", "DocumentFullAccess", "DocumentReadOnly"]
    }
    created: list[str] = []
    bound: list[tuple[str, str]] = []

    async def fake_ensure_default_policies():
        return seeded

    async def fake_get_role_by_name(name: str):
        return _role(name, system=True) if name == "Administrator" else None

    async def fake_create_role(payload, *, is_system=False):
        assert is_system is True
        created.append(payload["name"])
        return _role(payload["name"], system=True)

    async def fake_bind_policy(role, policy):
        bound.append((role.name, policy.name))

    monkeypatch.setattr(role_service.policy_service, "ensure_default_policies", fake_ensure_default_policies)
    monkeypatch.setattr(role_service, "get_role_by_name", fake_get_role_by_name)
    monkeypatch.setattr(role_service, "create_role", fake_create_role)
    monkeypatch.setattr(role_service, "_bind_policy", fake_bind_policy)

    await role_service.ensure_default_roles()

    assert created == ["Editor", "Viewer", "User"]
    # OwnDocumentAccess 未被播种时跳过，不影响其他角色
    assert bound == [
        ("Administrator", "SystemFullAccess"),
        ("Editor", "DocumentFullAccess"),
        ("Viewer", "DocumentReadOnly"),
    ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_assign_role_writes_role_document_before_binding(monkeypatch) -> None:
    touched: list[tuple[object, object, object]] = []

    async def fake_touch(model, object_id, session=None):
        touched.append((model, object_id, session))
        return False

    monkeypatch.setattr(role_service, "touch_document", fake_touch)

    with pytest.raises(IamServiceError):
        await role_service.assign_role("u1", _role("ops"))

    # 角色已被并发删除时不会写入绑定
    assert touched == [(role_service.Role, "id-ops", None)]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_attach_policy_writes_policy_document_before_binding(monkeypatch) -> None:
    touched: list[tuple[object, object]] = []

    async def fake_touch(model, object_id, session=None):
        touched.append((model, object_id))
        return False

    async def fail_bind(*_args, **_kwargs):
        raise AssertionError("策略不存在时不应写入挂载")

    monkeypatch.setattr(role_service, "touch_document", fake_touch)
    monkeypatch.setattr(role_service, "_bind_policy", fail_bind)

    with pytest.raises(IamServiceError):
        await role_service.attach_policy(_role("ops"), SimpleNamespace(id="p1", name="Gone"))

    assert touched == [(role_service.Policy, "p1")]
