from __future__ import annotations

from types import SimpleNamespace

import pytest

from docvault.iam import Decision, PolicyDocumentError, collect_document_errors
from docvault.services import policy_service
from docvault.services.errors import IamServiceError, InUseError, SystemProtectedError

VALID_DOCUMENT = {
    "Version": "1.0",
    "Statement": [{"Effect": "Allow", "Action": "docs:Read", "Resource": "docs/*"}],
}


def _policy(**overrides) -> SimpleNamespace:
    data = {
        "id": "507f1f77bcf86cd799439011",
        "name": "Custom",
        "description": "",
        "document": VALID_DOCUMENT,
        "is_system_policy": False,
    }
    data.update(overrides)
    return SimpleNamespace(**data)


@pytest.mark.unit
def test_default_policies_and_templates_are_valid_documents() -> None:
    for item in policy_service.DEFAULT_POLICIES:
        document = {"Version": policy_service.DEFAULT_VERSION, "Statement": item["statements"]}
        assert collect_document_errors(document) == [], item["name"]

    for item in policy_service.list_policy_templates():
        assert collect_document_errors(item["document"]) == [], item["name"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_policy_rejects_invalid_document_before_lookup(monkeypatch) -> None:
    async def fail_lookup(_name: str):
        raise AssertionError("不应访问数据库")

    monkeypatch.setattr(policy_service, "get_policy_by_name", fail_lookup)

    with pytest.raises(PolicyDocumentError):
        await policy_service.create_policy({"name": "Bad", "document": {"Version": "1.0"}})


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_policy_requires_name() -> None:
    with pytest.raises(IamServiceError):
        await policy_service.create_policy({"name": "  ", "document": VALID_DOCUMENT})


@pytest.mark.unit
@pytest.mark.asyncio
async def test_system_policy_cannot_be_updated_or_deleted() -> None:
    policy = _policy(name="SystemFullAccess", is_system_policy=True)

    with pytest.raises(SystemProtectedError):
        await policy_service.update_policy(policy, {"description": "x"})
    with pytest.raises(SystemProtectedError):
        await policy_service.delete_policy(policy)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_policy_validates_document() -> None:
    policy = _policy()

    with pytest.raises(PolicyDocumentError):
        await policy_service.update_policy(policy, {"document": {"Version": "1.0", "Statement": [{}]}})
    assert policy.document == VALID_DOCUMENT


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delete_policy_attached_to_role_is_refused(monkeypatch) -> None:
    async def fake_count(_policy_id, session=None):
        return 2

    monkeypatch.setattr(policy_service, "count_policy_roles", fake_count)

    with pytest.raises(InUseError):
        await policy_service.delete_policy(_policy())


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_policy_with_malformed_id_returns_none() -> None:
    assert await policy_service.get_policy("not-an-object-id") is None


@pytest.mark.unit
def test_simulate_policy_reports_policy_name() -> None:
    policy = _policy(name="ReadDocs")

    allowed = policy_service.simulate_policy(policy, "docs:Read", "docs/1")
    denied = policy_service.simulate_policy(policy, "docs:Delete", "docs/1")

    assert allowed.decision is Decision.ALLOW
    assert allowed.reason == "allowed by ReadDocs"
    assert denied.decision is Decision.DENY


@pytest.mark.unit
def test_own_document_policy_requires_author_match() -> None:
    item = next(entry for entry in policy_service.DEFAULT_POLICIES if entry["name"] == "OwnDocumentAccess")
    policy = _policy(name=item["name"], document={"Version": "1.0", "Statement": item["statements"]})

    mine = policy_service.simulate_policy(policy, "docs:Update", "docs/1", {"user": {"id": "u1"}, "docs:author_id": "u1"})
    theirs = policy_service.simulate_policy(
        policy, "docs:Update", "docs/1", {"user": {"id": "u1"}, "docs:author_id": "u2"}
    )

    assert mine.decision is Decision.ALLOW
    assert theirs.decision is Decision.DENY


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delete_policy_checks_references_inside_transaction(monkeypatch) -> None:
    sessions: list[object] = []
    deleted: list[object] = []

    class FakeTransaction:
        async def __aenter__(self):
            return "session-1"

        async def __aexit__(self, *_exc):
            return False

    async def fake_count(_policy_id, session=None):
        sessions.append(session)
        return 0

    async def fake_delete(session=None):
        deleted.append(session)

    policy = _policy()
    policy.delete = fake_delete
    monkeypatch.setattr(policy_service, "transaction", FakeTransaction)
    monkeypatch.setattr(policy_service, "count_policy_roles", fake_count)

    await policy_service.delete_policy(policy)

    assert sessions == ["session-1"]
    assert deleted == ["session-1"]
