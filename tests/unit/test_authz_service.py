from __future__ import annotations

import pytest
from starlette.requests import Request

from docvault.iam import AuthorizationGate, BoundPolicy, Decision, PrincipalInfo
from docvault.services import authz_service

DOCS_EXCEPT_DELETE = {
    "Version": "1.0",
    "Statement": [
        {"Effect": "Allow", "Action": "docs:*", "Resource": "docs/*"},
        {
            "Effect": "Deny",
            "Action": "docs:*",
            "Resource": "docs/*",
            "Condition": {"StringEquals": {"request.method": "DELETE"}},
        },
    ],
}
API_PATH_ONLY = {
    "Version": "1.0",
    "Statement": [
        {
            "Effect": "Allow",
            "Action": "reports:Read",
            "Resource": "*",
            "Condition": {"StringLike": {"request.path": "/api/reports/*"}},
        }
    ],
}


class StaticStore:
    def __init__(self, *documents: dict):
        self.policies = [BoundPolicy(name=f"p{index}", document=item) for index, item in enumerate(documents)]

    async def get_principal(self, principal_id):
        return PrincipalInfo(id=principal_id)

    async def list_principal_policies(self, principal_id):
        return list(self.policies)


def _request(method: str, path: str, **path_params: str) -> Request:
    return Request(
        {
            "type": "http",
            "method": method,
            "path": path,
            "root_path": "",
            "scheme": "http",
            "server": ("testserver", 80),
            "query_string": b"",
            "headers": [],
            "path_params": path_params,
        }
    )


@pytest.fixture
def use_store(monkeypatch: pytest.MonkeyPatch):
    def install(*documents: dict) -> None:
        gate = AuthorizationGate(StaticStore(*documents), backoff_seconds=0)
        monkeypatch.setattr(authz_service, "get_gate", lambda: gate)

    return install


@pytest.mark.unit
def test_request_context_exposes_method_and_path() -> None:
    context = authz_service.request_context(_request("DELETE", "/docs/42", id="42"))

    assert context["request.method"] == "DELETE"
    assert context["request.path"] == "/docs/42"
    assert context["request"] == {"method": "DELETE", "path": "/docs/42"}
    assert authz_service.request_context(None) == {}


@pytest.mark.unit
def test_path_resource_uses_path_param() -> None:
    assert authz_service.path_resource("docs")(_request("GET", "/docs/42", id="42")) == "docs/42"
    assert authz_service.path_resource("docs", "doc_id")(_request("GET", "/x", doc_id="7")) == "docs/7"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_request_method_condition_only_fires_for_matching_method(use_store) -> None:
    use_store(DOCS_EXCEPT_DELETE)
    resource = authz_service.path_resource("docs")

    read = await authz_service.authorize("u1", "docs:Read", resource, request=_request("GET", "/docs/42", id="42"))
    delete = await authz_service.authorize(
        "u1", "docs:Delete", resource, request=_request("DELETE", "/docs/42", id="42")
    )

    assert read.decision is Decision.ALLOW
    assert delete.decision is Decision.DENY
    assert "explicit deny" in delete.reason


@pytest.mark.unit
@pytest.mark.asyncio
async def test_request_path_condition(use_store) -> None:
    use_store(API_PATH_ONLY)

    inside = await authz_service.authorize("u1", "reports:Read", "reports/1", request=_request("GET", "/api/reports/1"))
    outside = await authz_service.authorize("u1", "reports:Read", "reports/1", request=_request("GET", "/admin/reports/1"))

    assert inside.decision is Decision.ALLOW
    assert outside.decision is Decision.DENY


@pytest.mark.unit
@pytest.mark.asyncio
async def test_caller_context_wins_over_request_keys(use_store) -> None:
    use_store(DOCS_EXCEPT_DELETE)

    result = await authz_service.authorize(
        "u1",
        "docs:Delete",
        "docs/42",
        {"request.method": "GET"},
        request=_request("DELETE", "/docs/42", id="42"),
    )

    assert result.decision is Decision.ALLOW


@pytest.mark.unit
@pytest.mark.asyncio
async def test_authorize_without_request_has_no_request_keys(use_store) -> None:
    use_store(DOCS_EXCEPT_DELETE)

    result = await authz_service.authorize("u1", "docs:Delete", "docs/42")

    assert result.decision is Decision.ALLOW
