from __future__ import annotations

import json as jsonlib
from typing import Any

import pytest
import requests

from projdash.data.remote_auth import RemoteAuthProvider
from projdash.data.remote_store import (
    RemoteProjectStore,
    build_list_params,
    page_range,
    quote_filter_value,
)
from projdash.data.rest_client import RestClient, error_for_response, parse_content_range
from projdash.errors import (
    AuthenticationError,
    NotFoundError,
    PermissionDeniedError,
    StoreError,
    TransientNetworkError,
    ValidationError,
)
from projdash.models.projects import ProjectFilters, ProjectStatus


class FakeResponse:
    def __init__(
        self, status_code: int = 200, body: Any = None, headers: dict[str, str] | None = None
    ) -> None:
        self.status_code = status_code
        self._body = body
        self.headers = headers or {}
        self.content = b"" if body is None else jsonlib.dumps(body).encode()

    @property
    def text(self) -> str:
        return "" if self._body is None else jsonlib.dumps(self._body)

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("no body")
        return self._body


class FakeHttp:
    """Stands in for ``requests.Session``; answers from a queue."""

    def __init__(self, *responses: FakeResponse | Exception) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        answer = self.responses.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer

    def close(self) -> None:
        self.closed = True


def _client(*responses: FakeResponse | Exception) -> tuple[RestClient, FakeHttp]:
    http = FakeHttp(*responses)
    client = RestClient(
        "https://demo.supabase.co/", "anon-key", session=http  # type: ignore[arg-type]
    )
    return client, http


def _project_row(n: int) -> dict[str, Any]:
    return {
        "id": f"p{n}",
        "project_no": f"PJ-{1000 + n}",
        "project_title": f"Project {n}",
        "status": "In Progress",
    }


def test_quote_filter_value_escapes_quotes() -> None:
    assert quote_filter_value('say "hi", (now)') == '"say \\"hi\\", (now)"'


def test_build_list_params_combines_filters() -> None:
    params = build_list_params(
        ProjectFilters(project_no=" PJ-1 ", keyword="audit", status=ProjectStatus.COMPLETED)
    )
    assert params == [
        ("select", "*"),
        ("project_no", 'ilike."*PJ-1*"'),
        ("or", '(project_title.ilike."*audit*",project_summary.ilike."*audit*")'),
        ("status", "eq.Completed"),
        ("order", "created_at.desc"),
    ]
    assert build_list_params(ProjectFilters()) == [("select", "*"), ("order", "created_at.desc")]


def test_page_range_is_zero_based_inclusive() -> None:
    assert page_range(1, 10) == (0, 9)
    assert page_range(2, 10) == (10, 19)


@pytest.mark.parametrize(
    ("header", "expected"),
    [("0-9/48", 48), ("*/0", 0), ("0-9/*", None), (None, None), ("garbage", None)],
)
def test_parse_content_range(header: str | None, expected: int | None) -> None:
    assert parse_content_range(header) == expected


@pytest.mark.parametrize(
    ("status", "error_type"),
    [
        (401, PermissionDeniedError),
        (403, PermissionDeniedError),
        (404, NotFoundError),
        (409, ValidationError),
        (429, TransientNetworkError),
        (503, TransientNetworkError),
        (418, StoreError),
    ],
)
def test_error_for_response_maps_statuses(status: int, error_type: type[Exception]) -> None:
    error = error_for_response(FakeResponse(status, {"message": "nope"}))  # type: ignore[arg-type]
    assert type(error) is error_type
    assert str(error) == "nope"


def test_error_for_response_without_body() -> None:
    error = error_for_response(FakeResponse(500))  # type: ignore[arg-type]
    assert str(error) == "HTTP 500"


@pytest.mark.asyncio
async def test_rest_client_sends_keys_and_maps_transport_errors() -> None:
    client, http = _client(
        FakeResponse(200, []),
        requests.Timeout("slow"),
        requests.ConnectionError("refused"),
    )
    client.set_access_token("user-token")

    await client.request("GET", "/rest/v1/things")
    call = http.calls[0]
    assert call["url"] == "https://demo.supabase.co/rest/v1/things"
    assert call["headers"]["apikey"] == "anon-key"
    assert call["headers"]["Authorization"] == "Bearer user-token"
    assert call["timeout"] == 10.0

    with pytest.raises(TransientNetworkError, match="timed out"):
        await client.request("GET", "rest/v1/things")
    with pytest.raises(TransientNetworkError, match="Could not connect"):
        await client.request("GET", "rest/v1/things")

    client.close()
    assert http.closed


@pytest.mark.asyncio
async def test_list_projects_sends_range_and_reads_total() -> None:
    client, http = _client(
        FakeResponse(206, [_project_row(11), _project_row(12)], {"Content-Range": "10-11/12"})
    )
    store = RemoteProjectStore(client)

    page = await store.list_projects(ProjectFilters(keyword="Project"), 2, 10)

    assert [p.project_no for p in page.items] == ["PJ-1011", "PJ-1012"]
    assert page.total == 12
    call = http.calls[0]
    assert call["url"].endswith("/rest/v1/projects_with_creator")
    assert call["headers"]["Range"] == "10-19"
    assert call["headers"]["Prefer"] == "count=exact"


@pytest.mark.asyncio
async def test_list_projects_past_the_end_is_empty_page() -> None:
    client, _ = _client(FakeResponse(416, {"message": "range"}, {"Content-Range": "*/12"}))
    store = RemoteProjectStore(client)

    page = await store.list_projects(ProjectFilters(), 5, 10)

    assert page.items == []
    assert page.total == 12


@pytest.mark.asyncio
async def test_list_projects_rejects_malformed_rows() -> None:
    client, _ = _client(FakeResponse(200, [{"project_title": "no id"}], {"Content-Range": "0-0/1"}))
    store = RemoteProjectStore(client)

    with pytest.raises(ValidationError):
        await store.list_projects(ProjectFilters(), 1, 10)


@pytest.mark.asyncio
async def test_list_projects_with_non_json_body_is_validation_error() -> None:
    client, _ = _client(FakeResponse(200, None, {"Content-Range": "0-9/12"}))
    store = RemoteProjectStore(client)

    with pytest.raises(ValidationError, match="Malformed JSON"):
        await store.list_projects(ProjectFilters(), 1, 10)


@pytest.mark.asyncio
async def test_delete_matching_no_rows_is_permission_denied() -> None:
    client, http = _client(
        FakeResponse(200, [_project_row(1)]),
        FakeResponse(200, []),
        FakeResponse(200, []),
    )
    store = RemoteProjectStore(client)

    with pytest.raises(PermissionDeniedError):
        await store.delete_project("p1")
    assert [call["method"] for call in http.calls] == ["GET", "GET", "DELETE"]


@pytest.mark.asyncio
async def test_denied_delete_keeps_stored_files() -> None:
    client, http = _client(
        FakeResponse(200, [_project_row(1)]),
        FakeResponse(200, [{"file_path": "p1/plan.pdf"}]),
        FakeResponse(200, []),
    )

    with pytest.raises(PermissionDeniedError):
        await RemoteProjectStore(client).delete_project("p1")
    assert not any("storage/v1" in call["url"] for call in http.calls)


@pytest.mark.asyncio
async def test_delete_removes_stored_files_after_the_row() -> None:
    client, http = _client(
        FakeResponse(200, [_project_row(1)]),
        FakeResponse(200, [{"file_path": "p1/plan.pdf"}]),
        FakeResponse(200, [{"id": "p1"}]),
        FakeResponse(200, []),
    )

    await RemoteProjectStore(client).delete_project("p1")

    assert [call["method"] for call in http.calls] == ["GET", "GET", "DELETE", "DELETE"]
    assert "rest/v1/project_info" in http.calls[2]["url"]
    assert "storage/v1/object" in http.calls[3]["url"]
    assert http.calls[3]["json"] == {"prefixes": ["p1/plan.pdf"]}


@pytest.mark.asyncio
async def test_delete_unknown_project_is_not_found() -> None:
    client, _ = _client(FakeResponse(200, []))
    with pytest.raises(NotFoundError):
        await RemoteProjectStore(client).delete_project("missing")


@pytest.mark.asyncio
async def test_remote_sign_in_installs_token_and_loads_profile() -> None:
    client, http = _client(
        FakeResponse(
            200,
            {"access_token": "jwt", "refresh_token": "r", "user": {"id": "u1", "email": "a@b.io"}},
        ),
        FakeResponse(200, [{"id": "u1", "email": "a@b.io", "full_name": "Ada", "role": "Manager"}]),
    )
    provider = RemoteAuthProvider(client)

    session = await provider.sign_in("a@b.io", "secret1")

    assert client.access_token == "jwt"
    assert session.user.full_name == "Ada"
    assert http.calls[1]["headers"]["Authorization"] == "Bearer jwt"
    assert await provider.get_session() == session


@pytest.mark.asyncio
async def test_remote_sign_in_rejection_is_authentication_error() -> None:
    client, _ = _client(FakeResponse(400, {"error_description": "Invalid login credentials"}))

    with pytest.raises(AuthenticationError, match="Invalid login credentials"):
        await RemoteAuthProvider(client).sign_in("a@b.io", "wrong")


@pytest.mark.asyncio
async def test_remote_sign_up_waiting_for_confirmation() -> None:
    client, _ = _client(FakeResponse(200, {"id": "u1", "email": "a@b.io"}))

    with pytest.raises(AuthenticationError, match="Confirm your email"):
        await RemoteAuthProvider(client).sign_up("a@b.io", "secret1", "Ada")
