"""Unit tests for GitHub client behavior."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest
from pr_agent_tools import github_client
from pr_agent_tools.codec import SerializedCall, ToolArgumentsError
from pr_agent_tools.config import ToolkitSettings
from pr_agent_tools.github_client import (
    Comment,
    CommentType,
    GitHubApiError,
    GitHubAuthError,
    GitHubInputError,
    GitHubRateLimitError,
    PullRequestDetails,
    PullRequestInput,
    build_github_client,
    fetch_authenticated_user_login,
    fetch_pull_request_comments,
    fetch_pull_request_details,
    get_github_token_with_source,
    github_tools,
    parse_repo_full_name,
    validate_pr_number,
)
from pr_agent_tools.parameters import IntegerType, StringType
from pr_agent_tools.registry import ToolRegistry


def make_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """Create an async HTTP client backed by mock transport."""
    transport = httpx.MockTransport(handler)
    return httpx.AsyncClient(base_url="https://api.github.com", transport=transport)


def make_pull() -> PullRequestInput:
    """Build the pull request coordinates used across tests."""
    return PullRequestInput(owner="acme", repo="rocket", number=42)


def make_pr_payload() -> dict[str, object]:
    """Build a minimal valid pull request API payload."""
    return {
        "number": 42,
        "title": "Fix race condition",
        "body": "Details",
        "state": "open",
        "html_url": "https://github.com/acme/rocket/pull/42",
        "user": {"login": "octocat"},
    }


def make_comment_row(
    comment_id: int, *, created_at: str, login: str = "octocat"
) -> dict[str, object]:
    """Build a minimal valid comment API payload."""
    return {
        "id": comment_id,
        "body": f"comment {comment_id}",
        "created_at": created_at,
        "user": {"login": login},
    }


@pytest.fixture
def no_retry_sleep(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record retry delays instead of sleeping."""
    delays: list[float] = []

    async def _record(seconds: float) -> None:
        delays.append(seconds)

    monkeypatch.setattr(github_client, "_sleep_for_retry", _record)
    return delays


@pytest.mark.unit
def test_parse_repo_full_name_accepts_owner_repo() -> None:
    assert parse_repo_full_name("acme/rocket") == ("acme", "rocket")


@pytest.mark.unit
@pytest.mark.parametrize("value", ["acme", "acme/", "/rocket", "acme/rocket/extra"])
def test_parse_repo_full_name_rejects_invalid_format(value: str) -> None:
    with pytest.raises(GitHubInputError):
        parse_repo_full_name(value)


@pytest.mark.unit
def test_validate_pr_number_rejects_non_positive() -> None:
    with pytest.raises(GitHubInputError):
        validate_pr_number(0)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_pull_request_details_normalizes_payload() -> None:
    requested_paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested_paths.append(request.url.path)
        return httpx.Response(200, json=make_pr_payload())

    async with make_client(handler) as client:
        details = await fetch_pull_request_details(client=client, pull=make_pull())

    assert requested_paths == ["/repos/acme/rocket/pulls/42"]
    assert details == PullRequestDetails(
        number=42,
        title="Fix race condition",
        body="Details",
        author="octocat",
        url="https://github.com/acme/rocket/pull/42",
    )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_pull_request_details_defaults_missing_fields() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"number": 42, "body": None, "user": None})

    async with make_client(handler) as client:
        details = await fetch_pull_request_details(client=client, pull=make_pull())

    assert details == PullRequestDetails(number=42, title="", body="", author="", url="")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_pull_request_details_rejects_wrong_field_types() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={**make_pr_payload(), "title": 7})

    async with make_client(handler) as client:
        with pytest.raises(GitHubApiError):
            await fetch_pull_request_details(client=client, pull=make_pull())


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_pull_request_details_rejects_path_injection() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("No request expected.")

    pull = PullRequestInput(owner="acme/evil", repo="rocket", number=1)
    async with make_client(handler) as client:
        with pytest.raises(GitHubInputError):
            await fetch_pull_request_details(client=client, pull=pull)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_pull_request_comments_merges_and_sorts() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/repos/acme/rocket/pulls/42/comments":
            return httpx.Response(
                200,
                json=[
                    make_comment_row(3, created_at="2024-05-03T10:00:00Z"),
                    make_comment_row(1, created_at="2024-05-01T10:00:00Z"),
                ],
            )
        if request.url.path == "/repos/acme/rocket/issues/42/comments":
            return httpx.Response(
                200,
                json=[make_comment_row(2, created_at="2024-05-02T10:00:00Z", login="hubot")],
            )
        return httpx.Response(404, json={"message": "Not Found"})

    async with make_client(handler) as client:
        comments = await fetch_pull_request_comments(client=client, pull=make_pull())

    assert [comment.id for comment in comments] == [1, 2, 3]
    assert [comment.type for comment in comments] == [
        CommentType.REVIEW,
        CommentType.ISSUE,
        CommentType.REVIEW,
    ]
    assert comments[1] == Comment(
        id=2,
        author="hubot",
        body="comment 2",
        created_at="2024-05-02T10:00:00Z",
        type=CommentType.ISSUE,
    )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_pull_request_comments_follows_pagination() -> None:
    pages: list[tuple[str, str | None]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        page = request.url.params.get("page")
        pages.append((request.url.path, page))
        if request.url.path.endswith("/pulls/42/comments") and page == "1":
            rows = [
                make_comment_row(index, created_at=f"2024-01-01T00:00:{index % 60:02d}Z")
                for index in range(100)
            ]
            return httpx.Response(200, json=rows)
        if request.url.path.endswith("/pulls/42/comments") and page == "2":
            return httpx.Response(
                200, json=[make_comment_row(100, created_at="2024-01-02T00:00:00Z")]
            )
        return httpx.Response(200, json=[])

    async with make_client(handler) as client:
        comments = await fetch_pull_request_comments(client=client, pull=make_pull())

    assert len(comments) == 101
    assert pages == [
        ("/repos/acme/rocket/pulls/42/comments", "1"),
        ("/repos/acme/rocket/pulls/42/comments", "2"),
        ("/repos/acme/rocket/issues/42/comments", "1"),
    ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_request_retries_server_errors_with_backoff(no_retry_sleep: list[float]) -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            return httpx.Response(502)
        return httpx.Response(200, json=make_pr_payload())

    async with make_client(handler) as client:
        details = await fetch_pull_request_details(client=client, pull=make_pull())

    assert details.number == 42
    assert attempts == 3
    assert no_retry_sleep == [0.5, 1.0]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_request_honours_retry_after_then_raises_rate_limit(
    no_retry_sleep: list[float],
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, headers={"Retry-After": "7"})

    async with make_client(handler) as client:
        with pytest.raises(GitHubRateLimitError) as excinfo:
            await fetch_pull_request_details(client=client, pull=make_pull())

    assert excinfo.value.status_code == 429
    assert excinfo.value.endpoint == "/repos/acme/rocket/pulls/42"
    assert no_retry_sleep == [7.0, 7.0]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_request_does_not_retry_client_errors(no_retry_sleep: list[float]) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "Not Found"})

    async with make_client(handler) as client:
        with pytest.raises(GitHubApiError) as excinfo:
            await fetch_pull_request_details(client=client, pull=make_pull())

    assert excinfo.value.status_code == 404
    assert no_retry_sleep == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_authenticated_user_login() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/user"
        return httpx.Response(200, json={"login": "octocat"})

    async with make_client(handler) as client:
        assert await fetch_authenticated_user_login(client=client) == "octocat"


@pytest.mark.unit
def test_get_github_token_prefers_github_token(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("GITHUB_TOKEN", "primary")
    monkeypatch.setenv("GH_TOKEN", "secondary")
    assert get_github_token_with_source() == ("primary", "GITHUB_TOKEN")


@pytest.mark.unit
def test_get_github_token_falls_back_to_gh_token(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.setenv("GH_TOKEN", "secondary")
    assert get_github_token_with_source() == ("secondary", "GH_TOKEN")


@pytest.mark.unit
def test_get_github_token_fails_when_missing(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("GH_TOKEN", raising=False)
    with pytest.raises(GitHubAuthError):
        get_github_token_with_source()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_build_github_client_sets_headers() -> None:
    settings = ToolkitSettings(github_api_base_url="https://github.example.com/api/v3")
    async with build_github_client(settings, token="secret") as client:
        assert str(client.base_url) == "https://github.example.com/api/v3/"
        assert client.headers["Authorization"] == "Bearer secret"
        assert client.headers["Accept"] == "application/vnd.github+json"
        assert client.headers["X-GitHub-Api-Version"] == "2022-11-28"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_build_github_client_without_token_is_anonymous(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("GH_TOKEN", raising=False)
    async with build_github_client() as client:
        assert "Authorization" not in client.headers


@pytest.mark.unit
@pytest.mark.asyncio
async def test_github_tools_describe_pull_request_input() -> None:
    async with make_client(lambda request: httpx.Response(500)) as client:
        registry = ToolRegistry.from_specs(github_tools(client))

    assert registry.names == ("get_pull_request", "get_pull_request_comments")
    descriptor = registry.get("get_pull_request").descriptor
    assert descriptor.description == "Get pull request from github"
    assert [param.name for param in descriptor.parameters] == ["owner", "repo", "number"]
    assert descriptor.required == ("owner", "repo", "number")
    assert [param.type for param in descriptor.parameters] == [
        StringType(),
        StringType(),
        IntegerType(),
    ]
    assert descriptor.parameters[2].description == "Pull request number."


@pytest.mark.unit
@pytest.mark.asyncio
async def test_github_tools_execute_against_api() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/repos/acme/rocket/pulls/42":
            return httpx.Response(200, json=make_pr_payload())
        if request.url.path == "/repos/acme/rocket/pulls/42/comments":
            return httpx.Response(
                200, json=[make_comment_row(5, created_at="2024-05-01T00:00:00Z")]
            )
        return httpx.Response(200, json=[])

    async with make_client(handler) as client:
        registry = ToolRegistry.from_specs(github_tools(client))
        payload = '{"owner": "acme", "repo": "rocket", "number": 42}'
        details = await registry.execute(
            SerializedCall(tool_name="get_pull_request", payload=payload)
        )
        comments = await registry.execute(
            SerializedCall(tool_name="get_pull_request_comments", payload=payload)
        )

    assert json.loads(details.to_text())["author"] == "octocat"
    assert json.loads(comments.to_text()) == [
        {
            "id": 5,
            "author": "octocat",
            "body": "comment 5",
            "created_at": "2024-05-01T00:00:00Z",
            "type": "review",
        }
    ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_github_tools_reject_non_positive_pr_number_before_request() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("No request expected.")

    async with make_client(handler) as client:
        registry = ToolRegistry.from_specs(github_tools(client))
        with pytest.raises(ToolArgumentsError):
            await registry.execute(
                SerializedCall(
                    tool_name="get_pull_request",
                    payload={"owner": "acme", "repo": "rocket", "number": 0},
                )
            )
