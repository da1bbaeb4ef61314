"""GitHub REST client and the pull request tools built on it."""

from __future__ import annotations

import asyncio
import os
from enum import StrEnum
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx
import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from pr_agent_tools.config import ToolkitSettings
from pr_agent_tools.tools import ToolSpec, define_tool

logger = structlog.get_logger()

GITHUB_API_VERSION = "2022-11-28"
GITHUB_JSON_MEDIA_TYPE = "application/vnd.github+json"
GITHUB_MAX_RETRIES = 3
DEFAULT_RETRY_BACKOFF_SECONDS = 0.5
COMMENTS_PER_PAGE = 100


class GitHubAuthError(RuntimeError):
    """Raised when required GitHub authentication is missing."""


class GitHubInputError(ValueError):
    """Raised when repository or PR input values are invalid."""


class GitHubApiError(RuntimeError):
    """Raised when a GitHub API request fails."""

    def __init__(self, message: str, *, status_code: int, endpoint: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class GitHubRateLimitError(GitHubApiError):
    """Raised when GitHub API rate limiting prevents request completion."""


class PullRequestInput(BaseModel):
    """Coordinates of a pull request."""

    model_config = ConfigDict(extra="forbid")

    owner: str = Field(min_length=1, description="Repository owner login.")
    repo: str = Field(min_length=1, description="Repository name.")
    number: int = Field(ge=1, description="Pull request number.")


class PullRequestDetails(BaseModel):
    """Pull request details."""

    model_config = ConfigDict(extra="forbid")

    number: int = Field(description="Pull request number.")
    title: str = Field(description="Pull request title.")
    body: str = Field(description="Pull request body.")
    author: str = Field(description="Pull request author login.")
    url: str = Field(description="Pull request URL.")


class CommentType(StrEnum):
    """Where a pull request comment was made."""

    ISSUE = "issue"
    REVIEW = "review"


class Comment(BaseModel):
    """Comment on a pull request conversation or diff."""

    model_config = ConfigDict(extra="forbid")

    id: int = Field(description="Comment ID.")
    author: str = Field(description="Comment author login.")
    body: str = Field(description="Comment body.")
    created_at: str = Field(description="Comment creation timestamp.")
    type: CommentType = Field(description="Comment type.")


def _ensure_mapping(value: object, *, context: str) -> dict[str, Any]:
    """Ensure a response fragment is a JSON object."""
    if not isinstance(value, dict):
        raise GitHubApiError(
            f"Expected JSON object for {context}.",
            status_code=500,
            endpoint=context,
        )
    return value


def _optional_str(payload: dict[str, Any], *, key: str, endpoint: str) -> str:
    """Read a string field, treating missing or null as empty."""
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise GitHubApiError(
            f"Expected '{key}' to be a string or null in GitHub response.",
            status_code=500,
            endpoint=endpoint,
        )
    return value


def _optional_int(payload: dict[str, Any], *, key: str, endpoint: str) -> int:
    """Read an integer field, treating missing or null as zero."""
    value = payload.get(key)
    if value is None:
        return 0
    if not isinstance(value, int) or isinstance(value, bool):
        raise GitHubApiError(
            f"Expected '{key}' to be an integer or null in GitHub response.",
            status_code=500,
            endpoint=endpoint,
        )
    return value


def _require_int(payload: dict[str, Any], *, key: str, endpoint: str) -> int:
    """Read a required integer field from payload."""
    value = payload.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise GitHubApiError(
            f"Expected integer field '{key}' in GitHub response.",
            status_code=500,
            endpoint=endpoint,
        )
    return value


def _user_login(payload: dict[str, Any], *, endpoint: str) -> str:
    """Read ``user.login``, which GitHub omits for deleted accounts."""
    user = payload.get("user")
    if user is None:
        return ""
    return _optional_str(_ensure_mapping(user, context=endpoint), key="login", endpoint=endpoint)


def _is_retryable_status(status_code: int) -> bool:
    """Return whether a status code is retryable under policy."""
    return status_code == 429 or 500 <= status_code < 600


def _parse_retry_after_seconds(response: httpx.Response) -> float | None:
    """Parse Retry-After header as seconds if present and valid."""
    retry_after = response.headers.get("Retry-After")
    if retry_after is None:
        return None
    try:
        parsed_value = float(retry_after)
    except ValueError:
        return None
    if parsed_value < 0:
        return None
    return parsed_value


def _compute_retry_delay_seconds(response: httpx.Response, *, attempt_number: int) -> float:
    """Compute retry delay from Retry-After header or exponential backoff."""
    retry_after_seconds = _parse_retry_after_seconds(response)
    if retry_after_seconds is not None:
        return retry_after_seconds
    return DEFAULT_RETRY_BACKOFF_SECONDS * (2 ** (attempt_number - 1))


async def _sleep_for_retry(seconds: float) -> None:
    """Sleep helper for retry delays (wrapped for deterministic tests)."""
    await asyncio.sleep(seconds)


def _raise_http_error(response: httpx.Response, endpoint: str) -> None:
    """Raise a typed error for a non-success GitHub API response."""
    message = f"GitHub API request failed with status {response.status_code} for '{endpoint}'."
    if response.status_code == 429:
        raise GitHubRateLimitError(message, status_code=response.status_code, endpoint=endpoint)
    raise GitHubApiError(message, status_code=response.status_code, endpoint=endpoint)


async def _request_with_retries(
    client: httpx.AsyncClient,
    endpoint: str,
    *,
    max_attempts: int = GITHUB_MAX_RETRIES,
) -> httpx.Response:
    """Perform a GET request with retry handling for 429/5xx responses."""
    for attempt_number in range(1, max_attempts + 1):
        response = await client.get(endpoint)
        if response.status_code < 400:
            return response

        should_retry = _is_retryable_status(response.status_code) and attempt_number < max_attempts
        if not should_retry:
            _raise_http_error(response, endpoint)

        delay_seconds = _compute_retry_delay_seconds(response, attempt_number=attempt_number)
        logger.warning(
            "github_request_retry",
            endpoint=endpoint,
            status_code=response.status_code,
            attempt=attempt_number,
            delay_seconds=delay_seconds,
        )
        await _sleep_for_retry(delay_seconds)

    raise RuntimeError("Unexpected retry loop exit without a response.")


async def _request_json(client: httpx.AsyncClient, endpoint: str) -> dict[str, Any]:
    """Perform a JSON request against GitHub API."""
    response = await _request_with_retries(client, endpoint)
    return _ensure_mapping(response.json(), context=endpoint)


async def _request_json_list(client: httpx.AsyncClient, endpoint: str) -> list[dict[str, Any]]:
    """Perform a JSON request that returns an array of objects."""
    response = await _request_with_retries(client, endpoint)
    payload = response.json()
    if not isinstance(payload, list):
        raise GitHubApiError(
            "Expected JSON array in GitHub response.",
            status_code=500,
            endpoint=endpoint,
        )
    return [_ensure_mapping(item, context=endpoint) for item in payload]


async def _request_paginated(client: httpx.AsyncClient, base_endpoint: str) -> list[dict[str, Any]]:
    """Collect every page of a list endpoint."""
    rows: list[dict[str, Any]] = []
    page = 1
    while True:
        endpoint = f"{base_endpoint}?per_page={COMMENTS_PER_PAGE}&page={page}"
        page_rows = await _request_json_list(client, endpoint)
        rows.extend(page_rows)
        if len(page_rows) < COMMENTS_PER_PAGE:
            return rows
        page += 1


def _repository_path(pull: PullRequestInput) -> str:
    """Build the ``/repos/{owner}/{repo}`` prefix with validated segments."""
    for label, segment in (("owner", pull.owner), ("repo", pull.repo)):
        if not segment.strip() or "/" in segment:
            raise GitHubInputError(f"Invalid {label} '{segment}'. Expected one path segment.")
    return f"/repos/{quote(pull.owner, safe='')}/{quote(pull.repo, safe='')}"


async def fetch_pull_request_details(
    *,
    client: httpx.AsyncClient,
    pull: PullRequestInput,
) -> PullRequestDetails:
    """Fetch title, body, author, and URL of a pull request."""
    endpoint = f"{_repository_path(pull)}/pulls/{validate_pr_number(pull.number)}"
    payload = await _request_json(client, endpoint)
    return PullRequestDetails(
        number=_optional_int(payload, key="number", endpoint=endpoint),
        title=_optional_str(payload, key="title", endpoint=endpoint),
        body=_optional_str(payload, key="body", endpoint=endpoint),
        author=_user_login(payload, endpoint=endpoint),
        url=_optional_str(payload, key="html_url", endpoint=endpoint),
    )


def _comment_from_row(row: dict[str, Any], *, comment_type: CommentType, endpoint: str) -> Comment:
    """Normalize one issue or review comment payload."""
    return Comment(
        id=_require_int(row, key="id", endpoint=endpoint),
        author=_user_login(row, endpoint=endpoint),
        body=_optional_str(row, key="body", endpoint=endpoint),
        created_at=_optional_str(row, key="created_at", endpoint=endpoint),
        type=comment_type,
    )


async def fetch_pull_request_comments(
    *,
    client: httpx.AsyncClient,
    pull: PullRequestInput,
) -> list[Comment]:
    """Fetch review and conversation comments, oldest first."""
    repository_path = _repository_path(pull)
    number = validate_pr_number(pull.number)
    review_endpoint = f"{repository_path}/pulls/{number}/comments"
    issue_endpoint = f"{repository_path}/issues/{number}/comments"

    review_rows = await _request_paginated(client, review_endpoint)
    issue_rows = await _request_paginated(client, issue_endpoint)

    comments = [
        _comment_from_row(row, comment_type=CommentType.REVIEW, endpoint=review_endpoint)
        for row in review_rows
    ]
    comments.extend(
        _comment_from_row(row, comment_type=CommentType.ISSUE, endpoint=issue_endpoint)
        for row in issue_rows
    )
    return sorted(comments, key=lambda comment: comment.created_at)


async def fetch_authenticated_user_login(*, client: httpx.AsyncClient) -> str:
    """Fetch authenticated GitHub user login for token validation."""
    endpoint = "/user"
    payload = await _request_json(client, endpoint)
    login = payload.get("login")
    if not isinstance(login, str):
        raise GitHubApiError(
            "Expected string field 'login' in GitHub response.",
            status_code=500,
            endpoint=endpoint,
        )
    return login


def parse_repo_full_name(repo_full_name: str) -> tuple[str, str]:
    """Parse and validate repository input in owner/repo format."""
    owner, separator, repo = repo_full_name.strip().partition("/")
    if not separator or not owner or not repo or "/" in repo:
        raise GitHubInputError(
            f"Invalid repo '{repo_full_name}'. Expected format is owner/repo."
        )
    return owner, repo


def validate_pr_number(pr_number: int) -> int:
    """Validate and normalize pull request number input."""
    if pr_number <= 0:
        raise GitHubInputError(f"Invalid PR number '{pr_number}'. Expected a positive integer.")
    return pr_number


def find_github_token() -> tuple[str | None, str | None]:
    """Return the GitHub token and its environment key, or ``(None, None)``."""
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    for env_var in ("GITHUB_TOKEN", "GH_TOKEN"):
        token = os.getenv(env_var)
        if token:
            return token, env_var
    return None, None


def get_github_token_with_source() -> tuple[str, str]:
    """Read GitHub token and return token value with environment source key."""
    token, source = find_github_token()
    if token is None or source is None:
        raise GitHubAuthError("Missing GitHub token. Set GITHUB_TOKEN (preferred) or GH_TOKEN.")
    return token, source


def build_github_client(
    settings: ToolkitSettings | None = None,
    *,
    token: str | None = None,
) -> httpx.AsyncClient:
    """Build a GitHub HTTP client, authenticated when a token is available."""
    settings = settings or ToolkitSettings()
    if token is None:
        token, _source = find_github_token()
    headers = {
        "Accept": GITHUB_JSON_MEDIA_TYPE,
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    else:
        logger.warning("github_token_missing", detail="using unauthenticated GitHub API access")
    return httpx.AsyncClient(
        base_url=settings.github_api_base_url,
        headers=headers,
        timeout=settings.github_timeout_seconds,
        trust_env=settings.trust_env,
    )


def github_tools(client: httpx.AsyncClient) -> tuple[ToolSpec[Any, Any], ...]:
    """Expose the pull request fetchers as agent tools bound to ``client``."""

    async def get_pull_request(pull: PullRequestInput) -> PullRequestDetails:
        return await fetch_pull_request_details(client=client, pull=pull)

    async def get_pull_request_comments(pull: PullRequestInput) -> list[Comment]:
        return await fetch_pull_request_comments(client=client, pull=pull)

    return (
        define_tool("getPullRequest", "Get pull request from github", get_pull_request),
        define_tool(
            "getPullRequestComments",
            "Get pull request comments from github",
            get_pull_request_comments,
        ),
    )
