"""Typer CLI for the pull request agent tools."""

from __future__ import annotations

import asyncio
from typing import Annotated

import httpx
import typer

from pr_agent_tools.codec import JsonFormat, SerializedCall, ToolArgumentsError
from pr_agent_tools.config import ConfigError, ToolkitSettings, load_settings
from pr_agent_tools.github_client import (
    GitHubApiError,
    GitHubAuthError,
    GitHubInputError,
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
from pr_agent_tools.observability import configure_logging
from pr_agent_tools.output import render_tool_catalog_json, render_tool_catalog_markdown
from pr_agent_tools.parameters import ToolDescriptor
from pr_agent_tools.registry import ToolRegistry, UnknownToolError

app = typer.Typer(help="Typed GitHub pull request tools for LLM agents.")


def _load_settings(*, verbose: bool) -> ToolkitSettings:
    """Load settings and configure logging, exiting on invalid configuration."""
    try:
        settings = load_settings()
    except ConfigError as error:
        typer.echo(f"Invalid configuration: {error}")
        raise typer.Exit(code=1) from error
    configure_logging("DEBUG" if verbose else settings.log_level, json_logs=settings.json_logs)
    return settings


async def _tool_descriptors(settings: ToolkitSettings) -> tuple[ToolDescriptor, ...]:
    async with build_github_client(settings) as client:
        return ToolRegistry.from_specs(github_tools(client)).descriptors()


async def _call_tool(
    settings: ToolkitSettings,
    call: SerializedCall,
    *,
    indent: int | None,
) -> str:
    async with build_github_client(settings) as client:
        registry = ToolRegistry.from_specs(
            github_tools(client),
            text_format=JsonFormat(indent=indent),
        )
        result = await registry.execute(call)
        return result.to_text()


@app.command("tools")
def tools_command(
    output_format: Annotated[str, typer.Option(help="Catalog format: json|md.")] = "json",
    verbose: Annotated[bool, typer.Option(help="Enable debug logging.")] = False,
) -> None:
    """Print the tool catalog advertised to the calling agent."""
    if output_format not in {"json", "md"}:
        raise typer.BadParameter("--output-format must be 'json' or 'md'.")
    settings = _load_settings(verbose=verbose)

    descriptors = asyncio.run(_tool_descriptors(settings))
    if output_format == "md":
        typer.echo(render_tool_catalog_markdown(descriptors))
    else:
        typer.echo(render_tool_catalog_json(descriptors))


@app.command("call")
def call_command(
    name: Annotated[str, typer.Argument(help="Tool name, e.g. get_pull_request.")],
    args: Annotated[str, typer.Option("--args", help="Tool arguments as a JSON object.")] = "{}",
    indent: Annotated[
        int | None, typer.Option(help="Indent the JSON result by this many spaces.")
    ] = None,
    verbose: Annotated[bool, typer.Option(help="Enable debug logging.")] = False,
) -> None:
    """Execute one tool against GitHub and print its encoded result."""
    settings = _load_settings(verbose=verbose)
    result_indent = indent if indent is not None else settings.result_indent

    try:
        text = asyncio.run(
            _call_tool(settings, SerializedCall(tool_name=name, payload=args), indent=result_indent)
        )
    except (ToolArgumentsError, UnknownToolError, GitHubInputError) as error:
        typer.echo(f"Tool call rejected: {error}")
        raise typer.Exit(code=2) from error
    except GitHubApiError as error:
        typer.echo(
            "Tool call failed: "
            f"status={error.status_code} endpoint={error.endpoint}."
        )
        raise typer.Exit(code=1) from error
    except httpx.HTTPError as error:
        typer.echo(f"Tool call failed: network error ({error}).")
        raise typer.Exit(code=1) from error

    typer.echo(text)


async def _check_access(
    settings: ToolkitSettings,
    *,
    token: str,
    repo: str | None,
    pr: int | None,
) -> None:
    async with build_github_client(settings, token=token) as client:
        login = await fetch_authenticated_user_login(client=client)
        typer.echo(f"Authenticated as GitHub user '{login}'.")

        if repo is not None and pr is not None:
            owner, repo_name = parse_repo_full_name(repo)
            pull = PullRequestInput(owner=owner, repo=repo_name, number=validate_pr_number(pr))
            await fetch_pull_request_details(client=client, pull=pull)
            await fetch_pull_request_comments(client=client, pull=pull)
            typer.echo(f"Repository/PR access check passed for {repo}#{pr}.")


@app.command("auth-check")
def auth_check_command(
    repo: Annotated[
        str | None,
        typer.Option(help="Optional repository in owner/repo format for permission check."),
    ] = None,
    pr: Annotated[
        int | None,
        typer.Option(help="Optional pull request number used with --repo for permission check."),
    ] = None,
    timeout_seconds: Annotated[
        float | None, typer.Option(help="GitHub API timeout in seconds for the validation call.")
    ] = None,
    trust_env: Annotated[
        bool,
        typer.Option(
            "--trust-env/--no-trust-env",
            help="Use proxy/SSL environment variables from the current shell.",
        ),
    ] = True,
) -> None:
    """Validate GitHub token setup and optional PR read access."""
    if (repo is None) != (pr is None):
        raise typer.BadParameter("Provide both --repo and --pr together, or neither.")
    settings = _load_settings(verbose=False)
    if timeout_seconds is not None:
        settings.github_timeout_seconds = timeout_seconds
    settings.trust_env = trust_env

    try:
        token, token_source = get_github_token_with_source()
    except GitHubAuthError as error:
        typer.echo(f"GitHub auth check failed: {error}")
        raise typer.Exit(code=1) from error

    typer.echo(f"Token detected in {token_source}.")

    try:
        asyncio.run(_check_access(settings, token=token, repo=repo, pr=pr))
    except GitHubInputError as error:
        typer.echo(f"GitHub auth check failed: {error}")
        raise typer.Exit(code=1) from error
    except GitHubApiError as error:
        typer.echo(
            "GitHub auth check failed: "
            f"status={error.status_code} endpoint={error.endpoint}."
        )
        raise typer.Exit(code=1) from error
    except httpx.HTTPError as error:
        typer.echo(f"GitHub auth check failed: network error ({error}).")
        raise typer.Exit(code=1) from error
    except ImportError as error:
        typer.echo(
            "GitHub auth check failed: proxy transport dependency is missing. "
            "Try `pr-agent-tools auth-check --no-trust-env`, or install `httpx[socks]`."
        )
        raise typer.Exit(code=1) from error

    typer.echo("GitHub token setup is valid.")
