"""CLI entry point for ghc.

Commands:
- auth: log in, log out, switch accounts, inspect and refresh credentials
- api: make an authenticated REST or GraphQL request
"""

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import click
from rich.console import Console
from rich.markup import escape

from ghc_api import __version__
from ghc_api.auth.credentials import TokenSource
from ghc_api.auth.device_flow import DeviceSession
from ghc_api.config import load_config
from ghc_api.errors import ApiError, CredentialError, DeviceFlowError
from ghc_api.logging import setup_logging
from ghc_api.session import AuthSession

console = Console()

T = TypeVar("T")


def _make_session(ctx: click.Context) -> AuthSession:
    factory = ctx.obj.get("session_factory")
    if factory is not None:
        return factory()
    return AuthSession(load_config(ctx.obj.get("config_path")))


def _run(ctx: click.Context, action: Callable[[AuthSession], Awaitable[T]]) -> T:
    """Run ``action`` with a fresh session, reporting failures the CLI way."""

    async def runner() -> T:
        async with _make_session(ctx) as session:
            return await action(session)

    try:
        return asyncio.run(runner())
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted; no credentials were stored[/yellow]")
        raise click.Abort() from None
    except (ApiError, CredentialError, DeviceFlowError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        if ctx.obj.get("verbose"):
            import traceback

            console.print("\n[dim]Traceback:[/dim]")
            console.print(escape(traceback.format_exc()))
        raise click.Abort() from e


def _code_printer(web: bool) -> Callable[[DeviceSession], None]:
    """Show the one-time code, optionally opening the verification page."""

    def show(session: DeviceSession) -> None:
        console.print(f"[yellow]![/yellow] First copy your one-time code: [bold]{session.user_code}[/bold]")
        if web:
            console.print(f"Opening {session.verification_uri} in your browser...")
            try:
                opened = click.launch(session.verification_uri) == 0
            except OSError:
                opened = False
            if opened:
                return
            console.print("[yellow]![/yellow] Failed opening a web browser")
        console.print(f"Open this URL to continue in your web browser: {session.verification_uri}")

    return show


def _split_scopes(values: tuple[str, ...]) -> list[str]:
    return [s.strip() for value in values for s in value.split(",") if s.strip()]


@click.group()
@click.version_option(version=__version__, prog_name="ghc")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable verbose output")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to config.yml (defaults to the ghc config directory)",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_path: Path | None) -> None:
    """Work with GitHub from the command line."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = config_path
    setup_logging(verbose=verbose)


@main.group()
def auth() -> None:
    """Authenticate ghc with GitHub."""


@auth.command()
@click.option("--hostname", "-h", default=None, help="The hostname of the GitHub instance")
@click.option("--scopes", "-s", multiple=True, help="Additional authentication scopes to request")
@click.option("--with-token", is_flag=True, default=False, help="Read token from standard input")
@click.option("--insecure-storage", is_flag=True, default=False, help="Save credentials in plain text")
@click.option("--web", "-w", is_flag=True, default=False, help="Open a browser to authenticate")
@click.pass_context
def login(
    ctx: click.Context,
    hostname: str | None,
    scopes: tuple[str, ...],
    with_token: bool,
    insecure_storage: bool,
    web: bool,
) -> None:
    """Log in to a GitHub account."""
    if with_token and scopes:
        console.print("[bold red]Error:[/bold red] specify only one of `--scopes` or `--with-token`")
        raise click.Abort()
    prefer_secure = False if insecure_storage else None

    if with_token:
        token = sys.stdin.read()
        result = _run(ctx, lambda s: s.login_with_token(hostname, token, prefer_secure))
    else:
        result = _run(
            ctx,
            lambda s: s.login_with_device_flow(hostname, _split_scopes(scopes), _code_printer(web), prefer_secure),
        )

    if result.stored.is_insecure:
        console.print("[yellow]![/yellow] Authentication credentials saved in plain text")
    console.print(f"[green]✓[/green] Logged in to {result.host} account [bold]{result.username}[/bold]")


@auth.command()
@click.option("--hostname", "-h", default=None, help="The hostname of the GitHub instance")
@click.option("--user", "-u", default=None, help="The account to log out of")
@click.pass_context
def logout(ctx: click.Context, hostname: str | None, user: str | None) -> None:
    """Log out of a GitHub account."""
    result = _run(ctx, lambda s: s.logout(hostname, user))
    console.print(f"[green]✓[/green] Logged out of {result.host} account [bold]{result.username}[/bold]")
    if result.switched_to:
        console.print(f"[green]✓[/green] Switched active account for {result.host} to {result.switched_to}")


@auth.command()
@click.option("--hostname", "-h", default=None, help="The hostname of the GitHub instance")
@click.option("--user", "-u", default=None, help="The account to switch to")
@click.pass_context
def switch(ctx: click.Context, hostname: str | None, user: str | None) -> None:
    """Switch active GitHub account."""

    async def action(session: AuthSession) -> tuple[str, str]:
        return session.host(hostname), await session.switch_user(hostname, user)

    host, username = _run(ctx, action)
    console.print(f"[green]✓[/green] Switched active account for {host} to [bold]{username}[/bold]")


@auth.command()
@click.option("--hostname", "-h", default=None, help="Check only a specific hostname")
@click.pass_context
def status(ctx: click.Context, hostname: str | None) -> None:
    """Display active account and authentication state on each known host."""
    rows = _run(ctx, lambda s: s.status(hostname))
    if not rows:
        console.print("You are not logged into any GitHub hosts. To log in, run: ghc auth login")
        raise click.Abort()

    current_host = None
    failed = False
    for row in rows:
        if row.host != current_host:
            current_host = row.host
            console.print(f"[bold]{row.host}[/bold]")
        if row.error:
            failed = True
            console.print(f"  [red]X[/red] {escape(row.username or 'unknown account')}: {escape(row.error)}")
            continue
        source = row.origin if row.source is TokenSource.ENVIRONMENT else (row.source.value if row.source else "")
        console.print(f"  [green]✓[/green] Logged in to {row.host} account [bold]{row.username}[/bold] ({escape(source)})")
        console.print(f"  - Active account: {str(row.active).lower()}")
        console.print(f"  - Token: {escape(row.masked_token)}")
        if row.active and row.scopes:
            console.print(f"  - Token scopes: {', '.join(repr(s) for s in row.scopes)}")
        if row.missing_scopes:
            console.print(f"  [yellow]![/yellow] Missing required token scopes: {', '.join(row.missing_scopes)}")
    if failed:
        raise click.Abort()


@auth.command()
@click.option("--hostname", "-h", default=None, help="The hostname of the GitHub instance")
@click.option("--user", "-u", default=None, help="The account to output the token for")
@click.pass_context
def token(ctx: click.Context, hostname: str | None, user: str | None) -> None:
    """Print the authentication token ghc uses for a hostname and account."""
    credential = _run(ctx, lambda s: s.token(hostname, user))
    click.echo(credential.expose())


@auth.command()
@click.option("--hostname", "-h", default=None, help="The GitHub host to use for authentication")
@click.option("--scopes", "-s", multiple=True, help="Additional authentication scopes for ghc to have")
@click.option("--reset-scopes", is_flag=True, default=False, help="Reset authentication scopes to the default minimum set")
@click.option("--web", "-w", is_flag=True, default=False, help="Open a browser to authenticate")
@click.pass_context
def refresh(
    ctx: click.Context, hostname: str | None, scopes: tuple[str, ...], reset_scopes: bool, web: bool
) -> None:
    """Refresh stored authentication credentials."""
    result = _run(
        ctx,
        lambda s: s.refresh(hostname, _split_scopes(scopes), _code_printer(web), reset_scopes=reset_scopes),
    )
    console.print(f"[green]✓[/green] Authentication complete for {result.host} account [bold]{result.username}[/bold]")


def _parse_fields(fields: tuple[str, ...]) -> dict[str, Any]:
    parsed: dict[str, Any] = {}
    for item in fields:
        key, sep, value = item.partition("=")
        if not sep or not key:
            msg = f"invalid field {item!r}: expected key=value"
            raise click.BadParameter(msg, param_hint="'-f'")
        parsed[key] = value
    return parsed


def _parse_headers(headers: tuple[str, ...]) -> dict[str, str]:
    parsed: dict[str, str] = {}
    for item in headers:
        key, sep, value = item.partition(":")
        if not sep or not key.strip():
            msg = f"invalid header {item!r}: expected key:value"
            raise click.BadParameter(msg, param_hint="'-H'")
        parsed[key.strip()] = value.strip()
    return parsed


@main.command()
@click.argument("endpoint")
@click.option("--hostname", default=None, help="The GitHub hostname for the request")
@click.option("--method", "-X", default=None, help="The HTTP method for the request")
@click.option("--field", "-f", "fields", multiple=True, help="Add a string parameter in key=value format")
@click.option("--header", "-H", "headers", multiple=True, help="Add a HTTP request header in key:value format")
@click.option("--paginate", is_flag=True, default=False, help="Fetch all pages of results")
@click.pass_context
def api(
    ctx: click.Context,
    endpoint: str,
    hostname: str | None,
    method: str | None,
    fields: tuple[str, ...],
    headers: tuple[str, ...],
    paginate: bool,
) -> None:
    """Make an authenticated GitHub API request.

    ENDPOINT is a path such as ``repos/{owner}/{repo}/releases`` or ``graphql``.
    """
    params = _parse_fields(fields)
    extra_headers = _parse_headers(headers)
    verb = (method or ("POST" if params else "GET")).upper()

    async def action(session: AuthSession) -> list[Any]:
        host = session.host(hostname)
        if endpoint == "graphql":
            query = params.pop("query", None)
            if not query:
                msg = "a `query` field is required for graphql requests"
                raise ValueError(msg)
            response = await session.client.graphql(host, query, params or None, headers=extra_headers)
            return [response.data]

        body = params if params and verb != "GET" else None
        query_params = params if params and verb == "GET" else None
        if paginate:
            pages = session.client.rest_paginated(
                host, verb, endpoint, body, params=query_params, headers=extra_headers
            )
            return [page.data async for page in pages]
        response = await session.client.rest(host, verb, endpoint, body, params=query_params, headers=extra_headers)
        return [response.data]

    for data in _run(ctx, action):
        if isinstance(data, str):
            click.echo(data, nl=not data.endswith("\n"))
        elif data is not None:
            console.print_json(json.dumps(data))


if __name__ == "__main__":
    main()
