"""Click commands: run the server, or query a running one over HTTP."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import click
import httpx

DEFAULT_URL = "http://localhost:8080"
_TIMEOUT_SECONDS = 15.0


def _make_client(url: str) -> httpx.Client:
    return httpx.Client(base_url=url, timeout=_TIMEOUT_SECONDS)


def _request(ctx: click.Context, method: str, path: str, **kwargs: Any) -> httpx.Response:
    url: str = ctx.obj["url"]
    try:
        with _make_client(url) as client:
            return client.request(method, path, **kwargs)
    except httpx.HTTPError as exc:
        raise click.ClickException(f"cannot reach {url}: {exc}") from exc


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "error" in body:
        return f"{body['error']}: {body.get('detail', '')}"
    return json.dumps(body)


@click.group()
@click.option(
    "--url",
    envvar="BWREADER_URL",
    default=DEFAULT_URL,
    show_default=True,
    help="Base URL of a running bitwarden-reader.",
)
@click.pass_context
def cli(ctx: click.Context, url: str) -> None:
    """Bitwarden secret sync status."""
    ctx.ensure_object(dict)
    ctx.obj["url"] = url.rstrip("/")


@cli.command()
def serve() -> None:
    """Run the dashboard server (configured from the environment)."""
    from bwreader.app import main

    asyncio.run(main())


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print the raw snapshot envelope.")
@click.pass_context
def secrets(ctx: click.Context, as_json: bool) -> None:
    """Show the sync status of every configured secret."""
    response = _request(ctx, "GET", "/api/v1/secrets")
    if response.status_code != 200:
        raise click.ClickException(f"HTTP {response.status_code}: {_error_detail(response)}")
    envelope = response.json()
    if as_json:
        click.echo(json.dumps(envelope, indent=2))
        return

    secrets_list = envelope.get("secrets", [])
    click.echo(
        f"namespace={envelope.get('namespace', '')} "
        f"found={envelope.get('totalFound', 0)}/{len(secrets_list)} "
        f"at {envelope.get('timestamp', '')}"
    )
    if envelope.get("error"):
        click.echo(f"warning: {envelope['error']}", err=True)
    for entry in secrets_list:
        sync = entry.get("syncInfo", {})
        status = sync.get("syncStatus") or ("no CRD" if not sync.get("crdFound") else "unknown")
        line = f"  {entry['name']:<32} {'found' if entry.get('found') else 'missing':<8} {status}"
        if sync.get("lastSuccessfulSync"):
            line += f"  last sync {sync['lastSuccessfulSync']}"
        click.echo(line)
        if entry.get("error"):
            click.echo(f"    {entry['error']}")


@cli.command("trigger-sync")
@click.argument("names", nargs=-1)
@click.pass_context
def trigger_sync(ctx: click.Context, names: tuple[str, ...]) -> None:
    """Force a re-sync of NAMES (default: every configured secret)."""
    payload = {"secretNames": list(names)} if names else None
    response = _request(ctx, "POST", "/api/v1/trigger-sync", json=payload)
    if response.status_code not in (200, 206):
        raise click.ClickException(f"HTTP {response.status_code}: {_error_detail(response)}")

    body = response.json()
    for name in body.get("successes", []):
        click.echo(f"triggered {name}")
    for error in body.get("errors", []):
        click.echo(f"failed    {error}", err=True)
    if response.status_code == 206:
        ctx.exit(2)


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check that the server is up."""
    response = _request(ctx, "GET", "/api/v1/health")
    if response.status_code != 200:
        raise click.ClickException(f"HTTP {response.status_code}: {_error_detail(response)}")
    body = response.json()
    click.echo(f"{body.get('status', 'unknown')} (version {body.get('version', '?')})")
