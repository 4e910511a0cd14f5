"""goproxy CLI - Main Entry Point.

Commands:
    serve   - Serve the module proxy protocol over HTTP
    list    - Show a module's published versions
    latest  - Show a module's latest version
    info    - Show a version's info document
    verify  - Recompute and check a version's digests
    sweep   - Delete artifacts of versions that never committed
"""

import asyncio
import json
import logging
import sys
from typing import Optional

import click

from goproxy import __version__
from goproxy.cli import __cli_name__
from goproxy.config import ConfigLoader, ProxyConfig
from goproxy.coordinator import UpdateCoordinator
from goproxy.faults import Fault
from goproxy.protocol.handler import ProtocolHandler


def _fail(fault: Fault) -> None:
    click.echo(click.style(f"✗ {fault.message}", fg="red"), err=True)
    sys.exit(1)


def _run(coro):
    try:
        return asyncio.run(coro)
    except Fault as fault:
        _fail(fault)


async def _with_handler(config: ProxyConfig, func):
    store = config.create_store()
    try:
        return await func(ProtocolHandler(store, retry=config.retry_policy()))
    finally:
        await store.close()


@click.group()
@click.version_option(version=__version__, prog_name=__cli_name__)
@click.option("--config", "-c", "config_path", type=click.Path(dir_okay=False), help="YAML or JSON config file")
@click.option("--env-file", type=click.Path(dir_okay=False), help=".env file with GOPROXY_* settings")
@click.option("--store", "storage_root", default=None, help="Filesystem store root (overrides config)")
@click.option("--backend", "storage_backend", type=click.Choice(["filesystem", "memory", "s3"]), default=None)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.pass_context
def cli(ctx, config_path: Optional[str], env_file: Optional[str], storage_root, storage_backend, verbose: bool):
    """
    goproxy - Go module proxy store.

    Settings come from --config, --env-file and GOPROXY_* environment
    variables.
    """
    overrides = {"storage_root": storage_root, "storage_backend": storage_backend}
    if verbose:
        overrides["log_level"] = "DEBUG"
    try:
        config = ConfigLoader.load(config_path, env_file=env_file, overrides=overrides)
    except Fault as fault:
        _fail(fault)
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        force=True,
    )
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# ── serve ────────────────────────────────────────────────────────────────


@cli.command("serve")
@click.option("--host", default=None, help="Bind host (overrides config)")
@click.option("--port", "-p", type=int, default=None, help="Bind port (overrides config)")
@click.option("--no-access-log", is_flag=True, help="Disable uvicorn access log")
@click.pass_context
def serve_cmd(ctx, host: Optional[str], port: Optional[int], no_access_log: bool):
    """
    Serve the module proxy protocol over HTTP.

    Examples:
      goproxy serve
      goproxy --store /srv/goproxy serve --port 9000
    """
    from goproxy.server import serve

    config: ProxyConfig = ctx.obj["config"]
    if host:
        config.host = host
    if port:
        config.port = port
    serve(config, access_log=not no_access_log)


# ── list ─────────────────────────────────────────────────────────────────


@cli.command("list")
@click.argument("module")
@click.option("--json-output", "-j", is_flag=True, help="Output as JSON")
@click.pass_context
def list_cmd(ctx, module: str, json_output: bool):
    """
    List a module's versions in publish order.

    Examples:
      goproxy list example.com/foo/bar
    """
    async def _list(handler: ProtocolHandler):
        return await handler.list_versions(module)

    text = _run(_with_handler(ctx.obj["config"], _list))
    versions = text.splitlines()
    if json_output:
        click.echo(json.dumps({"module": module, "versions": versions}, indent=2))
        return
    for version in versions:
        click.echo(version)
    click.echo(click.style(f"\n{len(versions)} version(s)", fg="green"), err=True)


# ── latest ───────────────────────────────────────────────────────────────


@cli.command("latest")
@click.argument("module")
@click.pass_context
def latest_cmd(ctx, module: str):
    """
    Show the latest version of a module.

    Examples:
      goproxy latest example.com/foo/bar
    """
    async def _latest(handler: ProtocolHandler):
        return await handler.get_latest(module)

    document = json.loads(_run(_with_handler(ctx.obj["config"], _latest)))
    click.echo(f"{document['Version']}  {document.get('Time', '-')}")


# ── info ─────────────────────────────────────────────────────────────────


@cli.command("info")
@click.argument("module")
@click.argument("version")
@click.pass_context
def info_cmd(ctx, module: str, version: str):
    """
    Print the info document of a published version.

    Examples:
      goproxy info example.com/foo/bar v0.0.123
    """
    async def _info(handler: ProtocolHandler):
        return await handler.get_info(module, version)

    document = json.loads(_run(_with_handler(ctx.obj["config"], _info)))
    click.echo(json.dumps(document, indent=2))


# ── verify ───────────────────────────────────────────────────────────────


@cli.command("verify")
@click.argument("module")
@click.argument("version")
@click.pass_context
def verify_cmd(ctx, module: str, version: str):
    """
    Recompute a version's digests and compare them with its info document.

    Examples:
      goproxy verify example.com/foo/bar v0.0.123
    """
    async def _verify(handler: ProtocolHandler):
        return await handler.verify(module, version)

    report = _run(_with_handler(ctx.obj["config"], _verify))
    name = f"{report['module']}@{report['version']}"
    if report["ok"]:
        click.echo(click.style(f"✓ Integrity OK: {name}", fg="green"))
        click.echo(f"  zip: {report['actual']['zip']}")
        click.echo(f"  mod: {report['actual']['mod']}")
        return
    click.echo(click.style(f"✗ Integrity FAILED: {name}", fg="red"))
    for kind in ("zip", "mod"):
        click.echo(f"  {kind}: recorded {report['recorded'][kind] or '-'}, actual {report['actual'][kind]}")
    sys.exit(1)


# ── sweep ────────────────────────────────────────────────────────────────


@cli.command("sweep")
@click.argument("module")
@click.option("--grace", type=float, default=None,
              help="Only delete orphans older than this many seconds")
@click.pass_context
def sweep_cmd(ctx, module: str, grace: Optional[float]):
    """
    Delete artifact objects of versions missing from the module's catalog.

    Versions written within the grace period are kept, since another
    process may still be publishing them.

    Examples:
      goproxy sweep example.com/foo/bar
      goproxy sweep example.com/foo/bar --grace 0
    """
    config: ProxyConfig = ctx.obj["config"]

    async def _sweep():
        store = config.create_store()
        try:
            coordinator = UpdateCoordinator(
                store,
                retry=config.retry_policy(),
                sweep_grace=config.sweep_grace_period,
            )
            return await coordinator.sweep(module, grace=grace)
        finally:
            await store.close()

    deleted = _run(_sweep())
    for key in deleted:
        click.echo(f"  deleted {key}")
    click.echo(click.style(f"{len(deleted)} orphaned object(s) removed", fg="green"))


def main():
    """Entry point for `goproxy` command."""
    cli(obj={})


if __name__ == '__main__':
    main()
