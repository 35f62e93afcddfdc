"""skprofile CLI — publish a JSON profile from a local IPFS node.

Commands:
    skprofile init             write skprofile.toml
    skprofile install          download the node binary
    skprofile run              full session: repo, key, daemon, publish, export, stop
    skprofile status           binary / repository / key / daemon state
    skprofile stop             stop a daemon left behind by an interrupted run
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import NoReturn

import click

from skprofile import daemon, install, staging
from skprofile.config import ProfileConfig, init_config, load_config
from skprofile.errors import CommandError, ConfigError, SKProfileError
from skprofile.lifecycle import Lifecycle
from skprofile.models import ProfileInput, SessionResult
from skprofile.node import KuboNode

_MARKERS = {"ok": "✓", "warn": "⚠", "info": "•", "fail": "✗"}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose >= 2:  # noqa: PLR2004
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(message)s")


def _load_cfg(ctx: click.Context) -> ProfileConfig:
    try:
        return load_config(ctx.obj.get("root") if ctx.obj else None)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


def _report(level: str, message: str) -> None:
    click.echo(f"  {_MARKERS.get(level, '•')} {message}", err=level == "warn")


def _fail(exc: SKProfileError) -> NoReturn:
    """Print a fatal error and exit 1."""
    if isinstance(exc, CommandError):
        click.echo(f"✗ Failed: {' '.join(exc.command)}", err=True)
        click.echo(f"  {exc.message}", err=True)
    else:
        click.echo(f"✗ Failed: {exc}", err=True)
    raise SystemExit(1)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="skprofile")
@click.option("--root", default=None, help="Project root (default: search upward for skprofile.toml)")
@click.option("-v", "--verbose", count=True, help="-v for INFO logs, -vv for DEBUG")
@click.pass_context
def cli(ctx: click.Context, root: str | None, verbose: int) -> None:
    """skprofile — publish a profile over IPFS/IPNS from a local node."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["root"] = root


# ---------------------------------------------------------------------------
# skprofile init
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--dir", "root", default=".", show_default=True, help="Project root")
def init(root: str) -> None:
    """Write a default skprofile.toml."""
    root_path = Path(root).resolve()
    try:
        config_path = init_config(root_path)
        click.echo(f"Created {config_path}")
    except FileExistsError:
        click.echo("skprofile.toml already exists — skipping init")


# ---------------------------------------------------------------------------
# skprofile install
# ---------------------------------------------------------------------------


@cli.command("install")
@click.option("--force", is_flag=True, help="Download again even if the binary works")
@click.pass_context
def install_cmd(ctx: click.Context, force: bool) -> None:
    """Download the node binary for this platform."""
    cfg = _load_cfg(ctx)
    if not force and install.is_present(cfg):
        click.echo(f"  ✓ Already installed: {install.binary_path(cfg)}")
    else:
        click.echo(f"Downloading {install.download_url(cfg)}")
        try:
            install.install(cfg)
        except SKProfileError as exc:
            _fail(exc)
    node = KuboNode(install.binary_path(cfg), cfg.repo_path)
    try:
        click.echo(f"  ✓ {node.version()}")
    except CommandError as exc:
        _fail(exc)


# ---------------------------------------------------------------------------
# skprofile run
# ---------------------------------------------------------------------------


def _print_published(result: SessionResult) -> None:
    click.echo("\n✓ Profile live (while this command runs):")
    click.echo(f"  IPFS CID       : {result.root_cid}")
    click.echo(f"  IPNS address   : {result.ipns_path}")
    click.echo(f"  Public gateway : {result.public_url}/profile.json")


@cli.command()
@click.option("--name", default=None, help="Display name (prompted if omitted)")
@click.option("--bio", default=None, help="Bio (prompted if omitted)")
@click.option("--post", default=None, help="First post (prompted if omitted)")
@click.option("--no-wait", is_flag=True, help="Export the key and stop right after publishing")
@click.pass_context
def run(
    ctx: click.Context,
    name: str | None,
    bio: str | None,
    post: str | None,
    no_wait: bool,
) -> None:
    """Install, init, start the node, publish the profile, then shut down."""
    cfg = _load_cfg(ctx)

    def collect() -> ProfileInput:
        return ProfileInput(
            name=(name if name is not None else click.prompt("Name")).strip(),
            bio=(bio if bio is not None else click.prompt("Bio", default="", show_default=False)).strip(),
            post=(post if post is not None else click.prompt("First post")).strip(),
        )

    def wait() -> None:
        if not no_wait:
            click.prompt(
                "\nPress Enter to stop and export your key",
                default="",
                show_default=False,
                prompt_suffix="...",
            )

    click.echo("Starting IPFS node...")
    lifecycle = Lifecycle(cfg, report=_report)
    try:
        result = lifecycle.run(collect, wait, on_published=_print_published)
    except SKProfileError as exc:
        _fail(exc)

    if result.removed_pins:
        click.echo(f"  ✓ Removed {len(result.removed_pins)} old pin(s)")
    click.echo("  ✓ IPFS node shut down.")


# ---------------------------------------------------------------------------
# skprofile status / stop
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show binary, repository, key, daemon and staged-tree state."""
    from rich.console import Console
    from rich.table import Table

    cfg = _load_cfg(ctx)
    console = Console()

    table = Table(title=f"skprofile — {cfg.root}", show_header=True, header_style="bold")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    node = KuboNode(install.binary_path(cfg), cfg.repo_path)
    present = install.is_present(cfg)
    if present:
        try:
            table.add_row("Binary", f"{node.binary}  ({node.version()})")
        except CommandError:
            table.add_row("Binary", f"{node.binary}  [yellow](version unknown)[/yellow]")
    else:
        table.add_row("Binary", "[red]missing — run `skprofile install`[/red]")

    if node.is_initialized():
        table.add_row("Repository", str(cfg.repo_path))
        if present:
            try:
                keys = node.key_names()
            except CommandError as exc:
                table.add_row("Key", f"[red]{exc.message}[/red]")
            else:
                if cfg.key.name in keys:
                    table.add_row("Key", f"'{cfg.key.name}' present")
                else:
                    table.add_row("Key", f"[yellow]'{cfg.key.name}' not in keystore[/yellow]")
    else:
        table.add_row("Repository", "[yellow]not initialized[/yellow]")

    if cfg.key_file.exists():
        table.add_row("Key export", str(cfg.key_file))
    else:
        table.add_row("Key export", "[yellow]none — a new identity will be generated[/yellow]")

    table.add_row("Daemon", daemon.daemon_status(cfg))
    table.add_row("API", cfg.api_url)

    staged = staging.read_tree(cfg.staging_dir)
    if staged:
        table.add_row("Staged profile", f"{staged.get('name', '')}  ({staged.get('created', '')})")
    else:
        table.add_row("Staged profile", "none")

    console.print(table)


@cli.command()
@click.pass_context
def stop(ctx: click.Context) -> None:
    """Stop a daemon left running by an interrupted `skprofile run`."""
    cfg = _load_cfg(ctx)
    click.echo(f"Daemon: {daemon.stop_stale_daemon(cfg)}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    cli(standalone_mode=True)


if __name__ == "__main__":
    main()
