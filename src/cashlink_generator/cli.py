"""CLI entry point for the cashlink generator."""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import asdict
from datetime import datetime
from pathlib import Path

import click

from cashlink_generator.cashlink import CashlinkTheme, parse_theme
from cashlink_generator.config import load_config
from cashlink_generator.errors import CashlinkError
from cashlink_generator.handlers.statistics import create_statistics, format_statistics
from cashlink_generator.handlers.transactions import claim_cashlinks, fund_cashlinks
from cashlink_generator.models.config import CashlinkConfig
from cashlink_generator.nimiq.broadcaster import TransactionBroadcaster
from cashlink_generator.nimiq.keys import Address, KeyPair
from cashlink_generator.nimiq.rpc import NimiqRpcClient
from cashlink_generator.storage.files import export_cashlinks, import_cashlinks
from cashlink_generator.tokens import create_cashlinks, create_secret as new_secret

LUNA_PER_NIM = 100_000
DEFAULT_MESSAGE = "Welcome to Nimiq - Crypto for Humans"
DEFAULT_SHORT_LINK_BASE_URL = "https://nim.id/"
PENDING_NOTICE = (
    "Transactions might still be pending in your local node and waiting to be relayed "
    "to other network nodes.\nMake sure to check your wallet balance and keep your node "
    "running if needed."
)


def _nim(luna: int) -> str:
    return f"{luna / LUNA_PER_NIM:.5f} NIM"


def _date_string() -> str:
    return datetime.now().strftime("%Y-%m-%d_%H%M")


def _fail(exc: Exception) -> None:
    click.echo(f"Error: {exc}", err=True)
    sys.exit(1)


def _load(ctx: click.Context, require_node: bool = False) -> CashlinkConfig:
    """Load and validate the configuration, exit on errors."""
    try:
        cfg = load_config(ctx.obj["config_path"])
        if require_node:
            cfg.validate()
    except CashlinkError as exc:
        _fail(exc)
    if not ctx.obj["verbose"]:
        logging.getLogger().setLevel(cfg.log_level.upper())
    return cfg


def _node(cfg: CashlinkConfig) -> tuple[NimiqRpcClient, TransactionBroadcaster]:
    node = NimiqRpcClient(cfg.rpc_url, cfg.username, cfg.password)
    return node, TransactionBroadcaster(node, **asdict(cfg.broadcaster))


def _update_path(file: Path, operation: str) -> Path:
    return file.with_name(f"{file.stem} (update {_date_string()} {operation}).csv")


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Path to config TOML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """cashlink-generator - Create, fund and track Nimiq cashlinks in bulk."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ── Info ───────────────────────────────────────────────


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the configuration and the node's state."""
    cfg = _load(ctx)
    click.echo(f"Network:      {cfg.network.value}")
    click.echo(f"Node:         {cfg.rpc_url if cfg.node_host else '(not set)'}")
    click.echo(f"Cashlink URL: {cfg.cashlink_base_url}")
    click.echo(f"Token length: {cfg.token_length}")
    click.echo(f"Salt:         {'***configured***' if cfg.salt else '(not set)'}")
    if not cfg.node_host:
        return

    async def _status():
        node = NimiqRpcClient(cfg.rpc_url, cfg.username, cfg.password)
        try:
            if not await node.is_connected():
                click.echo("Connected:    no")
                return
            click.echo("Connected:    yes")
            click.echo(f"Block:        {await node.get_block_height()}")
            click.echo(f"Consensus:    {await node.is_consensus_established()}")
        finally:
            await node.close()

    try:
        asyncio.run(_status())
    except CashlinkError as exc:
        _fail(exc)


@cli.command("create-secret")
@click.option("--length", default=128, show_default=True, help="Salt length in bytes")
def create_secret(length: int) -> None:
    """Print a new random salt for deriving cashlink keys. Keep it secret."""
    click.echo(f"CASHLINK_SALT={new_secret(length)}")


# ── Batch creation and editing ─────────────────────────


@cli.command()
@click.option("-n", "--count", type=int, required=True, help="Number of cashlinks")
@click.option("--value", type=float, required=True, help="Value per cashlink in NIM")
@click.option("--message", default=DEFAULT_MESSAGE, show_default=True, help='Message, "none" for none')
@click.option("--theme", default="unspecified", show_default=True, help="Theme name or number")
@click.option(
    "--short-link-base-url",
    default=DEFAULT_SHORT_LINK_BASE_URL,
    show_default=True,
    help='Base URL of short links, "none" for none',
)
@click.option("-o", "--output", type=click.Path(), default=None, help="Output folder")
@click.pass_context
def create(
    ctx: click.Context,
    count: int,
    value: float,
    message: str,
    theme: str,
    short_link_base_url: str,
    output: str | None,
) -> None:
    """Create a new batch of cashlinks and export it as CSV."""
    cfg = _load(ctx)
    try:
        cfg.validate()
        luna = round(value * LUNA_PER_NIM)
        if luna <= 0:
            raise click.BadParameter("value must be positive", param_hint="--value")
        cashlinks = create_cashlinks(
            cfg, count, luna, "" if message == "none" else message, parse_theme(theme)
        )
    except CashlinkError as exc:
        _fail(exc)

    short_links = None
    if short_link_base_url != "none":
        if not short_link_base_url.endswith(("/", "=", "?", "&", "#")):
            short_link_base_url += "/"
        short_links = {token: f"{short_link_base_url}{token}" for token in cashlinks}

    folder = Path(output) if output else Path("generated-cashlinks") / _date_string()
    file = export_cashlinks(cashlinks, folder / "cashlinks.csv", short_links)
    click.echo(f"{len(cashlinks)} cashlinks of {_nim(luna)} created.")
    click.echo(f"Cashlinks exported to {file}")


@cli.command("change-message")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("message")
@click.pass_context
def change_message(ctx: click.Context, file: Path, message: str) -> None:
    """Change the message of all cashlinks in FILE ("none" removes it)."""
    _load(ctx)
    message = "" if message == "none" else message
    try:
        batch = import_cashlinks(file)
        old = next(iter(batch.cashlinks.values())).message if batch.cashlinks else ""
        if old == message:
            click.echo("Keeping the old cashlink message.")
            return
        for cashlink in batch.cashlinks.values():
            cashlink.message = message
    except CashlinkError as exc:
        _fail(exc)
    out = export_cashlinks(
        batch.cashlinks, _update_path(file, "change-message"), batch.short_links, batch.image_files
    )
    click.echo(f"Cashlink message changed. Cashlinks exported to {out}")


@cli.command("change-theme")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("theme")
@click.pass_context
def change_theme(ctx: click.Context, file: Path, theme: str) -> None:
    """Change the theme of all cashlinks in FILE.

    THEME is one of the theme names or a number from 0 to 255.
    """
    _load(ctx)
    try:
        new_theme = parse_theme(theme)
        batch = import_cashlinks(file)
        old = next(iter(batch.cashlinks.values())).theme if batch.cashlinks else 0
        if old == new_theme:
            click.echo("Keeping the old cashlink theme.")
            return
        for cashlink in batch.cashlinks.values():
            cashlink.theme = new_theme
    except CashlinkError as exc:
        _fail(exc)
    out = export_cashlinks(
        batch.cashlinks, _update_path(file, "change-theme"), batch.short_links, batch.image_files
    )
    try:
        name = CashlinkTheme(new_theme).name.lower()
    except ValueError:
        name = str(new_theme)
    click.echo(f"Cashlink theme changed to {name}. Cashlinks exported to {out}")


# ── Node operations ────────────────────────────────────


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--private-key",
    envvar="CASHLINK_FUNDING_KEY",
    prompt="Funding account private key (hex)",
    hide_input=True,
    help="Hex private key of the funding account",
)
@click.option("--fee", type=int, default=0, show_default=True, help="Fee per transaction in luna")
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def fund(ctx: click.Context, file: Path, private_key: str, fee: int, yes: bool) -> None:
    """Fund all cashlinks in FILE from the given account."""
    cfg = _load(ctx, require_node=True)
    try:
        key_pair = KeyPair.from_hex(private_key)
        batch = import_cashlinks(file)
    except CashlinkError as exc:
        _fail(exc)

    total = sum(c.value for c in batch.cashlinks.values()) + fee * len(batch.cashlinks)
    click.echo(f"Funding {len(batch.cashlinks)} cashlinks from {key_pair.address} ({_nim(total)} with fees).")
    if not yes and not click.confirm("Ok?"):
        click.echo("Not funding cashlinks.")
        return

    async def _fund():
        node, broadcaster = _node(cfg)
        try:
            return await fund_cashlinks(
                batch.cashlinks, fee, key_pair, node, broadcaster, cfg.network
            )
        finally:
            await broadcaster.close()
            await node.close()

    try:
        result = asyncio.run(_fund())
    except CashlinkError as exc:
        _fail(exc)
    click.echo(f"{result.funded} cashlinks funded with {_nim(result.total_value)}.")
    click.echo(PENDING_NOTICE)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("recipient")
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def claim(ctx: click.Context, file: Path, recipient: str, yes: bool) -> None:
    """Redeem all unclaimed cashlinks in FILE to RECIPIENT."""
    cfg = _load(ctx, require_node=True)
    try:
        address = Address.from_user_friendly(recipient)
        batch = import_cashlinks(file)
    except CashlinkError as exc:
        _fail(exc)

    if not yes and not click.confirm(f"Redeeming unclaimed cashlinks to {address}, ok?"):
        click.echo("Not redeeming cashlinks.")
        return

    async def _claim():
        node, broadcaster = _node(cfg)
        try:
            return await claim_cashlinks(batch.cashlinks, address, node, broadcaster, cfg.network)
        finally:
            await broadcaster.close()
            await node.close()

    try:
        result = asyncio.run(_claim())
    except CashlinkError as exc:
        _fail(exc)
    click.echo(
        f"{result.claimed} unclaimed cashlinks redeemed ({_nim(result.total_value)}), "
        f"{result.skipped} were already empty."
    )
    click.echo(PENDING_NOTICE)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--reclaim-address", default=None, help="Address cashlinks have been reclaimed to")
@click.option("--time-zone", default="UTC", show_default=True, help="Time zone for claims per day")
@click.option("-o", "--output", type=click.Path(path_type=Path), default=None, help="Write the report here")
@click.pass_context
def statistics(
    ctx: click.Context,
    file: Path,
    reclaim_address: str | None,
    time_zone: str,
    output: Path | None,
) -> None:
    """Show claim statistics of the cashlinks in FILE."""
    cfg = _load(ctx, require_node=True)
    try:
        reclaim = Address.from_user_friendly(reclaim_address) if reclaim_address else None
        batch = import_cashlinks(file)
    except CashlinkError as exc:
        _fail(exc)

    async def _statistics():
        node = NimiqRpcClient(cfg.rpc_url, cfg.username, cfg.password)
        try:
            return await create_statistics(
                batch.cashlinks,
                reclaim,
                time_zone,
                node,
                cfg.statistics.requests_per_minute,
                cfg.statistics.throttle_margin,
            )
        finally:
            await node.close()

    try:
        report = format_statistics(asyncio.run(_statistics()))
    except CashlinkError as exc:
        _fail(exc)
    click.echo(f"\nStatistics:\n{report}")
    if output:
        output.write_text(report, encoding="utf-8")
        click.echo(f"Statistics exported to {output}.")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
