"""CLI for the wallet agent bot - configure, run and inspect from the terminal."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

app = typer.Typer(
    name="wallet-agent-bot",
    help="Run a chat bot that manages custodial wallets through an AI agent.",
    no_args_is_help=True,
)
console = Console()

DEFAULT_CONFIG = Path("config.yaml")


def _version_callback(value: bool):
    if value:
        from wallet_agent_bot import __version__
        console.print(f"wallet-agent-bot {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """Run a chat bot that manages custodial wallets through an AI agent."""


def _fail(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    raise typer.Exit(code=1)


# ------------------------------------------------------------------
# init
# ------------------------------------------------------------------


@app.command()
def init(
    path: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Where to write the config"),
    chain: str = typer.Option("ethereum", "--chain", help="Chain the bot operates on"),
    provider: str = typer.Option("openai", "--provider", "-p", help="LLM provider (openai or anthropic)"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing config"),
):
    """Write a starter config.yaml with ${ENV_VAR} placeholders for secrets."""
    from wallet_agent_bot.config import save_config, starter_config
    from wallet_agent_bot.wallet.chains import CHAINS, list_chain_names

    if path.exists() and not force:
        _fail(f"{path} already exists. Pass --force to overwrite it.")
    if chain not in list_chain_names():
        _fail(f"Unknown chain '{chain}'. Available: {', '.join(list_chain_names())}")
    if provider not in ("openai", "anthropic"):
        _fail("Provider must be 'openai' or 'anthropic'.")

    config = starter_config()
    config.wallet.chain = chain
    config.llm.default_provider = provider
    save_config(config, path)

    network_note = (
        " (testnet)" if CHAINS[chain].testnet
        else " [yellow](mainnet: set wallet.max_transfer_amount)[/yellow]"
    )

    console.print(Panel(
        f"[bold green]Config written to {path}[/bold green]\n\n"
        f"Chain: [cyan]{chain}[/cyan]{network_note}\n"
        f"Provider: [cyan]{provider}[/cyan]\n\n"
        f"Next steps:\n"
        f"  export TELEGRAM_BOT_TOKEN=...\n"
        f"  export {'OPENAI_API_KEY' if provider == 'openai' else 'ANTHROPIC_API_KEY'}=...\n"
        f"  wallet-agent-bot run",
        title="Wallet Agent Bot",
    ))


# ------------------------------------------------------------------
# run
# ------------------------------------------------------------------


@app.command()
def run(
    path: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Config file"),
    log_level: str = typer.Option("INFO", "--log-level", "-l", help="Logging level"),
):
    """Start the Telegram bot and serve until interrupted."""
    from wallet_agent_bot.errors import ConfigError

    load_dotenv()
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s :: %(message)s",
    )
    # httpx logs every Telegram poll at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)

    try:
        asyncio.run(_serve(path))
    except ConfigError as exc:
        _fail(str(exc))


async def _serve(path: Path) -> None:
    from wallet_agent_bot.errors import ConfigError
    from wallet_agent_bot.service import WalletBot
    from wallet_agent_bot.transports.telegram import TelegramTransport

    bot = await WalletBot.load(path)
    try:
        token = bot.config.telegram.token
        if not token or token.startswith("${"):
            raise ConfigError("telegram.token is not set (export TELEGRAM_BOT_TOKEN).")
        transport = TelegramTransport(bot.dispatcher, token)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, lambda: asyncio.ensure_future(transport.stop()))
            except NotImplementedError:
                signal.signal(
                    sig,
                    lambda *_: loop.call_soon_threadsafe(asyncio.ensure_future, transport.stop()),
                )

        await transport.start()
    finally:
        await bot.shutdown()


# ------------------------------------------------------------------
# account
# ------------------------------------------------------------------


@app.command()
def account(
    user_id: str = typer.Argument(..., help="Chat user id"),
    path: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Config file"),
):
    """Show a user's stored wallet address and flags (never the private key)."""
    from wallet_agent_bot.config import load_config
    from wallet_agent_bot.errors import ConfigError
    from wallet_agent_bot.storage.database import get_database
    from wallet_agent_bot.wallet.keystore import Keystore

    async def _lookup():
        config = load_config(path)
        db = get_database(config.database.path)
        await db.connect()
        try:
            return await Keystore(db).get_account(user_id)
        finally:
            await db.close()

    try:
        record = asyncio.run(_lookup())
    except ConfigError as exc:
        _fail(str(exc))
        return
    if record is None:
        _fail(f"No account stored for user {user_id}.")
        return

    table = Table(title=f"Account {user_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Address", record.public_key)
    table.add_row("Alerts", "on" if record.alerts_enabled else "off")
    table.add_row("In progress", str(record.in_progress))
    table.add_row("In game", str(record.in_game))
    table.add_row("Created", str(record.created_at or ""))
    table.add_row("Updated", str(record.updated_at or ""))
    console.print(table)
