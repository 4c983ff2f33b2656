"""WalletBot - wires storage, keystore, chain, LLM and dispatcher together."""

from __future__ import annotations

import logging
from pathlib import Path

from wallet_agent_bot.agent.memory import ConversationMemory
from wallet_agent_bot.agent.session import AgentSessionFactory
from wallet_agent_bot.bot.dispatcher import Dispatcher
from wallet_agent_bot.bot.import_state import ImportStateTracker
from wallet_agent_bot.config import BotConfig, load_config
from wallet_agent_bot.errors import ConfigError
from wallet_agent_bot.llm.router import LLMRouter
from wallet_agent_bot.storage.database import Database, get_database
from wallet_agent_bot.wallet.chains import get_chain
from wallet_agent_bot.wallet.keystore import Keystore
from wallet_agent_bot.wallet.provider import Web3Provider

logger = logging.getLogger("wallet_agent_bot.service")


class WalletBot:
    """The running bot minus its transport.

    Holds the one shared database connection; every user's session and the
    dispatcher are built on top of it.
    """

    def __init__(self, config: BotConfig, db: Database):
        self.config = config
        self.db = db

        try:
            chain = get_chain(config.wallet.chain)
        except KeyError as exc:
            raise ConfigError(str(exc)) from exc
        try:
            llm = LLMRouter(config.llm, temperature=config.agent.temperature).get_provider()
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

        if not chain.testnet and not config.wallet.max_transfer_amount:
            logger.warning(
                f"Running on mainnet {chain.name} without wallet.max_transfer_amount; "
                f"agent transfers are unlimited"
            )
        self.chain_provider = Web3Provider(chain, rpc_url=config.wallet.rpc_url)
        self.keystore = Keystore(db)
        self.memory = ConversationMemory(db)
        self.sessions = AgentSessionFactory(
            llm=llm,
            chain_provider=self.chain_provider,
            memory=self.memory,
            config=config.agent,
            max_transfer_amount=config.wallet.max_transfer_amount,
        )
        self.dispatcher = Dispatcher(
            keystore=self.keystore,
            sessions=self.sessions,
            imports=ImportStateTracker(config.imports.policy),
        )

    @classmethod
    async def load(cls, config_path: Path) -> WalletBot:
        """Load config, open the database and build the bot."""
        config = load_config(config_path)
        db = get_database(config.database.path)
        await db.connect()
        try:
            bot = cls(config, db)
        except Exception:
            await db.close()
            raise
        logger.info(
            f"Wallet bot ready on {bot.chain_provider.chain.name} "
            f"(db={config.database.path}, import policy={config.imports.policy.value})"
        )
        return bot

    async def shutdown(self) -> None:
        await self.db.close()
