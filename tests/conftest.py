import pytest
import pytest_asyncio

from fakes import FakeChainProvider, ScriptedLLM

from wallet_agent_bot.agent.memory import ConversationMemory
from wallet_agent_bot.agent.session import AgentSessionFactory
from wallet_agent_bot.bot.dispatcher import Dispatcher
from wallet_agent_bot.bot.import_state import ImportStateTracker
from wallet_agent_bot.config import AgentConfig
from wallet_agent_bot.storage.database import Database
from wallet_agent_bot.wallet.keystore import Keystore

# pytest tests/ -rP
# pytest tests/test_dispatcher.py --log-cli-level=DEBUG


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(tmp_path / "bot.db")
    await database.connect()
    yield database
    await database.close()


@pytest.fixture
def keystore(db):
    return Keystore(db)


@pytest.fixture
def memory(db):
    return ConversationMemory(db)


@pytest.fixture
def llm():
    return ScriptedLLM()


@pytest.fixture
def chain():
    return FakeChainProvider()


@pytest.fixture
def agent_config():
    return AgentConfig(
        max_iterations=4,
        llm_timeout_seconds=2.0,
        tool_timeout_seconds=2.0,
        history_messages=20,
    )


@pytest.fixture
def sessions(llm, chain, memory, agent_config):
    return AgentSessionFactory(
        llm=llm,
        chain_provider=chain,
        memory=memory,
        config=agent_config,
        max_transfer_amount=5,
    )


@pytest.fixture
def dispatcher(keystore, sessions):
    return Dispatcher(keystore=keystore, sessions=sessions, imports=ImportStateTracker())
