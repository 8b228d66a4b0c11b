import pytest

from account_monitor.config import Settings
from account_monitor.db import Database
from account_monitor.models.chain import AssetMetadata, TokenKind
from account_monitor.models.db import AccountRecord, NetworkRecord
from account_monitor.services.storage import LedgerStore
from chain_data import ALICE_SS58


@pytest.fixture
def database():
    """Fresh in-memory SQLite database per test"""
    database = Database()
    database.init("sqlite:///:memory:")
    yield database
    database.dispose()


@pytest.fixture
def ledger(database):
    return LedgerStore(database)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite:///:memory:",
        DISCORD_WEBHOOK="https://discord.test/api/webhooks/1/token",
        ENABLE_NOTIFICATIONS=True,
        MIN_BALANCE_CHANGE=0.0001,
        MAX_WORKERS=2
    )


@pytest.fixture
def make_network(database, ledger):
    """Factory inserting a network row and returning it as a Network"""
    def make(name, symbol="DOT", decimals=10, active=True):
        with database.session() as session:
            session.add(NetworkRecord(
                name=name,
                display_name=name.title(),
                rpc_url=f"wss://{name}.rpc.test",
                symbol=symbol,
                decimals=decimals,
                ss58_prefix=0,
                active=active
            ))
        return ledger.get_network(name)
    return make


@pytest.fixture
def network(make_network):
    return make_network("polkadot")


@pytest.fixture
def account(database, ledger):
    with database.session() as session:
        session.add(AccountRecord(address=ALICE_SS58, name="Treasury", discord_notify=True))
    return ledger.list_accounts()[0]


@pytest.fixture
def native_token(ledger, network):
    return ledger.upsert_token(network.id, TokenKind.NATIVE, None,
                               AssetMetadata(name="DOT", symbol="DOT", decimals=10), "Balances")
