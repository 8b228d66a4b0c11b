"""Tests for change detection, history, alert decisions and the portfolio rollup"""
import dataclasses
import threading
import time
from unittest.mock import MagicMock

import pytest

from account_monitor.codec.storage_keys import map_key
from account_monitor.models.chain import Account, Balance, ChangeDirection, TokenKind
from account_monitor.models.db import BalanceHistory, BalanceRecord
from account_monitor.models.summary import TokenBalance
from account_monitor.reconciliation import KeyedLocks, PortfolioRollup, ReconciliationEngine
from account_monitor.services.balances import BalanceResolver
from account_monitor.services.chain_client import ConnectionPool
from account_monitor.services.notifier import DiscordNotifier
from chain_data import ALICE, FakeChainClient, account_info

ALICE_KEY = map_key("System", "Account", ALICE)


class SlowChainClient(FakeChainClient):
    """Storage reads take long enough for concurrent callers to overlap"""

    def get_storage(self, key):
        time.sleep(0.05)
        return super().get_storage(key)


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def chain():
    return FakeChainClient()


@pytest.fixture
def notifier():
    return MagicMock(spec=DiscordNotifier)


@pytest.fixture
def engine(ledger, settings, chain, notifier):
    pool = ConnectionPool(ledger.get_network, factory=lambda network: chain)
    return ReconciliationEngine(ledger, BalanceResolver(pool), settings, notifier)


@pytest.fixture
def baseline(ledger, account, network, native_token):
    """Stored balance of 100 DOT"""
    ledger.upsert_balance(account.id, network.id, native_token.id, Balance.native(10 ** 12, 0, 0))


def history_rows(database):
    with database.session() as session:
        return session.query(BalanceHistory).order_by(BalanceHistory.id).all()


def balance_rows(database):
    with database.session() as session:
        return session.query(BalanceRecord).all()


# ============================================================================
# RECONCILIATION
# ============================================================================


class TestReconcile:

    def test_change_at_threshold_alerts(self, engine, chain, notifier, database, baseline,
                                        account, network, native_token):
        chain.storage[ALICE_KEY] = account_info(free=1_000_001_000_000)

        result = engine.reconcile(account, network, native_token)

        assert result.change.delta == 1_000_000
        assert result.change.direction is ChangeDirection.INCREASE
        assert result.alerted
        notifier.send_balance_change.assert_called_once_with(account, network, native_token, result.change)

        rows = history_rows(database)
        assert len(rows) == 1
        assert rows[0].change_amount == 1_000_000
        assert rows[0].change_type == "increase"
        assert rows[0].total_before == 10 ** 12
        assert rows[0].total_after == 1_000_001_000_000

    def test_change_below_threshold_is_recorded_without_alert(self, engine, chain, notifier, database,
                                                              baseline, account, network, native_token):
        chain.storage[ALICE_KEY] = account_info(free=10 ** 12 + 999_999)

        result = engine.reconcile(account, network, native_token)

        assert result.change.delta == 999_999
        assert not result.alerted
        notifier.send_balance_change.assert_not_called()
        assert len(history_rows(database)) == 1
        assert balance_rows(database)[0].total == 10 ** 12 + 999_999

    def test_decrease(self, engine, chain, database, baseline, account, network, native_token):
        chain.storage[ALICE_KEY] = account_info(free=4 * 10 ** 11)

        result = engine.reconcile(account, network, native_token)

        assert result.change.delta == -6 * 10 ** 11
        assert result.change.direction is ChangeDirection.DECREASE
        assert result.token_balance.change == -6 * 10 ** 11
        assert history_rows(database)[0].change_type == "decrease"

    def test_unchanged_balance_writes_nothing(self, engine, chain, notifier, database, baseline,
                                              account, network, native_token):
        chain.storage[ALICE_KEY] = account_info(free=10 ** 12)

        result = engine.reconcile(account, network, native_token)

        assert result.change is None
        assert result.token_balance.balance == 10 ** 12
        assert history_rows(database) == []
        notifier.send_balance_change.assert_not_called()

    def test_repeated_run_is_idempotent(self, engine, chain, notifier, database, account, network, native_token):
        chain.storage[ALICE_KEY] = account_info(free=5 * 10 ** 12, reserved=10 ** 12)

        first = engine.reconcile(account, network, native_token)
        second = engine.reconcile(account, network, native_token)

        assert first.change.delta == 6 * 10 ** 12
        assert second.change is None
        assert len(balance_rows(database)) == 1
        assert len(history_rows(database)) == 1
        assert notifier.send_balance_change.call_count == 1

    def test_concurrent_runs_record_one_change(self, ledger, settings, notifier, database,
                                               account, network, native_token):
        chain = SlowChainClient(storage={ALICE_KEY: account_info(free=2 * 10 ** 12)})
        pool = ConnectionPool(ledger.get_network, factory=lambda network: chain)
        engine = ReconciliationEngine(ledger, BalanceResolver(pool), settings, notifier)
        barrier = threading.Barrier(2)
        errors = []

        def run():
            barrier.wait()
            try:
                engine.reconcile(account, network, native_token)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=run) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert errors == []
        assert len(balance_rows(database)) == 1
        assert len(history_rows(database)) == 1
        assert notifier.send_balance_change.call_count == 1

    def test_missing_account_stays_zero(self, engine, database, account, network, native_token):
        result = engine.reconcile(account, network, native_token)

        assert result.change is None
        assert result.token_balance.balance == 0
        assert balance_rows(database) == []

    def test_account_without_notifications(self, engine, chain, notifier, database, baseline,
                                           account, network, native_token):
        chain.storage[ALICE_KEY] = account_info(free=2 * 10 ** 12)

        result = engine.reconcile(dataclasses.replace(account, notify=False), network, native_token)

        assert result.change is not None
        assert not result.alerted
        notifier.send_balance_change.assert_not_called()
        assert len(history_rows(database)) == 1


class TestShouldAlert:

    @pytest.fixture
    def token(self, native_token):
        return native_token

    def test_threshold_is_inclusive(self, engine, token):
        account = Account(id=1, address="x")
        assert engine.should_alert(account, token, 1_000_000)
        assert engine.should_alert(account, token, -1_000_000)
        assert not engine.should_alert(account, token, 999_999)

    def test_notifications_switched_off(self, ledger, settings, token):
        settings = settings.model_copy(update={'ENABLE_NOTIFICATIONS': False})
        engine = ReconciliationEngine(ledger, MagicMock(), settings)
        assert not engine.should_alert(Account(id=1, address="x"), token, 10 ** 15)

    def test_no_webhook(self, ledger, settings, token):
        settings = settings.model_copy(update={'DISCORD_WEBHOOK': None})
        engine = ReconciliationEngine(ledger, MagicMock(), settings)
        assert not engine.should_alert(Account(id=1, address="x"), token, 10 ** 15)


class TestKeyedLocks:

    def test_same_key_same_lock(self):
        locks = KeyedLocks()
        assert locks.lock_for((1, 2, 3)) is locks.lock_for((1, 2, 3))
        assert locks.lock_for((1, 2, 3)) is not locks.lock_for((1, 2, 4))


# ============================================================================
# ROLLUP
# ============================================================================


class TestPortfolioRollup:

    def test_totals_per_symbol_and_account(self):
        treasury = Account(id=1, address="addr-1", name="Treasury")
        ops = Account(id=2, address="addr-2")
        rollup = PortfolioRollup()

        rollup.add(treasury, TokenBalance("polkadot", "DOT", 10, 5 * 10 ** 10, 10 ** 10))
        rollup.add(treasury, TokenBalance("asset-hub", "DOT", 10, 3 * 10 ** 10, 0))
        rollup.add(treasury, TokenBalance("asset-hub", "USDt", 6, 2_000_000, -1_000_000, TokenKind.ASSET))
        rollup.add(ops, TokenBalance("polkadot", "DOT", 10, 10 ** 10, 0))
        rollup.add(ops, TokenBalance("kusama", "KSM", 12, 0, 0))

        summary = rollup.summary({"DOT": 10, "USDt": 6})

        assert summary.total_accounts == 2
        assert summary.active_networks == 2
        assert summary.totals_by_token["DOT"].total == 9 * 10 ** 10
        assert summary.totals_by_token["DOT"].change == 10 ** 10
        assert summary.totals_by_token["USDt"].change == -1_000_000
        assert summary.totals_by_token["USDt"].decimals == 6
        assert summary.totals_by_token["KSM"].decimals == 12

        treasury_summary = summary.account_summaries[0]
        assert treasury_summary.name == "Treasury"
        assert treasury_summary.totals_by_token["DOT"] == 8 * 10 ** 10
        assert summary.account_summaries[1].name == "Unknown"

    def test_tracked_account_without_balances(self):
        rollup = PortfolioRollup()
        rollup.track(Account(id=1, address="addr-1", name="Cold"))

        summary = rollup.summary()

        assert summary.total_accounts == 1
        assert summary.active_networks == 0
        assert summary.totals_by_token == {}

    def test_unknown_decimals_default_to_ten(self):
        rollup = PortfolioRollup()
        rollup.add(Account(id=1, address="a"), TokenBalance("polkadot", "XYZ", 0, 1, 0))
        assert rollup.summary().totals_by_token["XYZ"].decimals == 10
