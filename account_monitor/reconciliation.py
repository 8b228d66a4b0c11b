"""Balance reconciliation: change detection, history, alert decisions and portfolio rollup"""
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Hashable, Optional

from account_monitor.config import Settings
from account_monitor.models.chain import Account, Balance, BalanceChange, Network, Token
from account_monitor.models.summary import AccountSummary, DailySummary, TokenBalance, TokenTotal
from account_monitor.services.balances import BalanceResolver
from account_monitor.services.notifier import DiscordNotifier
from account_monitor.services.storage import LedgerStore
from account_monitor.units import meets_threshold

logger = logging.getLogger(__name__)


class KeyedLocks:
    """One lock per key, so writers of the same key are serialized"""

    def __init__(self):
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock


@dataclass
class ReconcileResult:
    """Outcome of reconciling one (account, network, token)"""
    token_balance: TokenBalance
    change: Optional[BalanceChange]
    alerted: bool = False


class ReconciliationEngine:
    """Compares fresh balances with stored ones, records changes and decides on alerts"""

    def __init__(self, ledger: LedgerStore, resolver: BalanceResolver, settings: Settings,
                 notifier: Optional[DiscordNotifier] = None):
        self.ledger = ledger
        self.resolver = resolver
        self.settings = settings
        self.notifier = notifier
        self._locks = KeyedLocks()

    def reconcile(self, account: Account, network: Network, token: Token) -> ReconcileResult:
        """
        Reconcile one balance.

        A zero delta changes nothing. A nonzero delta upserts the balance and always
        appends a history row; the threshold only gates the alert.

        Raises:
            DecodingError: If the address or stored chain data is malformed
            TransportError: If the chain node cannot be reached
            SQLAlchemyError: If persistence fails
        """
        key = (account.id, network.id, token.id)
        with self._locks.lock_for(key):
            previous = self.ledger.get_balance(*key) or Balance.zero()
            current = self.resolver.resolve(network, account.address, token)

            change = None
            if current.total != previous.total:
                balance_id = self.ledger.upsert_balance(account.id, network.id, token.id, current)
                change = BalanceChange.between(account.id, network.id, token.id, previous, current)
                self.ledger.append_balance_change(balance_id, change)

        token_balance = TokenBalance(
            network=network.name,
            symbol=token.symbol,
            decimals=token.decimals,
            balance=current.total,
            change=current.total - previous.total,
            kind=token.kind
        )

        alerted = False
        if change is not None:
            logger.info(f"{account.address} {network.name} {token.symbol}: "
                        f"{change.direction.value} by {abs(change.delta)}")
            alerted = self.should_alert(account, token, change.delta)
            if alerted and self.notifier is not None:
                self.notifier.send_balance_change(account, network, token, change)

        return ReconcileResult(token_balance=token_balance, change=change, alerted=alerted)

    def should_alert(self, account: Account, token: Token, delta: int) -> bool:
        """Alert iff |delta| >= threshold (human units), the account wants alerts and alerts are on"""
        return (
            self.settings.notifications_enabled
            and account.notify
            and meets_threshold(delta, token.decimals, self.settings.MIN_BALANCE_CHANGE)
        )


class PortfolioRollup:
    """Sums balances and changes per symbol, per account and across the portfolio"""

    def __init__(self):
        self.accounts: Dict[int, AccountSummary] = {}
        self.totals_by_token: Dict[str, int] = {}
        self.changes_by_token: Dict[str, int] = {}
        self.decimals_seen: Dict[str, int] = {}

    def track(self, account: Account) -> AccountSummary:
        summary = self.accounts.get(account.id)
        if summary is None:
            summary = AccountSummary(name=account.name or "Unknown", address=account.address)
            self.accounts[account.id] = summary
        return summary

    def add(self, account: Account, token_balance: TokenBalance) -> None:
        symbol = token_balance.symbol
        self.track(account).add(token_balance)
        self.totals_by_token[symbol] = self.totals_by_token.get(symbol, 0) + token_balance.balance
        self.changes_by_token[symbol] = self.changes_by_token.get(symbol, 0) + token_balance.change
        self.decimals_seen.setdefault(symbol, token_balance.decimals)

    def summary(self, token_decimals: Optional[Dict[str, int]] = None) -> DailySummary:
        """Build the digest; decimals come from token_decimals, then from observed balances"""
        decimals = dict(self.decimals_seen)
        decimals.update({symbol: value for symbol, value in (token_decimals or {}).items() if value})

        active_networks = {
            token_balance.network
            for account in self.accounts.values()
            for token_balance in account.token_balances
            if token_balance.balance > 0
        }

        report = DailySummary(
            total_accounts=len(self.accounts),
            active_networks=len(active_networks),
            totals_by_token={},
            token_decimals=decimals,
            account_summaries=list(self.accounts.values())
        )
        for symbol, total in self.totals_by_token.items():
            report.totals_by_token[symbol] = TokenTotal(
                symbol=symbol,
                total=total,
                change=self.changes_by_token.get(symbol, 0),
                decimals=report.decimals_for(symbol)
            )
        return report
