"""Periodic monitoring cycles"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from account_monitor.errors import DecodingError, MonitorError
from account_monitor.models.chain import Account, Network
from account_monitor.models.summary import DailySummary
from account_monitor.reconciliation import PortfolioRollup, ReconcileResult, ReconciliationEngine
from account_monitor.services.notifier import DiscordNotifier
from account_monitor.services.storage import LedgerStore

logger = logging.getLogger(__name__)


class PeriodicCycle(threading.Thread):
    """
    Runs fn every interval seconds until stop_event is set, starting immediately
    unless run_immediately is False.

    Each iteration has its own exception boundary, so one failing run neither stops
    this cycle nor any other.
    """

    def __init__(self, name: str, interval: float, fn: Callable[[], object], stop_event: threading.Event,
                 run_immediately: bool = True):
        super().__init__(name=name, daemon=True)
        self.interval = interval
        self.fn = fn
        self.stop_event = stop_event
        self.run_immediately = run_immediately

    def run(self) -> None:
        if not self.run_immediately and self.stop_event.wait(self.interval):
            return
        while not self.stop_event.is_set():
            self.run_once()
            if self.stop_event.wait(self.interval):
                break

    def run_once(self) -> None:
        logger.info(f"Starting {self.name}...")
        try:
            self.fn()
        except Exception:
            logger.exception(f"{self.name} failed")
        else:
            logger.info(f"{self.name} completed")


class Monitor:
    """Balance check cycle: reconciles every token of every monitored account on every network"""

    def __init__(self, ledger: LedgerStore, engine: ReconciliationEngine,
                 notifier: Optional[DiscordNotifier] = None, max_workers: int = 8,
                 stop_event: Optional[threading.Event] = None):
        self.ledger = ledger
        self.engine = engine
        self.notifier = notifier
        self.max_workers = max_workers
        self.stop_event = stop_event or threading.Event()

    def check_balances(self) -> DailySummary:
        """
        Run one balance check and send the daily summary.

        Networks are resolved concurrently per account. A failing (account, network)
        is logged and left out of the summary.
        """
        accounts = self.ledger.list_accounts()
        networks = self.ledger.list_networks()
        rollup = PortfolioRollup()

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="balance") as executor:
            for account in accounts:
                if self.stop_event.is_set():
                    logger.info("Balance check canceled")
                    break

                rollup.track(account)
                futures = {
                    executor.submit(self.check_account_network, account, network): network
                    for network in networks
                }
                for future in as_completed(futures):
                    network = futures[future]
                    try:
                        results = future.result()
                    except (MonitorError, SQLAlchemyError) as e:
                        logger.error(f"Failed to get balance for {account.address} on {network.name}: {e}")
                        continue
                    except Exception:
                        logger.exception(f"Unexpected error for {account.address} on {network.name}")
                        continue

                    for result in results:
                        rollup.add(account, result.token_balance)

        summary = rollup.summary(self.ledger.token_decimals_by_symbol())
        if self.notifier is not None:
            self.notifier.send_daily_summary(summary)
        return summary

    def check_account_network(self, account: Account, network: Network) -> List[ReconcileResult]:
        """
        Reconcile every token of one network for one account.

        An undecodable token is skipped; a transport failure abandons the network for this run.
        """
        tokens = self.ledger.list_tokens(network.id)
        if not tokens:
            logger.warning(f"No tokens registered for network {network.name}, skipping")
            return []

        results = []
        for token in tokens:
            try:
                results.append(self.engine.reconcile(account, network, token))
            except DecodingError as e:
                logger.warning(f"Skipping {token.symbol} for {account.address} on {network.name}: {e}")
        return results
