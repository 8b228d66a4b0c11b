"""Entry point for the account monitor"""
import json
import logging
import signal
import sys
import threading

from account_monitor.config import settings as env_settings
from account_monitor.db import db
from account_monitor.db_config import DatabaseManager
from account_monitor.errors import ConfigurationError
from account_monitor.monitor import Monitor, PeriodicCycle
from account_monitor.reconciliation import ReconciliationEngine
from account_monitor.services.balances import BalanceResolver
from account_monitor.services.chain_client import ConnectionPool
from account_monitor.services.discovery import NetworkDiscovery
from account_monitor.services.notifier import DiscordNotifier
from account_monitor.services.storage import LedgerStore

logger = logging.getLogger(__name__)

SENSITIVE_SETTINGS = {'DATABASE_URL', 'DB_PASSWORD', 'DISCORD_WEBHOOK'}


def run() -> None:
    """Start discovery and balance cycles and run until SIGINT/SIGTERM."""
    logging.basicConfig(
        level=getattr(logging, env_settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )
    logger.info("Account Monitor starting...")

    try:
        db.init(DatabaseManager.connection_string(env_settings))
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    ledger = LedgerStore(db)
    settings = env_settings.with_database_settings(ledger.load_settings())

    # Log config (excluding sensitive data)
    safe_config = settings.model_dump(exclude=SENSITIVE_SETTINGS)
    logger.info("Using configuration:")
    logger.info(json.dumps(safe_config, indent=2))

    notifier = None
    if settings.notifications_enabled:
        notifier = DiscordNotifier(settings.DISCORD_WEBHOOK, settings.DISCORD_CHANNEL_ID)
    else:
        logger.warning("WARNING: Notifications are disabled")

    stop_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info(f"Received signal: {signal.Signals(signum).name}")
        logger.info("Starting graceful shutdown...")
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    pool = ConnectionPool(ledger.get_network, page_size=settings.RPC_PAGE_SIZE)
    resolver = BalanceResolver(pool, verify_checksum=settings.VERIFY_SS58_CHECKSUM)
    engine = ReconciliationEngine(ledger, resolver, settings, notifier)
    monitor = Monitor(ledger, engine, notifier, settings.MAX_WORKERS, stop_event)
    discovery = NetworkDiscovery(ledger, pool)

    # Initial discovery completes before the first balance check
    logger.info("Starting initial network discovery...")
    try:
        discovery.discover_networks(stop_event)
    except Exception:
        logger.exception("Initial network discovery failed, retrying on the refresh cycle")

    cycles = [
        PeriodicCycle("balance check", settings.CHECK_INTERVAL_HOURS * 3600,
                      monitor.check_balances, stop_event),
        PeriodicCycle("network refresh", settings.NETWORK_REFRESH_MINUTES * 60,
                      lambda: discovery.discover_networks(stop_event), stop_event,
                      run_immediately=False),
    ]

    logger.info("Starting monitoring services...")
    for cycle in cycles:
        cycle.start()

    logger.info("Account monitor is running. Press Ctrl+C to stop.")
    stop_event.wait()

    logger.info("Waiting for services to stop...")
    for cycle in cycles:
        cycle.join(timeout=5)

    pool.close()
    db.dispose()
    logger.info("Account monitor stopped")


if __name__ == "__main__":
    run()
