"""Discord webhook notifications for balance changes and daily summaries"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

import requests

from account_monitor.models.chain import Account, BalanceChange, ChangeDirection, Network, Token
from account_monitor.models.summary import DailySummary, TokenBalance
from account_monitor.units import format_address, format_token_amount

logger = logging.getLogger(__name__)

SEPARATOR = "─" * 41
REQUEST_TIMEOUT = 10


class DiscordNotifier:
    """Posts plain-text messages to a Discord webhook, failures are logged and dropped"""

    def __init__(self, webhook_url: str, channel_id: Optional[str] = None,
                 session: Optional[requests.Session] = None):
        self.webhook_url = webhook_url
        self.channel_id = channel_id
        self.session = session or requests.Session()

    def send_balance_change(self, account: Account, network: Network, token: Token,
                            change: BalanceChange) -> bool:
        """Send a balance change alert"""
        return self._send(format_balance_change(account, network, token, change))

    def send_daily_summary(self, summary: DailySummary) -> bool:
        """Send the portfolio digest"""
        return self._send(format_daily_summary(summary))

    def _send(self, content: str) -> bool:
        try:
            response = self.session.post(
                self.webhook_url,
                json={'content': content},
                timeout=REQUEST_TIMEOUT
            )
            response.raise_for_status()
            return True
        except requests.RequestException as e:
            logger.error(f"Failed to send Discord webhook: {e}")
            return False


def format_balance_change(account: Account, network: Network, token: Token, change: BalanceChange) -> str:
    emoji = "📉" if change.direction is ChangeDirection.DECREASE else "📈"
    before = format_token_amount(change.before.total, token.decimals, token.symbol)
    after = format_token_amount(change.after.total, token.decimals, token.symbol)

    lines = [
        f"**{emoji} Balance Change Alert**",
        f"Account: `{format_address(account.address)}`",
        f"Network: {network.name} | Token: {token.symbol}",
        f"Change: {format_token_amount(change.delta, token.decimals, token.symbol, signed=True)}",
        f"Before: {before} → After: {after}",
    ]
    return "\n".join(lines)


def format_daily_summary(summary: DailySummary, today: Optional[datetime] = None) -> str:
    today = today or datetime.utcnow()
    lines = [
        f"**📊 Daily Portfolio Summary - {today:%Y-%m-%d}**",
        "```",
        f"Active Accounts: {summary.total_accounts} | Active Networks: {summary.active_networks}",
        SEPARATOR,
    ]

    totals = [total for total in summary.totals_by_token.values() if total.total]
    if totals:
        lines.append("PORTFOLIO TOTALS BY TOKEN")
        lines.append("")
        for total in totals:
            total_str = format_token_amount(total.total, total.decimals)
            change_str = format_token_amount(total.change, total.decimals, signed=True)
            lines.append(f"{total.symbol:<10}  Total: {total_str:>15}  Change: {change_str:>15}")
        lines.append(SEPARATOR)

    if summary.account_summaries:
        lines.append("ACCOUNT DETAILS")
        lines.append("")
        for account in summary.account_summaries:
            lines.append(f"{account.name} ({format_address(account.address)})")

            groups: Dict[str, List[TokenBalance]] = {}
            for token_balance in account.token_balances:
                if token_balance.balance > 0:
                    groups.setdefault(token_balance.symbol, []).append(token_balance)

            for symbol, balances in groups.items():
                decimals = summary.decimals_for(symbol, balances[0].decimals)
                total_str = format_token_amount(account.totals_by_token.get(symbol, 0), decimals)
                change_str = format_token_amount(account.changes_by_token.get(symbol, 0), decimals, signed=True)
                lines.append(f"  {symbol + ':':<8} Total: {total_str:>12}  Change: {change_str:>12}")

                for token_balance in balances:
                    line = f"    {token_balance.network + ':':<20} " \
                           f"{format_token_amount(token_balance.balance, token_balance.decimals):>12}"
                    if token_balance.change:
                        line += f" ({format_token_amount(token_balance.change, token_balance.decimals, signed=True)})"
                    lines.append(line)
            lines.append("")

    lines.append("```")
    return "\n".join(lines)
