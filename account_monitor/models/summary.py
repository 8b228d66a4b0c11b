"""Portfolio rollup models consumed by the daily summary"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from account_monitor.models.chain import TokenKind

DEFAULT_DECIMALS = 10


@dataclass
class TokenBalance:
    """One (network, token) balance observed for an account in a cycle"""
    network: str
    symbol: str
    decimals: int
    balance: int
    change: int
    kind: TokenKind = TokenKind.NATIVE


@dataclass
class TokenTotal:
    symbol: str
    total: int
    change: int
    decimals: int


@dataclass
class AccountSummary:
    name: str
    address: str
    token_balances: List[TokenBalance] = field(default_factory=list)
    totals_by_token: Dict[str, int] = field(default_factory=dict)
    changes_by_token: Dict[str, int] = field(default_factory=dict)

    def add(self, token_balance: TokenBalance) -> None:
        """Record a balance and roll it into the per-symbol totals"""
        symbol = token_balance.symbol
        self.token_balances.append(token_balance)
        self.totals_by_token[symbol] = self.totals_by_token.get(symbol, 0) + token_balance.balance
        self.changes_by_token[symbol] = self.changes_by_token.get(symbol, 0) + token_balance.change


@dataclass
class DailySummary:
    """Aggregate report across all accounts and networks"""
    total_accounts: int
    active_networks: int
    totals_by_token: Dict[str, TokenTotal]
    token_decimals: Dict[str, int]
    account_summaries: List[AccountSummary]

    def decimals_for(self, symbol: str, fallback: Optional[int] = None) -> int:
        decimals = self.token_decimals.get(symbol) or fallback
        return decimals or DEFAULT_DECIMALS
