"""Domain models for on-chain balances and tokens"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class TokenKind(Enum):
    """Kinds of fungible token a network can hold"""
    NATIVE = "native"
    ASSET = "asset"
    FOREIGN_ASSET = "foreign_asset"


class ChangeDirection(Enum):
    INCREASE = "increase"
    DECREASE = "decrease"


@dataclass
class Network:
    """Operator-managed network configuration"""
    id: int
    name: str
    ss58_prefix: int = 42
    decimals: int = 10
    symbol: Optional[str] = None
    active: bool = True
    url: str = ""


@dataclass
class Account:
    """Operator-managed monitored account"""
    id: int
    address: str
    name: Optional[str] = None
    notify: bool = True


@dataclass
class Token:
    """Identity of a fungible unit on a network"""
    id: int
    kind: TokenKind
    symbol: str
    decimals: int
    token_id: Optional[str] = None
    pallet: Optional[str] = None


@dataclass(frozen=True)
class Balance:
    """Balance snapshot in minimal chain units"""
    free: int = 0
    reserved: int = 0
    misc_frozen: int = 0
    fee_frozen: int = 0
    bonded: int = 0
    total: int = 0

    @classmethod
    def zero(cls) -> "Balance":
        return cls()

    @classmethod
    def native(cls, free: int, reserved: int, misc_frozen: int) -> "Balance":
        """Balance decoded from a System::Account record, total = free + reserved"""
        return cls(
            free=free,
            reserved=reserved,
            misc_frozen=misc_frozen,
            total=free + reserved
        )

    @classmethod
    def asset(cls, amount: int) -> "Balance":
        """Balance decoded from an asset account record"""
        return cls(free=amount, total=amount)


@dataclass(frozen=True)
class BalanceChange:
    """Immutable record of one observed balance change"""
    account_id: int
    network_id: int
    token_id: int
    before: Balance
    after: Balance
    delta: int
    direction: ChangeDirection
    recorded_at: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def between(cls, account_id: int, network_id: int, token_id: int,
                before: Balance, after: Balance) -> "BalanceChange":
        delta = after.total - before.total
        return cls(
            account_id=account_id,
            network_id=network_id,
            token_id=token_id,
            before=before,
            after=after,
            delta=delta,
            direction=ChangeDirection.INCREASE if delta > 0 else ChangeDirection.DECREASE
        )


@dataclass(frozen=True)
class AssetMetadata:
    """Asset symbol, name and decimals, recomputed on demand"""
    name: str
    symbol: str
    decimals: int


@dataclass(frozen=True)
class PalletInfo:
    """Pallet name and index from runtime metadata"""
    name: str
    index: int
