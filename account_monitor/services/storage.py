"""Database storage service for networks, tokens and balances"""
import logging
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from account_monitor.db import Database
from account_monitor.models.chain import (Account, AssetMetadata, Balance, BalanceChange, Network,
                                          PalletInfo, Token, TokenKind)
from account_monitor.models.db import (AccountRecord, BalanceHistory, BalanceRecord, NetworkPallet,
                                       NetworkRecord, NetworkToken, Setting)

logger = logging.getLogger(__name__)

NATIVE_TOKEN_ID = ''
DEFAULT_NATIVE_DECIMALS = 10


def _network(record: NetworkRecord) -> Network:
    return Network(
        id=record.id,
        name=record.name,
        ss58_prefix=record.ss58_prefix if record.ss58_prefix is not None else 42,
        decimals=record.decimals if record.decimals is not None else DEFAULT_NATIVE_DECIMALS,
        symbol=record.symbol,
        active=bool(record.active),
        url=record.ws_url or record.rpc_url
    )


def _token(record: NetworkToken) -> Token:
    return Token(
        id=record.id,
        kind=TokenKind(record.token_type),
        symbol=record.symbol,
        decimals=record.decimals,
        token_id=record.token_id or None,
        pallet=record.pallet_name
    )


def _balance(record: BalanceRecord) -> Balance:
    return Balance(
        free=record.free or 0,
        reserved=record.reserved or 0,
        misc_frozen=record.misc_frozen or 0,
        fee_frozen=record.fee_frozen or 0,
        bonded=record.bonded or 0,
        total=record.total or 0
    )


class LedgerStore:
    """Handles all database operations"""

    def __init__(self, database: Database):
        self.database = database

    def load_settings(self) -> Dict[str, str]:
        """Get the settings table as name -> value"""
        with self.database.session() as session:
            return {row.name: row.value for row in session.query(Setting).all()}

    def list_networks(self) -> List[Network]:
        """Get all active networks"""
        with self.database.session() as session:
            records = session.query(NetworkRecord).filter_by(active=True).order_by(NetworkRecord.id).all()
            return [_network(record) for record in records]

    def get_network(self, name: str) -> Optional[Network]:
        with self.database.session() as session:
            record = session.query(NetworkRecord).filter_by(name=name).first()
            return _network(record) if record else None

    def list_accounts(self) -> List[Account]:
        """Get all accounts with monitoring enabled"""
        with self.database.session() as session:
            records = session.query(AccountRecord).filter_by(monitor_enabled=True).order_by(AccountRecord.id).all()
            return [
                Account(id=record.id, address=record.address, name=record.name,
                        notify=bool(record.discord_notify))
                for record in records
            ]

    def get_native_token(self, network_id: int) -> Optional[Token]:
        with self.database.session() as session:
            record = session.query(NetworkToken).filter_by(
                network_id=network_id, token_type=TokenKind.NATIVE.value
            ).first()
            return _token(record) if record else None

    def list_asset_tokens(self, network_id: int) -> List[Token]:
        """Get active asset and foreign asset tokens of a network"""
        with self.database.session() as session:
            records = session.query(NetworkToken).filter(
                NetworkToken.network_id == network_id,
                NetworkToken.active.is_(True),
                NetworkToken.token_type.in_([TokenKind.ASSET.value, TokenKind.FOREIGN_ASSET.value])
            ).order_by(NetworkToken.id).all()
            return [_token(record) for record in records]

    def list_tokens(self, network_id: int) -> List[Token]:
        """Native token first, then assets"""
        native = self.get_native_token(network_id)
        return ([native] if native else []) + self.list_asset_tokens(network_id)

    def token_decimals_by_symbol(self) -> Dict[str, int]:
        with self.database.session() as session:
            rows = session.query(NetworkToken.symbol, NetworkToken.decimals).distinct().all()
            return {symbol: decimals for symbol, decimals in rows}

    def record_pallet(self, network_id: int, pallet: PalletInfo) -> None:
        """Mark a pallet as detected on a network"""
        try:
            with self.database.session() as session:
                record = session.query(NetworkPallet).filter_by(
                    network_id=network_id, pallet_name=pallet.name
                ).first()
                if record:
                    record.detected = True
                    record.pallet_index = pallet.index
                else:
                    session.add(NetworkPallet(
                        network_id=network_id,
                        pallet_name=pallet.name,
                        pallet_index=pallet.index,
                        detected=True
                    ))
        except SQLAlchemyError as e:
            logger.error(f"Database error storing pallet {pallet.name}: {e}")
            raise

    def upsert_token(self, network_id: int, kind: TokenKind, token_id: Optional[str],
                     metadata: AssetMetadata, pallet: Optional[str]) -> Token:
        """Create or refresh a token, unique on (network, kind, token id)"""
        try:
            with self.database.session() as session:
                record = session.query(NetworkToken).filter_by(
                    network_id=network_id, token_type=kind.value, token_id=token_id or NATIVE_TOKEN_ID
                ).first()
                if record:
                    record.symbol = metadata.symbol
                    record.name = metadata.name
                    record.decimals = metadata.decimals
                    record.active = True
                else:
                    record = NetworkToken(
                        network_id=network_id,
                        token_type=kind.value,
                        token_id=token_id or NATIVE_TOKEN_ID,
                        symbol=metadata.symbol,
                        name=metadata.name,
                        decimals=metadata.decimals,
                        pallet_name=pallet,
                        active=True
                    )
                    session.add(record)
                session.flush()
                return _token(record)
        except SQLAlchemyError as e:
            logger.error(f"Database error storing token {metadata.symbol}: {e}")
            raise

    def get_balance(self, account_id: int, network_id: int, token_id: int) -> Optional[Balance]:
        """Get the stored balance for (account, network, token), None if never stored"""
        with self.database.session() as session:
            record = session.query(BalanceRecord).filter_by(
                account_id=account_id, network_id=network_id, network_token_id=token_id
            ).first()
            return _balance(record) if record else None

    def upsert_balance(self, account_id: int, network_id: int, token_id: int, balance: Balance) -> int:
        """
        Store the current balance, one row per (account, network, token).

        Returns:
            Balance row id
        """
        try:
            with self.database.session() as session:
                record = session.query(BalanceRecord).filter_by(
                    account_id=account_id, network_id=network_id, network_token_id=token_id
                ).first()
                if record is None:
                    record = BalanceRecord(account_id=account_id, network_id=network_id,
                                           network_token_id=token_id)
                    session.add(record)

                record.free = balance.free
                record.reserved = balance.reserved
                record.misc_frozen = balance.misc_frozen
                record.fee_frozen = balance.fee_frozen
                record.bonded = balance.bonded
                record.total = balance.total
                session.flush()
                return record.id
        except SQLAlchemyError as e:
            logger.error(f"Database error storing balance: {e}")
            raise

    def append_balance_change(self, balance_id: int, change: BalanceChange) -> None:
        """Append a balance history row"""
        try:
            with self.database.session() as session:
                session.add(BalanceHistory(
                    balance_id=balance_id,
                    account_id=change.account_id,
                    network_id=change.network_id,
                    network_token_id=change.token_id,
                    free_before=change.before.free,
                    free_after=change.after.free,
                    total_before=change.before.total,
                    total_after=change.after.total,
                    change_amount=change.delta,
                    change_type=change.direction.value,
                    recorded_at=change.recorded_at
                ))
        except SQLAlchemyError as e:
            logger.error(f"Database error storing balance change: {e}")
            raise
