"""SQLAlchemy database models for networks, accounts and balances"""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (Column, Integer, BigInteger, String, Text, Boolean, DateTime,
                        ForeignKey, JSON, Numeric, UniqueConstraint, Index)
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


class Amount(TypeDecorator):
    """
    Chain amount in minimal units stored as DECIMAL(40, 0).
    SQLite has no exact 128-bit numeric, so it gets a string column there.
    """
    impl = Numeric(40, 0)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'sqlite':
            return dialect.type_descriptor(String(40))
        return dialect.type_descriptor(Numeric(40, 0))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if dialect.name == 'sqlite':
            return str(int(value))
        return Decimal(int(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


class Setting(Base):
    """Operator-managed key/value configuration"""
    __tablename__ = 'settings'

    id = Column(Integer, primary_key=True)
    name = Column(String(64), unique=True, nullable=False, index=True)
    value = Column(Text, nullable=False)
    description = Column(String(255))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class NetworkRecord(Base):
    __tablename__ = 'networks'

    id = Column(Integer, primary_key=True)
    name = Column(String(64), unique=True, nullable=False, index=True)
    display_name = Column(String(128))
    network_type = Column(String(32), default='substrate')
    rpc_url = Column(String(255), nullable=False)
    ws_url = Column(String(255))
    decimals = Column(Integer, default=10)
    symbol = Column(String(16))
    ss58_prefix = Column(Integer, default=42)
    active = Column(Boolean, default=True, index=True)
    last_checked_block = Column(BigInteger, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class NetworkPallet(Base):
    """Pallets detected on a network"""
    __tablename__ = 'network_pallets'
    __table_args__ = (
        UniqueConstraint('network_id', 'pallet_name', name='uk_network_pallet'),
    )

    id = Column(Integer, primary_key=True)
    network_id = Column(Integer, ForeignKey('networks.id', ondelete='CASCADE'), nullable=False)
    pallet_name = Column(String(64), nullable=False)
    pallet_index = Column(Integer)
    detected = Column(Boolean, default=True)
    metadata_json = Column('metadata', JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class NetworkToken(Base):
    """
    Native and pallet-managed tokens of a network.
    token_id is '' for the native token, so the unique key holds on every backend.
    """
    __tablename__ = 'network_tokens'
    __table_args__ = (
        UniqueConstraint('network_id', 'token_type', 'token_id', name='uk_network_token'),
        Index('idx_network_active', 'network_id', 'active'),
    )

    id = Column(Integer, primary_key=True)
    network_id = Column(Integer, ForeignKey('networks.id', ondelete='CASCADE'), nullable=False)
    token_type = Column(String(16), nullable=False, default='native')
    token_id = Column(String(255), nullable=False, default='')
    symbol = Column(String(64), nullable=False)
    name = Column(String(128))
    decimals = Column(Integer, nullable=False)
    pallet_name = Column(String(64))
    metadata_json = Column('metadata', JSON, nullable=True)
    active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class AccountRecord(Base):
    __tablename__ = 'accounts'

    id = Column(Integer, primary_key=True)
    address = Column(String(128), unique=True, nullable=False, index=True)
    address_type = Column(String(16), default='substrate')
    name = Column(String(128))
    description = Column(Text)
    monitor_enabled = Column(Boolean, default=True, index=True)
    discord_notify = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class BalanceRecord(Base):
    """Current balance, exactly one row per (account, network, token)"""
    __tablename__ = 'balances'
    __table_args__ = (
        UniqueConstraint('account_id', 'network_id', 'network_token_id',
                         name='uk_account_network_token'),
        Index('idx_account_network', 'account_id', 'network_id'),
    )

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False)
    network_id = Column(Integer, ForeignKey('networks.id', ondelete='CASCADE'), nullable=False)
    network_token_id = Column(Integer, ForeignKey('network_tokens.id'), nullable=False)
    free = Column(Amount, default=0)
    reserved = Column(Amount, default=0)
    misc_frozen = Column(Amount, default=0)
    fee_frozen = Column(Amount, default=0)
    bonded = Column(Amount, default=0)
    total = Column(Amount, default=0)
    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, index=True)


class BalanceHistory(Base):
    """Append-only log of balance changes"""
    __tablename__ = 'balance_history'
    __table_args__ = (
        Index('idx_account_time', 'account_id', 'recorded_at'),
    )

    id = Column(Integer, primary_key=True)
    balance_id = Column(Integer, ForeignKey('balances.id', ondelete='CASCADE'), nullable=False)
    account_id = Column(Integer, ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False)
    network_id = Column(Integer, ForeignKey('networks.id', ondelete='CASCADE'), nullable=False)
    network_token_id = Column(Integer, ForeignKey('network_tokens.id'), nullable=False)
    free_before = Column(Amount)
    free_after = Column(Amount)
    total_before = Column(Amount)
    total_after = Column(Amount)
    change_amount = Column(Amount, nullable=False)
    change_type = Column(String(16), nullable=False, index=True)
    tx_hash = Column(String(128))
    block_number = Column(BigInteger)
    recorded_at = Column(DateTime, default=datetime.utcnow, index=True)
