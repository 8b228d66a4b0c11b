"""Pallet detection and asset enumeration per network"""
import logging
import threading
from typing import Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from account_monitor.codec.storage_keys import enumeration_prefix, extract_map_key_suffix, extract_u32_key
from account_monitor.errors import DecodingError, MonitorError
from account_monitor.models.chain import AssetMetadata, Network, Token, TokenKind
from account_monitor.services.assets import (ASSET_PALLETS, FOREIGN_ASSETS_PALLET, AssetMetadataResolver,
                                             token_kind_for_pallet)
from account_monitor.services.chain_client import ChainClient, ConnectionPool
from account_monitor.services.storage import LedgerStore

logger = logging.getLogger(__name__)

WATCHED_PALLETS = [
    "System", "Balances", "Assets", "ForeignAssets",
    "Bounties", "ChildBounties", "Staking", "ParachainStaking",
    "CollatorSelection", "Proxy", "Identity",
]


def asset_id_from_key(pallet: str, key: bytes) -> Union[int, str]:
    """
    Asset id from an enumerated <pallet>::Asset key.

    Assets ids are u32; ForeignAssets ids are encoded locations and come back as "0x" hex.
    """
    if pallet == FOREIGN_ASSETS_PALLET:
        return f"0x{extract_map_key_suffix(key).hex()}"
    return extract_u32_key(key)


class NetworkDiscovery:
    """Detects pallets on each active network and registers the assets they hold"""

    def __init__(self, ledger: LedgerStore, pool: ConnectionPool):
        self.ledger = ledger
        self.pool = pool

    def discover_networks(self, stop_event: Optional[threading.Event] = None) -> Dict[str, List[str]]:
        """
        Run discovery on every active network.

        A failing network is logged and skipped.

        Returns:
            network name -> detected watched pallets
        """
        detected = {}
        for network in self.ledger.list_networks():
            if stop_event is not None and stop_event.is_set():
                logger.info("Network discovery canceled")
                break

            logger.info(f"Discovering pallets for network: {network.name}")
            try:
                detected[network.name] = self.discover_network(network)
            except (MonitorError, SQLAlchemyError) as e:
                logger.error(f"Discovery failed for {network.name}: {e}")
            except Exception:
                logger.exception(f"Unexpected error discovering {network.name}")
        return detected

    def discover_network(self, network: Network) -> List[str]:
        client = self.pool.get(network.name)
        self.ensure_native_token(network)

        pallets = {pallet.name: pallet for pallet in client.fetch_latest_metadata()}
        found = []
        for name in WATCHED_PALLETS:
            pallet = pallets.get(name)
            if pallet is None:
                continue
            self.ledger.record_pallet(network.id, pallet)
            found.append(name)
            logger.info(f"  ✔ Found pallet: {name}")

            if name in ASSET_PALLETS:
                self.discover_assets(client, network, name)
        return found

    def ensure_native_token(self, network: Network) -> Token:
        """Register the network's native token from its configuration unless already present"""
        token = self.ledger.get_native_token(network.id)
        if token is not None:
            return token

        symbol = network.symbol or network.name.upper()
        metadata = AssetMetadata(name=symbol, symbol=symbol, decimals=network.decimals)
        return self.ledger.upsert_token(network.id, TokenKind.NATIVE, None, metadata, "Balances")

    def discover_assets(self, client: ChainClient, network: Network, pallet: str) -> List[Token]:
        logger.info(f"    Discovering {pallet} for network {network.name}")
        keys = client.list_keys_by_prefix(enumeration_prefix(pallet, "Asset"))
        logger.info(f"    Found {len(keys)} assets in {pallet}")

        resolver = AssetMetadataResolver(client)
        kind = token_kind_for_pallet(pallet)
        tokens = []
        for key in keys:
            try:
                asset_id = asset_id_from_key(pallet, key)
            except DecodingError as e:
                logger.warning(f"Failed to extract asset ID: {e}")
                continue

            metadata = resolver.resolve(pallet, asset_id)
            try:
                tokens.append(self.ledger.upsert_token(network.id, kind, str(asset_id), metadata, pallet))
            except SQLAlchemyError as e:
                logger.error(f"Failed to insert asset {asset_id} on {network.name}: {e}")
                continue
            logger.info(f"      Asset {asset_id}: {metadata.name} ({metadata.symbol}) - {metadata.decimals} decimals")
        return tokens
