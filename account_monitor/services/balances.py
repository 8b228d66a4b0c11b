"""Native and asset balance lookup from raw System and Assets storage"""
import logging

from account_monitor.codec import ss58
from account_monitor.codec.scale import ScaleReader
from account_monitor.codec.storage_keys import StorageHasher, double_map_key, encode_asset_id, map_key
from account_monitor.errors import DecodingError, NotFoundError
from account_monitor.models.chain import Balance, Network, Token, TokenKind
from account_monitor.services.assets import ASSET_PALLETS, AssetId
from account_monitor.services.chain_client import ConnectionPool

logger = logging.getLogger(__name__)

# AccountInfo: nonce, consumers, providers, sufficients (u32 each), then AccountData
ACCOUNT_INFO_HEADER_LENGTH = 16


def decode_account_info(data: bytes) -> Balance:
    """Decode free, reserved and misc_frozen from a System::Account record"""
    reader = ScaleReader(data)
    reader.skip(ACCOUNT_INFO_HEADER_LENGTH)
    free = reader.read_u128()
    reserved = reader.read_u128()
    misc_frozen = reader.read_u128()
    return Balance.native(free=free, reserved=reserved, misc_frozen=misc_frozen)


def decode_asset_account(data: bytes) -> Balance:
    """Decode the balance leading an Assets::Account record (balance, status, reason, extra)"""
    return Balance.asset(ScaleReader(data).read_u128())


class BalanceResolver:
    """Fetches balances for an address on a network through its pooled chain client"""

    def __init__(self, pool: ConnectionPool, verify_checksum: bool = False):
        self.pool = pool
        self.verify_checksum = verify_checksum

    def resolve(self, network: Network, address: str, token: Token) -> Balance:
        if token.kind is TokenKind.NATIVE:
            return self.resolve_native(network, address)
        if token.kind in (TokenKind.ASSET, TokenKind.FOREIGN_ASSET):
            return self.resolve_asset(network, address, token.token_id)
        raise ValueError(f"Unsupported token kind: {token.kind}")

    def resolve_native(self, network: Network, address: str) -> Balance:
        """
        Native balance from System::Account.

        A missing account is a zero balance, not an error.

        Raises:
            DecodingError: If the address or the stored record is malformed
            TransportError: If the chain node cannot be reached
        """
        account_id = ss58.decode(address, self.verify_checksum)
        key = map_key("System", "Account", account_id, StorageHasher.BLAKE2_128_CONCAT)

        try:
            data = self.pool.get(network.name).fetch_storage(key)
        except NotFoundError:
            return Balance.zero()
        return decode_account_info(data)

    def resolve_asset(self, network: Network, address: str, asset_id: AssetId) -> Balance:
        """
        Asset balance, looked up in Assets first and then ForeignAssets.

        An asset account present in neither pallet is a zero balance, not an error.

        Args:
            asset_id: Decimal u32 id, or "0x" hex raw key bytes

        Raises:
            DecodingError: If the address or asset id is malformed
            TransportError: If the chain node cannot be reached
        """
        account_id = ss58.decode(address, self.verify_checksum)
        raw_asset_id = encode_asset_id(asset_id)
        client = self.pool.get(network.name)

        for pallet in ASSET_PALLETS:
            key = double_map_key(pallet, "Account", raw_asset_id, account_id)
            try:
                return decode_asset_account(client.fetch_storage(key))
            except NotFoundError:
                continue
            except DecodingError as e:
                logger.warning(f"Undecodable {pallet} account for asset {asset_id} on {network.name}: {e}")

        return Balance.zero()
