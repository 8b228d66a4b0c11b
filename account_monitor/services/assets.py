"""Asset metadata lookup for the Assets and ForeignAssets pallets"""
import logging
from typing import Union

from account_monitor.codec.scale import ScaleReader
from account_monitor.codec.storage_keys import StorageHasher, encode_asset_id, map_key
from account_monitor.errors import DecodingError, NotFoundError
from account_monitor.models.chain import AssetMetadata, TokenKind
from account_monitor.services.chain_client import ChainClient

logger = logging.getLogger(__name__)

ASSETS_PALLET = "Assets"
FOREIGN_ASSETS_PALLET = "ForeignAssets"
ASSET_PALLETS = (ASSETS_PALLET, FOREIGN_ASSETS_PALLET)

DEFAULT_ASSET_DECIMALS = 10
DEPOSIT_LENGTH = 16  # u128 deposit preceding name and symbol

# network_tokens.symbol and network_tokens.name widths
SYMBOL_MAX_LENGTH = 64
NAME_MAX_LENGTH = 128

AssetId = Union[int, str]


def token_kind_for_pallet(pallet: str) -> TokenKind:
    if pallet == FOREIGN_ASSETS_PALLET:
        return TokenKind.FOREIGN_ASSET
    return TokenKind.ASSET


def placeholder_metadata(pallet: str, asset_id: AssetId) -> AssetMetadata:
    """Metadata used when the chain has none for an asset"""
    symbol_prefix = "FA" if token_kind_for_pallet(pallet) is TokenKind.FOREIGN_ASSET else "ASSET"
    return AssetMetadata(
        name=f"Asset #{asset_id}"[:NAME_MAX_LENGTH],
        symbol=f"{symbol_prefix}{asset_id}"[:SYMBOL_MAX_LENGTH],
        decimals=DEFAULT_ASSET_DECIMALS
    )


def _text(raw: bytes) -> str:
    return raw.decode('utf-8', errors='replace')


class AssetMetadataResolver:
    """Reads <pallet>::Metadata(asset_id) and decodes name, symbol and decimals"""

    def __init__(self, client: ChainClient):
        self.client = client

    def resolve(self, pallet: str, asset_id: AssetId) -> AssetMetadata:
        """
        Resolve metadata for an asset.

        Missing entries yield placeholders. When decoding stops partway, the fields
        decoded so far are kept and the rest come from the placeholder, so chains that
        append fields to the record still produce usable metadata.

        Raises:
            TransportError: If the chain node cannot be reached
        """
        key = map_key(pallet, "Metadata", encode_asset_id(asset_id), StorageHasher.BLAKE2_128_CONCAT)
        placeholder = placeholder_metadata(pallet, asset_id)
        try:
            data = self.client.fetch_storage(key)
        except NotFoundError:
            return placeholder

        if not data:
            return placeholder
        return self.decode(data, placeholder)

    @staticmethod
    def decode(data: bytes, placeholder: AssetMetadata) -> AssetMetadata:
        name, symbol, decimals = placeholder.name, placeholder.symbol, placeholder.decimals
        reader = ScaleReader(data)
        try:
            reader.skip(DEPOSIT_LENGTH)
            name = _text(reader.read_byte_vector()[0])
            symbol = _text(reader.read_byte_vector()[0])
            decimals = reader.read_u8()
        except DecodingError as e:
            logger.debug(f"Partial asset metadata ({placeholder.symbol}): {e}")

        return AssetMetadata(name=name[:NAME_MAX_LENGTH], symbol=symbol[:SYMBOL_MAX_LENGTH], decimals=decimals)
