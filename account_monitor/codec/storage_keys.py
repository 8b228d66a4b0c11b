"""Raw storage key derivation for Substrate pallets"""
import hashlib
from enum import Enum

import xxhash

from account_monitor.errors import InvalidEncoding, InvalidLength

PREFIX_LENGTH = 32
BLAKE2_128_LENGTH = 16


class StorageHasher(Enum):
    """Storage map hashers supported by the key deriver"""
    BLAKE2_128_CONCAT = "Blake2_128Concat"
    IDENTITY = "Identity"

    @property
    def hash_length(self) -> int:
        """Length of the hash that precedes the raw key bytes"""
        if self is StorageHasher.BLAKE2_128_CONCAT:
            return BLAKE2_128_LENGTH
        return 0

    def apply(self, raw_key: bytes) -> bytes:
        if self is StorageHasher.BLAKE2_128_CONCAT:
            return blake2_128(raw_key) + raw_key
        return raw_key


def twox_prefix(name: str) -> bytes:
    """Twox128 of a pallet or storage item name: xxh64 seeds 0 and 1, little-endian"""
    data = name.encode("utf-8")
    return b"".join(
        xxhash.xxh64_intdigest(data, seed=seed).to_bytes(8, "little")
        for seed in (0, 1)
    )


def blake2_128(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=BLAKE2_128_LENGTH).digest()


def plain_key(pallet: str, item: str) -> bytes:
    """Key of a plain storage value"""
    return twox_prefix(pallet) + twox_prefix(item)


def enumeration_prefix(pallet: str, item: str) -> bytes:
    """Prefix shared by every entry of a storage map, for key listing"""
    return plain_key(pallet, item)


def map_key(pallet: str, item: str, raw_key: bytes,
            hasher: StorageHasher = StorageHasher.BLAKE2_128_CONCAT) -> bytes:
    """Key of a single storage map entry"""
    return plain_key(pallet, item) + hasher.apply(raw_key)


def double_map_key(pallet: str, item: str, key1: bytes, key2: bytes,
                   hasher1: StorageHasher = StorageHasher.BLAKE2_128_CONCAT,
                   hasher2: StorageHasher = StorageHasher.BLAKE2_128_CONCAT) -> bytes:
    """Key of a storage double map entry, e.g. Assets::Account(asset, who)"""
    return plain_key(pallet, item) + hasher1.apply(key1) + hasher2.apply(key2)


def extract_map_key_suffix(full_key: bytes, hash_len: int = BLAKE2_128_LENGTH) -> bytes:
    """Recover the raw key bytes trailing an enumerated map key"""
    start = PREFIX_LENGTH + hash_len
    if len(full_key) <= start:
        raise InvalidLength(f"key too short: {len(full_key)} bytes")
    return bytes(full_key[start:])


def extract_u32_key(full_key: bytes, hash_len: int = BLAKE2_128_LENGTH) -> int:
    """Recover a little-endian u32 map key, e.g. an asset id"""
    suffix = extract_map_key_suffix(full_key, hash_len)
    if len(suffix) < 4:
        raise InvalidLength(f"u32 key needs 4 bytes, got {len(suffix)}")
    return int.from_bytes(suffix[:4], "little")


def encode_asset_id(asset_id) -> bytes:
    """
    Raw key bytes for an asset id.

    Decimal ids (int or numeric text) encode as little-endian u32, "0x" hex text
    is used verbatim so wider ids such as encoded locations work too.
    """
    if isinstance(asset_id, int):
        return _encode_u32(asset_id)

    text = str(asset_id).strip()
    if text.startswith("0x"):
        try:
            return bytes.fromhex(text[2:])
        except ValueError as e:
            raise InvalidEncoding(f"invalid hex asset id {text}: {e}") from e

    if not text.isdigit():
        raise InvalidEncoding(f"invalid asset id: {asset_id!r}")
    return _encode_u32(int(text))


def _encode_u32(value: int) -> bytes:
    if not 0 <= value <= 0xFFFFFFFF:
        raise InvalidEncoding(f"asset id out of u32 range: {value}")
    return value.to_bytes(4, "little")
