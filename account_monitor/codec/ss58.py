"""SS58 address decoding for Substrate accounts"""
import hashlib

import base58

from account_monitor.errors import InvalidEncoding, InvalidLength, Truncated

ACCOUNT_ID_LENGTH = 32
CHECKSUM_LENGTH = 2
CHECKSUM_PREFIX = b"SS58PRE"

# Decoded SS58 length -> network prefix length
PREFIX_LENGTHS = {35: 1, 36: 2}


def decode(address: str, verify_checksum: bool = False) -> bytes:
    """
    Decode an address into a 32-byte account id.

    Accepted forms, tried in this order:
        "0x"-prefixed hex, bare 64-character hex, SS58 base58.

    Args:
        address: Address text, surrounding whitespace is ignored
        verify_checksum: Check the trailing SS58 checksum bytes

    Returns:
        32-byte account id

    Raises:
        InvalidEncoding: Hex or base58 decoding failed (or checksum mismatch)
        InvalidLength: Decoded payload has the wrong length
        Truncated: Fewer than 32 bytes follow the network prefix
    """
    address = address.strip()

    if address.startswith("0x"):
        return _decode_hex(address[2:])

    if len(address) == 2 * ACCOUNT_ID_LENGTH:
        try:
            return _decode_hex(address)
        except InvalidEncoding:
            # Not hex, fall through to base58
            pass

    return _decode_ss58(address, verify_checksum)


def _decode_hex(text: str) -> bytes:
    try:
        raw = bytes.fromhex(text)
    except ValueError as e:
        raise InvalidEncoding(f"invalid hex address: {e}") from e

    if len(raw) != ACCOUNT_ID_LENGTH:
        raise InvalidLength(f"hex address must be {ACCOUNT_ID_LENGTH} bytes, got {len(raw)}")
    return raw


def _decode_ss58(address: str, verify_checksum: bool) -> bytes:
    try:
        decoded = base58.b58decode(address)
    except ValueError as e:
        raise InvalidEncoding(f"base58 decode failed: {e}") from e

    prefix_len = PREFIX_LENGTHS.get(len(decoded))
    if prefix_len is None:
        raise InvalidLength(f"invalid address length: {len(decoded)}")

    account_id = decoded[prefix_len:prefix_len + ACCOUNT_ID_LENGTH]
    if len(account_id) < ACCOUNT_ID_LENGTH:
        raise Truncated("address too short for account id")

    if verify_checksum:
        payload = decoded[:prefix_len + ACCOUNT_ID_LENGTH]
        expected = hashlib.blake2b(CHECKSUM_PREFIX + payload, digest_size=64).digest()[:CHECKSUM_LENGTH]
        if decoded[prefix_len + ACCOUNT_ID_LENGTH:] != expected:
            raise InvalidEncoding("invalid SS58 checksum")

    return account_id
