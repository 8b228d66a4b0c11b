"""Exception taxonomy for the account monitor"""


class MonitorError(Exception):
    """Base exception for account monitor errors"""
    pass


class DecodingError(MonitorError):
    """Malformed SCALE, SS58 or storage bytes"""
    pass


class InvalidEncoding(DecodingError):
    """Input is not valid hex/base58, or fails checksum verification"""
    pass


class InvalidLength(DecodingError):
    """Decoded payload has an unexpected length"""
    pass


class Truncated(DecodingError):
    """Buffer ends before the declared data does"""
    pass


class NotFoundError(MonitorError):
    """Storage key is absent on chain"""
    pass


class TransportError(MonitorError):
    """Connection or RPC failure talking to a chain node"""

    def __init__(self, network: str, message: str):
        super().__init__(f"{network}: {message}")
        self.network = network


class ConfigurationError(MonitorError):
    """Unresolvable network or missing required setting"""
    pass
