"""Substrate node access: raw storage reads, key listing and pallet metadata"""
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional, Tuple

from substrateinterface import SubstrateInterface
from substrateinterface.exceptions import SubstrateRequestException
from websocket import WebSocketException

from account_monitor.errors import ConfigurationError, NotFoundError, TransportError
from account_monitor.models.chain import Network, PalletInfo

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (SubstrateRequestException, WebSocketException, OSError)


class ChainClient(ABC):
    """Untyped access to one chain's state"""

    network: str

    @abstractmethod
    def fetch_latest_metadata(self) -> List[PalletInfo]:
        """Pallet names and indices of the latest runtime"""

    @abstractmethod
    def get_storage(self, key: bytes) -> Tuple[bool, bytes]:
        """Read a raw storage value, returns (exists, value)"""

    @abstractmethod
    def list_keys_by_prefix(self, prefix: bytes) -> List[bytes]:
        """List every storage key starting with prefix"""

    def fetch_storage(self, key: bytes) -> bytes:
        """
        Read a raw storage value that is expected to exist.

        Raises:
            NotFoundError: If nothing is stored under key
            TransportError: If the chain node cannot be reached
        """
        exists, data = self.get_storage(key)
        if not exists:
            raise NotFoundError(f"{self.network}: no value at 0x{key.hex()}")
        return data


class SubstrateChainClient(ChainClient):
    """
    ChainClient backed by substrate-interface JSON-RPC.

    The websocket is opened on first use and kept for the lifetime of the client.
    Calls are serialized, so a network never has more than one request in flight.
    """

    def __init__(self, network: str, url: str, page_size: int = 1000):
        self.network = network
        self.url = url
        self.page_size = page_size
        self._lock = threading.Lock()
        self._substrate: Optional[SubstrateInterface] = None

    @classmethod
    def for_network(cls, network: Network, page_size: int = 1000) -> 'SubstrateChainClient':
        return cls(network.name, network.url, page_size)

    @contextmanager
    def _call(self, operation: str):
        with self._lock:
            try:
                if self._substrate is None:
                    logger.info(f"Connecting to {self.network} at {self.url}")
                    self._substrate = SubstrateInterface(url=self.url)
                yield self._substrate
            except TRANSPORT_ERRORS as e:
                raise TransportError(self.network, f"{operation} failed: {e}") from e

    def _rpc(self, substrate: SubstrateInterface, method: str, params: list):
        response = substrate.rpc_request(method, params)
        if response.get('error'):
            raise SubstrateRequestException(response['error'])
        return response.get('result')

    def fetch_latest_metadata(self) -> List[PalletInfo]:
        with self._call('fetch metadata') as substrate:
            substrate.init_runtime()
            return [
                PalletInfo(name=str(pallet.name), index=int(pallet.value.get('index', position)))
                for position, pallet in enumerate(substrate.metadata.pallets)
            ]

    def get_storage(self, key: bytes) -> Tuple[bool, bytes]:
        with self._call('state_getStorage') as substrate:
            result = self._rpc(substrate, 'state_getStorage', [f"0x{key.hex()}"])
        if result is None:
            return False, b''
        return True, bytes.fromhex(result[2:])

    def list_keys_by_prefix(self, prefix: bytes) -> List[bytes]:
        prefix_hex = f"0x{prefix.hex()}"
        keys: List[bytes] = []
        start_key = None

        while True:
            params = [prefix_hex, self.page_size]
            if start_key:
                params.append(start_key)
            with self._call('state_getKeysPaged') as substrate:
                page = self._rpc(substrate, 'state_getKeysPaged', params) or []

            keys.extend(bytes.fromhex(key[2:]) for key in page)
            if len(page) < self.page_size:
                return keys
            start_key = page[-1]

    def close(self) -> None:
        with self._lock:
            if self._substrate is not None:
                self._substrate.close()
                self._substrate = None


class ConnectionPool:
    """
    One chain client per network name, created on first use and never evicted.

    Cache hits take no lock; a miss creates the client under a lock so concurrent
    first uses of the same network share one connection.
    """

    def __init__(self, resolve_network: Callable[[str], Optional[Network]],
                 factory: Optional[Callable[[Network], ChainClient]] = None,
                 page_size: int = 1000):
        self._resolve_network = resolve_network
        self._factory = factory or (lambda network: SubstrateChainClient.for_network(network, page_size))
        self._clients: Dict[str, ChainClient] = {}
        self._lock = threading.Lock()

    def get(self, network_name: str) -> ChainClient:
        client = self._clients.get(network_name)
        if client is not None:
            return client

        with self._lock:
            client = self._clients.get(network_name)
            if client is None:
                network = self._resolve_network(network_name)
                if network is None:
                    raise ConfigurationError(f"network not found: {network_name}")
                client = self._factory(network)
                self._clients[network_name] = client
        return client

    def close(self) -> None:
        with self._lock:
            for name, client in self._clients.items():
                close = getattr(client, 'close', None)
                if close is None:
                    continue
                try:
                    close()
                except TRANSPORT_ERRORS as e:
                    logger.warning(f"Error closing connection to {name}: {e}")
            self._clients.clear()
