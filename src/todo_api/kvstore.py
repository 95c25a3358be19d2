from __future__ import annotations

import logging
import socket
from abc import ABC, abstractmethod
from threading import Lock, RLock
from typing import Dict, Optional

from . import protocol
from .errors import StorageError
from .settings import Settings

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
class KeyValueStore(ABC):
    """Abstract contract for the backing key-value service."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the text stored under key, or None if absent."""

    @abstractmethod
    def set(self, key: str, value: str, durable: bool = True) -> None:
        """Store value under key. Raise StorageError on failure."""

    @abstractmethod
    def delete(self, key: str, durable: bool = True) -> None:
        """Remove key. Raise StorageError on failure."""

    def close(self) -> None:
        """Release any resources held by the store."""

    @property
    def backend_name(self) -> str:
        return type(self).__name__


class InMemoryKeyValueStore(KeyValueStore):
    """
    Thread-safe in-memory store suitable for testing and local runs.
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._lock = RLock()
        self._data: Dict[str, str] = dict(initial or {})

    @property
    def backend_name(self) -> str:
        return "memory"

    def get(self, key: str) -> Optional[str]:
        protocol.validate_key(key)
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str, durable: bool = True) -> None:
        protocol.validate_key(key)
        with self._lock:
            self._data[key] = value

    def delete(self, key: str, durable: bool = True) -> None:
        protocol.validate_key(key)
        with self._lock:
            self._data.pop(key, None)

    def snapshot(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._data)


class TcpKeyValueStore(KeyValueStore):
    """
    Client for the key-value cache over a single persistent TCP connection.

    The connection is opened lazily and the LIN/AUTH handshake runs once per
    connection. Commands from concurrent callers serialize on one lock. Any
    socket failure drops the connection and raises StorageError; the next
    command reconnects.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: Optional[str] = None,
        password: Optional[str] = None,
        auth_token: Optional[str] = None,
        timeout: float = 5.0,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._auth_token = auth_token
        self._timeout = timeout
        self._lock = Lock()
        self._sock: Optional[socket.socket] = None
        self._reader = None

    @property
    def backend_name(self) -> str:
        return "tcp"

    def _connect(self) -> None:
        logger.info("Connecting to key-value store at %s:%s", self._host, self._port)
        self._sock = socket.create_connection((self._host, self._port), timeout=self._timeout)
        self._reader = self._sock.makefile("rb")
        try:
            if self._username is not None:
                self._roundtrip(protocol.encode_login(self._username, self._password))
            if self._auth_token is not None:
                self._roundtrip(protocol.encode_auth(self._auth_token))
        except StorageError:
            logger.error("Key-value store rejected the handshake")
            self._disconnect()
            raise
        logger.info("Connected to key-value store")

    def _disconnect(self) -> None:
        reader, sock = self._reader, self._sock
        self._reader = None
        self._sock = None
        if reader is not None:
            try:
                reader.close()
            except OSError:
                logger.debug("Error closing store reader", exc_info=True)
        if sock is not None:
            try:
                sock.close()
            except OSError:
                logger.debug("Error closing store socket", exc_info=True)

    def _roundtrip(self, payload: bytes) -> str:
        assert self._sock is not None and self._reader is not None
        self._sock.sendall(payload)
        raw = self._reader.readline()
        if not raw:
            raise ConnectionError("connection closed by key-value store")
        reply = raw.decode(protocol.ENCODING).rstrip("\r\n")
        if protocol.is_error(reply):
            raise StorageError(f"store replied with error: {reply}")
        return reply

    def _command(self, payload: bytes) -> str:
        with self._lock:
            try:
                if self._sock is None:
                    self._connect()
                return self._roundtrip(payload)
            except StorageError:
                raise
            except (OSError, ValueError) as exc:
                # covers socket.timeout, refused connections and undecodable replies
                self._disconnect()
                raise StorageError(f"key-value store unavailable: {exc}") from exc

    def get(self, key: str) -> Optional[str]:
        return protocol.decode_value(self._command(protocol.encode_get(key)))

    def set(self, key: str, value: str, durable: bool = True) -> None:
        self._command(protocol.encode_set(key, value, durable))

    def delete(self, key: str, durable: bool = True) -> None:
        self._command(protocol.encode_delete(key, durable))

    def close(self) -> None:
        with self._lock:
            self._disconnect()


# PUBLIC_INTERFACE
def build_store(settings: Settings) -> KeyValueStore:
    """
    Factory to return the configured key-value store based on settings.
    - memory: InMemoryKeyValueStore
    - tcp: TcpKeyValueStore
    """
    if settings.store_backend == "memory":
        return InMemoryKeyValueStore()
    return TcpKeyValueStore(
        host=settings.store_host,
        port=settings.store_port,
        username=settings.store_username,
        password=settings.store_password,
        auth_token=settings.store_auth_token,
        timeout=settings.store_timeout,
    )
