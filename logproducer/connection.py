"""
Connection to a single broker.

Frames every request and response as:
    Length (4 bytes, big-endian) - Size of the payload that follows
    Payload (variable)

A connection carries one request at a time: each request is followed by
blocking for its response before anything else is written. Any I/O failure
drops the socket so that the next call reconnects from scratch.
"""

import socket
import struct
from typing import List, Optional, Type, TypeVar, Union

from logproducer.errors import ConnectionFailedError
from logproducer.protocol.requests import (
    API_KEYS,
    API_VERSION,
    REPLICA_ID,
    FetchRequest,
    MessagesForTopic,
    MetadataRequest,
    OffsetRequest,
    ProduceRequest,
    RequestCommon,
    TopicFetch,
    TopicOffsetRequest,
)
from logproducer.protocol.responses import (
    FetchResponse,
    MetadataResponse,
    OffsetResponse,
    ProduceResponse,
    TopicOffsetResponse,
    peek_correlation_id,
)
from logproducer.utils.logging import get_logger

logger = get_logger(__name__)

LENGTH_PREFIX = struct.Struct(">i")
MAX_CORRELATION_ID = 2**31 - 1

R = TypeVar("R", ProduceResponse, FetchResponse, OffsetResponse, MetadataResponse)


class Connection:
    """
    Blocking connection to one broker.

    Example:
        connection = Connection("localhost", 9092, "my-client")
        metadata = connection.topic_metadata(["events"])
        connection.close()
    """

    def __init__(
        self,
        host: str,
        port: int,
        client_id: str,
        socket_timeout_ms: Optional[int] = None,
    ):
        """
        Initialize connection. No socket is opened until the first call.

        Args:
            host: Broker hostname
            port: Broker port
            client_id: Identifier sent in every request header
            socket_timeout_ms: Client-side bound on connect and each read/write
                (None blocks indefinitely)
        """
        self.host = host
        self.port = port
        self.client_id = client_id
        self.socket_timeout_ms = socket_timeout_ms

        self._socket: Optional[socket.socket] = None
        self._correlation_id = 0

    def __repr__(self) -> str:
        return f"Connection({self.host}:{self.port}, connected={self.connected})"

    @property
    def connected(self) -> bool:
        return self._socket is not None

    def connect(self) -> None:
        """
        Open the socket if it is not already open.

        Raises:
            ConnectionFailedError: If the broker cannot be reached
        """
        if self._socket is not None:
            return

        timeout = None
        if self.socket_timeout_ms is not None:
            timeout = self.socket_timeout_ms / 1000.0

        try:
            self._socket = socket.create_connection((self.host, self.port), timeout=timeout)
        except OSError as e:
            logger.warning(
                "Failed to connect to broker",
                host=self.host,
                port=self.port,
                error=str(e),
            )
            raise ConnectionFailedError(f"Cannot connect to {self.host}:{self.port}: {e}") from e

        logger.debug("Connected to broker", host=self.host, port=self.port)

    def close(self) -> None:
        """Close the socket; the next call reconnects."""
        if self._socket is None:
            return

        try:
            self._socket.close()
        finally:
            self._socket = None
            logger.debug("Closed broker connection", host=self.host, port=self.port)

    def produce(
        self,
        required_acks: int,
        timeout_ms: int,
        messages_for_topics: List[MessagesForTopic],
    ) -> Optional[ProduceResponse]:
        """
        Execute a produce call.

        Args:
            required_acks: 0, 1 or -1
            timeout_ms: Broker-side wait for acknowledgements
            messages_for_topics: Messages grouped by topic and partition

        Returns:
            ProduceResponse, or None when ``required_acks`` is 0 because the
            broker does not answer
        """
        common = self._request_common("produce")
        request = ProduceRequest(common, required_acks, timeout_ms, messages_for_topics)

        self.send(request.encode())

        if required_acks == 0:
            return None

        return self._read_response(ProduceResponse, common.correlation_id)

    def fetch(
        self,
        max_wait_ms: int,
        min_bytes: int,
        topic_fetches: List[TopicFetch],
    ) -> FetchResponse:
        common = self._request_common("fetch")
        request = FetchRequest(common, REPLICA_ID, max_wait_ms, min_bytes, topic_fetches)

        self.send(request.encode())
        return self._read_response(FetchResponse, common.correlation_id)

    def offset(self, topic_offset_requests: List[TopicOffsetRequest]) -> List[TopicOffsetResponse]:
        common = self._request_common("offset")
        request = OffsetRequest(common, REPLICA_ID, topic_offset_requests)

        self.send(request.encode())
        return self._read_response(OffsetResponse, common.correlation_id).topic_offset_responses

    def topic_metadata(self, topic_names: List[str]) -> MetadataResponse:
        """
        Fetch brokers and partition leaders for ``topic_names``.

        Args:
            topic_names: Topics to describe (empty list describes all)

        Returns:
            Decoded metadata response
        """
        common = self._request_common("metadata")
        request = MetadataRequest(common, list(topic_names))

        self.send(request.encode())
        return self._read_response(MetadataResponse, common.correlation_id)

    def send(self, payload: bytes) -> None:
        """
        Write one length-prefixed frame.

        Raises:
            ConnectionFailedError: On broken pipe, reset or timeout
        """
        self.connect()
        try:
            self._socket.sendall(LENGTH_PREFIX.pack(len(payload)) + payload)
        except OSError as e:
            self._invalidate("write", e)
            raise ConnectionFailedError(f"Write to {self.host}:{self.port} failed: {e}") from e

    def receive(self) -> bytes:
        """
        Read one length-prefixed frame.

        Returns:
            Frame payload

        Raises:
            ConnectionFailedError: If the peer closed the connection, reset it,
                or the read timed out
        """
        if self._socket is None:
            raise ConnectionFailedError(f"Not connected to {self.host}:{self.port}")

        (length,) = LENGTH_PREFIX.unpack(self._read_exactly(LENGTH_PREFIX.size))
        if length < 0:
            self._invalidate("read", ValueError(f"negative frame length {length}"))
            raise ConnectionFailedError(f"Invalid frame length {length} from {self.host}:{self.port}")
        return self._read_exactly(length)

    def _read_response(self, response_class: Type[R], correlation_id: int) -> R:
        payload = self.receive()

        received_id = peek_correlation_id(payload)
        if received_id != correlation_id:
            error = ValueError(f"expected correlation id {correlation_id}, got {received_id}")
            self._invalidate("read", error)
            raise ConnectionFailedError(
                f"Out-of-sequence response from {self.host}:{self.port}: {error}"
            )

        return response_class.decode(payload)

    def _read_exactly(self, size: int) -> bytes:
        chunks = []
        remaining = size

        while remaining > 0:
            try:
                chunk = self._socket.recv(remaining)
            except OSError as e:
                self._invalidate("read", e)
                raise ConnectionFailedError(f"Read from {self.host}:{self.port} failed: {e}") from e

            if not chunk:
                self._invalidate("read", EOFError("connection closed by peer"))
                raise ConnectionFailedError(
                    f"Connection to {self.host}:{self.port} closed by peer "
                    f"({size - remaining} of {size} bytes read)"
                )

            chunks.append(chunk)
            remaining -= len(chunk)

        return b"".join(chunks)

    def _invalidate(self, operation: str, error: Union[Exception, str]) -> None:
        logger.warning(
            "Broker connection failed",
            host=self.host,
            port=self.port,
            operation=operation,
            error=str(error),
        )
        sock, self._socket = self._socket, None
        if sock is not None:
            sock.close()

    def _request_common(self, api_name: str) -> RequestCommon:
        return RequestCommon(
            api_key=API_KEYS[api_name],
            api_version=API_VERSION,
            correlation_id=self._next_correlation_id(),
            client_id=self.client_id,
        )

    def _next_correlation_id(self) -> int:
        if self._correlation_id >= MAX_CORRELATION_ID:
            self._correlation_id = 0
        self._correlation_id += 1
        return self._correlation_id
