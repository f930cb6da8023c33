"""
Broker connection pool for the producer.

Owns one connection per known broker id, plus connections to the seed
brokers used to discover the cluster. The pool never retries: connection
failures propagate to the caller, which owns the retry policy.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from logproducer.connection import Connection
from logproducer.errors import (
    ConnectionFailedError,
    ProtocolError,
    UnableToFetchMetadataError,
    UnknownBrokerError,
)
from logproducer.producer.metadata import BootstrapServerParser, Broker
from logproducer.protocol.responses import MetadataResponse
from logproducer.utils.logging import get_logger

logger = get_logger(__name__)

ConnectionFactory = Callable[[str, int, str, Optional[int]], Connection]

API_CALLS = frozenset({"produce", "fetch", "offset", "topic_metadata"})


class BrokerPool:
    """
    Connections to the cluster, keyed by broker id.

    Example:
        pool = BrokerPool("my-client", ["localhost:9092"])
        metadata = pool.fetch_metadata({"events"})
        pool.update_known_brokers({b.node_id: Broker(b.node_id, b.host, b.port)
                                   for b in metadata.brokers})
        pool.execute_api_call(1, "produce", 1, 1500, messages_for_topics)
        pool.shutdown()
    """

    def __init__(
        self,
        client_id: str,
        seed_brokers: Union[str, List[str]],
        socket_timeout_ms: Optional[int] = None,
        connection_factory: ConnectionFactory = Connection,
    ):
        """
        Initialize pool. No sockets are opened until a call needs one.

        Args:
            client_id: Identifier sent with every request
            seed_brokers: Bootstrap addresses ("host:port")
            socket_timeout_ms: Client-side socket timeout for every connection
            connection_factory: Builds a connection from (host, port,
                client_id, socket_timeout_ms)
        """
        self.client_id = client_id
        self.socket_timeout_ms = socket_timeout_ms
        self._connection_factory = connection_factory

        self._seed_brokers = BootstrapServerParser.parse(seed_brokers)
        self._seed_connections = [self._new_connection(b) for b in self._seed_brokers]

        self._brokers: Dict[int, Broker] = {}
        self._connections: Dict[int, Connection] = {}

        logger.info(
            "Initialized broker pool",
            client_id=client_id,
            seed_brokers=[str(b) for b in self._seed_brokers],
        )

    def _new_connection(self, broker: Broker) -> Connection:
        return self._connection_factory(broker.host, broker.port, self.client_id, self.socket_timeout_ms)

    def fetch_metadata(self, topics: Iterable[str]) -> MetadataResponse:
        """
        Ask the seed brokers, in order, for metadata about ``topics``.

        Args:
            topics: Topic names

        Returns:
            First metadata response obtained

        Raises:
            UnableToFetchMetadataError: If every seed broker failed
        """
        topic_names = sorted(set(topics))

        for broker, connection in zip(self._seed_brokers, self._seed_connections):
            try:
                return connection.topic_metadata(topic_names)
            except (ConnectionFailedError, ProtocolError) as e:
                logger.warning(
                    "Metadata request to seed broker failed",
                    broker=str(broker),
                    topics=topic_names,
                    error=str(e),
                )

        raise UnableToFetchMetadataError(
            f"No seed broker answered a metadata request for {topic_names}"
        )

    def update_known_brokers(self, brokers: Dict[int, Broker]) -> None:
        """
        Reconcile connections with the current broker set.

        New ids get a connection; ids that disappeared are closed and
        dropped; an id whose address moved gets a fresh connection.

        Args:
            brokers: Current brokers keyed by id
        """
        for broker_id in list(self._brokers):
            if broker_id not in brokers:
                self._drop(broker_id)
                logger.info("Removed broker", broker_id=broker_id)

        for broker_id, broker in brokers.items():
            known = self._brokers.get(broker_id)
            if known == broker:
                continue

            if known is not None:
                self._drop(broker_id)
                logger.info(
                    "Broker address changed",
                    broker_id=broker_id,
                    old=str(known),
                    new=str(broker),
                )
            else:
                logger.info("Added broker", broker_id=broker_id, address=str(broker))

            self._brokers[broker_id] = broker
            self._connections[broker_id] = self._new_connection(broker)

    def _drop(self, broker_id: int) -> None:
        connection = self._connections.pop(broker_id, None)
        self._brokers.pop(broker_id, None)
        if connection is not None:
            connection.close()

    def known_broker_ids(self) -> List[int]:
        return sorted(self._brokers)

    def execute_api_call(self, broker_id: int, api_name: str, *args: Any) -> Any:
        """
        Invoke an API call on the connection for ``broker_id``.

        Args:
            broker_id: Target broker
            api_name: One of produce, fetch, offset, topic_metadata
            *args: Arguments for the connection method

        Returns:
            Whatever the connection method returns

        Raises:
            UnknownBrokerError: If the pool has no such broker
            ConnectionFailedError: Propagated from the connection
        """
        if api_name not in API_CALLS:
            raise ValueError(f"Unknown API call: {api_name}")

        connection = self._connections.get(broker_id)
        if connection is None:
            raise UnknownBrokerError(f"Unknown broker id: {broker_id}")

        return getattr(connection, api_name)(*args)

    def shutdown(self) -> None:
        """Close every connection."""
        for connection in self._seed_connections:
            connection.close()

        for connection in self._connections.values():
            connection.close()

        self._connections.clear()
        self._brokers.clear()

        logger.info("Broker pool shut down", client_id=self.client_id)
