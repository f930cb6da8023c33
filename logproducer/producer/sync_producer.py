"""
Synchronous producer.

Delivers a batch of messages to the leaders of their partitions and blocks
until every message is accepted or the retry rounds are used up:
- Metadata is refreshed when a topic is unknown or the cache is too old
- Messages are grouped per leader broker and sent in one produce request each
- Per-partition error codes decide what is retried
- A leadership change (error 6) refreshes that topic's routes immediately
"""

import dataclasses
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union

from logproducer.connection import Connection
from logproducer.errors import (
    NOT_LEADER_FOR_PARTITION,
    ConnectionFailedError,
    UnableToFetchMetadataError,
    UnknownBrokerError,
    error_name,
)
from logproducer.producer.batch import MessagesForBroker, MessagesToSend, MessageToSend, TopicPartition
from logproducer.producer.broker_pool import BrokerPool, ConnectionFactory
from logproducer.producer.compression import CompressionConfig
from logproducer.producer.conductor import MessageConductor
from logproducer.producer.metadata import ClusterMetadata
from logproducer.producer.partitioner import create_partitioner
from logproducer.producer.retry import RetryConfig, RetryManager
from logproducer.protocol.responses import ProduceResponse
from logproducer.utils.config import Config
from logproducer.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

VALID_REQUIRED_ACKS = (-1, 0, 1)


@dataclass
class ProducerConfig:
    """
    Configuration for the synchronous producer.

    Attributes:
        compression_codec: Codec for produced message sets (None, "gzip",
            "snappy", a CompressionType or a Codec)
        compressed_topics: Topics to compress (None means all, when a codec is set)
        metadata_refresh_interval_ms: Max metadata age before a refresh
        partitioner: None for the default policy, a strategy name, a
            Partitioner or a callable (key, partition_count) -> partition
        max_send_retries: Rounds attempted after the first one
        retry_backoff_ms: Sleep between rounds
        required_acks: 0 = don't wait, 1 = leader, -1 = all in-sync replicas
        ack_timeout_ms: How long the broker may wait for acks
        socket_timeout_ms: Client-side socket timeout (None blocks indefinitely)
    """
    compression_codec: Any = None
    compressed_topics: Optional[List[str]] = None
    metadata_refresh_interval_ms: int = 600_000
    partitioner: Any = None
    max_send_retries: int = 3
    retry_backoff_ms: int = 100
    required_acks: int = 0
    ack_timeout_ms: int = 1500
    socket_timeout_ms: Optional[int] = None

    def __post_init__(self) -> None:
        if self.required_acks not in VALID_REQUIRED_ACKS:
            raise ValueError(
                f"required_acks must be one of {VALID_REQUIRED_ACKS}, got {self.required_acks}"
            )
        if self.metadata_refresh_interval_ms < 0:
            raise ValueError("metadata_refresh_interval_ms must be >= 0")
        if self.ack_timeout_ms < 0:
            raise ValueError("ack_timeout_ms must be >= 0")
        if self.socket_timeout_ms is not None and self.socket_timeout_ms <= 0:
            raise ValueError("socket_timeout_ms must be positive or None")

    @classmethod
    def option_names(cls) -> Set[str]:
        return {f.name for f in dataclasses.fields(cls)}

    @classmethod
    def from_options(
        cls,
        options: Mapping[str, Any],
        base: Optional["ProducerConfig"] = None,
    ) -> "ProducerConfig":
        """
        Build a config from keyword options.

        Args:
            options: Option names and values
            base: Config the options override (defaults when None)

        Returns:
            ProducerConfig

        Raises:
            ValueError: If an option name is unknown or a value is invalid
        """
        unknown = set(options) - cls.option_names()
        if unknown:
            raise ValueError(f"Unknown options: {sorted(unknown)}")

        return dataclasses.replace(base or cls(), **options)

    @classmethod
    def from_config(cls, config: Config) -> "ProducerConfig":
        """Build a config from the ``producer`` section of a loaded Config."""
        return cls.from_options(config.get("producer", {}) or {})


class SyncProducer:
    """
    Blocking producer for a partitioned broker cluster.

    Example:
        producer = SyncProducer("billing", ["kafka1:9092", "kafka2:9092"],
                                required_acks=1)

        ok = producer.send_messages([
            MessageToSend("invoices", b"invoice-1", key=b"customer-7"),
            MessageToSend("invoices", b"invoice-2"),
        ])

        producer.shutdown()
    """

    def __init__(
        self,
        client_id: str,
        seed_brokers: Union[str, List[str]],
        config: Optional[ProducerConfig] = None,
        *,
        connection_factory: ConnectionFactory = Connection,
        **options: Any,
    ):
        """
        Initialize producer. No network activity happens here.

        Args:
            client_id: Identifier sent with every request
            seed_brokers: Bootstrap addresses ("host:port")
            config: Producer configuration
            connection_factory: Builds broker connections
            **options: Overrides for individual ProducerConfig fields

        Raises:
            ValueError: For unknown options or invalid values
        """
        self.client_id = client_id
        self.config = ProducerConfig.from_options(options, base=config)

        self._compression_config = CompressionConfig(
            self.config.compression_codec,
            self.config.compressed_topics,
        )
        self._retry_manager = RetryManager(
            RetryConfig(
                max_send_retries=self.config.max_send_retries,
                retry_backoff_ms=self.config.retry_backoff_ms,
            )
        )

        self._cluster_metadata = ClusterMetadata()
        self._message_conductor = MessageConductor(
            self._cluster_metadata,
            create_partitioner(self.config.partitioner),
        )
        self._broker_pool = BrokerPool(
            client_id,
            seed_brokers,
            socket_timeout_ms=self.config.socket_timeout_ms,
            connection_factory=connection_factory,
        )

        self._lock = threading.RLock()
        self._stats = {"send_calls": 0, "rounds": 0, "messages_sent": 0, "failed_sends": 0}

        logger.info(
            "Producer initialized",
            client_id=client_id,
            required_acks=self.config.required_acks,
            max_send_retries=self.config.max_send_retries,
        )

    @classmethod
    def from_config_file(cls, config_file: str, **overrides: Any) -> "SyncProducer":
        """
        Build a producer from a YAML file.

        The file supplies ``client_id``, ``seed_brokers`` and a ``producer``
        section. Logging is configured only when the file has a ``logging``
        section; ``LOG_LEVEL`` then overrides its level.
        """
        config = Config(config_file)

        client_id = config.get("client_id")
        seed_brokers = config.get("seed_brokers")
        if not client_id or not seed_brokers:
            raise ValueError(f"{config_file} must define client_id and seed_brokers")

        if "logging" in config.file_sections:
            configure_logging(
                log_level=config.get("logging.level", "INFO"),
                log_format=config.get("logging.format", "json"),
                log_output=config.get("logging.output", "stdout"),
            )

        producer_config = ProducerConfig.from_config(config)
        return cls(client_id, seed_brokers, config=producer_config, **overrides)

    @property
    def cluster_metadata(self) -> ClusterMetadata:
        return self._cluster_metadata

    def send_messages(self, messages: Iterable[MessageToSend]) -> bool:
        """
        Deliver messages, retrying in rounds.

        Args:
            messages: Messages to deliver

        Returns:
            True if every message was accepted, False otherwise
        """
        messages = list(messages)
        if not messages:
            return True

        with self._lock:
            self._stats["send_calls"] += 1
            messages_to_send = MessagesToSend(messages, self._cluster_metadata)

            for attempt in self._retry_manager.rounds():
                self._stats["rounds"] += 1

                if messages_to_send.needs_metadata() or self._refresh_interval_elapsed():
                    if not self._refresh_metadata(messages_to_send.topic_set()):
                        logger.error(
                            "Giving up send, metadata unavailable",
                            client_id=self.client_id,
                            attempt=attempt,
                            unsent=messages_to_send.unsent_count(),
                        )
                        break

                for messages_for_broker in messages_to_send.messages_for_brokers(self._message_conductor):
                    accepted = self._send_to_broker(messages_for_broker)
                    if accepted is not None:
                        messages_to_send.successfully_sent(accepted)
                        self._stats["messages_sent"] += len(accepted)

                if messages_to_send.all_sent() or self.config.max_send_retries == 0:
                    break

                if not self._retry_manager.has_next_round(attempt):
                    break

                logger.warning(
                    "Messages unsent, retrying",
                    client_id=self.client_id,
                    attempt=attempt,
                    unsent=messages_to_send.unsent_count(),
                )
                self._retry_manager.backoff(attempt)
                self._refresh_metadata(messages_to_send.topic_set())

            all_sent = messages_to_send.all_sent()
            if not all_sent:
                self._stats["failed_sends"] += 1
                logger.error(
                    "Send failed",
                    client_id=self.client_id,
                    unsent=messages_to_send.unsent_count(),
                    total=len(messages_to_send),
                )
            return all_sent

    def _refresh_interval_elapsed(self) -> bool:
        return self._cluster_metadata.is_stale(self.config.metadata_refresh_interval_ms)

    def _refresh_metadata(self, topics: Iterable[str]) -> bool:
        """
        Refresh metadata for ``topics`` and reconcile broker connections.

        Returns:
            False if no seed broker answered
        """
        topics = sorted(set(topics))
        try:
            response = self._broker_pool.fetch_metadata(topics)
        except UnableToFetchMetadataError as e:
            logger.warning("Metadata refresh failed", topics=topics, error=str(e))
            return False

        self._cluster_metadata.update(response)
        self._broker_pool.update_known_brokers(self._cluster_metadata.brokers)
        return True

    def _send_to_broker(self, messages_for_broker: MessagesForBroker) -> Optional[MessagesForBroker]:
        """
        Send one broker's batch.

        Returns:
            The part of the batch the broker accepted, or None if the call failed
        """
        broker_id = messages_for_broker.broker_id
        try:
            payload = messages_for_broker.build_protocol_objects(self._compression_config)
            response = self._broker_pool.execute_api_call(
                broker_id,
                "produce",
                self.config.required_acks,
                self.config.ack_timeout_ms,
                payload,
            )
        except (ConnectionFailedError, UnknownBrokerError) as e:
            logger.warning("Produce to broker failed", broker_id=broker_id, error=str(e))
            return None
        except Exception as e:
            logger.error(
                "Unexpected error producing to broker",
                broker_id=broker_id,
                error=str(e),
                exc_info=True,
            )
            return None

        if self.config.required_acks == 0:
            return messages_for_broker

        return messages_for_broker.only(self._accepted_partitions(broker_id, response))

    def _accepted_partitions(self, broker_id: int, response: ProduceResponse) -> List[TopicPartition]:
        accepted = []
        moved_topics = set()

        for topic_response in response.topic_responses:
            for result in topic_response.partitions:
                if result.error == 0:
                    accepted.append((topic_response.topic, result.partition))
                    continue

                logger.warning(
                    "Partition rejected produce",
                    broker_id=broker_id,
                    topic=topic_response.topic,
                    partition=result.partition,
                    error=error_name(result.error),
                )
                if result.error == NOT_LEADER_FOR_PARTITION:
                    moved_topics.add(topic_response.topic)

        for topic in sorted(moved_topics):
            self._refresh_metadata([topic])

        return accepted

    def metrics(self) -> Dict[str, Any]:
        """
        Get producer metrics.

        Returns:
            Dictionary with counters and metadata stats
        """
        return {
            **self._stats,
            "known_brokers": self._broker_pool.known_broker_ids(),
            "metadata": self._cluster_metadata.get_stats(),
        }

    def shutdown(self) -> None:
        """Close all broker connections."""
        with self._lock:
            self._broker_pool.shutdown()
        logger.info("Producer shut down", client_id=self.client_id)

    def __enter__(self) -> "SyncProducer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()
