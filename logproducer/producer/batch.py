"""
Per-send message bookkeeping.

A call to ``SyncProducer.send_messages`` wraps its input in MessagesToSend,
which remembers which messages are already accepted by a broker. Every
retry round regroups the remaining ones into MessagesForBroker batches,
one per partition leader.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

from logproducer.errors import InvalidPartitionError
from logproducer.producer.compression import CompressionConfig
from logproducer.producer.conductor import MessageConductor
from logproducer.producer.metadata import ClusterMetadata
from logproducer.protocol.message_set import Message, MessageSet
from logproducer.protocol.requests import MessagesForPartition, MessagesForTopic
from logproducer.utils.logging import get_logger

logger = get_logger(__name__)

TopicPartition = Tuple[str, int]


@dataclass(frozen=True)
class MessageToSend:
    """
    A message to be sent to the cluster.

    Attributes:
        topic: Topic name
        value: Message value
        key: Message key (None for no key)
        partition: Partition number (None for automatic assignment)
    """
    topic: str
    value: bytes
    key: Optional[bytes] = None
    partition: Optional[int] = None

    def __post_init__(self) -> None:
        if not isinstance(self.topic, str) or not self.topic:
            raise ValueError(f"Topic must be a non-empty string, got {self.topic!r}")
        if not isinstance(self.value, bytes):
            raise TypeError(f"Value must be bytes, got {type(self.value)}")
        if self.key is not None and not isinstance(self.key, bytes):
            raise TypeError(f"Key must be bytes or None, got {type(self.key)}")
        if self.partition is not None and self.partition < 0:
            raise ValueError(f"Partition must be non-negative, got {self.partition}")


class MessagesForBroker:
    """
    Messages bound for one broker in one round, grouped by topic and partition.

    Messages are tracked by their position in the originating MessagesToSend,
    so identical messages in one call stay distinct.
    """

    def __init__(self, broker_id: int):
        self.broker_id = broker_id
        self._by_topic: Dict[str, Dict[int, List[Tuple[int, MessageToSend]]]] = {}

    def add(self, index: int, message: MessageToSend, partition: int) -> None:
        partitions = self._by_topic.setdefault(message.topic, {})
        partitions.setdefault(partition, []).append((index, message))

    def topic_partitions(self) -> List[TopicPartition]:
        return [
            (topic, partition)
            for topic, partitions in self._by_topic.items()
            for partition in partitions
        ]

    def message_indexes(self) -> List[int]:
        return [
            index
            for partitions in self._by_topic.values()
            for entries in partitions.values()
            for index, _ in entries
        ]

    def messages_for(self, topic: str, partition: int) -> List[MessageToSend]:
        return [m for _, m in self._by_topic.get(topic, {}).get(partition, [])]

    def __len__(self) -> int:
        return len(self.message_indexes())

    def __repr__(self) -> str:
        return f"MessagesForBroker(broker_id={self.broker_id}, messages={len(self)})"

    def only(self, topic_partitions: Iterable[TopicPartition]) -> "MessagesForBroker":
        """
        Narrow this batch to the given (topic, partition) pairs.

        Args:
            topic_partitions: Pairs to keep

        Returns:
            New batch for the same broker
        """
        wanted = set(topic_partitions)
        narrowed = MessagesForBroker(self.broker_id)
        for topic, partitions in self._by_topic.items():
            for partition, entries in partitions.items():
                if (topic, partition) in wanted:
                    for index, message in entries:
                        narrowed.add(index, message, partition)
        return narrowed

    def build_protocol_objects(self, compression_config: CompressionConfig) -> List[MessagesForTopic]:
        """
        Build the produce request payload.

        Args:
            compression_config: Decides per topic whether to compress

        Returns:
            Wire structures grouped by topic and partition
        """
        messages_for_topics = []

        for topic, partitions in self._by_topic.items():
            codec = compression_config.codec_for_topic(topic)
            messages_for_partitions = []

            for partition, entries in partitions.items():
                message_set = MessageSet.from_messages(
                    [Message(value=m.value, key=m.key) for _, m in entries]
                )
                if codec is not None:
                    message_set = message_set.compress(codec)
                messages_for_partitions.append(MessagesForPartition(partition, message_set))

            messages_for_topics.append(MessagesForTopic(topic, messages_for_partitions))

        return messages_for_topics


class MessagesToSend:
    """
    All messages of one send call and whether each has been accepted.
    """

    def __init__(self, messages: Iterable[MessageToSend], cluster_metadata: ClusterMetadata):
        """
        Initialize from the caller's batch.

        Args:
            messages: Messages to deliver
            cluster_metadata: Shared metadata cache
        """
        self._messages = list(messages)
        self._sent = [False] * len(self._messages)
        self._cluster_metadata = cluster_metadata

    def _unsent(self) -> Iterable[Tuple[int, MessageToSend]]:
        return ((i, m) for i, m in enumerate(self._messages) if not self._sent[i])

    def needs_metadata(self) -> bool:
        """True if some unsent message's topic has no partition information yet."""
        return any(
            not self._cluster_metadata.has_metadata_for(topic)
            for topic in self.topic_set()
        )

    def topic_set(self) -> Set[str]:
        """Distinct topics among unsent messages."""
        return {m.topic for _, m in self._unsent()}

    def messages_for_brokers(self, conductor: MessageConductor) -> List[MessagesForBroker]:
        """
        Group unsent messages by the leader of their partition.

        Messages whose partition has no known leader, or for which the
        partitioner fails, are left out of this round and stay unsent.

        Args:
            conductor: Chooses partitions and resolves leaders

        Returns:
            One batch per leader broker, ordered by broker id

        Raises:
            InvalidPartitionError: If the partitioner answers out of range
        """
        by_broker: Dict[int, MessagesForBroker] = {}
        unroutable = 0

        for index, message in self._unsent():
            try:
                partition, broker_id = conductor.destination(message.topic, message.key, message.partition)
            except InvalidPartitionError:
                raise
            except Exception as e:
                logger.warning(
                    "Partitioner failed for message",
                    topic=message.topic,
                    index=index,
                    error=str(e),
                )
                unroutable += 1
                continue

            if partition is None or broker_id is None:
                unroutable += 1
                continue

            if broker_id not in by_broker:
                by_broker[broker_id] = MessagesForBroker(broker_id)
            by_broker[broker_id].add(index, message, partition)

        if unroutable:
            logger.debug("Messages not routed this round", count=unroutable)

        return [by_broker[b] for b in sorted(by_broker)]

    def successfully_sent(self, messages_for_broker: MessagesForBroker) -> None:
        """Mark every message in the batch as sent."""
        for index in messages_for_broker.message_indexes():
            self._sent[index] = True

    def all_sent(self) -> bool:
        return all(self._sent)

    def unsent_count(self) -> int:
        return self._sent.count(False)

    def __len__(self) -> int:
        return len(self._messages)
