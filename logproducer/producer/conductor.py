"""
Routing of messages to partitions and partition leaders.
"""

from typing import Optional, Tuple

from logproducer.errors import InvalidPartitionError
from logproducer.producer.metadata import ClusterMetadata
from logproducer.producer.partitioner import Partitioner, hash_key
from logproducer.utils.logging import get_logger

logger = get_logger(__name__)


class MessageConductor:
    """
    Picks the partition for each message and finds its leader.

    Partition choice, in order of precedence:
    1. The partition the message names explicitly
    2. The configured partitioner
    3. Default policy: keyed messages hash their key; keyless messages go
       round-robin over the partitions that currently have a leader
    """

    def __init__(self, cluster_metadata: ClusterMetadata, partitioner: Optional[Partitioner] = None):
        """
        Initialize conductor.

        Args:
            cluster_metadata: Shared metadata cache
            partitioner: Optional partitioner overriding the default policy
        """
        self._cluster_metadata = cluster_metadata
        self._partitioner = partitioner
        self._counter = 0

    def destination(
        self,
        topic: str,
        key: Optional[bytes] = None,
        explicit_partition: Optional[int] = None,
    ) -> Tuple[Optional[int], Optional[int]]:
        """
        Resolve where a message goes.

        Args:
            topic: Topic name
            key: Message key
            explicit_partition: Partition named by the message, if any

        Returns:
            (partition, leader broker id). Partition is None when the topic
            has no known partitions; leader is None when the partition has no
            known leader.
        """
        partition_count = self._cluster_metadata.partition_count(topic)
        if explicit_partition is None and partition_count == 0:
            return None, None

        partition = self.choose_partition(topic, key, explicit_partition, partition_count)
        return partition, self._cluster_metadata.leader_for(topic, partition)

    def choose_partition(
        self,
        topic: str,
        key: Optional[bytes],
        explicit_partition: Optional[int],
        partition_count: int,
    ) -> int:
        """
        Choose a partition number.

        Raises:
            InvalidPartitionError: If the partitioner answers outside
                ``[0, partition_count)``
        """
        if explicit_partition is not None:
            return explicit_partition

        if self._partitioner is not None:
            partition = self._partitioner.choose(key, partition_count)
            if not isinstance(partition, int) or not 0 <= partition < partition_count:
                raise InvalidPartitionError(
                    f"Partitioner returned {partition!r} for topic {topic} "
                    f"with {partition_count} partitions"
                )
            return partition

        if key is not None:
            return hash_key(key, partition_count)

        return self._next_round_robin(topic, partition_count)

    def _next_round_robin(self, topic: str, partition_count: int) -> int:
        candidates = self._cluster_metadata.partitions_with_leaders(topic)
        if not candidates:
            candidates = list(range(partition_count))

        partition = candidates[self._counter % len(candidates)]
        self._counter += 1

        logger.debug("Round-robin assigned partition", topic=topic, partition=partition)
        return partition
