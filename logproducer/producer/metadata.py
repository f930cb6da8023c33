"""
Cluster metadata cache for the producer.

Holds the known brokers and the leader of every (topic, partition) the
producer has asked about. The cache is only written by ``update``, which
builds fresh maps from a metadata response and swaps them in at once, so a
reader sees either the old snapshot or the new one.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from logproducer.errors import error_name
from logproducer.protocol.responses import MetadataResponse, TopicMetadataStruct
from logproducer.utils.logging import get_logger

logger = get_logger(__name__)

NO_LEADER = -1


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Broker:
    """
    A broker in the cluster.

    Attributes:
        id: Broker id (identity; host and port may move between refreshes)
        host: Broker hostname
        port: Broker port
    """
    id: int
    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class PartitionMetadata:
    """
    Leadership of one partition.

    Attributes:
        topic: Topic name
        partition: Partition number
        leader: Leader broker id, or None when no leader is elected
        replicas: Replica broker ids
        isr: In-sync replica broker ids
        error: Broker error code reported for the partition
    """
    topic: str
    partition: int
    leader: Optional[int]
    replicas: List[int] = field(default_factory=list)
    isr: List[int] = field(default_factory=list)
    error: int = 0


@dataclass(frozen=True)
class TopicMetadata:
    """
    Metadata about a topic.

    Attributes:
        topic: Topic name
        partitions: Partition metadata keyed by partition number
    """
    topic: str
    partitions: Dict[int, PartitionMetadata]

    @classmethod
    def from_struct(cls, struct: TopicMetadataStruct) -> "TopicMetadata":
        partitions = {}
        for p in struct.partitions:
            partitions[p.id] = PartitionMetadata(
                topic=struct.name,
                partition=p.id,
                leader=None if p.leader == NO_LEADER else p.leader,
                replicas=list(p.replicas),
                isr=list(p.isr),
                error=p.error,
            )
        return cls(topic=struct.name, partitions=partitions)

    def num_partitions(self) -> int:
        return len(self.partitions)

    def get_partition(self, partition: int) -> Optional[PartitionMetadata]:
        return self.partitions.get(partition)


class ClusterMetadata:
    """
    Cached view of the cluster.

    Maintains:
    - Broker id to address mapping
    - Topic-partition to leader mappings
    - Time of the last successful refresh
    """

    def __init__(self) -> None:
        self._brokers: Dict[int, Broker] = {}
        self._topics: Dict[str, TopicMetadata] = {}
        self.last_refreshed_at: Optional[int] = None

        self._lock = threading.Lock()

    def update(self, response: MetadataResponse) -> None:
        """
        Replace the cached view from a metadata response.

        The broker set is replaced outright. Topics in the response replace
        their previous entries; topics the response does not mention keep
        theirs. Topics reported with an error and no partitions (for example
        while the broker is still creating them) are not recorded, so they
        keep counting as missing.

        Args:
            response: Decoded metadata response
        """
        brokers = {b.node_id: Broker(b.node_id, b.host, b.port) for b in response.brokers}

        with self._lock:
            topics = dict(self._topics)

            for struct in response.topics:
                if struct.error != 0 and not struct.partitions:
                    logger.warning(
                        "Metadata unavailable for topic",
                        topic=struct.name,
                        error=error_name(struct.error),
                    )
                    continue
                topics[struct.name] = TopicMetadata.from_struct(struct)

            self._brokers = brokers
            self._topics = topics
            self.last_refreshed_at = now_ms()

        logger.info(
            "Updated cluster metadata",
            broker_count=len(brokers),
            topics=[t.name for t in response.topics],
        )

    @property
    def brokers(self) -> Dict[int, Broker]:
        """Known brokers keyed by id."""
        return dict(self._brokers)

    def broker(self, broker_id: int) -> Optional[Broker]:
        return self._brokers.get(broker_id)

    def topic_metadata(self, topic: str) -> Optional[TopicMetadata]:
        return self._topics.get(topic)

    def has_metadata_for(self, topic: str) -> bool:
        return topic in self._topics

    def partition_count(self, topic: str) -> int:
        """
        Get number of partitions for topic.

        Returns:
            Number of partitions, or 0 if the topic is unknown
        """
        topic_meta = self._topics.get(topic)
        if topic_meta is None:
            return 0
        return topic_meta.num_partitions()

    def leader_for(self, topic: str, partition: int) -> Optional[int]:
        """
        Get leader broker id for a partition.

        Returns:
            Broker id, or None when the topic or partition is unknown, no
            leader is elected, or the leader is not among the known brokers
        """
        topic_meta = self._topics.get(topic)
        if topic_meta is None:
            return None

        partition_meta = topic_meta.get_partition(partition)
        if partition_meta is None or partition_meta.leader is None:
            return None

        if partition_meta.leader not in self._brokers:
            return None

        return partition_meta.leader

    def partitions_with_leaders(self, topic: str) -> List[int]:
        """Partition numbers of ``topic`` that currently have a reachable leader."""
        topic_meta = self._topics.get(topic)
        if topic_meta is None:
            return []
        return sorted(
            p for p in topic_meta.partitions
            if self.leader_for(topic, p) is not None
        )

    def is_stale(self, interval_ms: int) -> bool:
        """
        Check whether the refresh interval has elapsed.

        Args:
            interval_ms: Maximum metadata age

        Returns:
            True if never refreshed or older than ``interval_ms``
        """
        if self.last_refreshed_at is None:
            return True
        return now_ms() - self.last_refreshed_at > interval_ms

    def get_stats(self) -> dict:
        age_ms = None
        if self.last_refreshed_at is not None:
            age_ms = now_ms() - self.last_refreshed_at

        return {
            "broker_count": len(self._brokers),
            "topic_count": len(self._topics),
            "age_ms": age_ms,
        }


class BootstrapServerParser:
    """Parses seed broker strings."""

    @staticmethod
    def parse(bootstrap_servers: Union[str, List[str]]) -> List[Broker]:
        """
        Parse seed brokers.

        Seed brokers have no real id until the cluster describes itself, so
        the returned brokers are numbered by position.

        Args:
            bootstrap_servers: "host:port", a comma separated list of them,
                or a list of them

        Returns:
            List of brokers

        Example:
            parse("localhost:9092")
            parse(["broker1:9092", "[::1]:9093"])
        """
        if isinstance(bootstrap_servers, str):
            bootstrap_servers = bootstrap_servers.split(",")

        servers = [s.strip() for s in bootstrap_servers if s.strip()]
        brokers = []

        for i, server in enumerate(servers):
            host, sep, port_str = server.rpartition(":")
            if not sep or not host:
                raise ValueError(f"Invalid bootstrap server format: {server}")

            try:
                port = int(port_str)
            except ValueError:
                raise ValueError(f"Invalid port in bootstrap server: {server}")

            brokers.append(Broker(id=i, host=host.strip("[]"), port=port))

        if not brokers:
            raise ValueError("At least one seed broker is required")

        return brokers
