"""
Partitioners for choosing a partition when a message names none.

Strategies:
- Hash: hash the key to a partition (same key → same partition)
- Round-robin: distribute evenly across partitions
- Random: pick uniformly
- Custom: any callable taking (key, partition_count)
"""

import hashlib
import random
from abc import ABC, abstractmethod
from typing import Callable, Optional, Union

from logproducer.utils.logging import get_logger

logger = get_logger(__name__)

PartitionerFunc = Callable[[Optional[bytes], int], int]


def hash_key(key: bytes, partition_count: int) -> int:
    """Map a key onto ``[0, partition_count)`` by md5."""
    return int(hashlib.md5(key).hexdigest(), 16) % partition_count


class Partitioner(ABC):
    """Abstract base class for partitioners."""

    @abstractmethod
    def choose(self, key: Optional[bytes], partition_count: int) -> int:
        """
        Choose partition for message.

        Args:
            key: Message key (None for no key)
            partition_count: Number of partitions in the topic

        Returns:
            Partition number (0 to partition_count-1)
        """
        pass


class HashPartitioner(Partitioner):
    """
    Key-based hash partitioner.

    Always uses the key hash, so every message must carry a key.
    """

    def choose(self, key: Optional[bytes], partition_count: int) -> int:
        if key is None:
            raise ValueError("HashPartitioner requires key to be set")

        if partition_count <= 0:
            raise ValueError(f"Invalid partition_count: {partition_count}")

        return hash_key(key, partition_count)


class RoundRobinPartitioner(Partitioner):
    """Distributes messages evenly regardless of key."""

    def __init__(self) -> None:
        self._counter = 0

    def choose(self, key: Optional[bytes], partition_count: int) -> int:
        if partition_count <= 0:
            raise ValueError(f"Invalid partition_count: {partition_count}")

        partition = self._counter % partition_count
        self._counter += 1
        return partition


class RandomPartitioner(Partitioner):
    """Randomly distributes messages across partitions."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._random = rng or random.Random()

    def choose(self, key: Optional[bytes], partition_count: int) -> int:
        if partition_count <= 0:
            raise ValueError(f"Invalid partition_count: {partition_count}")

        return self._random.randrange(partition_count)


class CallablePartitioner(Partitioner):
    """Adapts a plain function to the Partitioner interface."""

    def __init__(self, func: PartitionerFunc):
        self._func = func

    def choose(self, key: Optional[bytes], partition_count: int) -> int:
        return self._func(key, partition_count)

    def __repr__(self) -> str:
        return f"CallablePartitioner({self._func!r})"


_PARTITIONERS = {
    "hash": HashPartitioner,
    "round_robin": RoundRobinPartitioner,
    "random": RandomPartitioner,
}


def create_partitioner(
    partitioner: Union[None, str, Partitioner, PartitionerFunc],
) -> Optional[Partitioner]:
    """
    Resolve the ``partitioner`` producer option.

    Args:
        partitioner: One of
            - None: no partitioner, the conductor's default policy applies
            - "hash", "round_robin", "random": a built-in strategy
            - a Partitioner instance
            - a callable (key, partition_count) -> partition

    Returns:
        Partitioner instance or None

    Raises:
        ValueError: For an unknown name or unusable value
    """
    if partitioner is None or isinstance(partitioner, Partitioner):
        return partitioner

    if isinstance(partitioner, str):
        partitioner_class = _PARTITIONERS.get(partitioner)
        if partitioner_class is None:
            raise ValueError(f"Unknown partitioner type: {partitioner}")
        return partitioner_class()

    if callable(partitioner):
        return CallablePartitioner(partitioner)

    raise ValueError(f"Partitioner must be a name, Partitioner or callable, got {partitioner!r}")
