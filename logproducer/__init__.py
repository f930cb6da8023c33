"""
logproducer - synchronous producer for partitioned, replicated log brokers.

Delivers batches of topic-addressed messages to partition leaders with:
- Cluster metadata discovery from seed brokers
- Per-broker connections over a length-framed binary protocol
- Pluggable partitioners and compression codecs
- Round-based retries that survive broker outages and leader changes
"""

__version__ = "0.1.0"

from logproducer.connection import Connection
from logproducer.errors import (
    ConnectionFailedError,
    InvalidPartitionError,
    LogProducerError,
    ProtocolError,
    UnableToFetchMetadataError,
    UnknownBrokerError,
)
from logproducer.producer import MessageToSend, ProducerConfig, SyncProducer

__all__ = [
    "SyncProducer",
    "ProducerConfig",
    "MessageToSend",
    "Connection",
    "LogProducerError",
    "ConnectionFailedError",
    "UnableToFetchMetadataError",
    "UnknownBrokerError",
    "InvalidPartitionError",
    "ProtocolError",
]
