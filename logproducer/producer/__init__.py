"""Synchronous producer client."""

from logproducer.producer.batch import MessagesForBroker, MessagesToSend, MessageToSend
from logproducer.producer.broker_pool import BrokerPool
from logproducer.producer.compression import (
    Codec,
    CompressionConfig,
    CompressionType,
    GzipCodec,
    SnappyCodec,
)
from logproducer.producer.conductor import MessageConductor
from logproducer.producer.metadata import Broker, ClusterMetadata
from logproducer.producer.partitioner import Partitioner, create_partitioner
from logproducer.producer.sync_producer import ProducerConfig, SyncProducer

__all__ = [
    "SyncProducer",
    "ProducerConfig",
    "MessageToSend",
    "MessagesToSend",
    "MessagesForBroker",
    "BrokerPool",
    "ClusterMetadata",
    "Broker",
    "MessageConductor",
    "Partitioner",
    "create_partitioner",
    "Codec",
    "CompressionConfig",
    "CompressionType",
    "GzipCodec",
    "SnappyCodec",
]
