"""Binary wire protocol spoken with brokers."""

from logproducer.protocol.buffer import RequestBuffer, ResponseBuffer
from logproducer.protocol.message_set import Message, MessageSet, MessageWithOffset
from logproducer.protocol.requests import (
    API_KEYS,
    API_VERSION,
    REPLICA_ID,
    FetchRequest,
    MessagesForPartition,
    MessagesForTopic,
    MetadataRequest,
    OffsetRequest,
    PartitionFetch,
    PartitionOffsetRequest,
    ProduceRequest,
    RequestCommon,
    TopicFetch,
    TopicOffsetRequest,
)
from logproducer.protocol.responses import (
    BrokerInfo,
    FetchResponse,
    MetadataResponse,
    OffsetResponse,
    PartitionMetadataStruct,
    PartitionProduceResult,
    ProduceResponse,
    TopicMetadataStruct,
    TopicProduceResponse,
)

__all__ = [
    "RequestBuffer",
    "ResponseBuffer",
    "Message",
    "MessageSet",
    "MessageWithOffset",
    "API_KEYS",
    "API_VERSION",
    "REPLICA_ID",
    "RequestCommon",
    "ProduceRequest",
    "FetchRequest",
    "OffsetRequest",
    "MetadataRequest",
    "MessagesForTopic",
    "MessagesForPartition",
    "TopicFetch",
    "PartitionFetch",
    "TopicOffsetRequest",
    "PartitionOffsetRequest",
    "ProduceResponse",
    "TopicProduceResponse",
    "PartitionProduceResult",
    "FetchResponse",
    "OffsetResponse",
    "MetadataResponse",
    "BrokerInfo",
    "TopicMetadataStruct",
    "PartitionMetadataStruct",
]
