"""
Request structures for the broker API.

Every request starts with a common header:
    api_key (int16), api_version (int16), correlation_id (int32),
    client_id (int16 length-prefixed string)

``encode()`` produces the payload without the 4-byte frame length; the
connection adds that. ``decode()`` parses a payload back, which lets tests
and in-process fake brokers inspect what the client sent.
"""

from dataclasses import dataclass, field
from typing import List

from logproducer.protocol.buffer import RequestBuffer, ResponseBuffer
from logproducer.protocol.message_set import MessageSet

API_VERSION = 0

# Replica id sent by clients, as opposed to follower brokers
REPLICA_ID = -1

API_KEYS = {
    "produce": 0,
    "fetch": 1,
    "offset": 2,
    "metadata": 3,
}

# Offset request "time" sentinels
LATEST_OFFSET = -1
EARLIEST_OFFSET = -2


@dataclass(frozen=True)
class RequestCommon:
    """Header prepended to every request."""
    api_key: int
    api_version: int
    correlation_id: int
    client_id: str

    def write(self, buffer: RequestBuffer) -> None:
        buffer.int16(self.api_key)
        buffer.int16(self.api_version)
        buffer.int32(self.correlation_id)
        buffer.string(self.client_id)

    @classmethod
    def read(cls, buffer: ResponseBuffer) -> "RequestCommon":
        return cls(
            api_key=buffer.int16(),
            api_version=buffer.int16(),
            correlation_id=buffer.int32(),
            client_id=buffer.string() or "",
        )


@dataclass
class MessagesForPartition:
    partition: int
    message_set: MessageSet

    def write(self, buffer: RequestBuffer) -> None:
        buffer.int32(self.partition)
        buffer.blob(self.message_set.encode())

    @classmethod
    def read(cls, buffer: ResponseBuffer) -> "MessagesForPartition":
        partition = buffer.int32()
        return cls(partition, MessageSet.decode(buffer.blob() or b""))


@dataclass
class MessagesForTopic:
    topic: str
    messages_for_partitions: List[MessagesForPartition] = field(default_factory=list)

    def write(self, buffer: RequestBuffer) -> None:
        buffer.string(self.topic)
        buffer.array(self.messages_for_partitions, lambda p: p.write(buffer))

    @classmethod
    def read(cls, buffer: ResponseBuffer) -> "MessagesForTopic":
        topic = buffer.string() or ""
        return cls(topic, buffer.array(MessagesForPartition.read))


@dataclass
class ProduceRequest:
    """
    Append message sets to partitions led by the receiving broker.

    Attributes:
        common: Request header
        required_acks: 0 = no response, 1 = leader ack, -1 = all in-sync replicas
        timeout_ms: How long the broker may wait for acks
        messages_for_topics: Payload grouped by topic, then partition
    """
    common: RequestCommon
    required_acks: int
    timeout_ms: int
    messages_for_topics: List[MessagesForTopic]

    def encode(self) -> bytes:
        buffer = RequestBuffer()
        self.common.write(buffer)
        buffer.int16(self.required_acks)
        buffer.int32(self.timeout_ms)
        buffer.array(self.messages_for_topics, lambda t: t.write(buffer))
        return buffer.to_bytes()

    @classmethod
    def decode(cls, data: bytes) -> "ProduceRequest":
        buffer = ResponseBuffer(data)
        return cls(
            common=RequestCommon.read(buffer),
            required_acks=buffer.int16(),
            timeout_ms=buffer.int32(),
            messages_for_topics=buffer.array(MessagesForTopic.read),
        )


@dataclass(frozen=True)
class PartitionFetch:
    partition: int
    offset: int
    max_bytes: int

    def write(self, buffer: RequestBuffer) -> None:
        buffer.int32(self.partition)
        buffer.int64(self.offset)
        buffer.int32(self.max_bytes)

    @classmethod
    def read(cls, buffer: ResponseBuffer) -> "PartitionFetch":
        return cls(buffer.int32(), buffer.int64(), buffer.int32())


@dataclass
class TopicFetch:
    topic: str
    partition_fetches: List[PartitionFetch]

    def write(self, buffer: RequestBuffer) -> None:
        buffer.string(self.topic)
        buffer.array(self.partition_fetches, lambda p: p.write(buffer))

    @classmethod
    def read(cls, buffer: ResponseBuffer) -> "TopicFetch":
        topic = buffer.string() or ""
        return cls(topic, buffer.array(PartitionFetch.read))


@dataclass
class FetchRequest:
    common: RequestCommon
    replica_id: int
    max_wait_ms: int
    min_bytes: int
    topic_fetches: List[TopicFetch]

    def encode(self) -> bytes:
        buffer = RequestBuffer()
        self.common.write(buffer)
        buffer.int32(self.replica_id)
        buffer.int32(self.max_wait_ms)
        buffer.int32(self.min_bytes)
        buffer.array(self.topic_fetches, lambda t: t.write(buffer))
        return buffer.to_bytes()

    @classmethod
    def decode(cls, data: bytes) -> "FetchRequest":
        buffer = ResponseBuffer(data)
        return cls(
            common=RequestCommon.read(buffer),
            replica_id=buffer.int32(),
            max_wait_ms=buffer.int32(),
            min_bytes=buffer.int32(),
            topic_fetches=buffer.array(TopicFetch.read),
        )


@dataclass(frozen=True)
class PartitionOffsetRequest:
    partition: int
    time: int = LATEST_OFFSET
    max_number_of_offsets: int = 1

    def write(self, buffer: RequestBuffer) -> None:
        buffer.int32(self.partition)
        buffer.int64(self.time)
        buffer.int32(self.max_number_of_offsets)

    @classmethod
    def read(cls, buffer: ResponseBuffer) -> "PartitionOffsetRequest":
        return cls(buffer.int32(), buffer.int64(), buffer.int32())


@dataclass
class TopicOffsetRequest:
    topic: str
    partition_offset_requests: List[PartitionOffsetRequest]

    def write(self, buffer: RequestBuffer) -> None:
        buffer.string(self.topic)
        buffer.array(self.partition_offset_requests, lambda p: p.write(buffer))

    @classmethod
    def read(cls, buffer: ResponseBuffer) -> "TopicOffsetRequest":
        topic = buffer.string() or ""
        return cls(topic, buffer.array(PartitionOffsetRequest.read))


@dataclass
class OffsetRequest:
    common: RequestCommon
    replica_id: int
    topic_offset_requests: List[TopicOffsetRequest]

    def encode(self) -> bytes:
        buffer = RequestBuffer()
        self.common.write(buffer)
        buffer.int32(self.replica_id)
        buffer.array(self.topic_offset_requests, lambda t: t.write(buffer))
        return buffer.to_bytes()

    @classmethod
    def decode(cls, data: bytes) -> "OffsetRequest":
        buffer = ResponseBuffer(data)
        return cls(
            common=RequestCommon.read(buffer),
            replica_id=buffer.int32(),
            topic_offset_requests=buffer.array(TopicOffsetRequest.read),
        )


@dataclass
class MetadataRequest:
    """Ask for brokers and partition leaders; an empty topic list means all topics."""
    common: RequestCommon
    topic_names: List[str]

    def encode(self) -> bytes:
        buffer = RequestBuffer()
        self.common.write(buffer)
        buffer.array(self.topic_names, buffer.string)
        return buffer.to_bytes()

    @classmethod
    def decode(cls, data: bytes) -> "MetadataRequest":
        buffer = ResponseBuffer(data)
        common = RequestCommon.read(buffer)
        return cls(common, buffer.array(lambda b: b.string() or ""))


def peek_request_common(data: bytes) -> RequestCommon:
    """Read only the header of an encoded request."""
    return RequestCommon.read(ResponseBuffer(data))
