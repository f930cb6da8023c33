"""
Response structures for the broker API.

Every response payload starts with the int32 correlation id of the
request it answers. ``encode()`` exists so that in-process fake brokers
can produce byte-exact responses.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from logproducer.protocol.buffer import RequestBuffer, ResponseBuffer
from logproducer.protocol.message_set import MessageSet


@dataclass(frozen=True)
class PartitionProduceResult:
    """
    Outcome of producing to one partition.

    Attributes:
        partition: Partition number
        error: Broker error code (0 on success)
        offset: Offset assigned to the first message
    """
    partition: int
    error: int
    offset: int

    def write(self, buffer: RequestBuffer) -> None:
        buffer.int32(self.partition)
        buffer.int16(self.error)
        buffer.int64(self.offset)

    @classmethod
    def read(cls, buffer: ResponseBuffer) -> "PartitionProduceResult":
        return cls(buffer.int32(), buffer.int16(), buffer.int64())


@dataclass
class TopicProduceResponse:
    topic: str
    partitions: List[PartitionProduceResult]

    def write(self, buffer: RequestBuffer) -> None:
        buffer.string(self.topic)
        buffer.array(self.partitions, lambda p: p.write(buffer))

    @classmethod
    def read(cls, buffer: ResponseBuffer) -> "TopicProduceResponse":
        topic = buffer.string() or ""
        return cls(topic, buffer.array(PartitionProduceResult.read))


@dataclass
class ProduceResponse:
    correlation_id: int
    topic_responses: List[TopicProduceResponse] = field(default_factory=list)

    def encode(self) -> bytes:
        buffer = RequestBuffer()
        buffer.int32(self.correlation_id)
        buffer.array(self.topic_responses, lambda t: t.write(buffer))
        return buffer.to_bytes()

    @classmethod
    def decode(cls, data: bytes) -> "ProduceResponse":
        buffer = ResponseBuffer(data)
        return cls(buffer.int32(), buffer.array(TopicProduceResponse.read))


@dataclass
class PartitionFetchResponse:
    partition: int
    error: int
    highwater_mark_offset: int
    message_set: MessageSet

    def write(self, buffer: RequestBuffer) -> None:
        buffer.int32(self.partition)
        buffer.int16(self.error)
        buffer.int64(self.highwater_mark_offset)
        buffer.blob(self.message_set.encode())

    @classmethod
    def read(cls, buffer: ResponseBuffer) -> "PartitionFetchResponse":
        return cls(
            partition=buffer.int32(),
            error=buffer.int16(),
            highwater_mark_offset=buffer.int64(),
            message_set=MessageSet.decode(buffer.blob() or b""),
        )


@dataclass
class TopicFetchResponse:
    topic: str
    partition_fetch_responses: List[PartitionFetchResponse]

    def write(self, buffer: RequestBuffer) -> None:
        buffer.string(self.topic)
        buffer.array(self.partition_fetch_responses, lambda p: p.write(buffer))

    @classmethod
    def read(cls, buffer: ResponseBuffer) -> "TopicFetchResponse":
        topic = buffer.string() or ""
        return cls(topic, buffer.array(PartitionFetchResponse.read))


@dataclass
class FetchResponse:
    correlation_id: int
    topic_fetch_responses: List[TopicFetchResponse] = field(default_factory=list)

    def encode(self) -> bytes:
        buffer = RequestBuffer()
        buffer.int32(self.correlation_id)
        buffer.array(self.topic_fetch_responses, lambda t: t.write(buffer))
        return buffer.to_bytes()

    @classmethod
    def decode(cls, data: bytes) -> "FetchResponse":
        buffer = ResponseBuffer(data)
        return cls(buffer.int32(), buffer.array(TopicFetchResponse.read))


@dataclass
class PartitionOffsetResponse:
    partition: int
    error: int
    offsets: List[int]

    def write(self, buffer: RequestBuffer) -> None:
        buffer.int32(self.partition)
        buffer.int16(self.error)
        buffer.array(self.offsets, buffer.int64)

    @classmethod
    def read(cls, buffer: ResponseBuffer) -> "PartitionOffsetResponse":
        return cls(buffer.int32(), buffer.int16(), buffer.array(lambda b: b.int64()))


@dataclass
class TopicOffsetResponse:
    topic: str
    partition_offsets: List[PartitionOffsetResponse]

    def write(self, buffer: RequestBuffer) -> None:
        buffer.string(self.topic)
        buffer.array(self.partition_offsets, lambda p: p.write(buffer))

    @classmethod
    def read(cls, buffer: ResponseBuffer) -> "TopicOffsetResponse":
        topic = buffer.string() or ""
        return cls(topic, buffer.array(PartitionOffsetResponse.read))


@dataclass
class OffsetResponse:
    correlation_id: int
    topic_offset_responses: List[TopicOffsetResponse] = field(default_factory=list)

    def encode(self) -> bytes:
        buffer = RequestBuffer()
        buffer.int32(self.correlation_id)
        buffer.array(self.topic_offset_responses, lambda t: t.write(buffer))
        return buffer.to_bytes()

    @classmethod
    def decode(cls, data: bytes) -> "OffsetResponse":
        buffer = ResponseBuffer(data)
        return cls(buffer.int32(), buffer.array(TopicOffsetResponse.read))


@dataclass(frozen=True)
class BrokerInfo:
    node_id: int
    host: str
    port: int

    def write(self, buffer: RequestBuffer) -> None:
        buffer.int32(self.node_id)
        buffer.string(self.host)
        buffer.int32(self.port)

    @classmethod
    def read(cls, buffer: ResponseBuffer) -> "BrokerInfo":
        return cls(buffer.int32(), buffer.string() or "", buffer.int32())


@dataclass
class PartitionMetadataStruct:
    """
    Leadership state of one partition as reported by a broker.

    A leader of -1 means no leader is currently elected.
    """
    error: int
    id: int
    leader: int
    replicas: List[int] = field(default_factory=list)
    isr: List[int] = field(default_factory=list)

    def write(self, buffer: RequestBuffer) -> None:
        buffer.int16(self.error)
        buffer.int32(self.id)
        buffer.int32(self.leader)
        buffer.array(self.replicas, buffer.int32)
        buffer.array(self.isr, buffer.int32)

    @classmethod
    def read(cls, buffer: ResponseBuffer) -> "PartitionMetadataStruct":
        return cls(
            error=buffer.int16(),
            id=buffer.int32(),
            leader=buffer.int32(),
            replicas=buffer.array(lambda b: b.int32()),
            isr=buffer.array(lambda b: b.int32()),
        )


@dataclass
class TopicMetadataStruct:
    error: int
    name: str
    partitions: List[PartitionMetadataStruct] = field(default_factory=list)

    def write(self, buffer: RequestBuffer) -> None:
        buffer.int16(self.error)
        buffer.string(self.name)
        buffer.array(self.partitions, lambda p: p.write(buffer))

    @classmethod
    def read(cls, buffer: ResponseBuffer) -> "TopicMetadataStruct":
        error = buffer.int16()
        name = buffer.string() or ""
        return cls(error, name, buffer.array(PartitionMetadataStruct.read))


@dataclass
class MetadataResponse:
    correlation_id: int
    brokers: List[BrokerInfo] = field(default_factory=list)
    topics: List[TopicMetadataStruct] = field(default_factory=list)

    def encode(self) -> bytes:
        buffer = RequestBuffer()
        buffer.int32(self.correlation_id)
        buffer.array(self.brokers, lambda b: b.write(buffer))
        buffer.array(self.topics, lambda t: t.write(buffer))
        return buffer.to_bytes()

    @classmethod
    def decode(cls, data: bytes) -> "MetadataResponse":
        buffer = ResponseBuffer(data)
        return cls(
            correlation_id=buffer.int32(),
            brokers=buffer.array(BrokerInfo.read),
            topics=buffer.array(TopicMetadataStruct.read),
        )

    def topic(self, name: str) -> Optional[TopicMetadataStruct]:
        for topic in self.topics:
            if topic.name == name:
                return topic
        return None


def peek_correlation_id(data: bytes) -> int:
    """Read the correlation id that starts every response payload."""
    return ResponseBuffer(data).int32()
