"""
Message and message-set wire structures.

Message wire format (magic 0):
    CRC (4 bytes, unsigned) - CRC-32 of everything after this field
    Magic byte (1 byte) - Format version, always 0
    Attributes (1 byte) - Low 3 bits hold the compression codec id
    Key (int32 length + bytes, -1 for null)
    Value (int32 length + bytes, -1 for null)

A message set is a plain concatenation of entries:
    Offset (8 bytes) - Ignored by the broker on produce
    Message size (4 bytes)
    Message

A compressed message set is a single wrapper message whose value is the
compressed encoding of the inner message set and whose attributes carry
the codec id.
"""

import zlib
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Protocol

from logproducer.errors import ChecksumError, ProtocolError
from logproducer.protocol.buffer import RequestBuffer, ResponseBuffer

MAGIC_BYTE = 0
COMPRESSION_CODEC_MASK = 0x07

# offset (8) + message size (4)
ENTRY_OVERHEAD = 12


class MessageCodec(Protocol):
    """What the message set needs from a compression codec."""

    codec_id: int

    def compress(self, data: bytes) -> bytes: ...

    def decompress(self, data: bytes) -> bytes: ...


@dataclass(frozen=True)
class Message:
    """
    A single message as it travels on the wire.

    Attributes:
        value: Message payload (None only for tombstones)
        key: Optional message key
        attributes: Codec bits for wrapper messages, 0 otherwise
    """
    value: Optional[bytes]
    key: Optional[bytes] = None
    attributes: int = 0

    @property
    def compression_codec(self) -> int:
        """Codec id encoded in the attributes (0 means uncompressed)."""
        return self.attributes & COMPRESSION_CODEC_MASK

    def encode(self) -> bytes:
        body = RequestBuffer()
        body.int8(MAGIC_BYTE)
        body.int8(self.attributes)
        body.blob(self.key)
        body.blob(self.value)
        payload = body.to_bytes()

        buffer = RequestBuffer()
        buffer.uint32(zlib.crc32(payload) & 0xFFFFFFFF)
        buffer.raw(payload)
        return buffer.to_bytes()

    @classmethod
    def decode(cls, data: bytes) -> "Message":
        """
        Decode a message, verifying its checksum.

        Raises:
            ChecksumError: If the CRC does not match
            ProtocolError: If the message is malformed
        """
        buffer = ResponseBuffer(data)
        crc = buffer.uint32()
        payload = data[4:]

        computed_crc = zlib.crc32(payload) & 0xFFFFFFFF
        if computed_crc != crc:
            raise ChecksumError(f"CRC mismatch: expected {crc}, computed {computed_crc}")

        magic_byte = buffer.int8()
        if magic_byte != MAGIC_BYTE:
            raise ProtocolError(f"Unsupported magic byte: {magic_byte}")

        attributes = buffer.int8()
        key = buffer.blob()
        value = buffer.blob()
        return cls(value=value, key=key, attributes=attributes)


@dataclass(frozen=True)
class MessageWithOffset:
    """A message paired with the offset slot it occupies in a set."""
    offset: int
    message: Message


@dataclass
class MessageSet:
    """An ordered collection of messages destined for one partition."""

    messages: List[MessageWithOffset] = field(default_factory=list)

    @classmethod
    def from_messages(cls, messages: List[Message]) -> "MessageSet":
        """Build a set for producing; offsets are placeholders the broker rewrites."""
        return cls([MessageWithOffset(offset=0, message=m) for m in messages])

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self) -> Iterator[MessageWithOffset]:
        return iter(self.messages)

    def encode(self) -> bytes:
        buffer = RequestBuffer()
        for entry in self.messages:
            encoded = entry.message.encode()
            buffer.int64(entry.offset)
            buffer.int32(len(encoded))
            buffer.raw(encoded)
        return buffer.to_bytes()

    @classmethod
    def decode(cls, data: bytes) -> "MessageSet":
        """
        Decode a message set.

        Brokers may cut a fetched set in the middle of its last message;
        a trailing partial entry is dropped rather than treated as an error.
        """
        buffer = ResponseBuffer(data)
        messages = []

        while buffer.remaining() >= ENTRY_OVERHEAD:
            offset = buffer.int64()
            size = buffer.int32()
            if size < 0:
                raise ProtocolError(f"Invalid message size: {size}")
            if size > buffer.remaining():
                break
            messages.append(
                MessageWithOffset(offset=offset, message=Message.decode(buffer.read(size)))
            )

        return cls(messages)

    def compress(self, codec: MessageCodec) -> "MessageSet":
        """
        Wrap this set into a single compressed message.

        Args:
            codec: Codec providing ``codec_id`` and ``compress``

        Returns:
            New message set containing one wrapper message
        """
        wrapper = Message(
            value=codec.compress(self.encode()),
            key=None,
            attributes=codec.codec_id & COMPRESSION_CODEC_MASK,
        )
        return MessageSet([MessageWithOffset(offset=0, message=wrapper)])

    def flatten(self, codec_for_id: Callable[[int], MessageCodec]) -> List[MessageWithOffset]:
        """
        Expand compressed wrapper messages into the messages they carry.

        Args:
            codec_for_id: Resolves a codec id to a codec

        Returns:
            Uncompressed messages in order
        """
        flattened: List[MessageWithOffset] = []
        for entry in self.messages:
            codec_id = entry.message.compression_codec
            if codec_id == 0:
                flattened.append(entry)
                continue

            codec = codec_for_id(codec_id)
            inner = MessageSet.decode(codec.decompress(entry.message.value or b""))
            flattened.extend(inner.flatten(codec_for_id))
        return flattened
