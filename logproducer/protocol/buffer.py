"""
Primitive encoders and decoders for the broker wire protocol.

All integers are big-endian and signed. Strings carry an int16 length
prefix, byte blobs an int32 length prefix; a length of -1 encodes None.
Arrays carry an int32 element count.
"""

import struct
from typing import Callable, List, Optional, TypeVar

from logproducer.errors import ProtocolError

T = TypeVar("T")

_INT8 = struct.Struct(">b")
_INT16 = struct.Struct(">h")
_INT32 = struct.Struct(">i")
_INT64 = struct.Struct(">q")
_UINT32 = struct.Struct(">I")


class RequestBuffer:
    """Accumulates an encoded request or structure."""

    def __init__(self) -> None:
        self._data = bytearray()

    def int8(self, value: int) -> None:
        self._data += _INT8.pack(value)

    def int16(self, value: int) -> None:
        self._data += _INT16.pack(value)

    def int32(self, value: int) -> None:
        self._data += _INT32.pack(value)

    def int64(self, value: int) -> None:
        self._data += _INT64.pack(value)

    def uint32(self, value: int) -> None:
        self._data += _UINT32.pack(value)

    def string(self, value: Optional[str]) -> None:
        """Write an int16 length-prefixed UTF-8 string."""
        if value is None:
            self.int16(-1)
            return
        encoded = value.encode("utf-8")
        self.int16(len(encoded))
        self._data += encoded

    def blob(self, value: Optional[bytes]) -> None:
        """Write an int32 length-prefixed byte blob."""
        if value is None:
            self.int32(-1)
            return
        self.int32(len(value))
        self._data += value

    def raw(self, value: bytes) -> None:
        """Append bytes without a length prefix."""
        self._data += value

    def array(self, items: List[T], write_item: Callable[[T], None]) -> None:
        self.int32(len(items))
        for item in items:
            write_item(item)

    def __len__(self) -> int:
        return len(self._data)

    def to_bytes(self) -> bytes:
        return bytes(self._data)


class ResponseBuffer:
    """Sequential reader over a received payload."""

    def __init__(self, data: bytes):
        self._data = data
        self._pos = 0

    def _unpack(self, codec: struct.Struct) -> int:
        if self._pos + codec.size > len(self._data):
            raise ProtocolError(
                f"Buffer underflow: need {codec.size} bytes at {self._pos}, "
                f"have {len(self._data) - self._pos}"
            )
        value = codec.unpack_from(self._data, self._pos)[0]
        self._pos += codec.size
        return value

    def int8(self) -> int:
        return self._unpack(_INT8)

    def int16(self) -> int:
        return self._unpack(_INT16)

    def int32(self) -> int:
        return self._unpack(_INT32)

    def int64(self) -> int:
        return self._unpack(_INT64)

    def uint32(self) -> int:
        return self._unpack(_UINT32)

    def read(self, size: int) -> bytes:
        """Read exactly ``size`` raw bytes."""
        if size < 0 or self._pos + size > len(self._data):
            raise ProtocolError(
                f"Buffer underflow: need {size} bytes at {self._pos}, "
                f"have {len(self._data) - self._pos}"
            )
        chunk = self._data[self._pos:self._pos + size]
        self._pos += size
        return chunk

    def string(self) -> Optional[str]:
        length = self.int16()
        if length == -1:
            return None
        return self.read(length).decode("utf-8")

    def blob(self) -> Optional[bytes]:
        length = self.int32()
        if length == -1:
            return None
        return self.read(length)

    def array(self, read_item: Callable[["ResponseBuffer"], T]) -> List[T]:
        count = self.int32()
        if count < 0:
            raise ProtocolError(f"Invalid array length: {count}")
        return [read_item(self) for _ in range(count)]

    def remaining(self) -> int:
        return len(self._data) - self._pos

    def eof(self) -> bool:
        return self._pos >= len(self._data)
