"""
Compression support for produced message sets.

A codec turns the encoded message set of one partition into a single
compressed wrapper message. Which topics get compressed is decided by
CompressionConfig.
"""

import gzip
from abc import ABC, abstractmethod
from enum import IntEnum
from typing import Iterable, Optional, Union

from logproducer.utils.logging import get_logger

logger = get_logger(__name__)


class CompressionType(IntEnum):
    """Codec ids carried in message attributes."""
    NONE = 0
    GZIP = 1
    SNAPPY = 2


class Codec(ABC):
    """A compression algorithm usable for message sets."""

    codec_id: int
    name: str

    @abstractmethod
    def compress(self, data: bytes) -> bytes:
        pass

    @abstractmethod
    def decompress(self, data: bytes) -> bytes:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class GzipCodec(Codec):
    """GZIP: best compression ratio, slowest."""

    codec_id = CompressionType.GZIP
    name = "gzip"

    def __init__(self, compresslevel: int = 6):
        self.compresslevel = compresslevel

    def compress(self, data: bytes) -> bytes:
        return gzip.compress(data, compresslevel=self.compresslevel)

    def decompress(self, data: bytes) -> bytes:
        return gzip.decompress(data)


class SnappyCodec(Codec):
    """SNAPPY: fast compression, moderate ratio. Needs python-snappy."""

    codec_id = CompressionType.SNAPPY
    name = "snappy"

    def __init__(self) -> None:
        try:
            import snappy
        except ImportError as e:
            raise ImportError(
                "python-snappy is required for snappy compression "
                "(pip install 'logproducer[snappy]')"
            ) from e
        self._snappy = snappy

    def compress(self, data: bytes) -> bytes:
        return self._snappy.compress(data)

    def decompress(self, data: bytes) -> bytes:
        return self._snappy.decompress(data)


_CODECS = {
    CompressionType.GZIP: GzipCodec,
    CompressionType.SNAPPY: SnappyCodec,
}


def get_codec(codec: Union[None, str, int, CompressionType, Codec]) -> Optional[Codec]:
    """
    Resolve the ``compression_codec`` producer option.

    Args:
        codec: None, a Codec, a CompressionType / codec id, or a name
            ("none", "gzip", "snappy")

    Returns:
        Codec instance, or None for no compression

    Raises:
        ValueError: For an unknown codec
    """
    if codec is None or isinstance(codec, Codec):
        return codec

    if isinstance(codec, str):
        try:
            codec = CompressionType[codec.upper()]
        except KeyError:
            raise ValueError(f"Unknown compression codec: {codec}")

    try:
        compression_type = CompressionType(codec)
    except ValueError:
        raise ValueError(f"Unknown compression codec id: {codec}")

    if compression_type == CompressionType.NONE:
        return None

    return _CODECS[compression_type]()


def codec_for_id(codec_id: int) -> Codec:
    """Codec for an id read from message attributes (used when reading sets back)."""
    codec = get_codec(codec_id)
    if codec is None:
        raise ValueError("Codec id 0 means uncompressed")
    return codec


class CompressionConfig:
    """
    Decides which topics are compressed, and with what.

    - No codec: nothing is compressed
    - Codec and no topic list: every topic is compressed
    - Codec and a topic list: only the listed topics are compressed
    """

    def __init__(
        self,
        compression_codec: Union[None, str, int, CompressionType, Codec] = None,
        compressed_topics: Optional[Iterable[str]] = None,
    ):
        self.codec = get_codec(compression_codec)

        if isinstance(compressed_topics, str):
            compressed_topics = [compressed_topics]
        self.compressed_topics = (
            frozenset(compressed_topics) if compressed_topics is not None else None
        )

        logger.info(
            "Initialized compression config",
            codec=self.codec.name if self.codec else "none",
            compressed_topics=sorted(self.compressed_topics) if self.compressed_topics else None,
        )

    def codec_for_topic(self, topic: str) -> Optional[Codec]:
        """
        Codec to apply to ``topic``'s messages.

        Returns:
            Codec, or None to send uncompressed
        """
        if self.codec is None:
            return None

        if self.compressed_topics is None or topic in self.compressed_topics:
            return self.codec

        return None
