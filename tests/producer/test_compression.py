"""
Tests for compression codecs and per-topic compression settings.
"""

import pytest

from logproducer.producer.compression import (
    CompressionConfig,
    CompressionType,
    GzipCodec,
    codec_for_id,
    get_codec,
)


class TestGetCodec:
    """Test codec resolution."""

    def test_none(self):
        """Test no codec."""
        assert get_codec(None) is None
        assert get_codec("none") is None
        assert get_codec(CompressionType.NONE) is None

    def test_gzip_by_name_and_id(self):
        """Test gzip by name, enum and id."""
        assert isinstance(get_codec("gzip"), GzipCodec)
        assert isinstance(get_codec("GZIP"), GzipCodec)
        assert isinstance(get_codec(CompressionType.GZIP), GzipCodec)
        assert isinstance(get_codec(1), GzipCodec)

    def test_codec_instance_passthrough(self):
        """Test a Codec instance is used as is."""
        codec = GzipCodec(compresslevel=1)

        assert get_codec(codec) is codec

    def test_unknown(self):
        """Test unknown codecs."""
        with pytest.raises(ValueError):
            get_codec("lz4")
        with pytest.raises(ValueError):
            get_codec(9)

    def test_codec_for_id_rejects_uncompressed(self):
        """Test id 0 has no codec."""
        with pytest.raises(ValueError):
            codec_for_id(0)


class TestGzipCodec:
    """Test GzipCodec."""

    def test_roundtrip(self):
        """Test compress then decompress."""
        codec = GzipCodec()
        data = b"log line\n" * 200

        compressed = codec.compress(data)

        assert len(compressed) < len(data)
        assert codec.decompress(compressed) == data
        assert codec.codec_id == 1


class TestSnappyCodec:
    """Test SnappyCodec."""

    def test_roundtrip(self):
        """Test snappy when python-snappy is installed."""
        pytest.importorskip("snappy")

        codec = get_codec("snappy")
        data = b"abc" * 100

        assert codec.codec_id == 2
        assert codec.decompress(codec.compress(data)) == data


class TestCompressionConfig:
    """Test CompressionConfig topic selection."""

    def test_no_codec(self):
        """Test nothing is compressed without a codec."""
        config = CompressionConfig(None, ["events"])

        assert config.codec_for_topic("events") is None

    def test_codec_without_topics_compresses_all(self):
        """Test codec applies to every topic when no list is given."""
        config = CompressionConfig("gzip")

        assert isinstance(config.codec_for_topic("events"), GzipCodec)
        assert isinstance(config.codec_for_topic("audit"), GzipCodec)

    def test_codec_with_topics(self):
        """Test only listed topics are compressed."""
        config = CompressionConfig("gzip", ["events"])

        assert isinstance(config.codec_for_topic("events"), GzipCodec)
        assert config.codec_for_topic("audit") is None

    def test_single_topic_string(self):
        """Test a single topic name is accepted."""
        config = CompressionConfig("gzip", "events")

        assert config.compressed_topics == frozenset({"events"})
