"""
Tests for the cluster metadata cache and seed broker parsing.
"""

import pytest

from logproducer.producer import metadata as metadata_module
from logproducer.producer.metadata import BootstrapServerParser, Broker, ClusterMetadata
from logproducer.protocol.responses import (
    BrokerInfo,
    MetadataResponse,
    PartitionMetadataStruct,
    TopicMetadataStruct,
)


def topic_struct(name, leaders, error=0):
    return TopicMetadataStruct(
        error,
        name,
        [PartitionMetadataStruct(0, i, leader, [1, 2], [1, 2]) for i, leader in enumerate(leaders)],
    )


def response(topics, broker_ids=(1, 2)):
    return MetadataResponse(
        correlation_id=1,
        brokers=[BrokerInfo(i, f"host{i}", 9090 + i) for i in broker_ids],
        topics=topics,
    )


class TestClusterMetadata:
    """Test ClusterMetadata."""

    def test_empty(self):
        """Test nothing is known before the first update."""
        cluster = ClusterMetadata()

        assert cluster.brokers == {}
        assert cluster.partition_count("events") == 0
        assert cluster.leader_for("events", 0) is None
        assert not cluster.has_metadata_for("events")
        assert cluster.last_refreshed_at is None

    def test_update(self):
        """Test brokers and leaders after an update."""
        cluster = ClusterMetadata()

        cluster.update(response([topic_struct("events", [1, 2, 1])]))

        assert cluster.brokers[2] == Broker(2, "host2", 9092)
        assert cluster.partition_count("events") == 3
        assert cluster.leader_for("events", 1) == 2
        assert cluster.has_metadata_for("events")
        assert cluster.last_refreshed_at is not None

    def test_no_leader(self):
        """Test leader -1 means no leader."""
        cluster = ClusterMetadata()

        cluster.update(response([topic_struct("events", [1, -1])]))

        assert cluster.leader_for("events", 1) is None
        assert cluster.topic_metadata("events").get_partition(1).leader is None
        assert cluster.partitions_with_leaders("events") == [0]

    def test_leader_not_among_brokers(self):
        """Test a leader id the response did not list is treated as unknown."""
        cluster = ClusterMetadata()

        cluster.update(response([topic_struct("events", [3])]))

        assert cluster.leader_for("events", 0) is None

    def test_unknown_partition(self):
        """Test a partition outside the topic."""
        cluster = ClusterMetadata()
        cluster.update(response([topic_struct("events", [1])]))

        assert cluster.leader_for("events", 5) is None

    def test_update_replaces_brokers(self):
        """Test the broker set is replaced, not merged."""
        cluster = ClusterMetadata()
        cluster.update(response([], broker_ids=(1, 2)))

        cluster.update(response([], broker_ids=(2, 3)))

        assert sorted(cluster.brokers) == [2, 3]

    def test_update_keeps_topics_not_in_response(self):
        """Test topics absent from a refresh keep their last entry."""
        cluster = ClusterMetadata()
        cluster.update(response([topic_struct("a", [1]), topic_struct("b", [2])]))

        cluster.update(response([topic_struct("a", [2])]))

        assert cluster.leader_for("a", 0) == 2
        assert cluster.leader_for("b", 0) == 2

    def test_errored_topic_without_partitions_is_skipped(self):
        """Test an unknown topic stays missing."""
        cluster = ClusterMetadata()

        cluster.update(response([TopicMetadataStruct(3, "missing", [])]))

        assert not cluster.has_metadata_for("missing")

    def test_brokers_returns_copy(self):
        """Test callers cannot mutate the cache."""
        cluster = ClusterMetadata()
        cluster.update(response([]))

        cluster.brokers.clear()

        assert len(cluster.brokers) == 2

    def test_is_stale(self, monkeypatch):
        """Test staleness against the refresh interval."""
        cluster = ClusterMetadata()
        assert cluster.is_stale(1000)

        monkeypatch.setattr(metadata_module, "now_ms", lambda: 10_000)
        cluster.update(response([]))

        monkeypatch.setattr(metadata_module, "now_ms", lambda: 10_500)
        assert not cluster.is_stale(1000)

        monkeypatch.setattr(metadata_module, "now_ms", lambda: 11_001)
        assert cluster.is_stale(1000)

    def test_get_stats(self):
        """Test stats counters."""
        cluster = ClusterMetadata()
        cluster.update(response([topic_struct("events", [1])]))

        stats = cluster.get_stats()

        assert stats["broker_count"] == 2
        assert stats["topic_count"] == 1
        assert stats["age_ms"] >= 0


class TestBootstrapServerParser:
    """Test seed broker parsing."""

    def test_single(self):
        """Test a single address."""
        assert BootstrapServerParser.parse("localhost:9092") == [Broker(0, "localhost", 9092)]

    def test_comma_separated(self):
        """Test a comma separated string."""
        brokers = BootstrapServerParser.parse("a:1, b:2")

        assert [(b.host, b.port) for b in brokers] == [("a", 1), ("b", 2)]

    def test_list_with_ipv6(self):
        """Test a list including a bracketed IPv6 address."""
        brokers = BootstrapServerParser.parse(["a:1", "[::1]:9093"])

        assert brokers[1] == Broker(1, "::1", 9093)

    def test_blank_entries_are_skipped(self):
        """Test trailing and doubled commas are ignored."""
        assert BootstrapServerParser.parse("a:1,") == [Broker(0, "a", 1)]
        assert BootstrapServerParser.parse("a:1,,b:2") == [Broker(0, "a", 1), Broker(1, "b", 2)]
        assert BootstrapServerParser.parse(["a:1", " "]) == [Broker(0, "a", 1)]

    @pytest.mark.parametrize("value", ["localhost", ":9092", "host:abc", [], ","])
    def test_invalid(self, value):
        """Test malformed seed lists."""
        with pytest.raises(ValueError):
            BootstrapServerParser.parse(value)
