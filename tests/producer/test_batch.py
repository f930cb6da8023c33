"""
Tests for per-send message bookkeeping.
"""

import pytest

from logproducer.producer.batch import MessagesForBroker, MessagesToSend, MessageToSend
from logproducer.producer.compression import CompressionConfig, codec_for_id
from logproducer.producer.conductor import MessageConductor
from logproducer.producer.metadata import ClusterMetadata
from logproducer.protocol.responses import (
    BrokerInfo,
    MetadataResponse,
    PartitionMetadataStruct,
    TopicMetadataStruct,
)


@pytest.fixture
def metadata():
    """Topic "events" with partition 0 on broker 1, partition 1 on broker 2."""
    cluster = ClusterMetadata()
    cluster.update(
        MetadataResponse(
            correlation_id=1,
            brokers=[BrokerInfo(1, "h1", 9092), BrokerInfo(2, "h2", 9092)],
            topics=[
                TopicMetadataStruct(
                    0,
                    "events",
                    [
                        PartitionMetadataStruct(0, 0, 1, [1, 2], [1, 2]),
                        PartitionMetadataStruct(0, 1, 2, [1, 2], [1, 2]),
                    ],
                )
            ],
        )
    )
    return cluster


class TestMessageToSend:
    """Test MessageToSend validation."""

    def test_valid(self):
        """Test a keyed message with an explicit partition."""
        message = MessageToSend("events", b"v", key=b"k", partition=0)

        assert message.topic == "events"
        assert message.partition == 0

    @pytest.mark.parametrize(
        "kwargs,error",
        [
            ({"topic": "", "value": b"v"}, ValueError),
            ({"topic": "events", "value": "text"}, TypeError),
            ({"topic": "events", "value": b"v", "key": "k"}, TypeError),
            ({"topic": "events", "value": b"v", "partition": -1}, ValueError),
        ],
    )
    def test_invalid(self, kwargs, error):
        """Test rejected field values."""
        with pytest.raises(error):
            MessageToSend(**kwargs)


class TestMessagesForBroker:
    """Test MessagesForBroker."""

    def test_groups_by_topic_and_partition(self):
        """Test grouping and index tracking."""
        batch = MessagesForBroker(1)
        batch.add(0, MessageToSend("a", b"1"), 0)
        batch.add(1, MessageToSend("a", b"2"), 1)
        batch.add(2, MessageToSend("b", b"3"), 0)
        batch.add(3, MessageToSend("a", b"4"), 0)

        assert sorted(batch.topic_partitions()) == [("a", 0), ("a", 1), ("b", 0)]
        assert [m.value for m in batch.messages_for("a", 0)] == [b"1", b"4"]
        assert sorted(batch.message_indexes()) == [0, 1, 2, 3]
        assert len(batch) == 4

    def test_only(self):
        """Test narrowing to accepted partitions."""
        batch = MessagesForBroker(1)
        batch.add(0, MessageToSend("a", b"1"), 0)
        batch.add(1, MessageToSend("a", b"2"), 1)

        narrowed = batch.only([("a", 1)])

        assert narrowed.broker_id == 1
        assert narrowed.message_indexes() == [1]

    def test_build_protocol_objects(self):
        """Test one message set per partition, keys preserved."""
        batch = MessagesForBroker(1)
        batch.add(0, MessageToSend("a", b"1", key=b"k"), 0)
        batch.add(1, MessageToSend("a", b"2"), 0)

        [topic] = batch.build_protocol_objects(CompressionConfig())

        assert topic.topic == "a"
        [partition] = topic.messages_for_partitions
        assert partition.partition == 0
        entries = list(partition.message_set)
        assert [(e.message.key, e.message.value) for e in entries] == [(b"k", b"1"), (None, b"2")]

    def test_build_protocol_objects_compressed(self):
        """Test compressed topics get a single wrapper message."""
        batch = MessagesForBroker(1)
        batch.add(0, MessageToSend("a", b"1"), 0)
        batch.add(1, MessageToSend("a", b"2"), 0)
        batch.add(2, MessageToSend("b", b"3"), 0)

        topics = batch.build_protocol_objects(CompressionConfig("gzip", ["a"]))
        by_topic = {t.topic: t.messages_for_partitions[0].message_set for t in topics}

        assert len(by_topic["a"]) == 1
        assert by_topic["a"].messages[0].message.compression_codec == 1
        assert [e.message.value for e in by_topic["a"].flatten(codec_for_id)] == [b"1", b"2"]
        assert by_topic["b"].messages[0].message.compression_codec == 0


class TestMessagesToSend:
    """Test MessagesToSend."""

    def test_needs_metadata(self, metadata):
        """Test unknown topics need a metadata refresh."""
        known = MessagesToSend([MessageToSend("events", b"v")], metadata)
        unknown = MessagesToSend([MessageToSend("events", b"v"), MessageToSend("other", b"v")], metadata)

        assert not known.needs_metadata()
        assert unknown.needs_metadata()
        assert unknown.topic_set() == {"events", "other"}

    def test_messages_for_brokers(self, metadata):
        """Test grouping by leader, ordered by broker id."""
        messages = MessagesToSend(
            [
                MessageToSend("events", b"a", partition=1),
                MessageToSend("events", b"b", partition=0),
                MessageToSend("events", b"c", partition=1),
            ],
            metadata,
        )

        batches = messages.messages_for_brokers(MessageConductor(metadata))

        assert [b.broker_id for b in batches] == [1, 2]
        assert batches[0].message_indexes() == [1]
        assert sorted(batches[1].message_indexes()) == [0, 2]

    def test_unroutable_messages_are_left_out(self, metadata):
        """Test messages for unknown topics or partitions stay unsent."""
        messages = MessagesToSend(
            [
                MessageToSend("other", b"a"),
                MessageToSend("events", b"b", partition=9),
                MessageToSend("events", b"c", partition=0),
            ],
            metadata,
        )

        batches = messages.messages_for_brokers(MessageConductor(metadata))

        assert len(batches) == 1
        assert batches[0].message_indexes() == [2]

    def test_successfully_sent(self, metadata):
        """Test accepted messages are not regrouped."""
        messages = MessagesToSend(
            [MessageToSend("events", b"a", partition=0), MessageToSend("events", b"b", partition=1)],
            metadata,
        )
        conductor = MessageConductor(metadata)
        first, second = messages.messages_for_brokers(conductor)

        messages.successfully_sent(first)

        assert messages.unsent_count() == 1
        assert not messages.all_sent()
        assert [b.broker_id for b in messages.messages_for_brokers(conductor)] == [2]

        messages.successfully_sent(second)

        assert messages.all_sent()
        assert messages.messages_for_brokers(conductor) == []

    def test_duplicate_messages_tracked_separately(self, metadata):
        """Test identical messages are distinct entries."""
        message = MessageToSend("events", b"same", partition=0)
        messages = MessagesToSend([message, message], metadata)

        [batch] = messages.messages_for_brokers(MessageConductor(metadata))

        assert len(batch) == 2
        messages.successfully_sent(batch.only([]))
        assert messages.unsent_count() == 2
