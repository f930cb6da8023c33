"""Shared fixtures: an in-memory cluster and a loopback broker stub."""

import socket
import struct
import threading
from typing import Callable, Dict, List, Optional, Set, Tuple

import pytest

from logproducer.errors import ConnectionFailedError
from logproducer.producer.compression import codec_for_id
from logproducer.protocol.responses import (
    BrokerInfo,
    MetadataResponse,
    PartitionMetadataStruct,
    PartitionProduceResult,
    ProduceResponse,
    TopicMetadataStruct,
    TopicProduceResponse,
)


class FakeConnection:
    """Stands in for Connection, answering from a FakeCluster."""

    def __init__(self, cluster: "FakeCluster", host: str, port: int, client_id: str, socket_timeout_ms=None):
        self.cluster = cluster
        self.host = host
        self.port = port
        self.client_id = client_id
        self.socket_timeout_ms = socket_timeout_ms
        self.closed = False

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def _check_up(self) -> None:
        if self.address in self.cluster.down:
            raise ConnectionFailedError(f"{self.address} is down")

    def topic_metadata(self, topic_names):
        self._check_up()
        self.cluster.metadata_calls.append((self.address, list(topic_names)))
        return self.cluster.metadata_response(topic_names)

    def produce(self, required_acks, timeout_ms, messages_for_topics):
        self._check_up()
        failure = self.cluster.produce_failures.get(self.address)
        if failure is not None:
            raise failure
        return self.cluster.handle_produce(self.address, required_acks, timeout_ms, messages_for_topics)

    def close(self) -> None:
        self.closed = True


class FakeCluster:
    """
    In-memory cluster state.

    Brokers are addressed as "broker<id>:9092". Produce requests are
    accepted when the receiving broker leads the partition and rejected with
    error 6 otherwise.
    """

    def __init__(self):
        self.brokers: Dict[int, Tuple[str, int]] = {}
        self.partition_leaders: Dict[Tuple[str, int], int] = {}
        self.down: Set[str] = set()
        self.produce_failures: Dict[str, Exception] = {}
        self.forced_errors: Dict[Tuple[int, str, int], List[int]] = {}
        self.leader_moves: Dict[Tuple[str, int], int] = {}
        self.metadata_calls: List[Tuple[str, List[str]]] = []
        self.produce_calls: List[dict] = []
        self.log: Dict[Tuple[str, int], List[bytes]] = {}
        self.connections: List[FakeConnection] = []

    def add_broker(self, broker_id: int) -> str:
        self.brokers[broker_id] = (f"broker{broker_id}", 9092)
        return self.address_of(broker_id)

    def address_of(self, broker_id: int) -> str:
        host, port = self.brokers[broker_id]
        return f"{host}:{port}"

    def broker_id_at(self, address: str) -> Optional[int]:
        for broker_id in self.brokers:
            if self.address_of(broker_id) == address:
                return broker_id
        return None

    def add_topic(self, topic: str, leaders: List[int]) -> None:
        for partition, leader in enumerate(leaders):
            self.partition_leaders[(topic, partition)] = leader

    def partitions_of(self, topic: str) -> List[int]:
        return sorted(p for t, p in self.partition_leaders if t == topic)

    def fail_produce(self, broker_id: int, topic: str, partition: int, *errors: int) -> None:
        self.forced_errors[(broker_id, topic, partition)] = list(errors)

    def connection_factory(self, host, port, client_id, socket_timeout_ms=None) -> FakeConnection:
        connection = FakeConnection(self, host, port, client_id, socket_timeout_ms)
        self.connections.append(connection)
        return connection

    def metadata_response(self, topic_names) -> MetadataResponse:
        names = list(topic_names) or sorted({t for t, _ in self.partition_leaders})
        topics = []
        for name in names:
            partitions = self.partitions_of(name)
            if not partitions:
                topics.append(TopicMetadataStruct(error=3, name=name, partitions=[]))
                continue
            topics.append(
                TopicMetadataStruct(
                    error=0,
                    name=name,
                    partitions=[
                        PartitionMetadataStruct(
                            error=0,
                            id=p,
                            leader=self.partition_leaders[(name, p)],
                            replicas=sorted(self.brokers),
                            isr=sorted(self.brokers),
                        )
                        for p in partitions
                    ],
                )
            )
        brokers = [BrokerInfo(i, h, p) for i, (h, p) in sorted(self.brokers.items())]
        return MetadataResponse(correlation_id=1, brokers=brokers, topics=topics)

    def handle_produce(self, address, required_acks, timeout_ms, messages_for_topics):
        broker_id = self.broker_id_at(address)
        self.produce_calls.append(
            {
                "broker_id": broker_id,
                "required_acks": required_acks,
                "timeout_ms": timeout_ms,
                "messages_for_topics": messages_for_topics,
            }
        )

        topic_responses = []
        for messages_for_topic in messages_for_topics:
            topic = messages_for_topic.topic
            results = []
            for messages_for_partition in messages_for_topic.messages_for_partitions:
                partition = messages_for_partition.partition
                error = self._produce_error(broker_id, topic, partition)
                if error == 0:
                    values = [
                        entry.message.value
                        for entry in messages_for_partition.message_set.flatten(codec_for_id)
                    ]
                    self.log.setdefault((topic, partition), []).extend(values)
                results.append(PartitionProduceResult(partition, error, 0))
            topic_responses.append(TopicProduceResponse(topic, results))

        if required_acks == 0:
            return None
        return ProduceResponse(correlation_id=1, topic_responses=topic_responses)

    def _produce_error(self, broker_id, topic, partition) -> int:
        queued = self.forced_errors.get((broker_id, topic, partition))
        if queued:
            return queued.pop(0)

        if (topic, partition) in self.leader_moves:
            self.partition_leaders[(topic, partition)] = self.leader_moves.pop((topic, partition))

        if self.partition_leaders.get((topic, partition)) != broker_id:
            return 6
        return 0

    def produce_calls_to(self, broker_id: int) -> List[dict]:
        return [c for c in self.produce_calls if c["broker_id"] == broker_id]


@pytest.fixture
def cluster():
    """Two brokers (1 and 2) with no topics."""
    fake = FakeCluster()
    fake.add_broker(1)
    fake.add_broker(2)
    return fake


CLOSE = object()


def recv_exactly(sock: socket.socket, size: int) -> bytes:
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            return b""
        data += chunk
    return data


class BrokerStub:
    """
    Loopback TCP server speaking the length-prefixed framing.

    ``responder(payload, connection_index)`` returns response bytes, None to
    send nothing, or CLOSE to drop the connection.
    """

    def __init__(self, responder: Callable):
        self.responder = responder
        self.requests: List[bytes] = []
        self.accepted = 0

        self._server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._server.bind(("127.0.0.1", 0))
        self._server.listen(8)
        self.host, self.port = self._server.getsockname()

        self._clients: List[socket.socket] = []
        self._thread = threading.Thread(target=self._accept_loop, daemon=True)
        self._thread.start()

    def _accept_loop(self) -> None:
        while True:
            try:
                client, _ = self._server.accept()
            except OSError:
                return
            index = self.accepted
            self.accepted += 1
            self._clients.append(client)
            threading.Thread(target=self._serve, args=(client, index), daemon=True).start()

    def _serve(self, client: socket.socket, index: int) -> None:
        try:
            while True:
                header = recv_exactly(client, 4)
                if not header:
                    return
                (length,) = struct.unpack(">i", header)
                payload = recv_exactly(client, length)
                self.requests.append(payload)

                response = self.responder(payload, index)
                if response is CLOSE:
                    return
                if response is not None:
                    client.sendall(struct.pack(">i", len(response)) + response)
        except OSError:
            return
        finally:
            client.close()

    def close(self) -> None:
        self._server.close()
        for client in self._clients:
            client.close()


@pytest.fixture
def broker_stub():
    """Factory for loopback broker stubs, closed after the test."""
    stubs = []

    def make(responder: Callable) -> BrokerStub:
        stub = BrokerStub(responder)
        stubs.append(stub)
        return stub

    yield make

    for stub in stubs:
        stub.close()


@pytest.fixture
def close_marker():
    """Sentinel a stub responder returns to drop the connection."""
    return CLOSE
