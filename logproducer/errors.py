"""
Exceptions and broker error codes.

Transport and routing failures are raised as exceptions. Broker-side
failures arrive as per-partition error codes inside responses and are
never raised; the producer reads them to decide what to retry.
"""

from typing import Dict


class LogProducerError(Exception):
    """Base class for all producer client errors."""
    pass


class ConnectionFailedError(LogProducerError):
    """
    A broker connection could not be opened or broke during I/O.

    The connection that raised it has already been invalidated; the next
    call on it reconnects.
    """
    pass


class UnableToFetchMetadataError(LogProducerError):
    """No seed broker answered a metadata request."""
    pass


class UnknownBrokerError(LogProducerError):
    """A request was addressed to a broker id the pool does not know."""
    pass


class InvalidPartitionError(LogProducerError):
    """A partitioner returned a partition outside the topic's range."""
    pass


class ProtocolError(LogProducerError):
    """A response could not be decoded."""
    pass


class ChecksumError(ProtocolError):
    """A message's CRC did not match its contents."""
    pass


NO_ERROR = 0
UNKNOWN_TOPIC_OR_PARTITION = 3
LEADER_NOT_AVAILABLE = 5
NOT_LEADER_FOR_PARTITION = 6

ERROR_CODES: Dict[int, str] = {
    -1: "UNKNOWN",
    0: "NO_ERROR",
    1: "OFFSET_OUT_OF_RANGE",
    2: "INVALID_MESSAGE",
    3: "UNKNOWN_TOPIC_OR_PARTITION",
    4: "INVALID_MESSAGE_SIZE",
    5: "LEADER_NOT_AVAILABLE",
    6: "NOT_LEADER_FOR_PARTITION",
    7: "REQUEST_TIMED_OUT",
    8: "BROKER_NOT_AVAILABLE",
    9: "REPLICA_NOT_AVAILABLE",
    10: "MESSAGE_SIZE_TOO_LARGE",
    11: "STALE_CONTROLLER_EPOCH",
    12: "OFFSET_METADATA_TOO_LARGE",
}


def error_name(code: int) -> str:
    """Human-readable name for a broker error code."""
    return ERROR_CODES.get(code, f"UNRECOGNIZED({code})")
