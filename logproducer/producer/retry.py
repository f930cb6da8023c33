"""
Retry rounds with fixed backoff for the synchronous producer.

A send is attempted in rounds. Each round dispatches whatever is still
unsent; between rounds the calling thread sleeps for a fixed backoff.
"""

import time
from dataclasses import dataclass
from typing import Iterator

from logproducer.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_send_retries: Rounds attempted after the first one
        retry_backoff_ms: Sleep between rounds in milliseconds
    """
    max_send_retries: int = 3
    retry_backoff_ms: int = 100

    def __post_init__(self) -> None:
        if self.max_send_retries < 0:
            raise ValueError(f"max_send_retries must be >= 0, got {self.max_send_retries}")
        if self.retry_backoff_ms < 0:
            raise ValueError(f"retry_backoff_ms must be >= 0, got {self.retry_backoff_ms}")


class RetryManager:
    """
    Drives the round loop of a send.

    Example:
        manager = RetryManager(RetryConfig(max_send_retries=2))
        for attempt in manager.rounds():
            if dispatch():
                break
            if manager.has_next_round(attempt):
                manager.backoff(attempt)
    """

    def __init__(self, config: RetryConfig):
        self.config = config

    @property
    def max_rounds(self) -> int:
        return self.config.max_send_retries + 1

    def rounds(self) -> Iterator[int]:
        """Yield round numbers 0 .. max_send_retries."""
        return iter(range(self.max_rounds))

    def has_next_round(self, attempt: int) -> bool:
        return attempt + 1 < self.max_rounds

    def backoff(self, attempt: int) -> None:
        """Block the calling thread for the configured backoff."""
        logger.debug(
            "Backing off before next round",
            attempt=attempt,
            backoff_ms=self.config.retry_backoff_ms,
        )
        time.sleep(self.config.retry_backoff_ms / 1000.0)
