"""
Exponential backoff for per-part retries.
"""

from dataclasses import dataclass
from typing import Optional

from cloudfile.models.upload_model import ChunkUploadConfig


@dataclass(frozen=True)
class RetryPolicy:
    """
    Decide whether a failed attempt is retried and how long to wait first.

    Attempts are numbered from 1. Attempt ``n`` failing is followed by a retry
    while ``n <= max_retries``; the wait before that retry is
    ``base_delay_ms * 2 ** (n - 1)``, clamped to ``max_delay_ms`` when set.
    """

    max_retries: int
    base_delay_ms: int
    max_delay_ms: Optional[int] = None

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms must be >= 0")

    @classmethod
    def from_config(cls, config: ChunkUploadConfig) -> "RetryPolicy":
        return cls(
            max_retries=config.max_retries,
            base_delay_ms=config.retry_delay,
            max_delay_ms=config.max_retry_delay,
        )

    def should_retry(self, attempt: int) -> bool:
        return attempt <= self.max_retries

    def delay_ms(self, attempt: int) -> int:
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        delay = self.base_delay_ms * 2 ** (attempt - 1)
        if self.max_delay_ms is not None:
            delay = min(delay, self.max_delay_ms)
        return delay

    def delay_seconds(self, attempt: int) -> float:
        return self.delay_ms(attempt) / 1000.0
