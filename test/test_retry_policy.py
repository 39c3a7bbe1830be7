import pytest

from cloudfile.core.retry_policy import RetryPolicy
from cloudfile.models.upload_model import ChunkUploadConfig


class TestRetryPolicy:
    """Test suite for RetryPolicy."""

    def test_should_retry(self) -> None:
        """Test that attempt n is retried while n <= max_retries."""
        policy = RetryPolicy(max_retries=3, base_delay_ms=100)

        assert [policy.should_retry(n) for n in range(1, 6)] == [True, True, True, False, False]

    def test_no_retries(self) -> None:
        assert not RetryPolicy(max_retries=0, base_delay_ms=100).should_retry(1)

    def test_exponential_delay(self) -> None:
        """Test that the delay doubles with every attempt."""
        policy = RetryPolicy(max_retries=5, base_delay_ms=250)

        assert [policy.delay_ms(n) for n in range(1, 5)] == [250, 500, 1000, 2000]
        assert policy.delay_seconds(2) == 0.5

    def test_delay_cap(self) -> None:
        """Test that the delay never exceeds the configured maximum."""
        policy = RetryPolicy(max_retries=10, base_delay_ms=1000, max_delay_ms=3000)

        assert [policy.delay_ms(n) for n in range(1, 5)] == [1000, 2000, 3000, 3000]

    def test_invalid_attempt(self) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=1, base_delay_ms=1).delay_ms(0)

    @pytest.mark.parametrize(("max_retries", "base_delay_ms"), [(-1, 0), (0, -1)])
    def test_invalid_policy(self, max_retries: int, base_delay_ms: int) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=max_retries, base_delay_ms=base_delay_ms)

    def test_from_config(self) -> None:
        """Test building the policy from a chunk configuration."""
        config = ChunkUploadConfig(max_retries=5, retry_delay=200, max_retry_delay=1500)

        policy = RetryPolicy.from_config(config)

        assert policy == RetryPolicy(max_retries=5, base_delay_ms=200, max_delay_ms=1500)
