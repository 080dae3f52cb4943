"""Shared test fixtures for all test modules."""

import pytest

from lexicard.models.config import BatchConfig, LLMConfig, RetryConfig


@pytest.fixture
def llm_config():
    """Create test LLM configuration."""
    return LLMConfig(
        endpoint="https://api.test.com/v1",
        api_key="test-key",
        model="test-model",
        provider="openai",
    )


@pytest.fixture
def fast_retry():
    """Retry policy with no real waiting."""
    return RetryConfig(max_retries=2, base_delay=0.0, max_delay=0.0)


@pytest.fixture
def no_delay_batches():
    """Batch config with no inter-batch throttling."""
    return BatchConfig(batch_size=5, batch_delay=0.0)
