import io

import pytest
from PIL import Image

from listing_engine.utils.retry import RetryExecutor


@pytest.fixture
def make_jpeg():
    """Factory for small, real JPEG payloads"""
    def _make(color="white", size=(32, 32)) -> bytes:
        buffer = io.BytesIO()
        Image.new("RGB", size, color=color).save(buffer, format="JPEG")
        return buffer.getvalue()
    return _make


@pytest.fixture
def sleeps():
    """Delays requested by a RetryExecutor built with fast_retry"""
    return []


@pytest.fixture
def fast_retry(sleeps):
    """RetryExecutor with default policy whose backoff sleeps are recorded instead of awaited"""
    async def fake_sleep(seconds):
        sleeps.append(seconds)
    return RetryExecutor(max_attempts=3, initial_delay=1.5, backoff_factor=2.0, sleep=fake_sleep)
