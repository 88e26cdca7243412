"""Integration test configuration and fixtures.

Pipeline scenarios run against the in-memory collaborators and the mock
provider. Live-provider tests are skipped unless the provider is configured.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
import pytest_asyncio
from dotenv import load_dotenv

# Load .env file at import time so provider availability checks work
load_dotenv()

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from governance_os.providers import OllamaProvider


def _ollama_available() -> bool:
    """Check if Ollama is configured and reachable."""
    host = os.getenv("OLLAMA_HOST")
    if not host:
        return False

    try:
        import httpx

        response = httpx.get(f"{host}/api/tags", timeout=5.0)
        return response.status_code == 200
    except (httpx.HTTPError, OSError):
        return False


@pytest_asyncio.fixture
async def ollama() -> AsyncGenerator[OllamaProvider, None]:
    """Live Ollama provider; skipped if OLLAMA_HOST is not configured."""
    if not _ollama_available():
        pytest.skip("OLLAMA_HOST not set or Ollama not reachable")

    from governance_os.providers import OllamaProvider

    provider = OllamaProvider(max_retries=1)
    yield provider
    await provider.close()
