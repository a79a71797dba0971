"""
Pytest configuration and shared fixtures.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from hanui_search.config import Settings
from hanui_search.domain.entities.record import SearchRequest

# ============================================================
# Fixtures
# ============================================================


@pytest.fixture
def settings() -> Settings:
    """Settings with short timeouts and no secrets."""
    return Settings(
        ncbi_email="test@example.com",
        kci_api_key="test-kci-key",
        fetch_timeout=2.0,
        batch_timeout=3.0,
        expansion_timeout=1.0,
    )


@pytest.fixture
def search_request() -> SearchRequest:
    return SearchRequest(raw_query="acupuncture", max_results=5)


@pytest.fixture
def mock_generator() -> AsyncMock:
    """TextGenerator double returning a full expansion."""
    generator = AsyncMock()
    generator.generate.return_value = (
        "```json\n"
        '{"english": "acupuncture for low back pain", "kampoIds": ["KT-001", "KT-002"], '
        '"japanese": "腰痛 鍼治療", "chinese": "针刺 腰痛", "trials": "low back pain acupuncture"}\n'
        "```"
    )
    return generator
