"""
Pytest configuration and shared fixtures
"""

from pathlib import Path

import pytest

from event_ledger.kernel.messages import DefaultHeadersDecorator
from event_ledger.kernel.payloads import PayloadRegistry
from event_ledger.kernel.repository import MessageRepository
from event_ledger.kernel.serializer import JsonMessageSerializer
from event_ledger.kernel.time import TestTimeProvider
from event_ledger.storage.sqlite import SQLiteEventBackend
from tests.helpers import T0, build_registry


@pytest.fixture
def temp_db(tmp_path: Path) -> Path:
    """Path for a fresh database file inside the test's temp directory"""
    return tmp_path / "ledger.db"


@pytest.fixture
def backend(temp_db: Path) -> SQLiteEventBackend:
    """
    SQLite backend with a tiny page size

    Two rows per page makes every multi-message test cross page boundaries.
    """
    return SQLiteEventBackend(temp_db, page_size=2)


@pytest.fixture
def registry() -> PayloadRegistry:
    return build_registry()


@pytest.fixture
def serializer(registry: PayloadRegistry) -> JsonMessageSerializer:
    return JsonMessageSerializer(registry)


@pytest.fixture
def repository(
    backend: SQLiteEventBackend, serializer: JsonMessageSerializer
) -> MessageRepository:
    return MessageRepository(backend, serializer)


@pytest.fixture
def test_time() -> TestTimeProvider:
    """Controllable clock pinned to 2020-01-01 00:00:00 UTC"""
    return TestTimeProvider(T0)


@pytest.fixture
def decorator(registry: PayloadRegistry, test_time: TestTimeProvider) -> DefaultHeadersDecorator:
    return DefaultHeadersDecorator(registry, test_time)
