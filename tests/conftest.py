"""
Pytest configuration and fixtures for the voice emergency pipeline tests.
"""

import sys
from pathlib import Path

import pytest

# Add project root and src to Python path for imports
project_root = Path(__file__).parent.parent
for path in (project_root, project_root / "src"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from tests.fakes import FakeClock
from tests.fakes import FakeNotifier
from tests.fakes import FakeTranscriptionProvider
from voice_emergency.core.settings import Settings
from voice_emergency.services.interfaces import EmergencyContact
from voice_emergency.sessions.manager import VoiceSessionManager
from voice_emergency.sessions.store import InMemoryEventLog
from voice_emergency.sessions.store import InMemorySessionStore


@pytest.fixture
def clock():
    """Provide a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def settings():
    """Settings with retries that do not sleep."""
    return Settings(retry_delay_s=0, retry_max_delay_s=0, end_session_max_retries=2)


@pytest.fixture
def event_log():
    return InMemoryEventLog()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def manager(settings, store, event_log, clock):
    """Session manager over in-memory storage and a fake clock."""
    return VoiceSessionManager(settings=settings, store=store, event_log=event_log, clock=clock)


@pytest.fixture
def provider():
    return FakeTranscriptionProvider()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def contacts():
    return [
        EmergencyContact(name="Ada", phone="+2348000000001", relationship="sister"),
        EmergencyContact(name="Tunde", phone="+2348000000002", relationship="friend"),
    ]


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers automatically."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        if "slow" in item.name or "integration" in str(item.fspath):
            item.add_marker(pytest.mark.slow)
