"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone

import pytest

from usage_tally.clients.database import SqliteDatabase
from usage_tally.clients.event_store import EventStore
from usage_tally.clients.inventory_store import AccountServiceInventoryRepository
from usage_tally.clients.snapshot_store import TallySnapshotRepository
from usage_tally.models.event import Event
from usage_tally.models.tag_profile import TagProfile
from usage_tally.services.metric_usage_collector import MetricUsageCollector
from usage_tally.services.snapshot_roller import SnapshotRoller
from usage_tally.services.tag_profile_service import TagProfileService
from usage_tally.utils.clock import ApplicationClock

# "Now" for every test: well after the hours the tests collect
NOW = datetime(2026, 3, 10, 12, 30, tzinfo=timezone.utc)
HOUR = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


# =============================================================================
# Environment and Configuration Fixtures
# =============================================================================

@pytest.fixture
def test_env(monkeypatch):
    """Set up test environment variables."""
    test_vars = {
        "AWS_REGION": "us-east-1",
        "REDIS_URL": "redis://localhost:6379/0",
        "DATABASE_PATH": ":memory:",
        "LOG_LEVEL": "DEBUG",
        "ENVIRONMENT": "test",
    }
    for key, value in test_vars.items():
        monkeypatch.setenv(key, value)
    return test_vars


@pytest.fixture
def clock():
    """Clock frozen at NOW."""
    return ApplicationClock.fixed(NOW)


# =============================================================================
# Tag Profile Fixtures
# =============================================================================

@pytest.fixture
def tag_profile_data():
    """Minimal tag profile: engineering id 42 maps to RHEL."""
    return {
        "tag_mappings": [
            {"value": "42", "value_type": "eng_id", "tags": ["RHEL"]},
            {"value": "99", "value_type": "eng_id", "tags": ["OpenShift Dedicated"]},
            {"value": "Red Hat Enterprise Linux Server", "value_type": "role", "tags": ["RHEL Server"]},
        ],
        "tag_metadata": [
            {"tags": ["RHEL", "RHEL Server"]},
            {"tags": ["OpenShift Dedicated"], "unlimited_usage": True},
            {
                "tags": ["RHEL for Defaults"],
                "service_type": "Defaulted",
                "default_sla": "Standard",
                "default_usage": "Production",
                "default_provider": "aws",
                "billing_account_id": "ba-1",
            },
        ],
    }


@pytest.fixture
def tag_profile_service(tag_profile_data):
    return TagProfileService(profile=TagProfile(**tag_profile_data))


# =============================================================================
# Storage Fixtures
# =============================================================================

@pytest.fixture
def database():
    db = SqliteDatabase(":memory:")
    yield db
    db.close()


@pytest.fixture
def event_store(database):
    return EventStore(database)


@pytest.fixture
def inventory_repository(database):
    return AccountServiceInventoryRepository(database)


@pytest.fixture
def snapshot_repository(database):
    return TallySnapshotRepository(database)


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def collector(tag_profile_service, inventory_repository, event_store, clock):
    return MetricUsageCollector(
        tag_profile=tag_profile_service,
        inventory_repository=inventory_repository,
        event_store=event_store,
        clock=clock,
    )


@pytest.fixture
def roller(snapshot_repository, clock):
    return SnapshotRoller(snapshot_repository, clock)


@pytest.fixture
def make_event():
    """Factory for events with sensible defaults."""

    def _make_event(**overrides) -> Event:
        data = {
            "account_id": "A",
            "service_type": "S",
            "instance_id": "i-1",
            "timestamp": HOUR.replace(minute=15),
            "product_ids": ["42"],
            "sla": "Premium",
            "measurements": {"Cores": 4.0},
        }
        data.update(overrides)
        return Event(**data)

    return _make_event
