"""
Shared test fixtures
In-memory backend/notifier and a fixed business clock (2024-06-15 10:00)
"""
from datetime import datetime

import pytest

from franchise_crm.core.config import ConfigManager, Settings
from franchise_crm.core.container import AppContainer
from franchise_crm.domain.models.modules import MODULE_SPECS
from franchise_crm.domain.services.partition_store import PartitionStore
from franchise_crm.domain.services.record_lifecycle import RecordLifecycle
from franchise_crm.domain.services.tenant_registry import TenantRegistry
from franchise_crm.infrastructure.notifications.memory_notifier import MemoryNotifier
from franchise_crm.infrastructure.storage.memory_backend import MemoryBackend
from franchise_crm.utils.clock import BusinessClock


FIXED_NOW = datetime(2024, 6, 15, 10, 0)


@pytest.fixture
def settings():
    return Settings(
        environment="test",
        storage_backend="memory",
        notifier_backend="memory",
        key_namespace="crm:",
        privileged_tenant_id="admin",
        jwt_secret=None,
    )


@pytest.fixture
def clock():
    return BusinessClock("Asia/Kolkata", fixed_now=FIXED_NOW)


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def notifier():
    return MemoryNotifier()


@pytest.fixture
def registry(backend, clock):
    return TenantRegistry(backend, namespace="crm:", privileged_tenant_id="admin", clock=clock)


@pytest.fixture
def stores(backend, notifier):
    return {
        key: PartitionStore(spec, backend, notifier, namespace="crm:", privileged_tenant_id="admin")
        for key, spec in MODULE_SPECS.items()
    }


@pytest.fixture
def lifecycle(clock):
    return RecordLifecycle(clock=clock)


@pytest.fixture
def container(settings, backend, notifier, clock, tmp_path):
    """Container wired to memory backends, with an empty YAML config dir."""
    config = ConfigManager(env="test", config_dir=tmp_path)
    return AppContainer(settings, config, backend, notifier, clock=clock)
