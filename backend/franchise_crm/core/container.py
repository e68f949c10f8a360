"""
Application Container
Builds and owns the long-lived services (backend, notifier, stores, registry)
"""
import asyncio
import logging
from typing import Dict, List, Optional, Set

from franchise_crm.core.config import ConfigManager, Settings
from franchise_crm.domain.interfaces.change_notifier import ChangeNotifier
from franchise_crm.domain.interfaces.kv_backend import KeyValueBackend
from franchise_crm.domain.models.modules import MODULE_SPECS, ModuleSpec, with_default_notes
from franchise_crm.domain.models.tenant import IdentityContext
from franchise_crm.domain.services.aggregation_gateway import AggregationGateway
from franchise_crm.domain.services.campaign_engine import CampaignEngine
from franchise_crm.domain.services.campaign_session_manager import CampaignSessionManager
from franchise_crm.domain.services.message_template_manager import MessageTemplateManager
from franchise_crm.domain.services.partition_store import PartitionStore
from franchise_crm.domain.services.record_lifecycle import RecordLifecycle
from franchise_crm.domain.services.record_service import EnrichmentHook, RecordService
from franchise_crm.domain.services.tenant_registry import TenantRegistry
from franchise_crm.infrastructure.notifications.factory import NotifierFactory
from franchise_crm.infrastructure.storage.factory import StorageFactory
from franchise_crm.utils.clock import BusinessClock

logger = logging.getLogger(__name__)


class AppContainer:
    """
    Wiring for one running application.

    Stored on app.state; request handlers derive per-identity gateways
    and services from it instead of touching module-level globals.
    """

    def __init__(
        self,
        settings: Settings,
        config: ConfigManager,
        backend: KeyValueBackend,
        notifier: ChangeNotifier,
        clock: Optional[BusinessClock] = None,
        hooks: Optional[List[EnrichmentHook]] = None
    ):
        self.settings = settings
        self.config = config
        self.backend = backend
        self.notifier = notifier
        self.clock = clock or BusinessClock(settings.business_timezone)
        self.hooks = list(hooks or [])
        self.hook_tasks: Set[asyncio.Task] = set()

        self.specs: Dict[str, ModuleSpec] = {
            key: with_default_notes(spec, config.get_module_config(key).get("default_notes", {}))
            for key, spec in MODULE_SPECS.items()
        }
        self.registry = TenantRegistry(
            backend,
            namespace=settings.key_namespace,
            privileged_tenant_id=settings.privileged_tenant_id,
            head_office_name=settings.head_office_name,
            clock=self.clock,
        )
        self.stores: Dict[str, PartitionStore] = {
            key: PartitionStore(
                spec,
                backend,
                notifier,
                namespace=settings.key_namespace,
                privileged_tenant_id=settings.privileged_tenant_id,
            )
            for key, spec in self.specs.items()
        }
        self.lifecycle = RecordLifecycle(clock=self.clock, specs=self.specs)
        self.sessions = CampaignSessionManager()
        self.templates = MessageTemplateManager(config)

    @classmethod
    async def build(
        cls,
        settings: Settings,
        config: Optional[ConfigManager] = None,
        backend: Optional[KeyValueBackend] = None,
        notifier: Optional[ChangeNotifier] = None,
        **kwargs
    ) -> "AppContainer":
        """Create backends from settings unless they are supplied."""
        factory_config = {
            "redis_url": settings.redis_url,
            "key_namespace": settings.key_namespace,
        }
        if backend is None:
            backend = await StorageFactory.create(settings.storage_backend, factory_config)
        if notifier is None:
            notifier = await NotifierFactory.create(settings.notifier_backend, factory_config)

        container = cls(
            settings,
            config or ConfigManager(env=settings.environment),
            backend,
            notifier,
            **kwargs
        )
        logger.info(
            f"Container ready (storage: {backend.name}, "
            f"notifier: {settings.notifier_backend}, modules: {len(container.stores)})"
        )
        return container

    def identity_for(self, tenant_id: str) -> IdentityContext:
        return IdentityContext.for_tenant(tenant_id, self.settings.privileged_tenant_id)

    def gateway_for(self, identity: IdentityContext) -> AggregationGateway:
        return AggregationGateway(
            self.registry,
            self.stores,
            identity,
            scoped_self_tag=self.settings.scoped_self_tag,
        )

    def record_service_for(self, identity: IdentityContext) -> RecordService:
        return RecordService(
            self.gateway_for(identity),
            self.lifecycle,
            hooks=self.hooks,
            background=self.hook_tasks,
        )

    def campaign_engine(self, module: str) -> CampaignEngine:
        if module not in self.specs:
            raise ValueError(f"Unknown module: {module}")
        return CampaignEngine(self.specs[module])

    async def wait_for_hooks(self) -> None:
        """Await enrichment hooks started by any request."""
        if self.hook_tasks:
            await asyncio.gather(*list(self.hook_tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        await self.wait_for_hooks()
        self.sessions.clear()
        await self.notifier.close()
        await self.backend.close()
        logger.info("Container shut down")
