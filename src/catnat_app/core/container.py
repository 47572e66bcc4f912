"""Application dependency container."""

from __future__ import annotations

from dataclasses import dataclass

from catnat_app.core.config import AppConfig, load_config
from catnat_app.repositories.audit_repository import AuditRepository
from catnat_app.repositories.policy_repository import PolicyRepository
from catnat_app.repositories.store_repository import StoreRepository
from catnat_app.services.file_processor import FileProcessor
from catnat_app.services.import_queue import ImportQueue
from catnat_app.services.lifecycle_manager import LifecycleManager
from catnat_app.services.policy_service import PolicyService
from catnat_app.services.pricing_engine import PricingEngine


@dataclass
class ServiceContainer:
    """Wires repositories and services."""

    config: AppConfig
    pricing_engine: PricingEngine
    file_processor: FileProcessor
    lifecycle_manager: LifecycleManager
    policy_service: PolicyService
    import_queue: ImportQueue
    audit_repo: AuditRepository
    store_repo: StoreRepository

    def init_session(self, session_id: str) -> None:
        """Switch every session-scoped service to session_id."""
        self.import_queue.init_session(session_id)


def build_container(config: AppConfig | None = None) -> ServiceContainer:
    """Build dependencies from configuration."""
    config = config or load_config()

    audit_repo = AuditRepository()
    store_repo = StoreRepository()
    policy_repo = PolicyRepository()

    pricing_engine = PricingEngine(
        config.pricing.rates,
        valuation_multiplier=config.pricing.valuation_multiplier,
    )
    file_processor = FileProcessor(config.validation)
    lifecycle_manager = LifecycleManager(audit_repo)
    policy_service = PolicyService(policy_repo, audit_repo, pricing_engine)
    import_queue = ImportQueue(
        file_processor,
        lifecycle_manager,
        policy_service,
        store_repo,
        config.import_queue,
        default_coverage_type=config.pricing.default_coverage_type,
    )

    return ServiceContainer(
        config=config,
        pricing_engine=pricing_engine,
        file_processor=file_processor,
        lifecycle_manager=lifecycle_manager,
        policy_service=policy_service,
        import_queue=import_queue,
        audit_repo=audit_repo,
        store_repo=store_repo,
    )
