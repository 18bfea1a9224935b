"""Construction of the service graph used by the HTTP handlers.

Every external client is built once here and injected, so handlers never
reach for module-level singletons and tests can swap the whole container
through ``app.dependency_overrides``.
"""

from dataclasses import dataclass
from functools import lru_cache

from services.agent.anomaly import AnomalyDetector
from services.agent.categorization import CategorySuggester
from services.agent.email import ReminderEmailDrafter
from services.agent.extraction import InvoiceExtractor
from services.browser.driver import BrowserAutomationDriver
from services.browser.session import HyperbrowserSessions
from services.invoices.service import InvoiceService
from services.llm.factory import create_completion_backend
from services.payments.gateway import StripeGateway
from services.payments.processor import PaymentProcessor
from services.records.credentials import CredentialVault
from services.records.factory import create_repository
from services.records.repository import InvoiceRepository
from services.shared.config import Settings, get_settings
from services.storage.service import DocumentStore


@dataclass
class ServiceContainer:
    settings: Settings
    repository: InvoiceRepository
    invoices: InvoiceService
    anomaly_detector: AnomalyDetector
    email_drafter: ReminderEmailDrafter
    payments: PaymentProcessor
    vault: CredentialVault
    storage: DocumentStore
    browser: BrowserAutomationDriver


def build_services(settings: Settings) -> ServiceContainer:
    repository = create_repository(settings)
    backend = create_completion_backend(settings)
    storage = DocumentStore(settings)
    vault = CredentialVault(settings)

    return ServiceContainer(
        settings=settings,
        repository=repository,
        invoices=InvoiceService(
            settings,
            repository,
            InvoiceExtractor(backend),
            CategorySuggester(backend),
            storage,
        ),
        anomaly_detector=AnomalyDetector(settings, repository, backend),
        email_drafter=ReminderEmailDrafter(backend),
        payments=PaymentProcessor(repository, StripeGateway(settings)),
        vault=vault,
        storage=storage,
        browser=BrowserAutomationDriver(
            settings, repository, vault, HyperbrowserSessions(settings)
        ),
    )


@lru_cache
def get_services() -> ServiceContainer:
    """FastAPI dependency returning the process-wide service container."""
    return build_services(get_settings())
