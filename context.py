"""Process-wide application context, built once at start-up."""

from dataclasses import dataclass
from typing import Optional

from bank_link import LinkApiClient
from categories import CategoryStore
from config import Settings
from database import init_db, make_engine, make_session_factory
from identity import FirebaseAuthClient, IdentityResolver, LocalStorage
from logger import get_logger, setup_logging
from store import DocumentStore, FirestoreDocumentStore, SqlDocumentStore

logger = get_logger()


@dataclass
class AppContext:
    settings: Settings
    store: DocumentStore
    categories: CategoryStore
    storage: LocalStorage
    auth_client: Optional[FirebaseAuthClient]
    link_client: Optional[LinkApiClient]

    def new_identity_resolver(self) -> IdentityResolver:
        return IdentityResolver(
            self.auth_client,
            self.storage,
            initial_auth_token=self.settings.initial_auth_token,
            block_on_failure=self.settings.bank_link_enabled,
        )


def build_store(settings: Settings) -> DocumentStore:
    if settings.store_backend == "firestore":
        return FirestoreDocumentStore.from_project(settings.firebase_project_id)

    engine = make_engine(settings.database_url)
    init_db(engine)
    return SqlDocumentStore(make_session_factory(engine))


def build_context(settings: Settings, store: Optional[DocumentStore] = None) -> AppContext:
    """Create every shared component in dependency order.

    Raises:
        ConfigurationError: if the settings are incomplete.
    """
    settings.validate()
    setup_logging(settings)

    store = store or build_store(settings)
    auth_client = FirebaseAuthClient(settings.firebase_api_key) if settings.firebase_api_key else None
    link_client = None
    if settings.bank_link_enabled:
        link_client = LinkApiClient(settings.link_api_base, timeout=settings.link_api_timeout)

    logger.info(
        f"Context ready: backend={settings.store_backend}, app_id={settings.app_id}, "
        f"auth={'firebase' if auth_client else 'offline'}, bank_link={settings.bank_link_enabled}"
    )
    return AppContext(
        settings=settings,
        store=store,
        categories=CategoryStore(store),
        storage=LocalStorage(settings.local_storage_path),
        auth_client=auth_client,
        link_client=link_client,
    )
