"""Store construction for the configured backend."""
import logging

from portia.cache import ReadCache
from portia.database.store import (
    ACCESS_REGISTRY, ACCESS_REQUESTS, APPLICATIONS, USERS,
    CachingStore, DomainStore,
)

logger = logging.getLogger(__name__)

__all__ = [
    'USERS', 'APPLICATIONS', 'ACCESS_REQUESTS', 'ACCESS_REGISTRY',
    'DomainStore', 'CachingStore', 'create_store',
]


def create_store(config) -> DomainStore:
    """
    Build the store for config.backend, wrapped in the read cache if enabled.

    Raises:
        ValueError: if the backend is missing required settings
    """
    if config.backend == 'sqlite':
        from portia.database.sqlite_store import SQLiteStore
        config.database_path.parent.mkdir(parents=True, exist_ok=True)
        store = SQLiteStore(str(config.database_path))

    elif config.backend == 'sheets':
        from portia.database.sheets_store import SheetsStore
        store = SheetsStore(
            spreadsheet_id=config.spreadsheet_id,
            credentials_file=config.google_credentials_file,
        )

    elif config.backend == 'notion':
        from portia.database.notion_store import NotionStore, NOTION_API_URL
        direct = config.notion_base_url.rstrip('/') == NOTION_API_URL
        if direct and not config.notion_api_key:
            raise ValueError("NOTION_API_KEY is required when talking to Notion directly")
        store = NotionStore(
            database_ids=config.notion_database_ids,
            api_key=config.notion_api_key if direct else '',
            base_url=config.notion_base_url,
            timeout=config.notion_timeout,
        )

    else:
        raise ValueError(f"Unknown backend: {config.backend}")

    logger.info(f"Using {store.backend_name} backend")

    if not config.cache_enabled:
        return store
    return CachingStore(store, ReadCache(ttl_seconds=config.cache_ttl_seconds))
