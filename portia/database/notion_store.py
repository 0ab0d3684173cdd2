"""Notion backend: one database per collection, one page per record."""
import logging
import re
from typing import Any, Dict, List, Optional

import requests

from portia.database.codecs import PageCodec
from portia.database.store import DomainStore, MODELS
from portia.errors import BackendError
from portia.models import Record
from shared.http_client import JsonHttpClient

logger = logging.getLogger(__name__)

NOTION_API_URL = 'https://api.notion.com/v1'
NOTION_VERSION = '2022-06-28'
PAGE_SIZE = 100

_UUID_HEX = re.compile(r'^[0-9a-fA-F]{32}$')


def compact_id(notion_id: str) -> str:
    """Notion ids with the hyphens removed."""
    return (notion_id or '').replace('-', '').strip()


class NotionStore(DomainStore):
    """
    Store backed by four Notion databases.

    base_url is either the Notion API itself or Portia's own proxy routes,
    in which case api_key may be left empty and the proxy supplies it.
    """

    backend_name = 'notion'

    def __init__(
        self,
        database_ids: Dict[str, str],
        api_key: str = '',
        base_url: str = NOTION_API_URL,
        timeout: int = 30,
        client: JsonHttpClient = None,
    ):
        missing = [c for c in MODELS if not database_ids.get(c)]
        if missing:
            raise ValueError(f"Notion database id missing for: {', '.join(missing)}")

        self.database_ids = {c: compact_id(db_id) for c, db_id in database_ids.items() if c in MODELS}
        self.codecs = {collection: PageCodec(collection) for collection in MODELS}

        headers = {
            'Notion-Version': NOTION_VERSION,
            'Content-Type': 'application/json',
        }
        if api_key:
            headers['Authorization'] = f'Bearer {api_key}'
        self.client = client or JsonHttpClient(base_url, headers=headers, timeout=timeout)

    def _send(self, method: str, path: str, body: Dict = None) -> Optional[Dict[str, Any]]:
        """
        Call the Notion API.

        Returns:
            Parsed JSON body, or None for a 404
        """
        logger.debug(f"Notion {method} {path}")
        try:
            response = self.client.request(method, path, json=body)
        except requests.RequestException as e:
            logger.error(f"Notion request failed: {method} {path}: {e}")
            raise BackendError('Notion request failed', details=str(e)) from e

        if response.status_code == 404:
            return None

        if not response.ok:
            try:
                message = response.json().get('message', response.text)
            except ValueError:
                message = response.text
            logger.error(f"Notion {method} {path} returned {response.status_code}: {message}")
            raise BackendError(f"Notion API returned {response.status_code}", details=message)

        try:
            return response.json()
        except ValueError as e:
            raise BackendError('Notion returned a non-JSON response', details=response.text[:200]) from e

    def _query(self, collection: str, notion_filter: Optional[Dict]) -> List[Dict]:
        """Fetch every page of a database query."""
        database_id = self.database_ids[collection]
        pages = []
        cursor = None

        while True:
            body = {'page_size': PAGE_SIZE}
            if notion_filter:
                body['filter'] = notion_filter
            if cursor:
                body['start_cursor'] = cursor

            result = self._send('POST', f"databases/{database_id}/query", body)
            if result is None:
                raise BackendError(f"Notion database for {collection} not found", details=database_id)

            pages.extend(result.get('results', []))
            if not result.get('has_more'):
                break
            cursor = result.get('next_cursor')

        logger.debug(f"Fetched {len(pages)} pages from Notion {collection}")
        return pages

    def _belongs_to(self, collection: str, page: Dict) -> bool:
        parent = page.get('parent') or {}
        return compact_id(parent.get('database_id')) == self.database_ids[collection]

    # ─────────────────────────────────────────────────────────────
    # Backend hooks
    # ─────────────────────────────────────────────────────────────

    def _fetch_all(self, collection: str, filters: Dict) -> List[Record]:
        codec = self.codecs[collection]
        pages = self._query(collection, codec.build_filter(filters))
        return [codec.decode(page) for page in pages if not page.get('archived')]

    def _fetch_one(self, collection: str, record_id: str) -> Optional[Record]:
        if not _UUID_HEX.match(compact_id(record_id)):
            return None

        page = self._send('GET', f"pages/{record_id}")
        if page is None or page.get('archived') or not self._belongs_to(collection, page):
            return None
        return self.codecs[collection].decode(page)

    def _insert(self, collection: str, values: Dict) -> Record:
        body = {
            'parent': {'database_id': self.database_ids[collection]},
            'properties': self.codecs[collection].encode(values),
        }
        page = self._send('POST', 'pages', body)
        if page is None:
            raise BackendError(f"Notion database for {collection} not found")
        return self.codecs[collection].decode(page)

    def _replace(self, collection: str, current: Record, updated: Record, changes: Dict) -> Record:
        body = {'properties': self.codecs[collection].encode(changes)}
        page = self._send('PATCH', f"pages/{current.id}", body)
        if page is None:
            raise BackendError(f"Notion page {current.id} disappeared during update")
        return self.codecs[collection].decode(page)

    def _remove(self, collection: str, current: Record):
        # Notion has no hard delete; archived pages drop out of queries
        if self._send('PATCH', f"pages/{current.id}", {'archived': True}) is None:
            raise BackendError(f"Notion page {current.id} disappeared during delete")
