"""Backend-agnostic collection store.

DomainStore fixes the contract every backend honours: list with an
exact-match filter, get, create, update, and delete for applications.
Backends only implement the underscore hooks; filtering, defaults and
NotFound handling live here so a record read from any backend looks the
same to the services.
"""
import logging
from typing import Dict, List, Optional

from portia.cache import ReadCache
from portia.errors import NotFound, ValidationError
from portia.models import AccessRegistry, AccessRequest, Application, Record, User

logger = logging.getLogger(__name__)

USERS = 'users'
APPLICATIONS = 'applications'
ACCESS_REQUESTS = 'access_requests'
ACCESS_REGISTRY = 'access_registry'

MODELS = {
    USERS: User,
    APPLICATIONS: Application,
    ACCESS_REQUESTS: AccessRequest,
    ACCESS_REGISTRY: AccessRegistry,
}

# Collections that support delete
DELETABLE = (APPLICATIONS,)


def matches_filter(record: Record, filters: Optional[Dict]) -> bool:
    """
    Exact-match conjunctive filter.

    Values are compared as strings so a numeric sheet id matches the
    string id a caller passes in. None and '' expected values are ignored.
    """
    if not filters:
        return True
    for name, expected in filters.items():
        if expected is None or expected == '':
            continue
        if str(getattr(record, name)) != str(expected):
            return False
    return True


class DomainStore:
    """Abstract store over the four Portia collections."""

    backend_name = 'abstract'

    # ─────────────────────────────────────────────────────────────
    # Public contract
    # ─────────────────────────────────────────────────────────────

    def list(self, collection: str, filters: Optional[Dict] = None, use_cache: bool = True) -> List[Record]:
        """Return every record in collection whose fields equal filters."""
        model = self._model(collection)
        filters = self._clean_filters(model, filters)
        records = self._fetch_all(collection, filters)
        return [r for r in records if matches_filter(r, filters)]

    def get(self, collection: str, record_id, use_cache: bool = True) -> Record:
        """Return one record or raise NotFound."""
        self._model(collection)
        if record_id is None or str(record_id).strip() == '':
            raise NotFound(collection, record_id)

        record = self._fetch_one(collection, str(record_id))
        if record is None:
            raise NotFound(collection, record_id)
        return record

    def create(self, collection: str, data: Dict) -> Record:
        """Create a record; the backend assigns the id."""
        model = self._model(collection)
        self._check_fields(model, data)
        values = model.new_fields({k: v for k, v in data.items() if k != 'id'})
        record = self._insert(collection, values)
        logger.debug(f"Created {collection} {record.id} on {self.backend_name}")
        return record

    def update(self, collection: str, record_id, data: Dict) -> Record:
        """Merge data into an existing record or raise NotFound."""
        model = self._model(collection)
        self._check_fields(model, data)
        changes = {k: v for k, v in data.items() if k != 'id'}

        current = self.get(collection, record_id, use_cache=False)
        merged = current.to_dict()
        merged.update(changes)
        record = self._replace(collection, current, model.from_fields(merged), changes)
        logger.debug(f"Updated {collection} {record_id} on {self.backend_name}: {sorted(changes)}")
        return record

    def delete(self, collection: str, record_id):
        """Delete (or archive) a record. Only applications can be deleted."""
        self._model(collection)
        if collection not in DELETABLE:
            raise ValidationError(f"Records in {collection} cannot be deleted")

        current = self.get(collection, record_id, use_cache=False)
        self._remove(collection, current)
        logger.debug(f"Deleted {collection} {record_id} on {self.backend_name}")

    def ping(self) -> bool:
        """Cheap reachability check used by /health."""
        self._fetch_all(USERS, {})
        return True

    def close(self):
        """Release backend resources. Safe to call more than once."""

    # ─────────────────────────────────────────────────────────────
    # Backend hooks
    # ─────────────────────────────────────────────────────────────

    def _fetch_all(self, collection: str, filters: Dict) -> List[Record]:
        """
        Return records, optionally pre-filtered natively.

        The base class re-applies the filter afterwards, so pre-filtering
        is an optimisation only.
        """
        raise NotImplementedError

    def _fetch_one(self, collection: str, record_id: str) -> Optional[Record]:
        raise NotImplementedError

    def _insert(self, collection: str, values: Dict) -> Record:
        raise NotImplementedError

    def _replace(self, collection: str, current: Record, updated: Record, changes: Dict) -> Record:
        raise NotImplementedError

    def _remove(self, collection: str, current: Record):
        raise NotImplementedError

    # ─────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────

    @staticmethod
    def _model(collection: str):
        try:
            return MODELS[collection]
        except KeyError:
            raise ValidationError(f"Unknown collection: {collection}")

    @staticmethod
    def _check_fields(model, data: Dict):
        unknown = set(data) - set(model.field_names())
        if unknown:
            raise ValidationError(
                f"Unknown field(s) for {model.__name__}: {', '.join(sorted(unknown))}"
            )

    @classmethod
    def _clean_filters(cls, model, filters: Optional[Dict]) -> Dict:
        if not filters:
            return {}
        cls._check_fields(model, filters)
        return {k: v for k, v in filters.items() if v is not None and v != ''}


class CachingStore(DomainStore):
    """
    Wraps a store with a ReadCache.

    Reads are served from the cache when allowed. Every write invalidates
    the collection's keys once it finishes, whether it succeeded or not.
    """

    def __init__(self, inner: DomainStore, cache: ReadCache):
        self.inner = inner
        self.cache = cache
        self.backend_name = inner.backend_name

    def list(self, collection: str, filters: Optional[Dict] = None, use_cache: bool = True) -> List[Record]:
        key = f"{collection}:list:{sorted((filters or {}).items())}"
        if use_cache:
            cached = self.cache.get(key)
            if cached is not None:
                return list(cached)

        records = self.inner.list(collection, filters)
        self.cache.set(key, list(records))
        return records

    def get(self, collection: str, record_id, use_cache: bool = True) -> Record:
        key = f"{collection}:get:{record_id}"
        if use_cache:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        record = self.inner.get(collection, record_id)
        self.cache.set(key, record)
        return record

    def create(self, collection: str, data: Dict) -> Record:
        try:
            return self.inner.create(collection, data)
        finally:
            self.cache.invalidate(f"{collection}:")

    def update(self, collection: str, record_id, data: Dict) -> Record:
        try:
            return self.inner.update(collection, record_id, data)
        finally:
            self.cache.invalidate(f"{collection}:")

    def delete(self, collection: str, record_id):
        try:
            return self.inner.delete(collection, record_id)
        finally:
            self.cache.invalidate(f"{collection}:")

    def ping(self) -> bool:
        return self.inner.ping()

    def close(self):
        self.cache.clear()
        self.inner.close()
