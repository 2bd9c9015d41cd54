"""
Reactive document store adapter.

Every service talks to the store through four primitives:

    query(collection, filters)            -> list of documents
    get(collection, doc_id)               -> document or None
    write(collection, fields, doc_id, mode)
    subscribe(collection, callback, filters=None, doc_id=None) -> unsubscribe

Filters are ``(field, op, value)`` triples; ``field`` may be a dotted path
such as ``donorProfile.city``. Documents come back as plain dicts carrying
their identifier under ``id``.

A subscription receives the full current state on subscribe, then the full
state plus ``added``/``modified``/``removed`` deltas whenever a write changes
what it sees. Deliveries for one subscription never interleave; there is no
ordering across subscriptions.
"""
import copy
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId
from pymongo import MongoClient
from pymongo.errors import OperationFailure, PyMongoError

from .errors import DocumentNotFound, StoreError

logger = logging.getLogger(__name__)

CREATE = 'create'
MERGE = 'merge'

ADDED = 'added'
MODIFIED = 'modified'
REMOVED = 'removed'

Filter = Tuple[str, str, object]

_MISSING = object()

_MONGO_OPERATORS = {
    '==': '$eq',
    '!=': '$ne',
    '<': '$lt',
    '<=': '$lte',
    '>': '$gt',
    '>=': '$gte',
    'in': '$in',
}


@dataclass(frozen=True)
class Change:
    type: str
    doc: dict


@dataclass
class Snapshot:
    docs: List[dict]
    changes: List[Change] = field(default_factory=list)


def get_path(doc, path):
    """Resolve a dotted path inside a nested dict, or return the missing sentinel."""
    current = doc
    for part in path.split('.'):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def set_path(doc, path, value):
    parts = path.split('.')
    current = doc
    for part in parts[:-1]:
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            current[part] = nxt
        current = nxt
    current[parts[-1]] = value


def _compare(actual, op, expected):
    try:
        if op == '==':
            return actual == expected
        if op == '!=':
            return actual != expected
        if op == 'in':
            return actual in expected
        if op == '<':
            return actual < expected
        if op == '<=':
            return actual <= expected
        if op == '>':
            return actual > expected
        if op == '>=':
            return actual >= expected
    except TypeError:
        return False
    raise ValueError(f"Unsupported filter operator: {op}")


def matches(doc, filters):
    for path, op, expected in filters or ():
        actual = get_path(doc, path)
        if actual is _MISSING:
            # Mongo semantics: only $ne matches a missing field.
            if op != '!=':
                return False
            continue
        if not _compare(actual, op, expected):
            return False
    return True


def new_document_id():
    return str(ObjectId())


class Subscription:
    """One live listener. Diffs successive states into change deltas."""

    def __init__(self, collection, callback, filters=None, doc_id=None):
        self.collection = collection
        self.callback = callback
        self.filters = list(filters or [])
        self.doc_id = doc_id
        self.active = True
        self._seen: Optional[Dict[str, dict]] = None
        self._lock = threading.RLock()

    def deliver(self, docs):
        with self._lock:
            if not self.active:
                return
            current = {d['id']: d for d in docs}
            first = self._seen is None
            previous = self._seen or {}
            changes = []
            for doc_id, doc in current.items():
                if doc_id not in previous:
                    changes.append(Change(ADDED, doc))
                elif previous[doc_id] != doc:
                    changes.append(Change(MODIFIED, doc))
            for doc_id, doc in previous.items():
                if doc_id not in current:
                    changes.append(Change(REMOVED, doc))
            self._seen = current
            if not first and not changes:
                return
            try:
                self.callback(Snapshot(docs=list(current.values()), changes=changes))
            except Exception:
                logger.exception("Subscription callback failed for %s", self.collection)


class DocumentStore:
    """Shared subscription plumbing; backends implement reads and raw writes."""

    def __init__(self):
        self._subscriptions: List[Subscription] = []
        self._subs_lock = threading.Lock()

    # Backend hooks
    def get(self, collection, doc_id) -> Optional[dict]:
        raise NotImplementedError

    def query(self, collection, filters: Sequence[Filter] = ()) -> List[dict]:
        raise NotImplementedError

    def _create(self, collection, doc_id, fields):
        raise NotImplementedError

    def _merge(self, collection, doc_id, fields):
        raise NotImplementedError

    def _watch(self, collection):
        """Start listening for writes made by other processes. Optional."""

    def close(self):
        with self._subs_lock:
            for sub in self._subscriptions:
                sub.active = False
            self._subscriptions = []

    # Contract
    def write(self, collection, fields, doc_id=None, mode=CREATE):
        """Create (overwrite) or merge-update a document and return its id."""
        if mode == CREATE:
            doc_id = doc_id or new_document_id()
            self._create(collection, doc_id, dict(fields))
        elif mode == MERGE:
            if not doc_id:
                raise ValueError("merge writes need a document id")
            self._merge(collection, doc_id, dict(fields))
        else:
            raise ValueError(f"Unknown write mode: {mode}")
        self.publish(collection)
        return doc_id

    def subscribe(self, collection, callback: Callable[[Snapshot], None], filters=None, doc_id=None):
        sub = Subscription(collection, callback, filters=filters, doc_id=doc_id)
        with self._subs_lock:
            self._subscriptions.append(sub)
        self._watch(collection)
        sub.deliver(self._snapshot(sub))

        def unsubscribe():
            sub.active = False
            with self._subs_lock:
                if sub in self._subscriptions:
                    self._subscriptions.remove(sub)

        return unsubscribe

    def publish(self, collection):
        with self._subs_lock:
            subs = [s for s in self._subscriptions if s.collection == collection]
        for sub in subs:
            try:
                docs = self._snapshot(sub)
            except StoreError:
                logger.error("Could not refresh subscription on %s", collection)
                continue
            sub.deliver(docs)

    def _snapshot(self, sub):
        if sub.doc_id is not None:
            doc = self.get(sub.collection, sub.doc_id)
            return [doc] if doc is not None and matches(doc, sub.filters) else []
        return self.query(sub.collection, sub.filters)


class MemoryDocumentStore(DocumentStore):
    """In-process backend used for local development and tests."""

    def __init__(self):
        super().__init__()
        self._data: Dict[str, Dict[str, dict]] = {}
        self._lock = threading.RLock()

    def get(self, collection, doc_id):
        with self._lock:
            doc = self._data.get(collection, {}).get(doc_id)
            if doc is None:
                return None
            return dict(copy.deepcopy(doc), id=doc_id)

    def query(self, collection, filters=()):
        with self._lock:
            docs = self._data.get(collection, {})
            return [
                dict(copy.deepcopy(doc), id=doc_id)
                for doc_id, doc in docs.items()
                if matches(doc, filters)
            ]

    def _create(self, collection, doc_id, fields):
        with self._lock:
            self._data.setdefault(collection, {})[doc_id] = copy.deepcopy(fields)

    def _merge(self, collection, doc_id, fields):
        with self._lock:
            doc = self._data.get(collection, {}).get(doc_id)
            if doc is None:
                raise DocumentNotFound(collection, doc_id)
            for path, value in fields.items():
                set_path(doc, path, copy.deepcopy(value))


def _to_mongo_filter(filters):
    mongo_filter = {}
    for path, op, value in filters or ():
        if op not in _MONGO_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {op}")
        mongo_filter.setdefault(path, {})[_MONGO_OPERATORS[op]] = value
    return mongo_filter


def serialize_doc(doc):
    if not doc:
        return None
    doc['id'] = str(doc.pop('_id'))
    return doc


class MongoDocumentStore(DocumentStore):
    """pymongo backend. Change streams feed subscriptions, with polling as fallback."""

    def __init__(self, uri, db_name, poll_interval=2.0, client=None):
        super().__init__()
        self.client = client or MongoClient(uri)
        self.db = self.client[db_name]
        self.poll_interval = poll_interval
        self._watchers: Dict[str, threading.Thread] = {}
        self._stop = threading.Event()

    def get(self, collection, doc_id):
        try:
            return serialize_doc(self.db[collection].find_one({'_id': doc_id}))
        except PyMongoError as exc:
            logger.error("Read failed on %s/%s: %s", collection, doc_id, exc)
            raise StoreError(f"Could not read {collection}/{doc_id}") from exc

    def query(self, collection, filters=()):
        try:
            cursor = self.db[collection].find(_to_mongo_filter(filters))
            return [serialize_doc(doc) for doc in cursor]
        except PyMongoError as exc:
            logger.error("Query failed on %s %s: %s", collection, filters, exc)
            raise StoreError(f"Could not query {collection}") from exc

    def _create(self, collection, doc_id, fields):
        fields.pop('id', None)
        try:
            self.db[collection].replace_one({'_id': doc_id}, fields, upsert=True)
        except PyMongoError as exc:
            logger.error("Create failed on %s/%s: %s", collection, doc_id, exc)
            raise StoreError(f"Could not write {collection}/{doc_id}") from exc

    def _merge(self, collection, doc_id, fields):
        fields.pop('id', None)
        try:
            res = self.db[collection].update_one({'_id': doc_id}, {'$set': fields})
        except PyMongoError as exc:
            logger.error("Update failed on %s/%s: %s", collection, doc_id, exc)
            raise StoreError(f"Could not update {collection}/{doc_id}") from exc
        if res.matched_count == 0:
            raise DocumentNotFound(collection, doc_id)

    def _watch(self, collection):
        with self._subs_lock:
            if collection in self._watchers:
                return
            thread = threading.Thread(
                target=self._watch_loop,
                args=(collection,),
                name=f"store-watch-{collection}",
                daemon=True,
            )
            self._watchers[collection] = thread
        thread.start()

    def _watch_loop(self, collection):
        try:
            with self.db[collection].watch() as stream:
                logger.info("Watching %s via change stream", collection)
                while not self._stop.is_set():
                    if stream.try_next() is not None:
                        self.publish(collection)
                    else:
                        self._stop.wait(0.2)
            return
        except OperationFailure as exc:
            # Standalone servers have no change streams.
            logger.warning("Change streams unavailable for %s (%s); polling every %ss",
                           collection, exc, self.poll_interval)
        except PyMongoError as exc:
            logger.error("Change stream on %s failed: %s; polling instead", collection, exc)

        while not self._stop.wait(self.poll_interval):
            self.publish(collection)

    def close(self):
        self._stop.set()
        super().close()
        self.client.close()
