"""Document store backends with live collection subscriptions.

Two implementations share one small interface:

* ``FirestoreDocumentStore`` talks to hosted Cloud Firestore and relies on its
  watch stream for live updates.
* ``SqlDocumentStore`` keeps documents in a SQLAlchemy database (SQLite by
  default). Writes made through the store notify listeners right away;
  ``poll()`` picks up writes made by other processes (the spending job, the
  seed script) by comparing a cheap per-collection fingerprint.

Snapshots list documents ordered by document id, which is also Firestore's
default ordering for a plain collection query.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from google.api_core.exceptions import GoogleAPICallError
from google.cloud import firestore
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from database import Document
from errors import StoreError
from logger import get_logger

logger = get_logger()


@dataclass(frozen=True)
class DocumentSnapshot:
    id: str
    data: dict = field(default_factory=dict)


SnapshotCallback = Callable[[List[DocumentSnapshot]], None]
ErrorCallback = Callable[[StoreError], None]


class Subscription:
    """Handle for a live subscription. ``close()`` is safe to call twice."""

    def __init__(self, unsubscribe: Callable[[], None]):
        self._unsubscribe = unsubscribe
        self._closed = False

    @property
    def active(self) -> bool:
        return not self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._unsubscribe()


class _Listener:
    """One subscriber's callbacks plus the subscription that owns them."""

    def __init__(self, on_next: SnapshotCallback, on_error: Optional[ErrorCallback]):
        self.on_next = on_next
        self.on_error = on_error
        self.subscription: Optional[Subscription] = None

    def fail(self, error: StoreError) -> None:
        # A failed listener is dropped, like a broken watch stream
        self.subscription.close()
        if self.on_error:
            self.on_error(error)


class DocumentStore:
    """Interface used by the category adapter."""

    def get(self, collection_path: str, doc_id: str) -> Optional[dict]:
        raise NotImplementedError

    def set(self, collection_path: str, doc_id: str, data: dict, merge: bool = False) -> None:
        raise NotImplementedError

    def on_snapshot(
        self,
        collection_path: str,
        on_next: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        raise NotImplementedError

    def poll(self) -> None:
        """Check open subscriptions for changes or failures the store was not told about."""


class SqlDocumentStore(DocumentStore):
    def __init__(self, session_factory):
        self.session_factory = session_factory
        self._listeners: Dict[str, List[_Listener]] = {}
        self._fingerprints: Dict[str, tuple] = {}
        self._lock = threading.RLock()

    def get(self, collection_path, doc_id):
        db = self.session_factory()
        try:
            row = self._find(db, collection_path, doc_id)
            return dict(row.data) if row else None
        except SQLAlchemyError as e:
            raise StoreError(f"Could not read {collection_path}/{doc_id}: {e}") from e
        finally:
            db.close()

    def set(self, collection_path, doc_id, data, merge=False):
        db = self.session_factory()
        try:
            row = self._find(db, collection_path, doc_id)
            if row is None:
                row = Document(collection_path=collection_path, doc_id=doc_id, data=dict(data))
                db.add(row)
            elif merge:
                row.data = {**row.data, **data}
            else:
                row.data = dict(data)
            row.updated_at = datetime.utcnow()
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Could not write {collection_path}/{doc_id}: {e}") from e
        finally:
            db.close()

        self._notify(collection_path)

    def on_snapshot(self, collection_path, on_next, on_error=None):
        listener = _Listener(on_next, on_error)
        listener.subscription = Subscription(lambda: self._remove_listener(collection_path, listener))
        with self._lock:
            self._listeners.setdefault(collection_path, []).append(listener)

        self._deliver(collection_path, [listener])
        return listener.subscription

    def poll(self):
        """Deliver a fresh snapshot for every watched collection that changed since the last one."""
        with self._lock:
            paths = list(self._listeners)

        for path in paths:
            try:
                fingerprint = self._fingerprint(path)
            except SQLAlchemyError as e:
                self._fail(path, self._listeners_of(path), e)
                continue
            with self._lock:
                changed = self._fingerprints.get(path) != fingerprint
            if changed:
                logger.debug(f"Change detected in {path}")
                self._notify(path)

    def listener_count(self, collection_path: str) -> int:
        with self._lock:
            return len(self._listeners.get(collection_path, []))

    # --- internals ---

    def _find(self, db, collection_path, doc_id):
        return (
            db.query(Document)
            .filter(Document.collection_path == collection_path, Document.doc_id == doc_id)
            .first()
        )

    def _fingerprint(self, collection_path) -> tuple:
        db = self.session_factory()
        try:
            count, latest = (
                db.query(func.count(Document.id), func.max(Document.updated_at))
                .filter(Document.collection_path == collection_path)
                .one()
            )
            return count, latest
        finally:
            db.close()

    def _query(self, collection_path) -> List[DocumentSnapshot]:
        db = self.session_factory()
        try:
            rows = (
                db.query(Document)
                .filter(Document.collection_path == collection_path)
                .order_by(Document.doc_id)
                .all()
            )
            return [DocumentSnapshot(id=row.doc_id, data=dict(row.data)) for row in rows]
        finally:
            db.close()

    def _listeners_of(self, collection_path) -> List[_Listener]:
        with self._lock:
            return list(self._listeners.get(collection_path, []))

    def _remove_listener(self, collection_path, listener):
        with self._lock:
            listeners = self._listeners.get(collection_path, [])
            if listener in listeners:
                listeners.remove(listener)
            if not listeners:
                self._listeners.pop(collection_path, None)
                self._fingerprints.pop(collection_path, None)

    def _notify(self, collection_path):
        listeners = self._listeners_of(collection_path)
        if listeners:
            self._deliver(collection_path, listeners)

    def _deliver(self, collection_path, listeners):
        try:
            fingerprint = self._fingerprint(collection_path)
            docs = self._query(collection_path)
        except SQLAlchemyError as e:
            self._fail(collection_path, listeners, e)
            return

        with self._lock:
            if collection_path in self._listeners:
                self._fingerprints[collection_path] = fingerprint
        for listener in listeners:
            listener.on_next(list(docs))

    def _fail(self, collection_path, listeners, e):
        error = StoreError(f"Could not read {collection_path}: {e}")
        logger.error(f"Snapshot query failed for {collection_path}: {e}")
        for listener in listeners:
            listener.fail(error)


class FirestoreDocumentStore(DocumentStore):
    def __init__(self, client: firestore.Client):
        self.client = client
        self._watches: Dict[_Listener, tuple] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_project(cls, project_id: str) -> "FirestoreDocumentStore":
        # Credentials come from GOOGLE_APPLICATION_CREDENTIALS / default credentials
        return cls(firestore.Client(project=project_id))

    def get(self, collection_path, doc_id):
        try:
            snapshot = self.client.collection(collection_path).document(doc_id).get()
        except GoogleAPICallError as e:
            raise StoreError(f"Could not read {collection_path}/{doc_id}: {e.message}") from e
        return snapshot.to_dict() if snapshot.exists else None

    def set(self, collection_path, doc_id, data, merge=False):
        try:
            self.client.collection(collection_path).document(doc_id).set(data, merge=merge)
        except GoogleAPICallError as e:
            raise StoreError(f"Could not write {collection_path}/{doc_id}: {e.message}") from e

    def on_snapshot(self, collection_path, on_next, on_error=None):
        listener = _Listener(on_next, on_error)

        def handle(col_snapshot, changes, read_time):
            docs = [DocumentSnapshot(id=doc.id, data=doc.to_dict() or {}) for doc in col_snapshot]
            listener.on_next(sorted(docs, key=lambda d: d.id))

        try:
            watch = self.client.collection(collection_path).on_snapshot(handle)
        except GoogleAPICallError as e:
            error = StoreError(f"Could not subscribe to {collection_path}: {e.message}")
            logger.error(str(error))
            listener.subscription = Subscription(lambda: None)
            listener.fail(error)
            return listener.subscription

        listener.subscription = Subscription(lambda: self._stop(listener))
        with self._lock:
            self._watches[listener] = (collection_path, watch)
        return listener.subscription

    def poll(self):
        """Surface watch streams that died on their own thread."""
        with self._lock:
            watches = list(self._watches.items())

        for listener, (path, watch) in watches:
            if not watch.is_active:
                logger.error(f"Live updates for {path} stopped")
                listener.fail(StoreError(f"Live updates for {path} stopped"))

    def watch_count(self) -> int:
        with self._lock:
            return len(self._watches)

    def _stop(self, listener):
        with self._lock:
            entry = self._watches.pop(listener, None)
        if entry is not None:
            entry[1].unsubscribe()
