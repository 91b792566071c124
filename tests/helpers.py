"""Test doubles shared across the test suite."""

from sqlalchemy.exc import OperationalError

from errors import AuthenticationError, LinkError, StoreError
from identity import AuthUser
from store import SqlDocumentStore, Subscription


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.payload = payload

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self.payload is None:
            raise ValueError("No JSON body")
        return self.payload


class FakeSession:
    """Stands in for requests.Session. Routes POSTs by URL suffix."""

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        for suffix, handler in self.routes.items():
            if url.endswith(suffix):
                if isinstance(handler, Exception):
                    raise handler
                return handler
        return FakeResponse(404, {"error": {"message": "NOT_FOUND"}})

    def calls_to(self, suffix):
        return [c for c in self.calls if c[0].endswith(suffix)]


class SpyStore(SqlDocumentStore):
    """SQL store that counts writes."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.writes = []

    def set(self, collection_path, doc_id, data, merge=False):
        self.writes.append((collection_path, doc_id, dict(data), merge))
        super().set(collection_path, doc_id, data, merge=merge)


class BrokenSubscriptionStore(SqlDocumentStore):
    """Store whose subscriptions fail immediately."""

    def on_snapshot(self, collection_path, on_next, on_error=None):
        subscription = Subscription(lambda: None)
        subscription.close()
        if on_error:
            on_error(StoreError("permission denied"))
        return subscription


class FlakyQueryStore(SqlDocumentStore):
    """SQL store whose first snapshot queries fail."""

    def __init__(self, session_factory, failures=1):
        super().__init__(session_factory)
        self.failures = failures

    def _query(self, collection_path):
        if self.failures:
            self.failures -= 1
            raise OperationalError("SELECT", {}, Exception("database is locked"))
        return super()._query(collection_path)


class FakeAuthClient:
    def __init__(self, uid="firebase-uid-1", fail=False):
        self.uid = uid
        self.fail = fail
        self.calls = []

    def sign_in_anonymously(self):
        self.calls.append("anonymous")
        if self.fail:
            raise AuthenticationError("ADMIN_ONLY_OPERATION")
        return AuthUser(uid=self.uid, is_anonymous=True, id_token="id-token", refresh_token="refresh-1")

    def sign_in_with_custom_token(self, token):
        self.calls.append(("custom", token))
        if self.fail:
            raise AuthenticationError("INVALID_CUSTOM_TOKEN")
        return AuthUser(uid=self.uid, is_anonymous=False, id_token="id-token", refresh_token="refresh-1")

    def refresh(self, refresh_token, is_anonymous=True):
        self.calls.append(("refresh", refresh_token))
        if self.fail:
            raise AuthenticationError("TOKEN_EXPIRED")
        return AuthUser(uid=self.uid, is_anonymous=is_anonymous, id_token="id-token", refresh_token=refresh_token)


class FakeLinkClient:
    def __init__(self, token="link-sandbox-abc", fail_token=False, fail_exchange=False):
        self.token = token
        self.fail_token = fail_token
        self.fail_exchange = fail_exchange
        self.token_requests = []
        self.exchanges = []

    def create_link_token(self, user_id):
        self.token_requests.append(user_id)
        if self.fail_token:
            raise LinkError("HTTP error! status: 500", status_code=500)
        return self.token

    def exchange_public_token(self, public_token, user_id):
        self.exchanges.append((public_token, user_id))
        if self.fail_exchange:
            raise LinkError("HTTP error! status: 502", status_code=502)


class FakePlaidClient:
    def __init__(self, error=None):
        self.error = error
        self.link_requests = []
        self.exchange_requests = []

    def link_token_create(self, request):
        self.link_requests.append(request)
        if self.error:
            raise self.error
        return {"link_token": "link-sandbox-123"}

    def item_public_token_exchange(self, request):
        self.exchange_requests.append(request)
        if self.error:
            raise self.error
        return {"access_token": "access-sandbox-1", "item_id": "item-1"}


class FakeDocSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return dict(self._data) if self._data is not None else None


class FakeWatch:
    """Stands in for a Firestore watch; ``push`` plays a snapshot to the callback."""

    def __init__(self, callback):
        self.callback = callback
        self.is_active = True
        self.unsubscribed = False

    def push(self, docs):
        self.callback([FakeDocSnapshot(doc_id, data) for doc_id, data in docs.items()], [], None)

    def unsubscribe(self):
        self.unsubscribed = True
        self.is_active = False


class FakeDocumentRef:
    def __init__(self, client, path, doc_id):
        self.client = client
        self.path = path
        self.doc_id = doc_id

    def get(self):
        if self.client.error:
            raise self.client.error
        return FakeDocSnapshot(self.doc_id, self.client.docs.get(self.path, {}).get(self.doc_id))

    def set(self, data, merge=False):
        if self.client.error:
            raise self.client.error
        self.client.set_calls.append((self.path, self.doc_id, dict(data), merge))


class FakeCollection:
    def __init__(self, client, path):
        self.client = client
        self.path = path

    def document(self, doc_id):
        return FakeDocumentRef(self.client, self.path, doc_id)

    def on_snapshot(self, callback):
        if self.client.error:
            raise self.client.error
        watch = FakeWatch(callback)
        self.client.watches.append(watch)
        return watch


class FakeFirestoreClient:
    """Just enough of ``google.cloud.firestore.Client`` for the document store."""

    def __init__(self, docs=None, error=None):
        self.docs = docs or {}
        self.error = error
        self.set_calls = []
        self.watches = []

    def collection(self, path):
        return FakeCollection(self, path)
