import os
import sys
import types
import itertools
from datetime import datetime, timezone

import pytest
import fakeredis

# Ensure repo root is on sys.path so tests can import top-level modules (e.g., candidate_flow.py)
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

# Ensure env for create_app
os.environ.setdefault('SUPABASE_URL', 'https://example.supabase.co')
os.environ.setdefault('SUPABASE_KEY', 'public-anon-key')
os.environ.setdefault('REDIS_URL', 'redis://localhost:6379/0')

from supabase import AuthError, PostgrestAPIError  # noqa: E402


class FakeAuthError(AuthError):
    """AuthError whose constructor does not depend on the installed auth client version."""

    def __init__(self, message, code=None):
        Exception.__init__(self, message)
        self.message = message
        self.code = code


def api_error(message, code=None):
    return PostgrestAPIError({'message': message, 'code': code, 'hint': None, 'details': None})


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Just enough of the PostgREST query builder for the calls the app makes."""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = 'select'
        self.columns = '*'
        self.payload = None
        self.filters = []
        self.order_by = None
        self.single_row = False

    def select(self, columns='*'):
        self.columns = columns
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        # SQL semantics: NULL is neither equal nor unequal to anything
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) != value)
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def single(self):
        self.single_row = True
        return self

    def insert(self, payload):
        self.op = 'insert'
        self.payload = payload
        return self

    def update(self, payload):
        self.op = 'update'
        self.payload = payload
        return self

    def execute(self):
        self.db.calls.append((self.table, self.op, self.columns, self.payload))
        for table, op, needle, error in self.db.failures:
            if table == self.table and op == self.op and (needle is None or needle in self.columns):
                raise error
        rows = self.db.tables.setdefault(self.table, [])

        if self.op == 'insert':
            row = dict(self.payload)
            row.setdefault('id', f"{self.table}-{len(rows) + 1}")
            row.setdefault('created_at', datetime.now(timezone.utc).isoformat())
            rows.append(row)
            return FakeResponse([dict(row)])

        matched = [row for row in rows if all(f(row) for f in self.filters)]
        if self.op == 'update':
            for row in matched:
                row.update(self.payload)
            return FakeResponse([dict(row) for row in matched])

        if self.order_by:
            column, desc = self.order_by
            matched = sorted(matched, key=lambda row: row.get(column) or '', reverse=desc)
        if self.single_row:
            if len(matched) != 1:
                raise api_error('JSON object requested, multiple (or no) rows returned', 'PGRST116')
            return FakeResponse(dict(matched[0]))
        return FakeResponse([dict(row) for row in matched])


class FakeAuth:
    def __init__(self, db):
        self.db = db
        self.listeners = []

    def _emit(self, event, session):
        for callback in list(self.listeners):
            callback(event, session)

    def on_auth_state_change(self, callback):
        self.listeners.append(callback)
        return types.SimpleNamespace(unsubscribe=lambda: self.listeners.remove(callback))

    def sign_in_with_password(self, credentials):
        user = self.db.users.get(credentials['email'])
        if user is None or self.db.passwords.get(credentials['email']) != credentials['password']:
            raise FakeAuthError('Invalid login credentials')
        if user.email in self.db.unconfirmed:
            raise FakeAuthError('Email not confirmed')
        session = self.db.new_session(user)
        self._emit('SIGNED_IN', session)
        return types.SimpleNamespace(user=user, session=session)

    def sign_up(self, credentials):
        email = credentials['email']
        if email in self.db.users:
            raise FakeAuthError('User already registered')
        metadata = dict(credentials.get('options', {}).get('data') or {})
        user = self.db.add_user(email, credentials['password'], **metadata)
        self.db.signups.append({'email': email, 'metadata': metadata, 'options': self.options})
        return types.SimpleNamespace(user=user, session=None)

    def set_session(self, access_token, refresh_token):
        user = self.db.tokens.get(access_token)
        if user is None:
            raise FakeAuthError('Invalid Refresh Token: Refresh Token Not Found')
        session = types.SimpleNamespace(access_token=access_token, refresh_token=refresh_token, user=user)
        self._emit('TOKEN_REFRESHED', session)
        return types.SimpleNamespace(user=user, session=session)

    def sign_out(self):
        self.db.sign_outs += 1
        self._emit('SIGNED_OUT', None)


class FakeClient:
    def __init__(self, db, options=None):
        self.db = db
        self.options = options
        self.auth = FakeAuth(db)
        self.auth.options = options

    def table(self, name):
        return FakeQuery(self.db, name)


class FakeBackendDB:
    """In-memory stand-in for the hosted project: auth users plus table rows."""

    def __init__(self):
        self.tables = {'profiles': [], 'tests': [], 'result_test': []}
        self.users = {}
        self.passwords = {}
        self.tokens = {}
        self.unconfirmed = set()
        self.calls = []
        self.failures = []
        self.signups = []
        self.clients = []
        self.sign_outs = 0
        self._ids = itertools.count(1)

    def client(self, url, key, options=None):
        client = FakeClient(self, options)
        self.clients.append(client)
        return client

    def fail(self, table, op='select', error=None, columns_containing=None):
        self.failures.append((table, op, columns_containing, error or api_error('backend down')))

    def add_user(self, email, password, role='candidate', name='', **profile):
        user_id = profile.pop('id', None) or f"user-{next(self._ids)}"
        metadata = {'role': role, 'name': name}
        metadata.update({k: v for k, v in profile.items() if k == 'assigned_test_id'})
        user = types.SimpleNamespace(id=user_id, email=email, user_metadata=metadata, created_at=None)
        self.users[email] = user
        self.passwords[email] = password
        # Profile row as the backend's sign-up trigger would create it
        row = {
            'id': user_id, 'name': name, 'email': email, 'role': role,
            'status': 'pending', 'assigned_test_id': None,
            'created_at': datetime.now(timezone.utc).isoformat(),
        }
        row.update(profile)
        self.tables['profiles'].append(row)
        return user

    def add_test(self, **fields):
        row = {'id': f"test-{next(self._ids)}", 'title': 'Test', 'description': '', 'active': True,
               'questions': [], 'created_at': datetime.now(timezone.utc).isoformat()}
        row.update(fields)
        self.tables['tests'].append(row)
        return row

    def new_session(self, user):
        n = next(self._ids)
        session = types.SimpleNamespace(access_token=f"access-{n}", refresh_token=f"refresh-{n}", user=user)
        self.tokens[session.access_token] = user
        return session

    def profile(self, user_id):
        return next(row for row in self.tables['profiles'] if row['id'] == user_id)


@pytest.fixture()
def fake_redis_server():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture(autouse=True)
def patch_redis(monkeypatch, fake_redis_server):
    import redis
    monkeypatch.setattr(redis, 'from_url', lambda *args, **kwargs: fake_redis_server)
    yield


@pytest.fixture()
def fake_backend(monkeypatch):
    import backend
    db = FakeBackendDB()
    monkeypatch.setattr(backend, 'create_client', db.client)
    return db


@pytest.fixture()
def app(fake_backend):
    from app import create_app
    application = create_app()
    application.config.update(TESTING=True, ANSWERS_WEBHOOK_URL='https://hooks.example.com/answers')
    return application


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def webhook(monkeypatch):
    """Record webhook deliveries instead of sending them."""
    import candidate_flow
    recorder = types.SimpleNamespace(calls=[], result=(True, None), on_call=None)

    def _deliver(url, payload, timeout=20):
        recorder.calls.append({'url': url, 'payload': payload})
        if recorder.on_call:
            recorder.on_call()
        return recorder.result

    monkeypatch.setattr(candidate_flow, 'deliver_answers', _deliver)
    return recorder


def sign_in(client, email, password):
    rv = client.post('/api/auth/login', json={'email': email, 'password': password})
    assert rv.status_code == 200, rv.get_json()
    return {'X-Session-Id': rv.get_json()['session_id']}
