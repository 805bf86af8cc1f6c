"""Binding to the hosted Supabase project.

Every data operation in the app goes through a ``Store`` bound to a client
that carries the signed-in user's tokens, so the backend's row-level rules
apply to each request. Account creation uses a transient client that never
persists or refreshes its session, which keeps a freshly signed-up user from
replacing the administrator's own session.
"""
import logging

import httpx
from supabase import AuthError, ClientOptions, PostgrestAPIError, create_client

from errors import BackendError, describe_backend_error, translate_auth_error
from utilities.constants import (
    PROFILES_TABLE, RESULTS_TABLE, ROLE_ADMIN, TESTS_TABLE,
)

logger = logging.getLogger(__name__)

RESULTS_WITH_RELATIONS = (
    'id, created_at, test_id, candidate_id, result, '
    'profiles:candidate_id (name, email), tests:test_id (title)'
)


def _isolated_options():
    return ClientOptions(persist_session=False, auto_refresh_token=False)


def _execute(query, action):
    try:
        return query.execute()
    except PostgrestAPIError as e:
        logger.error("Backend %s failed: %s (%s)", action, e.message, e.code)
        raise BackendError(describe_backend_error(e), code=e.code) from e
    except httpx.HTTPError as e:
        logger.error("Backend %s failed: %s", action, e)
        raise BackendError(f"Could not reach the backend: {e}") from e


class Backend:
    """Factory for clients bound to one Supabase project (URL + public key)."""

    def __init__(self, url, key):
        self.url = url
        self.key = key

    def _client(self):
        return create_client(self.url, self.key, options=_isolated_options())

    def sign_in(self, email, password):
        """Returns the backend's auth response (``.user`` and ``.session``)."""
        client = self._client()
        try:
            return client.auth.sign_in_with_password({'email': email, 'password': password})
        except AuthError as e:
            logger.info("Sign-in rejected for %s: %s", email, e.message)
            raise BackendError(translate_auth_error(e.message), code=getattr(e, 'code', None), status_code=401) from e
        except httpx.HTTPError as e:
            logger.error("Sign-in request failed: %s", e)
            raise BackendError(f"Could not reach the backend: {e}") from e

    def sign_up_isolated(self, email, password, metadata):
        """Create a login without touching any existing session.

        The backend copies ``metadata`` (name, role, assigned test) into the
        new user's ``profiles`` row through its own trigger.
        """
        temp_client = self._client()
        try:
            response = temp_client.auth.sign_up({
                'email': email,
                'password': password,
                'options': {'data': metadata},
            })
        except AuthError as e:
            logger.warning("Sign-up failed for %s: %s", email, e.message)
            raise BackendError(translate_auth_error(describe_backend_error(e)),
                               code=getattr(e, 'code', None), status_code=400) from e
        except httpx.HTTPError as e:
            logger.error("Sign-up request failed: %s", e)
            raise BackendError(f"Could not reach the backend: {e}") from e
        return response.user

    def store_for(self, access_token, refresh_token, on_auth_event=None):
        """Build a Store acting as the user who owns the given tokens."""
        client = self._client()
        if on_auth_event is not None:
            client.auth.on_auth_state_change(on_auth_event)
        try:
            client.auth.set_session(access_token, refresh_token)
        except AuthError as e:
            logger.info("Stored session rejected by backend: %s", e.message)
            raise BackendError('Session expired. Please sign in again.', status_code=401) from e
        except httpx.HTTPError as e:
            logger.error("Session restore failed: %s", e)
            raise BackendError(f"Could not reach the backend: {e}") from e
        return Store(client)


class Store:
    """Plain select/insert/update calls over the three tables the app uses."""

    def __init__(self, client):
        self.client = client

    def sign_out(self):
        try:
            self.client.auth.sign_out()
        except AuthError as e:
            # The local state is cleared by the caller either way.
            logger.warning("Backend sign-out failed: %s", e.message)

    # --- profiles ---

    def get_profile(self, profile_id):
        query = self.client.table(PROFILES_TABLE).select('*').eq('id', profile_id).single()
        return _execute(query, 'profile fetch').data

    def list_candidates(self, filter_on_server=False):
        """Every non-admin profile.

        ``neq`` on the server drops rows whose role is NULL, so the roster
        filters locally; the dashboard counts filter on the server.
        """
        query = self.client.table(PROFILES_TABLE).select('*, tests(title)')
        if filter_on_server:
            query = query.neq('role', ROLE_ADMIN)
        query = query.order('created_at', desc=True)
        rows = _execute(query, 'candidate list').data or []
        return [row for row in rows if row.get('role') != ROLE_ADMIN]

    def list_admins(self):
        query = (self.client.table(PROFILES_TABLE)
                 .select('*')
                 .eq('role', ROLE_ADMIN)
                 .order('created_at', desc=True))
        return _execute(query, 'admin list').data or []

    def update_profile(self, profile_id, fields):
        query = self.client.table(PROFILES_TABLE).update(fields).eq('id', profile_id)
        return _execute(query, 'profile update').data

    # --- tests ---

    def list_tests(self, active_only=False):
        query = self.client.table(TESTS_TABLE).select('*')
        if active_only:
            query = query.eq('active', True)
        query = query.order('created_at', desc=True)
        return _execute(query, 'test list').data or []

    def get_test(self, test_id):
        query = self.client.table(TESTS_TABLE).select('*').eq('id', test_id).single()
        return _execute(query, 'test fetch').data

    def insert_test(self, payload):
        rows = _execute(self.client.table(TESTS_TABLE).insert(payload), 'test insert').data or []
        return rows[0] if rows else None

    def update_test(self, test_id, payload):
        query = self.client.table(TESTS_TABLE).update(payload).eq('id', test_id)
        return _execute(query, 'test update').data

    # --- results ---

    def list_results_with_relations(self):
        query = (self.client.table(RESULTS_TABLE)
                 .select(RESULTS_WITH_RELATIONS)
                 .order('created_at', desc=True))
        return _execute(query, 'result list').data or []

    def list_results_raw(self):
        query = self.client.table(RESULTS_TABLE).select('*').order('created_at', desc=True)
        return _execute(query, 'raw result list').data or []
