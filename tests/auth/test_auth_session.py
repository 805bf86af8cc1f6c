import types

import pytest

from auth_session import AuthSession, classify_user
from backend import Backend
from errors import BackendError


def _user(role=None, name='', user_id='u1', email='u@x.com'):
    metadata = {}
    if role is not None:
        metadata['role'] = role
    if name:
        metadata['name'] = name
    return types.SimpleNamespace(id=user_id, email=email, user_metadata=metadata)


def _response(user, access='access-1', refresh='refresh-1'):
    session = types.SimpleNamespace(access_token=access, refresh_token=refresh, user=user)
    return types.SimpleNamespace(user=user, session=session)


def test_classify_admin():
    info = classify_user(_user('admin'))
    assert info['role'] == 'admin'
    assert info['name'] == 'Admin'
    assert info['view'] == 'dashboard'


@pytest.mark.parametrize('role', [None, 'candidate', 'manager', ''])
def test_anything_but_admin_is_a_candidate(role):
    info = classify_user(_user(role, user_id='c42'))
    assert info['role'] == 'candidate'
    assert info['candidate_id'] == 'c42'
    assert info['view'] == 'candidate-test'


def test_sign_in_persists_state_without_exposing_tokens(fake_redis_server):
    auth = AuthSession(fake_redis_server)
    view = auth.sign_in(_response(_user('admin', 'Ana')))
    assert view['role'] == 'admin'
    assert view['view'] == 'dashboard'
    assert 'access_token' not in view

    loaded = AuthSession.load(fake_redis_server, auth.session_id)
    assert loaded.is_admin
    assert loaded.state.access_token == 'access-1'
    assert fake_redis_server.ttl(auth.redis_key) > 0


def test_token_refresh_keeps_the_current_view(fake_redis_server):
    auth = AuthSession(fake_redis_server)
    auth.sign_in(_response(_user('admin', 'Ana')))
    auth.set_view('results')

    refreshed = _response(_user('admin', 'Ana'), access='access-2', refresh='refresh-2').session
    auth.on_auth_event('TOKEN_REFRESHED', refreshed)

    loaded = AuthSession.load(fake_redis_server, auth.session_id)
    assert loaded.state.view == 'results'
    assert loaded.state.access_token == 'access-2'


def test_role_change_resets_the_view(fake_redis_server):
    auth = AuthSession(fake_redis_server)
    auth.sign_in(_response(_user('admin', 'Ana')))
    auth.set_view('tests')
    auth.on_auth_event('USER_UPDATED', _response(_user('candidate')).session)
    assert auth.state.role == 'candidate'
    assert auth.state.view == 'candidate-test'


def test_signed_out_event_clears_all_user_state(fake_redis_server):
    auth = AuthSession(fake_redis_server)
    auth.sign_in(_response(_user('candidate')))
    sid = auth.session_id
    fake_redis_server.hset(f"candidate:{sid}", mapping={'state': 'in_progress'})
    fake_redis_server.hset(f"draft:{sid}", mapping={'test': '{}'})

    auth.on_auth_event('SIGNED_OUT', None)

    assert AuthSession.load(fake_redis_server, sid) is None
    assert not fake_redis_server.exists(f"candidate:{sid}")
    assert not fake_redis_server.exists(f"draft:{sid}")
    assert auth.state.public_view()['view'] == 'login'
    # Late refresh callbacks must not resurrect a signed-out session.
    auth.save()
    assert AuthSession.load(fake_redis_server, sid) is None


def test_store_for_subscribes_before_restoring_session(fake_backend, fake_redis_server):
    user = fake_backend.add_user('ana@x.com', 'secret1', role='admin', name='Ana')
    token = fake_backend.new_session(user)
    auth = AuthSession(fake_redis_server)
    auth.sign_in(_response(fake_backend.users['ana@x.com'], token.access_token, token.refresh_token))

    Backend('u', 'k').store_for(token.access_token, token.refresh_token, on_auth_event=auth.on_auth_event)

    # set_session fired TOKEN_REFRESHED into the registered callback
    loaded = AuthSession.load(fake_redis_server, auth.session_id)
    assert loaded.state.name == 'Ana'
    client = fake_backend.clients[-1]
    assert client.options.persist_session is False


def test_store_for_rejects_unknown_tokens(fake_backend):
    with pytest.raises(BackendError) as excinfo:
        Backend('u', 'k').store_for('bogus', 'bogus')
    assert excinfo.value.status_code == 401


def test_sign_in_translates_bad_credentials(fake_backend):
    fake_backend.add_user('ana@x.com', 'secret1')
    with pytest.raises(BackendError) as excinfo:
        Backend('u', 'k').sign_in('ana@x.com', 'wrong')
    assert excinfo.value.message == 'Incorrect email or password.'
    assert excinfo.value.status_code == 401
