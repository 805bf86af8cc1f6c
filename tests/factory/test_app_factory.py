import pytest


def test_app_factory_creates_app(app):
    assert app is not None
    assert app.config['TESTING'] is True
    assert app.config['SESSION_TTL_SEC'] > 0
    rules = {rule.rule for rule in app.url_map.iter_rules()}
    assert '/api/auth/login' in rules
    assert '/api/candidate/next' in rules
    assert '/api/admin/tests/draft/save' in rules


def test_app_factory_can_be_called_twice(fake_backend):
    from app import create_app
    first = create_app()
    second = create_app()
    assert first is not second


def test_app_factory_requires_backend_settings(monkeypatch, fake_backend):
    from app import create_app
    monkeypatch.delenv('SUPABASE_URL', raising=False)
    with pytest.raises(RuntimeError):
        create_app()


def test_index_page_served(client):
    rv = client.get('/')
    assert rv.status_code == 200
    assert b'<html' in rv.data.lower()


def test_session_store_unavailable(monkeypatch, fake_backend):
    import redis
    from app import create_app

    class _DownRedis:
        def ping(self):
            raise redis.exceptions.ConnectionError('refused')

    monkeypatch.setattr(redis, 'from_url', lambda *a, **k: _DownRedis())
    application = create_app()
    rv = application.test_client().post('/api/auth/login', json={'email': 'a@x.com', 'password': 'secret1'})
    assert rv.status_code == 500
    assert 'Session store' in rv.get_json()['error']
