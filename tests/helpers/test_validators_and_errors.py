import pytest

from errors import (
    RLS_RECURSION_MESSAGE, BackendError, ValidationError, describe_backend_error,
    translate_auth_error,
)
from shell import build_shell, initials, validate_view
from auth_session import AuthState
from utilities.validators import looks_like_email, missing_fields, password_is_acceptable


@pytest.mark.parametrize('email,expected', [
    ('ana@example.com', True),
    ('a@b.co', True),
    ('not-an-email', False),
    ('a@b', False),
    ('', False),
])
def test_looks_like_email(email, expected):
    assert looks_like_email(email) is expected


def test_missing_fields_treats_blank_strings_as_missing():
    data = {'name': '  ', 'email': 'ana@example.com', 'password': None}
    assert missing_fields(data, 'name', 'email', 'password', 'test_id') == ['name', 'password', 'test_id']


def test_password_length():
    assert password_is_acceptable('123456') is True
    assert password_is_acceptable('12345') is False
    assert password_is_acceptable('') is False


def test_translate_auth_error_known_and_unknown():
    assert translate_auth_error('Invalid login credentials') == 'Incorrect email or password.'
    assert 'not confirmed' in translate_auth_error('Email not confirmed')
    assert translate_auth_error('User already registered') == 'This email is already registered.'
    assert translate_auth_error('Something odd') == 'Something odd'
    assert translate_auth_error('') == 'Unknown authentication error.'


def test_describe_backend_error_flags_policy_recursion():
    exc = BackendError('infinite recursion detected in policy for relation "profiles"')
    assert describe_backend_error(exc) == RLS_RECURSION_MESSAGE
    assert describe_backend_error(BackendError('boom')) == 'boom'


def test_error_status_codes():
    assert BackendError('x').status_code == 502
    assert BackendError('x', status_code=401).status_code == 401
    assert ValidationError('x').status_code == 400


@pytest.mark.parametrize('name,expected', [
    ('Ana Maria Silva', 'AM'),
    ('bruno', 'B'),
    ('', 'S'),
    ('   ', 'S'),
])
def test_initials(name, expected):
    assert initials(name) == expected


def test_build_shell_marks_current_view():
    state = AuthState(session_id='s1', role='admin', name='Ana Silva', email='ana@x.com', view='results')
    shell = build_shell(state)
    assert shell['current_view'] == 'results'
    active = [item['view'] for item in shell['nav'] if item['active']]
    assert active == ['results']
    assert shell['user']['initials'] == 'AS'


def test_validate_view_rejects_unknown():
    assert validate_view('tests') == 'tests'
    with pytest.raises(ValidationError):
        validate_view('candidate-test')
