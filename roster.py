import logging

from errors import BackendError, ValidationError
from models import Profile
from utilities.constants import ROLE_ADMIN, ROLE_CANDIDATE, STATUS_PENDING
from utilities.validators import looks_like_email, missing_fields, password_is_acceptable

logger = logging.getLogger(__name__)


def _matches(term, *values):
    term = (term or '').lower()
    return not term or any(term in (v or '').lower() for v in values)


def _validate_new_account(data):
    missing = missing_fields(data, 'name', 'email', 'password')
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}.")
    if not looks_like_email(data['email'].strip()):
        raise ValidationError('That does not look like a valid email address.')
    if not password_is_acceptable(data['password']):
        raise ValidationError('Password must be at least 6 characters.')


# --- candidates ---

def list_candidates(store, term=''):
    """Candidate roster plus the active tests offered for assignment.

    A failed test fetch only empties the picker; a failed profile fetch is
    reported to the caller.
    """
    try:
        tests = store.list_tests(active_only=True)
    except BackendError as e:
        logger.warning("Error fetching tests for the roster: %s", e.message)
        tests = []
    titles = {t.get('id'): t.get('title') for t in tests}

    candidates = []
    for row in store.list_candidates():
        profile = Profile.from_row(row)
        profile.name = profile.name or 'No name'
        profile.email = profile.email or 'No email'
        profile.assigned_test_title = (titles.get(profile.assigned_test_id)
                                       or profile.assigned_test_title
                                       or 'No test assigned')
        if _matches(term, profile.name, profile.email):
            candidates.append(profile.to_dict())
    return {
        'candidates': candidates,
        'tests': [{'id': t.get('id'), 'title': t.get('title')} for t in tests],
    }


def create_candidate(backend, data):
    _validate_new_account(data)
    test_id = data.get('test_id') or None
    user = backend.sign_up_isolated(data['email'].strip(), data['password'], {
        'name': data['name'].strip(),
        'role': ROLE_CANDIDATE,
        'assigned_test_id': test_id,
    })
    if user is None:
        # Sign-up accepted but no user returned (e.g. pending confirmation).
        return {'candidate': None,
                'message': 'User created. If the list does not update, reload the page.'}
    logger.info("Created candidate %s", user.id)
    candidate = Profile(
        id=user.id,
        name=data['name'].strip(),
        email=data['email'].strip(),
        status=STATUS_PENDING,
        assigned_test_id=test_id,
    )
    return {'candidate': candidate.to_dict()}


def update_candidate(store, candidate_id, data):
    """Only the display name and the assigned test are editable here."""
    if missing_fields(data, 'name'):
        raise ValidationError('Missing required fields: name.')
    fields = {
        'name': data['name'].strip(),
        'assigned_test_id': data.get('test_id') or None,
    }
    store.update_profile(candidate_id, fields)
    return {'id': candidate_id, 'name': fields['name'], 'assigned_test_id': fields['assigned_test_id']}


# --- administrators ---

def list_admins(store, term=''):
    admins = []
    for row in store.list_admins():
        admin = {
            'id': row.get('id'),
            'name': row.get('name') or '',
            'email': row.get('email') or '',
            'created_at': row.get('created_at'),
        }
        if _matches(term, admin['name'], admin['email']):
            admins.append(admin)
    return admins


def create_admin(backend, data):
    _validate_new_account(data)
    user = backend.sign_up_isolated(data['email'].strip(), data['password'], {
        'name': data['name'].strip(),
        'role': ROLE_ADMIN,
    })
    if user is None:
        return None
    logger.info("Created administrator %s", user.id)
    created_at = getattr(user, 'created_at', None)
    return {
        'id': user.id,
        'name': data['name'].strip(),
        'email': data['email'].strip(),
        'created_at': created_at.isoformat() if hasattr(created_at, 'isoformat') else created_at,
    }
