import logging

from flask import Blueprint, current_app, jsonify, render_template, request

import dashboard
import results
import roster
import tests_manager
from auth_session import AuthSession
from candidate_flow import COMPLETED, SUBMITTING, CandidateSession
from errors import AppError, AuthRequired, BackendError, Forbidden, ValidationError
from shell import build_shell, validate_view
from tests_manager import TestDraft
from utilities.constants import VIEW_LOGIN

logger = logging.getLogger(__name__)

# Create a Flask Blueprint to organize routes
main_bp = Blueprint('main', __name__)

# Store connection objects from the app factory
r = None
backend = None

SESSION_HEADER = 'X-Session-Id'


def _json():
    return request.get_json(silent=True) or {}


def _require_redis():
    if not r:
        raise AppError('Session store not available.', 500)


def _session_id():
    return request.headers.get(SESSION_HEADER) or _json().get('session_id')


def _ttl():
    return current_app.config['SESSION_TTL_SEC']


def _current_auth(role=None):
    """Load the caller's auth session, optionally insisting on a role."""
    _require_redis()
    auth = AuthSession.load(r, _session_id(), ttl=_ttl())
    if auth is None or not auth.state.role:
        raise AuthRequired('Not signed in.')
    if role and auth.state.role != role:
        raise Forbidden('This area is not available for your account.')
    return auth


def _store_for(auth):
    """Backend access as the signed-in user; a rejected session signs them out."""
    try:
        return backend.store_for(auth.state.access_token, auth.state.refresh_token,
                                 on_auth_event=auth.on_auth_event)
    except BackendError as e:
        if e.status_code == 401:
            auth.clear()
        raise


def _admin_store():
    auth = _current_auth('admin')
    return auth, _store_for(auth)


def handle_app_error(e):
    return jsonify({'error': e.message}), e.status_code


# === Entry page ===

@main_bp.route('/')
def index():
    """Serves the single-page shell of the console and the candidate flow."""
    return render_template('index.html')


# === Session / role ===

@main_bp.route('/api/auth/login', methods=['POST'])
def login():
    _require_redis()
    data = _json()
    email = (data.get('email') or '').strip()
    password = data.get('password') or ''
    if not email or not password:
        return jsonify({'error': 'Email and password are required.'}), 400

    response = backend.sign_in(email, password)
    if not response.user or not response.session:
        return jsonify({'error': 'Sign-in did not return a session.'}), 401

    auth = AuthSession(r, ttl=_ttl())
    return jsonify(auth.sign_in(response))


@main_bp.route('/api/auth/session', methods=['GET'])
def current_session():
    """Resolve the role and initial view of the caller's session, if any."""
    _require_redis()
    auth = AuthSession.load(r, _session_id(), ttl=_ttl())
    if auth is None:
        return jsonify({'role': None, 'view': VIEW_LOGIN})
    try:
        _store_for(auth)
    except BackendError as e:
        if e.status_code != 401:
            raise
        return jsonify({'role': None, 'view': VIEW_LOGIN})
    return jsonify(auth.state.public_view())


@main_bp.route('/api/auth/logout', methods=['POST'])
def logout():
    _require_redis()
    auth = AuthSession.load(r, _session_id(), ttl=_ttl())
    if auth is None:
        return jsonify({'role': None, 'view': VIEW_LOGIN})
    try:
        backend.store_for(auth.state.access_token, auth.state.refresh_token,
                          on_auth_event=auth.on_auth_event).sign_out()
    except BackendError as e:
        logger.warning("Could not sign out on the backend: %s", e.message)
    auth.clear()
    return jsonify({'role': None, 'view': VIEW_LOGIN})


# === Admin shell ===

@main_bp.route('/api/admin/shell', methods=['GET'])
def admin_shell():
    auth = _current_auth('admin')
    return jsonify(build_shell(auth.state))


@main_bp.route('/api/admin/view', methods=['POST'])
def admin_view():
    auth = _current_auth('admin')
    auth.set_view(validate_view(_json().get('view')))
    return jsonify(build_shell(auth.state))


@main_bp.route('/api/admin/dashboard', methods=['GET'])
def admin_dashboard():
    _, store = _admin_store()
    try:
        return jsonify(dashboard.build_dashboard(store))
    except BackendError as e:
        logger.error("Error loading dashboard: %s", e.message)
        return jsonify({'error': 'Could not load the dashboard data.'}), e.status_code


# === Candidate roster ===

@main_bp.route('/api/admin/candidates', methods=['GET'])
def candidates_list():
    _, store = _admin_store()
    try:
        return jsonify(roster.list_candidates(store, request.args.get('q', '')))
    except BackendError as e:
        return jsonify({'error': f'Error loading data: {e.message}', 'candidates': []}), e.status_code


@main_bp.route('/api/admin/candidates', methods=['POST'])
def candidates_create():
    _current_auth('admin')
    return jsonify(roster.create_candidate(backend, _json())), 201


@main_bp.route('/api/admin/candidates/<candidate_id>', methods=['PUT'])
def candidates_update(candidate_id):
    _, store = _admin_store()
    return jsonify(roster.update_candidate(store, candidate_id, _json()))


# === Admin users ===

@main_bp.route('/api/admin/admins', methods=['GET'])
def admins_list():
    _, store = _admin_store()
    return jsonify({'admins': roster.list_admins(store, request.args.get('q', ''))})


@main_bp.route('/api/admin/admins', methods=['POST'])
def admins_create():
    _current_auth('admin')
    return jsonify({'admin': roster.create_admin(backend, _json())}), 201


# === Tests ===

@main_bp.route('/api/admin/tests', methods=['GET'])
def tests_list():
    _, store = _admin_store()
    try:
        return jsonify({'tests': tests_manager.list_tests(store)})
    except BackendError as e:
        return jsonify({'error': f'Error loading tests: {e.message}', 'tests': []}), e.status_code


@main_bp.route('/api/admin/tests/draft', methods=['POST'])
def draft_start():
    auth, store = _admin_store()
    test_id = _json().get('test_id')
    if test_id:
        draft = TestDraft.from_existing(auth.session_id, store.get_test(test_id), ttl=_ttl())
    else:
        draft = TestDraft.blank(auth.session_id, ttl=_ttl())
    draft.save(r)
    return jsonify(draft.to_dict())


@main_bp.route('/api/admin/tests/draft', methods=['GET'])
def draft_get():
    auth = _current_auth('admin')
    draft = TestDraft.load(r, auth.session_id, ttl=_ttl())
    if not draft:
        return jsonify({'error': 'No test is being edited.'}), 404
    return jsonify(draft.to_dict())


@main_bp.route('/api/admin/tests/draft/edit', methods=['POST'])
def draft_edit():
    auth = _current_auth('admin')
    draft = TestDraft.load(r, auth.session_id, ttl=_ttl())
    if not draft:
        return jsonify({'error': 'No test is being edited.'}), 404
    data = _json()
    if not data.get('action'):
        raise ValidationError('action is required.')
    result = draft.apply(data['action'], data)
    draft.save(r)
    return jsonify(result)


@main_bp.route('/api/admin/tests/draft/save', methods=['POST'])
def draft_save():
    auth, store = _admin_store()
    draft = TestDraft.load(r, auth.session_id, ttl=_ttl())
    if not draft:
        return jsonify({'error': 'No test is being edited.'}), 404
    try:
        saved = draft.persist(store)
    except BackendError as e:
        return jsonify({'error': f'Error saving: {e.message}'}), e.status_code
    draft.discard(r)
    return jsonify({'test': saved})


@main_bp.route('/api/admin/tests/draft', methods=['DELETE'])
def draft_cancel():
    auth = _current_auth('admin')
    TestDraft(auth.session_id).discard(r)
    return jsonify({'cancelled': True})


# === Results ===

@main_bp.route('/api/admin/results', methods=['GET'])
def results_list():
    _, store = _admin_store()
    try:
        records = results.fetch_results(store)
    except BackendError as e:
        return jsonify({'error': e.message, 'results': []}), e.status_code
    records = results.filter_results(records, request.args.get('q', ''))
    return jsonify({'results': [results.summarize(rec) for rec in records]})


@main_bp.route('/api/admin/results/<result_id>', methods=['GET'])
def results_detail(result_id):
    _, store = _admin_store()
    for record in results.fetch_results(store):
        if str(record.id) == result_id:
            return jsonify(results.detail(record))
    return jsonify({'error': 'Result not found.'}), 404


# === Candidate flow ===

def _candidate_session(auth):
    session = CandidateSession.load(r, auth.session_id, ttl=_ttl())
    if session is None or session.candidate_id != auth.state.candidate_id:
        return None
    return session


@main_bp.route('/api/candidate/start', methods=['POST'])
def candidate_start():
    auth = _current_auth('candidate')
    existing = _candidate_session(auth)
    if existing and existing.state in (SUBMITTING, COMPLETED):
        return jsonify(existing.public_view())
    store = _store_for(auth)
    session = CandidateSession(auth.state.candidate_id, auth.session_id, ttl=_ttl())
    session.start(store, r)
    session.save(r)
    return jsonify(session.public_view())


@main_bp.route('/api/candidate/state', methods=['GET'])
def candidate_state():
    auth = _current_auth('candidate')
    session = _candidate_session(auth)
    if not session:
        return jsonify({'error': 'Candidate session not found.'}), 404
    return jsonify(session.public_view())


@main_bp.route('/api/candidate/answer', methods=['POST'])
def candidate_answer():
    auth = _current_auth('candidate')
    session = _candidate_session(auth)
    if not session:
        return jsonify({'error': 'Candidate session not found.'}), 404
    session.answer(_json())
    session.save(r)
    return jsonify(session.public_view())


@main_bp.route('/api/candidate/next', methods=['POST'])
def candidate_next():
    """Advance to the next question, or submit after the last one."""
    auth = _current_auth('candidate')
    session = _candidate_session(auth)
    if not session:
        return jsonify({'error': 'Candidate session not found.'}), 404
    if session.state in (SUBMITTING, COMPLETED):
        return jsonify(dict(session.public_view(), duplicate=True))

    if not session.advance():
        session.save(r)
        return jsonify(session.public_view())

    store = _store_for(auth)
    config = current_app.config
    submitted = session.submit(
        r, store, config['ANSWERS_WEBHOOK_URL'],
        timeout=config['WEBHOOK_TIMEOUT_SEC'],
        latch_ttl=config['SUBMIT_LATCH_TTL_SEC'],
    )
    if not submitted:
        # Another request owns the submission; report its state untouched.
        session = _candidate_session(auth) or session
    view = session.public_view()
    view['duplicate'] = not submitted
    return jsonify(view)


def init_app(app, redis_conn, backend_conn):
    """Hands the connections to the routes and registers the blueprint with the Flask app."""
    global r, backend
    r = redis_conn
    backend = backend_conn
    app.register_error_handler(AppError, handle_app_error)
    app.register_blueprint(main_bp)
