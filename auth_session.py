import uuid
import logging
from dataclasses import dataclass, asdict
from typing import Optional

from utilities.constants import (
    DEFAULT_ADMIN_VIEW, ROLE_ADMIN, ROLE_CANDIDATE, VIEW_CANDIDATE_TEST, VIEW_LOGIN,
)

logger = logging.getLogger(__name__)

# Redis key prefixes of everything held for one browser session
USER_STATE_PREFIXES = ('auth', 'candidate', 'draft')


def classify_user(user) -> dict:
    """Derive the coarse role of an authenticated user from its metadata.

    Only ``role == 'admin'`` grants the admin console; every other user is a
    candidate. The metadata is whatever was supplied at sign-up.
    """
    metadata = getattr(user, 'user_metadata', None) or {}
    email = getattr(user, 'email', None) or ''
    if metadata.get('role') == ROLE_ADMIN:
        return {
            'role': ROLE_ADMIN,
            'name': metadata.get('name') or 'Admin',
            'email': email,
            'candidate_id': '',
            'view': DEFAULT_ADMIN_VIEW,
        }
    return {
        'role': ROLE_CANDIDATE,
        'name': metadata.get('name') or '',
        'email': email,
        'candidate_id': getattr(user, 'id', '') or '',
        'view': VIEW_CANDIDATE_TEST,
    }


@dataclass
class AuthState:
    session_id: str
    role: str = ''
    name: str = ''
    email: str = ''
    candidate_id: str = ''
    view: str = VIEW_LOGIN
    access_token: str = ''
    refresh_token: str = ''

    def to_dict(self):
        return {k: ('' if v is None else str(v)) for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls, d: dict):
        return cls(
            session_id=d.get('session_id', ''),
            role=d.get('role', ''),
            name=d.get('name', ''),
            email=d.get('email', ''),
            candidate_id=d.get('candidate_id', ''),
            view=d.get('view', VIEW_LOGIN) or VIEW_LOGIN,
            access_token=d.get('access_token', ''),
            refresh_token=d.get('refresh_token', ''),
        )

    def public_view(self):
        """What the client may see; tokens stay server side."""
        return {
            'session_id': self.session_id,
            'role': self.role or None,
            'name': self.name,
            'email': self.email,
            'candidate_id': self.candidate_id or None,
            'view': self.view if self.role else VIEW_LOGIN,
        }


class AuthSession:
    """Auth session of one browser, kept in Redis.

    Mirrors the backend session: created on sign-in, resynchronized whenever
    the backend client reports an auth state change, wiped on sign-out.
    """

    def __init__(self, r, session_id: Optional[str] = None, ttl: int = 28800):
        self.r = r
        self.session_id = session_id or str(uuid.uuid4())
        self.ttl = ttl
        self.state = AuthState(session_id=self.session_id)
        self.signed_out = False

    @property
    def redis_key(self):
        return f"auth:{self.session_id}"

    def save(self):
        if not self.r or self.signed_out:
            return
        self.r.hset(self.redis_key, mapping=self.state.to_dict())
        self.r.expire(self.redis_key, self.ttl)

    @classmethod
    def load(cls, r, session_id: str, ttl: int = 28800):
        data = r.hgetall(f"auth:{session_id}") if (r and session_id) else None
        if not data:
            return None
        sess = cls(r, session_id=session_id, ttl=ttl)
        sess.state = AuthState.from_dict(data)
        return sess

    @property
    def is_admin(self):
        return self.state.role == ROLE_ADMIN

    @property
    def is_candidate(self):
        return self.state.role == ROLE_CANDIDATE

    def sign_in(self, auth_response):
        """Adopt a successful sign-in response from the backend."""
        user = auth_response.user
        self._adopt(user, auth_response.session)
        # A fresh sign-in always lands on the role's initial view.
        self.state.view = classify_user(user)['view']
        self.save()
        logger.info("Session %s signed in as %s", self.session_id, self.state.role)
        return self.state.public_view()

    def on_auth_event(self, event, session):
        """Callback registered on every backend client built for this session."""
        if event == 'SIGNED_OUT':
            self.clear()
            return
        if event in ('SIGNED_IN', 'TOKEN_REFRESHED', 'USER_UPDATED') and session is not None:
            user = getattr(session, 'user', None)
            if user is None:
                return
            self._adopt(user, session)
            self.save()

    def clear(self):
        """Drop every piece of user state held for this browser."""
        self.state = AuthState(session_id=self.session_id)
        if self.r:
            self.r.delete(*(f"{prefix}:{self.session_id}" for prefix in USER_STATE_PREFIXES))
        self.signed_out = True
        logger.info("Session %s signed out", self.session_id)

    def set_view(self, view):
        self.state.view = view
        self.save()

    def _adopt(self, user, session):
        info = classify_user(user)
        # Keep the admin's current view across token refreshes; a role change resets it.
        if self.state.role != info['role'] or self.state.view == VIEW_LOGIN:
            self.state.view = info['view']
        self.state.role = info['role']
        self.state.name = info['name']
        self.state.email = info['email']
        self.state.candidate_id = info['candidate_id']
        if session is not None:
            self.state.access_token = getattr(session, 'access_token', '') or ''
            self.state.refresh_token = getattr(session, 'refresh_token', '') or ''
