"""Error types shared by the views and the HTTP layer."""

AUTH_ERROR_TRANSLATIONS = [
    ('Invalid login credentials', 'Incorrect email or password.'),
    ('Email not confirmed', 'Login blocked: email not confirmed. If confirmation was disabled '
                            'recently, this older user must be recreated by an administrator.'),
    ('User already registered', 'This email is already registered.'),
]

RLS_RECURSION_MESSAGE = 'Backend error (RLS): infinite recursion detected in access policies.'


class AppError(Exception):
    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BackendError(AppError):
    """A call to the hosted backend (database or auth) failed."""

    status_code = 502

    def __init__(self, message, code=None, status_code=None):
        super().__init__(message, status_code)
        self.code = code


class ValidationError(AppError):
    status_code = 400


class FlowError(AppError):
    """The questionnaire cannot move in the requested direction."""

    status_code = 409


class AuthRequired(AppError):
    status_code = 401


class Forbidden(AppError):
    status_code = 403


def translate_auth_error(message: str) -> str:
    """Map known auth service messages to user-facing text."""
    message = message or ''
    for needle, friendly in AUTH_ERROR_TRANSLATIONS:
        if needle in message:
            return friendly
    return message or 'Unknown authentication error.'


def describe_backend_error(exc: Exception) -> str:
    message = getattr(exc, 'message', None) or str(exc) or 'Unknown error.'
    if 'recursion' in message:
        return RLS_RECURSION_MESSAGE
    return message
