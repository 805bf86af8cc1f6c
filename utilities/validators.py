from .constants import MIN_PASSWORD_LENGTH


def looks_like_email(email: str) -> bool:
    if not email or '@' not in email or '.' not in email:
        return False
    if len(email) < 6:
        return False
    return True


def missing_fields(data: dict, *names) -> list:
    """Return the names whose values are empty after stripping whitespace."""
    missing = []
    for name in names:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)
    return missing


def password_is_acceptable(password: str) -> bool:
    return bool(password) and len(password) >= MIN_PASSWORD_LENGTH
