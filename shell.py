from errors import ValidationError
from utilities.constants import ADMIN_VIEWS, DEFAULT_ADMIN_VIEW

ADMIN_VIEW_NAMES = [name for name, _ in ADMIN_VIEWS]


def initials(name: str) -> str:
    if not name or not name.strip():
        return 'S'
    parts = [p for p in name.split(' ') if p]
    return ''.join(p[0] for p in parts[:2]).upper()


def validate_view(view: str) -> str:
    if view not in ADMIN_VIEW_NAMES:
        raise ValidationError(f"Unknown view '{view}'.")
    return view


def build_shell(state) -> dict:
    """Navigation frame for the admin console."""
    current = state.view if state.view in ADMIN_VIEW_NAMES else DEFAULT_ADMIN_VIEW
    return {
        'current_view': current,
        'nav': [
            {'view': name, 'label': label, 'active': name == current}
            for name, label in ADMIN_VIEWS
        ],
        'user': {
            'name': state.name,
            'email': state.email,
            'initials': initials(state.name),
        },
    }
