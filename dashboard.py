import re
from datetime import datetime, timezone

from utilities.constants import STATUS_COMPLETED, STATUS_IN_PROGRESS, STATUS_PENDING

MONTH_ABBR = ('Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun',
              'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec')
MONTHS_SHOWN = 6
RECENT_LIMIT = 5
STATUS_LABELS = [
    (STATUS_COMPLETED, 'Completed'),
    (STATUS_IN_PROGRESS, 'In Progress'),
    (STATUS_PENDING, 'Pending'),
]
_FRACTION = re.compile(r'\.(\d+)')


def _parse_timestamp(value):
    if not value:
        return None
    text = str(value).replace('Z', '+00:00')
    # fromisoformat before 3.11 only takes 3 or 6 fractional digits; the backend trims zeros.
    text = _FRACTION.sub(lambda m: '.' + m.group(1)[:6].ljust(6, '0'), text, count=1)
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _last_months(now, count):
    """(year, month) keys of the last ``count`` calendar months, oldest first."""
    keys = []
    year, month = now.year, now.month
    for _ in range(count):
        keys.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def monthly_signups(candidates, now=None):
    now = now or datetime.now(timezone.utc)
    counts = {key: 0 for key in _last_months(now, MONTHS_SHOWN)}
    for candidate in candidates:
        created = _parse_timestamp(candidate.get('created_at'))
        if created is None:
            continue
        key = (created.year, created.month)
        if key in counts:
            counts[key] += 1
    return [{'name': MONTH_ABBR[month - 1], 'year': year, 'candidates': n}
            for (year, month), n in counts.items()]


def status_breakdown(candidates):
    series = []
    for status, label in STATUS_LABELS:
        value = sum(1 for c in candidates if c.get('status') == status)
        if value > 0:
            series.append({'name': label, 'value': value})
    return series or [{'name': 'No data', 'value': 1}]


def build_dashboard(store, now=None):
    tests = store.list_tests()
    candidates = store.list_candidates(filter_on_server=True)

    completed = sum(1 for c in candidates if c.get('status') == STATUS_COMPLETED)
    # The "pending" card groups candidates that have not finished yet.
    pending = sum(1 for c in candidates if c.get('status') in (STATUS_PENDING, STATUS_IN_PROGRESS))

    recent = []
    for c in candidates[:RECENT_LIMIT]:
        embedded = c.get('tests') if isinstance(c.get('tests'), dict) else {}
        recent.append({
            'id': c.get('id'),
            'name': c.get('name') or '',
            'email': c.get('email') or '',
            'test_title': embedded.get('title') or '-',
            'created_at': c.get('created_at'),
            'status': c.get('status') or STATUS_PENDING,
        })

    return {
        'stats': {
            'total': len(candidates),
            'active_tests': sum(1 for t in tests if t.get('active')),
            'completed': completed,
            'pending': pending,
        },
        'monthly': monthly_signups(candidates, now=now),
        'status': status_breakdown(candidates),
        'recent_candidates': recent,
    }
