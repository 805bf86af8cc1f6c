import json
from dataclasses import dataclass, field, asdict
from typing import Optional

from utilities.constants import (
    QUESTION_CHOICE, QUESTION_SCALE, ROLE_CANDIDATE, STATUS_PENDING, VARIATION_SINGLE,
)

# Note: these are shapes, not a schema. Rows come back from the backend as
# dicts and are mapped here; nothing below is enforced by the database.


@dataclass
class QuestionOption:
    text: str = ''
    value: str = ''

    @classmethod
    def from_raw(cls, raw, mirror_text=True):
        """Build an option from a stored entry.

        Legacy tests stored options as bare strings. The candidate runner
        treats such a string as both text and value; the test builder keeps
        the text and leaves the value blank for the admin to fill in.
        """
        if isinstance(raw, str):
            return cls(text=raw, value=raw if mirror_text else '')
        if isinstance(raw, dict):
            return cls(text=str(raw.get('text') or ''), value=str(raw.get('value') or ''))
        return cls()

    def to_dict(self):
        return asdict(self)


@dataclass
class Question:
    id: str
    text: str = ''
    type: str = QUESTION_SCALE
    category: Optional[str] = None
    variation: Optional[str] = None
    options: list = field(default_factory=list)

    @property
    def is_most_least(self):
        return self.type == QUESTION_CHOICE and self.variation == 'most_least'

    @classmethod
    def from_dict(cls, d: dict, mirror_text=True):
        options = [QuestionOption.from_raw(o, mirror_text=mirror_text) for o in (d.get('options') or [])]
        variation = d.get('variation')
        if d.get('type') == QUESTION_CHOICE and not variation:
            variation = VARIATION_SINGLE
        return cls(
            id=str(d.get('id', '')),
            text=d.get('text') or '',
            type=d.get('type') or QUESTION_SCALE,
            category=d.get('category') or None,
            variation=variation,
            options=options,
        )

    def to_dict(self):
        return {
            'id': self.id,
            'text': self.text,
            'category': self.category,
            'type': self.type,
            'options': [o.to_dict() for o in self.options] if self.options else None,
            'variation': self.variation,
        }


def decode_questions(raw, mirror_text=True):
    """Questions may be stored as a JSON column or as JSON text."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            raw = []
    return [Question.from_dict(q, mirror_text=mirror_text) for q in (raw or []) if isinstance(q, dict)]


@dataclass
class Test:
    __test__ = False  # keep pytest from collecting this as a test class

    id: Optional[str]
    title: str = ''
    description: str = ''
    active: bool = True
    questions: list = field(default_factory=list)
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict, mirror_text=True):
        return cls(
            id=row.get('id'),
            title=row.get('title') or '',
            description=row.get('description') or '',
            active=bool(row.get('active')),
            questions=decode_questions(row.get('questions'), mirror_text=mirror_text),
            created_at=row.get('created_at'),
        )

    def to_payload(self):
        """Columns written on save. The whole question list is sent every time."""
        return {
            'title': self.title,
            'description': self.description,
            'questions': [q.to_dict() for q in self.questions],
            'active': self.active,
        }

    def to_dict(self):
        d = self.to_payload()
        d['id'] = self.id
        d['created_at'] = self.created_at
        return d


@dataclass
class Profile:
    id: str
    name: str = ''
    email: str = ''
    role: str = ROLE_CANDIDATE
    status: str = STATUS_PENDING
    assigned_test_id: Optional[str] = None
    assigned_test_title: Optional[str] = None
    score: Optional[float] = None
    completed_date: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict):
        embedded_test = row.get('tests') or {}
        return cls(
            id=row.get('id'),
            name=row.get('name') or '',
            email=row.get('email') or '',
            role=row.get('role') or ROLE_CANDIDATE,
            status=row.get('status') or STATUS_PENDING,
            assigned_test_id=row.get('assigned_test_id') or None,
            assigned_test_title=embedded_test.get('title') if isinstance(embedded_test, dict) else None,
            score=row.get('score'),
            completed_date=row.get('completed_date'),
            created_at=row.get('created_at'),
        )

    def to_dict(self):
        return asdict(self)


@dataclass
class ResultRecord:
    id: str
    created_at: Optional[str] = None
    candidate_id: Optional[str] = None
    test_id: Optional[str] = None
    result: dict = field(default_factory=dict)
    candidate_name: str = ''
    candidate_email: str = ''
    test_title: str = ''

    def to_dict(self):
        return asdict(self)
