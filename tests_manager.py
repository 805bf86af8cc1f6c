import json
import time
import logging

from errors import ValidationError
from models import Question, QuestionOption, Test
from utilities.constants import (
    PROFILE_OPTIONS, QUESTION_CHOICE, QUESTION_SCALE, SCORE_OPTIONS, VARIATION_MOST_LEAST,
    VARIATION_SINGLE,
)

logger = logging.getLogger(__name__)

QUESTION_TYPES = (QUESTION_SCALE, QUESTION_CHOICE)
VARIATIONS = (VARIATION_SINGLE, VARIATION_MOST_LEAST)
EDITABLE_QUESTION_FIELDS = ('text', 'category', 'type', 'variation')


def new_question_id():
    return f"q{int(time.time() * 1000)}"


def list_tests(store):
    return [Test.from_row(row, mirror_text=False).to_dict() for row in store.list_tests()]


def option_presets():
    return {'profiles': PROFILE_OPTIONS, 'scores': SCORE_OPTIONS}


class TestDraft:
    """An admin's unsaved test, edited one action at a time.

    The draft lives in Redis next to the admin's auth session and is written
    to the backend as a whole on save.
    """

    __test__ = False

    def __init__(self, session_id, test=None, editing_id=None, ttl=28800):
        self.session_id = session_id
        self.test = test or Test(id=None)
        self.editing_id = editing_id
        self.ttl = ttl

    @property
    def redis_key(self):
        return f"draft:{self.session_id}"

    @classmethod
    def blank(cls, session_id, ttl=28800):
        test = Test(id=None, active=True, questions=[Question(id=new_question_id(), type=QUESTION_SCALE)])
        return cls(session_id, test=test, ttl=ttl)

    @classmethod
    def from_existing(cls, session_id, row, ttl=28800):
        # Legacy string options become {text, value: ''} for the editor.
        test = Test.from_row(row, mirror_text=False)
        return cls(session_id, test=test, editing_id=test.id, ttl=ttl)

    def save(self, r):
        if r:
            r.hset(self.redis_key, mapping={
                'editing_id': self.editing_id or '',
                'test': json.dumps(self.test.to_dict()),
            })
            r.expire(self.redis_key, self.ttl)

    @classmethod
    def load(cls, r, session_id, ttl=28800):
        data = r.hgetall(f"draft:{session_id}") if r else None
        if not data:
            return None
        try:
            test = Test.from_row(json.loads(data.get('test') or '{}'), mirror_text=False)
        except json.JSONDecodeError:
            test = Test(id=None)
        return cls(session_id, test=test, editing_id=data.get('editing_id') or None, ttl=ttl)

    def discard(self, r):
        if r:
            r.delete(self.redis_key)

    def to_dict(self):
        d = self.test.to_dict()
        d['editing_id'] = self.editing_id
        d['option_presets'] = option_presets()
        return d

    # --- edit actions ---

    def _question(self, question_id):
        for question in self.test.questions:
            if question.id == question_id:
                return question
        raise ValidationError(f"Question '{question_id}' not found in draft.")

    def _option_index(self, question, index):
        try:
            index = int(index)
        except (TypeError, ValueError):
            raise ValidationError('index must be an integer.')
        if not 0 <= index < len(question.options):
            raise ValidationError('Option index out of range.')
        return index

    def set_info(self, data):
        if 'title' in data:
            self.test.title = data.get('title') or ''
        if 'description' in data:
            self.test.description = data.get('description') or ''
        if 'active' in data:
            self.test.active = bool(data.get('active'))

    def toggle_active(self, data=None):
        self.test.active = not self.test.active

    def add_question(self, data=None):
        self.test.questions.append(Question(
            id=new_question_id(),
            type=QUESTION_SCALE,
            category='',
            variation=VARIATION_SINGLE,
            options=[QuestionOption()],
        ))
        return self.test.questions[-1]

    def update_question(self, data):
        question = self._question(data.get('question_id'))
        updates = data.get('updates') or {}
        for name in EDITABLE_QUESTION_FIELDS:
            if name not in updates:
                continue
            value = updates[name]
            if name == 'type' and value not in QUESTION_TYPES:
                raise ValidationError(f"Unknown question type '{value}'.")
            if name == 'variation' and value not in VARIATIONS:
                raise ValidationError(f"Unknown variation '{value}'.")
            setattr(question, name, value)
        if question.type == QUESTION_CHOICE and not question.variation:
            question.variation = VARIATION_SINGLE
        return question

    def remove_question(self, data):
        question = self._question(data.get('question_id'))
        self.test.questions = [q for q in self.test.questions if q.id != question.id]

    def add_option(self, data):
        question = self._question(data.get('question_id'))
        question.options.append(QuestionOption())
        return question

    def update_option(self, data):
        question = self._question(data.get('question_id'))
        index = self._option_index(question, data.get('index'))
        option = question.options[index]
        if 'text' in data:
            option.text = data.get('text') or ''
        if 'value' in data:
            option.value = data.get('value') or ''
        return question

    def remove_option(self, data):
        question = self._question(data.get('question_id'))
        index = self._option_index(question, data.get('index'))
        del question.options[index]
        return question

    ACTIONS = {
        'set_info': set_info,
        'toggle_active': toggle_active,
        'add_question': add_question,
        'update_question': update_question,
        'remove_question': remove_question,
        'add_option': add_option,
        'update_option': update_option,
        'remove_option': remove_option,
    }

    def apply(self, action, data):
        handler = self.ACTIONS.get(action)
        if handler is None:
            raise ValidationError(f"Unknown draft action '{action}'.")
        handler(self, data or {})
        return self.to_dict()

    # --- persistence ---

    def persist(self, store):
        """Write the whole draft: update when editing, insert otherwise."""
        if not self.test.title.strip():
            raise ValidationError('Test title is required.')
        payload = self.test.to_payload()
        if self.editing_id:
            store.update_test(self.editing_id, payload)
            saved = dict(payload, id=self.editing_id)
            logger.info("Updated test %s", self.editing_id)
        else:
            saved = store.insert_test(payload) or payload
            logger.info("Created test %s", saved.get('id'))
        return Test.from_row(saved, mirror_text=False).to_dict()
