import json
import logging
from datetime import datetime, timezone

from errors import BackendError, FlowError, ValidationError
from models import Test
from utilities.constants import (
    ANSWER_KEY, QUESTION_CHOICE, QUESTION_SCALE, SCALE_VALUES, STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
)
from utilities.webhook import deliver_answers

logger = logging.getLogger(__name__)

LOADING = 'loading'
BLOCKED = 'blocked'
ERROR = 'error'
IN_PROGRESS = 'in_progress'
SUBMITTING = 'submitting'
COMPLETED = 'completed'

BLOCKED_ALREADY_TAKEN = 'already_taken'
BLOCKED_NO_TEST = 'no_test'
BLOCKED_INACTIVE = 'inactive'

BLOCKED_MESSAGES = {
    BLOCKED_ALREADY_TAKEN: 'HR has already received your test.',
    BLOCKED_NO_TEST: 'No test has been assigned to your profile yet. Please contact HR.',
    BLOCKED_INACTIVE: 'This test is no longer active.',
}


def today_iso():
    return datetime.now(timezone.utc).date().isoformat()


def is_answer_complete(question, answer) -> bool:
    """Whether ``answer`` lets the candidate move past ``question``."""
    if not isinstance(answer, dict):
        return False
    if question.type == QUESTION_SCALE:
        return True
    if question.type == QUESTION_CHOICE:
        if question.is_most_least:
            most, least = answer.get('most'), answer.get('least')
            return bool(most and least and most.get('text') != least.get('text'))
        return bool(answer.get('text'))
    return False


def select_most_least(current, kind, option):
    """Mark ``option`` as the "most" or "least" pick.

    Picking, on one side, the option already chosen on the other side clears
    that other side, so the two picks can never coincide.
    """
    current = current or {}
    most, least = current.get('most'), current.get('least')
    if kind == 'most':
        most = option
        if least and least.get('text') == option['text']:
            least = None
    elif kind == 'least':
        least = option
        if most and most.get('text') == option['text']:
            most = None
    else:
        raise ValidationError("kind must be 'most' or 'least'.")
    return {'most': most, 'least': least}


class SubmissionLatch:
    """One-shot guard around the single submission of a candidate's answers.

    While a submission is in flight the key expires after ``ttl``. Once the
    webhook has accepted the answers the key is kept without expiry, so they
    are never sent again even if the profile update afterwards failed.
    """

    DELIVERED = 'delivered'

    def __init__(self, r, candidate_id, ttl=300):
        self.r = r
        self.key = f"submit_lock:{candidate_id}"
        self.ttl = ttl

    def acquire(self) -> bool:
        return bool(self.r.set(self.key, '1', nx=True, ex=self.ttl))

    def release(self):
        self.r.delete(self.key)

    def mark_delivered(self):
        self.r.set(self.key, self.DELIVERED)

    def delivered(self) -> bool:
        value = self.r.get(self.key)
        if isinstance(value, bytes):
            value = value.decode()
        return value == self.DELIVERED


class CandidateSession:
    """Linear questionnaire runner for one signed-in candidate.

    The runner state is kept in Redis so every request of the same browser
    session continues from where the previous one stopped.
    """

    def __init__(self, candidate_id, session_id, ttl=28800):
        self.candidate_id = candidate_id
        self.session_id = session_id
        self.ttl = ttl
        self.state = LOADING
        self.blocked_reason = ''
        self.error = ''
        self.candidate_name = ''
        self.candidate_email = ''
        self.test = None
        self.current_step = 0
        self.answers = {}

    def to_dict(self):
        return {
            'candidate_id': self.candidate_id,
            'session_id': self.session_id,
            'state': self.state,
            'blocked_reason': self.blocked_reason,
            'error': self.error,
            'candidate_name': self.candidate_name,
            'candidate_email': self.candidate_email,
            'test': json.dumps(self.test.to_dict()) if self.test else '',
            'current_step': self.current_step,
            'answers': json.dumps(self.answers),
        }

    @classmethod
    def from_dict(cls, data, ttl=28800):
        session = cls(data['candidate_id'], data['session_id'], ttl=ttl)
        session.state = data.get('state') or LOADING
        session.blocked_reason = data.get('blocked_reason', '')
        session.error = data.get('error', '')
        session.candidate_name = data.get('candidate_name', '')
        session.candidate_email = data.get('candidate_email', '')
        try:
            session.current_step = int(data.get('current_step', 0))
        except (TypeError, ValueError):
            session.current_step = 0
        try:
            raw_test = json.loads(data.get('test') or 'null')
            session.test = Test.from_row(raw_test) if raw_test else None
        except json.JSONDecodeError:
            session.test = None
        try:
            session.answers = json.loads(data.get('answers') or '{}')
        except json.JSONDecodeError:
            session.answers = {}
        return session

    def save(self, r):
        if r:
            key = f"candidate:{self.session_id}"
            r.hset(key, mapping=self.to_dict())
            r.expire(key, self.ttl)

    @classmethod
    def load(cls, r, session_id, ttl=28800):
        if r:
            data = r.hgetall(f"candidate:{session_id}")
            if data:
                return cls.from_dict(data, ttl=ttl)
        return None

    # --- loading ---

    def start(self, store, r=None):
        """Fetch the profile and assigned test and route to the matching state.

        With ``r`` given, answers already delivered for this candidate also
        count as a taken test, whatever the profile status says.
        """
        self.state = LOADING
        self.error = ''
        self.blocked_reason = ''
        try:
            profile = store.get_profile(self.candidate_id)
            self.candidate_name = profile.get('name') or ''
            self.candidate_email = profile.get('email') or ''

            if profile.get('status') in (STATUS_COMPLETED, STATUS_IN_PROGRESS):
                return self._block(BLOCKED_ALREADY_TAKEN)
            if r and SubmissionLatch(r, self.candidate_id).delivered():
                return self._block(BLOCKED_ALREADY_TAKEN)

            test_id = profile.get('assigned_test_id')
            if not test_id:
                return self._block(BLOCKED_NO_TEST)

            test = Test.from_row(store.get_test(test_id))
            if not test.active:
                return self._block(BLOCKED_INACTIVE)
        except BackendError as e:
            logger.error("Error loading candidate session %s: %s", self.candidate_id, e.message)
            self.state = ERROR
            self.error = f'Error loading session: {e.message}'
            return self.state

        self.test = test
        self.current_step = 0
        self.answers = {}
        self.state = IN_PROGRESS
        return self.state

    def _block(self, reason):
        self.state = BLOCKED
        self.blocked_reason = reason
        return self.state

    # --- answering ---

    @property
    def current_question(self):
        if not self.test or not self.test.questions:
            return None
        return self.test.questions[self.current_step]

    @property
    def is_last_question(self):
        return bool(self.test) and self.current_step == len(self.test.questions) - 1

    def _require_in_progress(self):
        if self.state != IN_PROGRESS or self.current_question is None:
            raise FlowError('The questionnaire is not accepting answers.')

    def _option(self, question, index):
        try:
            index = int(index)
        except (TypeError, ValueError):
            raise ValidationError('option_index must be an integer.')
        if not 0 <= index < len(question.options):
            raise ValidationError('option_index is out of range.')
        return question.options[index].to_dict()

    def answer(self, data: dict):
        """Record the answer to the current question.

        ``data`` carries ``value`` (1-5) for scale questions, ``option_index``
        for single choice, and ``kind`` plus ``option_index`` for most/least.
        """
        self._require_in_progress()
        question = self.current_question
        if question.type == QUESTION_SCALE:
            try:
                value = int(data.get('value'))
            except (TypeError, ValueError):
                raise ValidationError('value must be an integer between 1 and 5.')
            if value not in SCALE_VALUES:
                raise ValidationError('value must be an integer between 1 and 5.')
            self.answers[question.id] = {'text': str(value), 'value': str(value)}
        elif question.is_most_least:
            option = self._option(question, data.get('option_index'))
            self.answers[question.id] = select_most_least(
                self.answers.get(question.id), data.get('kind'), option)
        elif question.type == QUESTION_CHOICE:
            self.answers[question.id] = self._option(question, data.get('option_index'))
        else:
            raise ValidationError(f"Unsupported question type '{question.type}'.")
        return self.answers[question.id]

    def can_proceed(self) -> bool:
        question = self.current_question
        if self.state != IN_PROGRESS or question is None:
            return False
        return is_answer_complete(question, self.answers.get(question.id))

    def advance(self):
        """Move to the next question. Returns True when the last one was reached."""
        if self.state == IN_PROGRESS and self.test is not None and not self.test.questions:
            return True
        self._require_in_progress()
        if not self.can_proceed():
            raise FlowError('Answer the current question before continuing.')
        if self.is_last_question:
            return True
        self.current_step += 1
        return False

    # --- submission ---

    def build_payload(self):
        body = []
        for question in self.test.questions:
            entry = question.to_dict()
            entry[ANSWER_KEY] = self.answers.get(question.id)
            body.append(entry)
        return {
            'test_id': self.test.id,
            'test_title': self.test.title,
            'test_description': self.test.description,
            'candidate_id': self.candidate_id,
            'candidate_email': self.candidate_email,
            'body': body,
        }

    def submit(self, r, store, webhook_url, timeout=20, latch_ttl=300):
        """Deliver the answers once, then mark the profile completed.

        Returns False when another submission already holds the latch, in
        which case nothing is sent.
        """
        if self.state in (SUBMITTING, COMPLETED):
            return False
        latch = SubmissionLatch(r, self.candidate_id, ttl=latch_ttl)
        if not latch.acquire():
            logger.info("Duplicate submission ignored for candidate %s", self.candidate_id)
            return False

        self.state = SUBMITTING
        self.error = ''
        self.save(r)

        try:
            payload = self.build_payload()
            if not payload['body']:
                self._fail('The test appears to be empty. Try reloading.')
                self.save(r)
                return True
            ok, err = deliver_answers(webhook_url, payload, timeout=timeout)
        except Exception:
            # Nothing was delivered: reopen the questionnaire for another attempt.
            latch.release()
            self._reopen('Connection failure while sending your answers. Please try again.')
            self.save(r)
            raise

        if not ok:
            logger.warning("Answers for candidate %s not delivered: %s", self.candidate_id, err)
            latch.release()
            self._reopen('Connection failure while sending your answers. Please try again.')
            self.save(r)
            return True

        latch.mark_delivered()
        try:
            store.update_profile(self.candidate_id, {
                'status': STATUS_COMPLETED,
                'completed_date': today_iso(),
            })
        except BackendError as e:
            self._fail(f'Error finishing the test: {e.message}')
            self.save(r)
            return True
        except Exception:
            self._fail('Error finishing the test.')
            self.save(r)
            raise

        self.state = COMPLETED
        self.save(r)
        logger.info("Candidate %s completed test %s", self.candidate_id, self.test.id)
        return True

    def _reopen(self, message):
        self.state = IN_PROGRESS
        self.error = message

    def _fail(self, message):
        logger.error("Submission failed for candidate %s: %s", self.candidate_id, message)
        self.state = ERROR
        self.error = message

    # --- presentation ---

    def public_view(self):
        view = {
            'state': self.state,
            'candidate_name': self.candidate_name,
            'error': self.error or None,
        }
        if self.state == BLOCKED:
            view['blocked_reason'] = self.blocked_reason
            view['message'] = BLOCKED_MESSAGES.get(self.blocked_reason, '')
        if self.state in (IN_PROGRESS, SUBMITTING) and self.current_question is not None:
            question = self.current_question
            total = len(self.test.questions)
            view.update({
                'test_title': self.test.title,
                'step': self.current_step + 1,
                'total': total,
                'progress': round((self.current_step + 1) / total * 100),
                'is_last': self.is_last_question,
                'question': question.to_dict(),
                'answer': self.answers.get(question.id),
                'can_proceed': self.can_proceed(),
            })
        return view
