"""Presentation-time reshaping of stored result payloads.

A ``result_test`` row holds either the raw answers a candidate submitted or
the analysis the external workflow computed from them. Neither shape is
guaranteed, so everything here is best-effort and never raises on bad input.
"""
import re
import json
import logging

from errors import BackendError
from models import ResultRecord
from utilities.constants import (
    ANALYSIS_MARKER_SECTION, ANSWER_KEY, BEHAVIOURS_TO_INVESTIGATE, CALCULATION_METADATA,
    HR_RECOMMENDATIONS, INTERVIEW_QUESTIONS, MAIN_CONCLUSIONS, NATURAL_BEHAVIOURS,
    PERSONALITY_SECTIONS, QUESTION_CHOICE, QUESTION_SCALE, SCORE_SCALE,
)

logger = logging.getLogger(__name__)

_LEADING_INT = re.compile(r'^\s*([+-]?\d+)')
SUBJECT_MAX_LENGTH = 20
RELATIONSHIP_ERROR_CODE = 'PGRST200'


def safe_parse_json(value):
    """Decode a payload that may have been JSON-encoded more than once.

    Already-decoded mappings and lists are returned as they are. A string is
    decoded until the result is no longer a string. Anything that fails to
    decode becomes an empty dict.
    """
    if isinstance(value, (dict, list)):
        return value
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError) as e:
        logger.debug("Unparseable result payload: %s", e)
        return {}
    if isinstance(parsed, str):
        return safe_parse_json(parsed)
    return parsed


def _leading_int(value):
    """Integer prefix of a value, like a lenient numeric parse; None when absent."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if not isinstance(value, str):
        return None
    match = _LEADING_INT.match(value)
    return int(match.group(1)) if match else None


def _number_or_zero(value):
    if isinstance(value, bool):
        return 0
    return value if isinstance(value, (int, float)) else 0


def is_analysis(data) -> bool:
    return isinstance(data, dict) and bool(data.get(ANALYSIS_MARKER_SECTION) or data.get(CALCULATION_METADATA))


def answered_questions(data) -> list:
    if not isinstance(data, dict):
        return []
    payload = data.get('payload') if isinstance(data.get('payload'), dict) else {}
    questions = data.get('body') or data.get('questions') or payload.get('body') or []
    return [q for q in questions if isinstance(q, dict)] if isinstance(questions, list) else []


def calculate_chart_data(result) -> dict:
    """Build radar and bar series for one result payload."""
    data = result if isinstance(result, dict) else {}

    if is_analysis(data):
        radar = []
        for section in PERSONALITY_SECTIONS:
            entries = data.get(section)
            if not isinstance(entries, dict):
                continue
            for key, value in entries.items():
                radar.append({
                    'subject': key.replace('_', ' '),
                    'value': _number_or_zero(value),
                    'full_mark': 100,
                })
        bar = []
        metadata = data.get(CALCULATION_METADATA)
        scale = metadata.get(SCORE_SCALE) if isinstance(metadata, dict) else None
        if isinstance(scale, dict):
            bar = [{'name': key, 'value': _number_or_zero(value)} for key, value in scale.items()]
        return {'radar': radar, 'bar': bar, 'is_analysis': True}

    category_scores = {}
    profile_counts = {}
    for q in answered_questions(data):
        answer = q.get(ANSWER_KEY)
        if not isinstance(answer, dict):
            continue
        category = q.get('category')
        if category and isinstance(category, str) and q.get('type') == QUESTION_SCALE:
            score = _leading_int(answer.get('value'))
            if score is not None:
                total, count = category_scores.get(category, (0, 0))
                category_scores[category] = (total + score, count + 1)
        if q.get('type') == QUESTION_CHOICE:
            most = answer.get('most') if isinstance(answer.get('most'), dict) else {}
            # "least" picks are not charted; dominance is about what fits best.
            for tag in (answer.get('value'), most.get('value')):
                if tag and isinstance(tag, str) and _leading_int(tag) is None:
                    profile_counts[tag] = profile_counts.get(tag, 0) + 1

    radar = []
    for category, (total, count) in category_scores.items():
        subject = category if len(category) <= SUBJECT_MAX_LENGTH else category[:SUBJECT_MAX_LENGTH] + '...'
        radar.append({
            'subject': subject,
            'full_subject': category,
            'value': round(total / count, 1),
            'full_mark': 5,
        })
    bar = [{'name': tag, 'value': count} for tag, count in profile_counts.items()]
    return {'radar': radar, 'bar': bar, 'is_analysis': False}


def extract_insights(data) -> dict:
    """Narrative sections of an analysed result, normalized for display."""
    if not isinstance(data, dict):
        return {}
    insights = {}
    conclusions = data.get(MAIN_CONCLUSIONS)
    if isinstance(conclusions, list):
        insights['main_conclusions'] = [str(c) for c in conclusions]
    for source, target in ((NATURAL_BEHAVIOURS, 'natural_behaviours'),
                           (BEHAVIOURS_TO_INVESTIGATE, 'behaviours_to_investigate')):
        section = data.get(source)
        if isinstance(section, dict):
            insights[target] = [{'name': k, 'description': v} for k, v in section.items()]
    recommendation = data.get(HR_RECOMMENDATIONS)
    if isinstance(recommendation, dict):
        insights['hr_recommendation'] = {
            'text': recommendation.get('texto') or '',
            'other_points': recommendation.get('outros_pontos') or None,
        }
    interview = data.get(INTERVIEW_QUESTIONS)
    if isinstance(interview, dict) and isinstance(interview.get('perguntas'), list):
        insights['interview_questions'] = list(interview['perguntas'])
    return insights


def describe_answers(data) -> list:
    """Flatten raw answers into display rows for the detail view."""
    rows = []
    for q in answered_questions(data):
        answer = q.get(ANSWER_KEY)
        row = {
            'id': q.get('id'),
            'text': q.get('text') or '',
            'category': q.get('category') or 'General',
            'type': q.get('type'),
        }
        if q.get('type') == QUESTION_SCALE and isinstance(answer, dict):
            score = _leading_int(answer.get('value'))
            row['score'] = score
            row['percent'] = (score / 5) * 100 if score is not None else None
        elif q.get('type') == QUESTION_CHOICE and isinstance(answer, dict):
            if answer.get('most') or answer.get('least'):
                row['most'] = answer.get('most')
                row['least'] = answer.get('least')
            else:
                row['choice'] = answer.get('text') or answer.get('value') or json.dumps(answer)
        rows.append(row)
    return rows


def is_relationship_error(exc) -> bool:
    return getattr(exc, 'code', None) == RELATIONSHIP_ERROR_CODE or 'relationship' in (getattr(exc, 'message', '') or '')


def _record_from_joined(row) -> ResultRecord:
    profile = row.get('profiles') if isinstance(row.get('profiles'), dict) else {}
    test = row.get('tests') if isinstance(row.get('tests'), dict) else {}
    return ResultRecord(
        id=row.get('id'),
        created_at=row.get('created_at'),
        candidate_id=row.get('candidate_id'),
        test_id=row.get('test_id'),
        result=safe_parse_json(row.get('result')),
        candidate_name=profile.get('name') or '',
        candidate_email=profile.get('email') or '',
        test_title=test.get('title') or '',
    )


def _record_from_raw(row) -> ResultRecord:
    parsed = safe_parse_json(row.get('result'))
    payload = parsed if isinstance(parsed, dict) else {}
    return ResultRecord(
        id=row.get('id'),
        created_at=row.get('created_at'),
        candidate_id=row.get('candidate_id'),
        test_id=row.get('test_id'),
        result=parsed,
        candidate_name=payload.get('candidate_email') or 'Candidate (name unavailable)',
        candidate_email=payload.get('candidate_email') or row.get('candidate_id') or '',
        test_title=payload.get('test_title') or 'Test (title unavailable)',
    )


def fetch_results(store) -> list:
    """Load result rows, falling back to a plain select when joins are refused."""
    try:
        rows = store.list_results_with_relations()
    except BackendError as e:
        if not is_relationship_error(e):
            raise
        logger.warning("Relationships not available, falling back to raw result rows")
        return [_record_from_raw(row) for row in store.list_results_raw()]
    return [_record_from_joined(row) for row in rows]


def filter_results(records, term) -> list:
    term = (term or '').lower()
    if not term:
        return list(records)

    def matches(record):
        payload_title = record.result.get('test_title') if isinstance(record.result, dict) else ''
        haystack = (record.candidate_name, record.candidate_email, record.test_title, payload_title or '')
        return any(term in str(value or '').lower() for value in haystack)

    return [record for record in records if matches(record)]


def summarize(record) -> dict:
    d = record.to_dict()
    d['charts'] = calculate_chart_data(record.result)
    return d


def detail(record) -> dict:
    d = summarize(record)
    if d['charts']['is_analysis']:
        d['insights'] = extract_insights(record.result)
    else:
        d['answers'] = describe_answers(record.result)
    return d
