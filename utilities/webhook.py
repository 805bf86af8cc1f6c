import logging

import requests

logger = logging.getLogger(__name__)


def deliver_answers(url: str, payload: dict, timeout: float = 20):
    """POST a completed questionnaire to the answer-processing webhook.

    The response body is not consumed; only success (2xx) or failure matters.
    Analysis results arrive later in the backend through a separate process.

    Returns:
        A tuple of (ok, error_message). error_message is None on success.
    """
    if not url:
        return False, 'ANSWERS_WEBHOOK_URL not configured on server'
    headers = {'Content-Type': 'application/json'}
    try:
        resp = requests.post(url, headers=headers, json=payload, timeout=timeout)
    except requests.RequestException as e:
        logger.warning("Webhook delivery failed for test %s: %s", payload.get('test_id'), e)
        return False, str(e)
    if 200 <= resp.status_code < 300:
        logger.info("Webhook accepted answers for candidate %s", payload.get('candidate_id'))
        return True, None
    logger.warning("Webhook rejected answers with status %s", resp.status_code)
    return False, f'Webhook error {resp.status_code}: {resp.text[:200]}'
