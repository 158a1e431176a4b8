"""Single-retry recovery policy for transient API failures.

A failed call is classified once. Rate limits and gateway errors get one
fixed backoff and one retry; anything else, including a failed retry, is
terminal. There is no retry loop and no exponential backoff; the job
framework may apply its own policy across invocations.
"""

import enum
import time

import requests
import structlog

from shared.config import BackoffConfig
from shared.errors import ActionError, RecoveryError

logger = structlog.get_logger(__name__)

SERVICE_UNAVAILABLE_CODES = frozenset({502, 503, 504})


class RecoveryClass(enum.Enum):
    RATE_LIMIT = 'rate_limit'
    SERVICE_UNAVAILABLE = 'service_unavailable'
    UNRECOVERABLE = 'unrecoverable'


class RecoveryMethod(str, enum.Enum):
    RATE_LIMIT_RETRY = 'rate_limit_retry'
    SERVICE_RETRY = 'service_retry'


_METHODS = {
    RecoveryClass.RATE_LIMIT: RecoveryMethod.RATE_LIMIT_RETRY,
    RecoveryClass.SERVICE_UNAVAILABLE: RecoveryMethod.SERVICE_RETRY,
}


def classify(status_code: int | None, message: str = '') -> RecoveryClass:
    message = (message or '').lower()
    if status_code == 429 or '429' in message or 'rate limit' in message:
        return RecoveryClass.RATE_LIMIT
    if status_code in SERVICE_UNAVAILABLE_CODES:
        return RecoveryClass.SERVICE_UNAVAILABLE
    return RecoveryClass.UNRECOVERABLE


def error_details(error) -> tuple[str, int | None]:
    """Extract (message, status_code) from an exception or a framework error dict."""
    if error is None:
        return '', None
    if isinstance(error, dict):
        message = error.get('message') or ''
        status = error.get('statusCode', error.get('status_code'))
    else:
        message = getattr(error, 'message', None) or str(error)
        status = getattr(error, 'status_code', None)
        if status is None:
            status = getattr(error, 'statusCode', None)
    try:
        status = int(status) if status is not None else None
    except (TypeError, ValueError):
        status = None
    return message, status


def backoff_ms_for(recovery_class: RecoveryClass, backoff: BackoffConfig) -> int:
    if recovery_class is RecoveryClass.RATE_LIMIT:
        return backoff.rate_limit_backoff_ms
    return backoff.service_error_backoff_ms


def unrecoverable(user_id: str, message: str, status_code: int | None) -> RecoveryError:
    return RecoveryError(
        f'Unrecoverable error revoking sessions for user {user_id}: {message}',
        status_code=status_code,
        user_id=user_id,
    )


def recover(user_id: str, error, retry, backoff: BackoffConfig, sleep=time.sleep) -> dict:
    """Apply the recovery policy to a failed attempt.

    Args:
        user_id: Target user, for messages and logs.
        error: The original failure (exception or framework error dict).
        retry: Zero-argument callable that performs one fresh attempt and
            returns the success result dict.
        backoff: Configured backoff durations.
        sleep: Blocking sleep taking seconds (injectable for tests).

    Returns:
        The retry's result dict with ``recoveryMethod`` added.

    Raises:
        RecoveryError: unrecoverable class, or the single retry failed.
    """
    message, status_code = error_details(error)
    recovery_class = classify(status_code, message)

    if recovery_class is RecoveryClass.UNRECOVERABLE:
        logger.error('Unable to recover from error', user_id=user_id, status_code=status_code)
        raise unrecoverable(user_id, message, status_code)

    wait_ms = backoff_ms_for(recovery_class, backoff)
    logger.warning('Transient failure, backing off before retry', user_id=user_id,
                   status_code=status_code, recovery_class=recovery_class.value, backoff_ms=wait_ms)
    sleep(wait_ms / 1000)

    logger.info('Retrying after backoff', user_id=user_id, recovery_class=recovery_class.value)
    try:
        result = retry()
    except (ActionError, requests.RequestException) as retry_error:
        retry_message, retry_status = error_details(retry_error)
        logger.error('Retry failed, giving up', user_id=user_id,
                     status_code=retry_status, retry_error=retry_message)
        raise unrecoverable(user_id, message, status_code) from retry_error

    method = _METHODS[recovery_class]
    logger.info('Recovered after retry', user_id=user_id, recovery_method=method.value)
    return {**result, 'recoveryMethod': method.value}
