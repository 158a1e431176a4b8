"""Revoke all active sessions for an Okta user.

Forces the user to re-authenticate everywhere; typically run during a
security incident or when credentials may be compromised. Exposes the three
job lifecycle steps: invoke, error and halt.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from urllib.parse import quote

import requests
import structlog

from shared.address import get_base_url
from shared.auth import AuthMethod, resolve_credential
from shared.config import (
    RECOVERY_FRAMEWORK,
    BackoffConfig,
    get_environment,
    get_http_timeout,
    get_recovery_mode,
    get_secrets,
)
from shared.errors import ActionError, HttpError, ValidationError
from shared.recovery import error_details, recover

logger = structlog.get_logger(__name__)

_BEARER_PREFIX = 'Bearer '
_SSWS_PREFIX = 'SSWS '


@dataclass(frozen=True)
class RequestDescriptor:
    user_id: str
    base_url: str
    authorization: str = field(repr=False)

    @property
    def url(self) -> str:
        return f'{self.base_url}/api/v1/users/{quote(self.user_id, safe="")}/sessions'


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


def _validate_user_id(params: dict) -> str:
    user_id = (params or {}).get('userId')
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError('Invalid or missing userId parameter')
    return user_id


def to_okta_authorization(credential) -> str:
    """Okta API tokens use the SSWS scheme instead of Bearer.

    Only applies to the plain bearer-token method; Basic and OAuth2 headers
    are sent unchanged.
    """
    header = credential.header
    if credential.method is not AuthMethod.BEARER_TOKEN or not header.startswith(_BEARER_PREFIX):
        return header
    token = header[len(_BEARER_PREFIX):]
    return token if token.startswith(_SSWS_PREFIX) else f'{_SSWS_PREFIX}{token}'


def build_request(params: dict, context: dict, token_cache=None) -> RequestDescriptor:
    """Resolve target and credentials for one attempt."""
    user_id = _validate_user_id(params)
    environment = get_environment(context)
    base_url = get_base_url(params, environment)
    credential = resolve_credential(get_secrets(context), environment,
                                    token_cache=token_cache,
                                    timeout=get_http_timeout(environment))
    logger.debug('Resolved credentials', user_id=user_id, auth_method=credential.method.value)
    return RequestDescriptor(user_id=user_id, base_url=base_url,
                             authorization=to_okta_authorization(credential))


def revoke_user_sessions(request: RequestDescriptor, timeout: float) -> requests.Response:
    return requests.delete(
        request.url,
        headers={
            'Authorization': request.authorization,
            'Accept': 'application/json',
            'Content-Type': 'application/json',
        },
        timeout=timeout,
    )


def check_response(user_id: str, response: requests.Response) -> None:
    """Raise HttpError unless the response is 2xx."""
    status_code = response.status_code
    if 200 <= status_code < 300:
        return

    message = f'Failed to revoke sessions: HTTP {status_code}'
    try:
        body = response.json()
    except ValueError:
        logger.error('Failed to parse error response', user_id=user_id, status_code=status_code)
    else:
        if isinstance(body, dict) and body.get('errorSummary'):
            message = f'Failed to revoke sessions: {body["errorSummary"]}'
        logger.error('Okta API error response', user_id=user_id, status_code=status_code,
                     error_code=body.get('errorCode') if isinstance(body, dict) else None)

    raise HttpError(message, status_code)


def _attempt(params: dict, context: dict, token_cache=None) -> dict:
    request = build_request(params, context, token_cache=token_cache)
    response = revoke_user_sessions(request, get_http_timeout(get_environment(context)))
    check_response(request.user_id, response)

    logger.info('Revoked all sessions', user_id=request.user_id, status_code=response.status_code)
    return {
        'userId': request.user_id,
        'sessionsRevoked': True,
        'address': request.base_url,
        'revokedAt': _now_iso(),
    }


def invoke(params: dict, context: dict, token_cache=None) -> dict:
    """Revoke every session for ``params['userId']``.

    Raises ConfigurationError / ValidationError before any network call,
    TokenExchangeError if the OAuth2 exchange fails, and HttpError carrying
    the status code for any non-2xx revocation response.
    """
    logger.info('Starting Okta session revocation', user_id=(params or {}).get('userId'))
    return _attempt(params, context, token_cache=token_cache)


def error(params: dict, context: dict, token_cache=None, sleep=None) -> dict:
    """Recover from a failed invoke.

    With RECOVERY_MODE=framework the original error is re-raised untouched
    and the framework schedules any retry. Otherwise rate limits (429) and
    gateway errors (502/503/504) get one backoff and one fresh attempt.
    """
    params = params or {}
    original = params.get('error')
    message, status_code = error_details(original)
    user_id = params.get('userId')
    logger.error('Session revocation failed', user_id=user_id, status_code=status_code,
                 error=message)

    environment = get_environment(context)
    if get_recovery_mode(environment) == RECOVERY_FRAMEWORK:
        if isinstance(original, BaseException):
            raise original
        raise ActionError(message or 'Session revocation failed', status_code)

    _validate_user_id(params)
    return recover(
        user_id,
        original,
        retry=lambda: _attempt(params, context, token_cache=token_cache),
        backoff=BackoffConfig.from_environment(environment),
        sleep=sleep or time.sleep,
    )


def halt(params: dict, context: dict = None) -> dict:
    """Acknowledge a halt. A single DELETE leaves nothing to roll back."""
    params = params or {}
    reason = params.get('reason')
    user_id = params.get('userId')
    logger.info('Session revocation job halted', user_id=user_id, reason=reason)

    return {
        'userId': user_id or 'unknown',
        'reason': reason,
        'haltedAt': _now_iso(),
        'cleanupCompleted': True,
    }
