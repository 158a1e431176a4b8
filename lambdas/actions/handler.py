"""Okta revoke-sessions job Lambda handler.

Invoked directly by the job framework with one lifecycle step per call:

    {
        "step": "invoke" | "error" | "halt",
        "jobId": "...",
        "params": {"userId": "...", "address": "..."},
        "context": {"secrets": {...}, "environment": {...}}
    }

Errors are re-raised so the framework can record the failure and its
status code.
"""

import base64
import json
import os
import sys

import structlog
from botocore.exceptions import BotoCoreError, ClientError

# Add parent dir to path for shared modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from shared import audit
from shared.config import is_enabled
from shared.errors import ValidationError
from shared.log_config import configure_logging
from shared.secret_store import load_secrets
from shared.token_cache import TokenCache
from actions.executors import revoke_sessions

configure_logging()
logger = structlog.get_logger(__name__)

# Reused across warm invocations, only when explicitly enabled.
_token_cache = TokenCache() if is_enabled(os.environ, 'OAUTH2_TOKEN_CACHE_ENABLED') else None

STEPS = ('invoke', 'error', 'halt')


def lambda_handler(event, context):
    """Main handler routed by lifecycle step."""
    event = _parse_event(event)
    step = event.get('step', 'invoke')
    params = event.get('params') or {}
    job_id = event.get('jobId', '')
    user_id = params.get('userId') or 'unknown'

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(job_id=job_id, step=step)

    if step not in STEPS:
        raise ValidationError(f'Unknown step {step!r}; expected one of: {", ".join(STEPS)}')

    if step == 'halt':
        result = revoke_sessions.halt(params, event.get('context'))
        _audit(user_id, 'halted', job_id, {'reason': result['reason']})
        return result

    job_context = _build_context(event.get('context'))

    try:
        if step == 'invoke':
            result = revoke_sessions.invoke(params, job_context, token_cache=_token_cache)
        else:
            result = revoke_sessions.error(params, job_context, token_cache=_token_cache)
    except Exception as e:
        _audit(user_id, 'failed', job_id, {
            'error': getattr(e, 'message', str(e)),
            'status_code': getattr(e, 'status_code', None),
        })
        raise

    if 'recoveryMethod' in result:
        _audit(user_id, 'recovered', job_id, {'recovery_method': result['recoveryMethod']})
    else:
        _audit(user_id, 'success', job_id)
    return result


def _build_context(job_context):
    """Fill in environment and secrets the framework did not send."""
    job_context = dict(job_context or {})
    if not (job_context.get('environment') or job_context.get('env')):
        job_context['environment'] = dict(os.environ)

    if not job_context.get('secrets'):
        secret_id = os.environ.get('SECRETS_ID')
        if secret_id:
            logger.info('Loading secrets bundle from Secrets Manager', secret_id=secret_id)
            job_context['secrets'] = load_secrets(secret_id)
        else:
            job_context['secrets'] = {}
    return job_context


def _audit(target, result, job_id, details=None):
    """Write an audit record; failures are logged and never change the outcome."""
    if not audit.is_enabled():
        return
    try:
        audit.log_action(target, result, job_id=job_id, details=details)
    except (BotoCoreError, ClientError) as e:
        logger.warning('Audit write failed', result=result, error=str(e))


def _parse_event(event):
    """Accept a direct invocation payload or a function-URL style JSON body."""
    if not isinstance(event, dict):
        raise ValidationError('Event must be a JSON object')
    if 'body' not in event:
        return event
    try:
        body = event.get('body') or '{}'
        if event.get('isBase64Encoded'):
            body = base64.b64decode(body).decode()
        parsed = json.loads(body)
    except (json.JSONDecodeError, TypeError, ValueError):
        raise ValidationError('Invalid request body') from None
    if not isinstance(parsed, dict):
        raise ValidationError('Invalid request body')
    return parsed
