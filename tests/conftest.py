"""Shared fixtures and helpers for revoke-sessions tests."""

import json
import os
import sys
from unittest.mock import MagicMock

import pytest
import requests

# ---------------------------------------------------------------------------
# Path setup: make lambdas/ importable as top-level packages
# ---------------------------------------------------------------------------
_repo_root = os.path.join(os.path.dirname(__file__), '..')
_lambdas_dir = os.path.join(_repo_root, 'lambdas')
sys.path.insert(0, _lambdas_dir)

USER_ID = '00u1a2b3c4d5e6f7g8h9'
ADDRESS = 'https://example.okta.com'


# ---------------------------------------------------------------------------
# Helpers: fake HTTP responses and job payloads
# ---------------------------------------------------------------------------
def make_response(status_code, json_body=None, text='', reason=''):
    """Build a requests.Response stand-in.

    When json_body is None, .json() raises like a non-JSON body would.
    """
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.reason = reason
    if json_body is None:
        response.json.side_effect = requests.exceptions.JSONDecodeError('Expecting value', text, 0)
        response.text = text
    else:
        response.json.return_value = json_body
        response.text = json.dumps(json_body)
    return response


def make_context(secrets=None, **environment):
    """Build a job context with ADDRESS defaulted."""
    env = {'ADDRESS': ADDRESS}
    env.update(environment)
    return {
        'secrets': {'BEARER_AUTH_TOKEN': 'test-okta-token'} if secrets is None else secrets,
        'environment': env,
    }


def make_job_event(step='invoke', params=None, context=None, job_id='job-123'):
    """Build a direct-invocation event as sent by the job framework."""
    event = {
        'step': step,
        'jobId': job_id,
        'params': {'userId': USER_ID} if params is None else params,
    }
    if context is not None:
        event['context'] = context
    return event


@pytest.fixture
def job_context():
    return make_context()


@pytest.fixture
def no_sleep():
    """A sleep stand-in that records requested waits."""
    return MagicMock()
