#!/usr/bin/env python3
"""Run one lifecycle step of the Okta revoke-sessions job locally.

Environment comes from the current process (ADDRESS, RATE_LIMIT_BACKOFF_MS,
OAUTH2_CLIENT_CREDENTIALS_* ...). Secrets come from Secrets Manager when
--secret-id is given, otherwise from the same-named environment variables.

Usage:
    python3 scripts/run_job.py --user-id 00u1abcd --address https://acme.okta.com
    python3 scripts/run_job.py --step error --user-id 00u1abcd --error-status 429
    python3 scripts/run_job.py --step halt --reason cancelled
"""

import argparse
import json
import os
import sys

import requests
from botocore.exceptions import BotoCoreError, ClientError

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'lambdas'))

from shared.errors import ActionError  # noqa: E402
from shared.log_config import configure_logging  # noqa: E402

SECRET_KEYS = (
    'BEARER_AUTH_TOKEN',
    'BASIC_USERNAME',
    'BASIC_PASSWORD',
    'OAUTH2_AUTHORIZATION_CODE_ACCESS_TOKEN',
    'OAUTH2_CLIENT_CREDENTIALS_CLIENT_SECRET',
)


def build_event(args, environ=None):
    environ = os.environ if environ is None else environ
    params = {}
    if args.user_id:
        params['userId'] = args.user_id
    if args.address:
        params['address'] = args.address
    if args.reason:
        params['reason'] = args.reason
    if args.step == 'error':
        params['error'] = {
            'message': args.error_message or f'Failed to revoke sessions: HTTP {args.error_status}',
            'statusCode': args.error_status,
        }

    context = {'environment': dict(environ)}
    if not args.secret_id:
        context['secrets'] = {k: environ[k] for k in SECRET_KEYS if environ.get(k)}

    return {'step': args.step, 'jobId': args.job_id, 'params': params, 'context': context}


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Run the Okta revoke-sessions job locally')
    parser.add_argument('--step', choices=['invoke', 'error', 'halt'], default='invoke')
    parser.add_argument('--user-id', help='Okta user ID')
    parser.add_argument('--address', help='Okta base URL (defaults to ADDRESS env)')
    parser.add_argument('--reason', default='', help='Halt reason')
    parser.add_argument('--job-id', default='local', help='Job ID recorded in audit/logs')
    parser.add_argument('--secret-id', help='Secrets Manager secret holding the secret bundle')
    parser.add_argument('--error-status', type=int, default=429, help='Status code of the failed attempt (error step)')
    parser.add_argument('--error-message', help='Message of the failed attempt (error step)')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    configure_logging(fmt=os.environ.get('LOG_FORMAT', 'console'))
    if args.secret_id:
        os.environ['SECRETS_ID'] = args.secret_id

    from actions.handler import lambda_handler

    try:
        result = lambda_handler(build_event(args), None)
    except ActionError as e:
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return 1
    except (requests.RequestException, BotoCoreError, ClientError) as e:
        error = {'error': type(e).__name__, 'message': str(e), 'statusCode': None}
        print(json.dumps(error, indent=2), file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == '__main__':
    sys.exit(main())
