"""Lambda handler dispatch tests.

Tests lambdas/actions/handler.py - lifecycle routing, context defaults,
Secrets Manager loading and audit records (moto-backed AWS).
"""

import base64
import json
from unittest.mock import patch

import boto3
import pytest
from moto import mock_aws

from conftest import ADDRESS, USER_ID, make_context, make_job_event, make_response
from actions import handler
from actions.handler import lambda_handler
from shared import audit
from shared.errors import ConfigurationError, HttpError, RecoveryError, ValidationError

DELETE = 'actions.executors.revoke_sessions.requests.delete'
REGION = 'eu-west-2'


@pytest.fixture(autouse=True)
def _no_audit(monkeypatch):
    monkeypatch.delenv('AUDIT_TABLE', raising=False)
    monkeypatch.delenv('SECRETS_ID', raising=False)
    monkeypatch.setattr(audit, '_table', None)


@pytest.fixture
def audit_table(monkeypatch):
    """moto DynamoDB audit table, enabled via AUDIT_TABLE."""
    with mock_aws():
        monkeypatch.setenv('AWS_DEFAULT_REGION', REGION)
        monkeypatch.setenv('AUDIT_TABLE', 'revoke-sessions-test-audit')
        dynamodb = boto3.resource('dynamodb', region_name=REGION)
        table = dynamodb.create_table(
            TableName='revoke-sessions-test-audit',
            KeySchema=[
                {'AttributeName': 'id', 'KeyType': 'HASH'},
                {'AttributeName': 'timestamp', 'KeyType': 'RANGE'},
            ],
            AttributeDefinitions=[
                {'AttributeName': 'id', 'AttributeType': 'S'},
                {'AttributeName': 'timestamp', 'AttributeType': 'N'},
            ],
            BillingMode='PAY_PER_REQUEST',
        )
        yield table


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------
class TestRouting:
    def test_invoke_step(self):
        with patch(DELETE, return_value=make_response(204)):
            result = lambda_handler(make_job_event('invoke', context=make_context()), None)
        assert result['sessionsRevoked'] is True
        assert result['address'] == ADDRESS

    def test_step_defaults_to_invoke(self):
        event = make_job_event(context=make_context())
        del event['step']
        with patch(DELETE, return_value=make_response(204)):
            assert lambda_handler(event, None)['userId'] == USER_ID

    def test_error_step_recovers(self):
        params = {'userId': USER_ID, 'error': {'message': 'Failed to revoke sessions: HTTP 503', 'statusCode': 503}}
        event = make_job_event('error', params=params, context=make_context(SERVICE_ERROR_BACKOFF_MS='0'))
        with patch(DELETE, return_value=make_response(204)) as mock_delete, \
             patch('time.sleep') as mock_sleep:
            result = lambda_handler(event, None)
        assert result['recoveryMethod'] == 'service_retry'
        assert mock_delete.call_count == 1
        mock_sleep.assert_called_once_with(0.0)

    def test_halt_step(self):
        with patch(DELETE) as mock_delete:
            result = lambda_handler(make_job_event('halt', params={'reason': 'cancelled'}), None)
        assert result['userId'] == 'unknown'
        assert result['cleanupCompleted'] is True
        mock_delete.assert_not_called()

    def test_halt_without_audit_table_does_no_io(self):
        with patch(DELETE) as mock_delete, patch('shared.audit.boto3') as mock_boto3:
            lambda_handler(make_job_event('halt', params={'userId': USER_ID}), None)
        mock_delete.assert_not_called()
        mock_boto3.resource.assert_not_called()

    def test_unknown_step_raises(self):
        with pytest.raises(ValidationError, match='Unknown step'):
            lambda_handler(make_job_event('rollback', context=make_context()), None)

    def test_json_body_event(self):
        payload = make_job_event('halt', params={'userId': USER_ID, 'reason': 'timeout'})
        event = {'body': base64.b64encode(json.dumps(payload).encode()).decode(), 'isBase64Encoded': True}
        result = lambda_handler(event, None)
        assert result['userId'] == USER_ID
        assert result['reason'] == 'timeout'

    def test_invalid_body_raises(self):
        with pytest.raises(ValidationError, match='Invalid request body'):
            lambda_handler({'body': 'not-json{'}, None)


# ---------------------------------------------------------------------------
# Error propagation
# ---------------------------------------------------------------------------
class TestErrorPropagation:
    def test_http_error_propagates_with_status(self):
        with patch(DELETE, return_value=make_response(404, {'errorSummary': 'Not found: user'})):
            with pytest.raises(HttpError) as exc_info:
                lambda_handler(make_job_event(context=make_context()), None)
        assert exc_info.value.to_dict() == {
            'error': 'HttpError',
            'message': 'Failed to revoke sessions: Not found: user',
            'statusCode': 404,
        }

    def test_unrecoverable_error_step(self):
        params = {'userId': USER_ID, 'error': {'message': 'Unauthorized', 'statusCode': 401}}
        with patch(DELETE) as mock_delete:
            with pytest.raises(RecoveryError):
                lambda_handler(make_job_event('error', params=params, context=make_context()), None)
        mock_delete.assert_not_called()


# ---------------------------------------------------------------------------
# Context defaults
# ---------------------------------------------------------------------------
class TestContextDefaults:
    def test_environment_falls_back_to_process_env(self, monkeypatch):
        monkeypatch.setenv('ADDRESS', 'https://process.okta.com/')
        context = {'secrets': {'BEARER_AUTH_TOKEN': 't'}}
        with patch(DELETE, return_value=make_response(204)):
            result = lambda_handler(make_job_event(context=context), None)
        assert result['address'] == 'https://process.okta.com'

    def test_env_bundle_merged_with_environment(self):
        params = {'userId': USER_ID, 'error': {'message': 'rate limit', 'statusCode': 429}}
        context = {
            'secrets': {'BEARER_AUTH_TOKEN': 't'},
            'environment': {'ADDRESS': ADDRESS},
            'env': {'RATE_LIMIT_BACKOFF_MS': '5'},
        }
        with patch(DELETE, return_value=make_response(204)), patch('time.sleep') as mock_sleep:
            result = lambda_handler(make_job_event('error', params=params, context=context), None)
        assert result['address'] == ADDRESS
        mock_sleep.assert_called_once_with(0.005)

    def test_no_secrets_and_no_secret_id_fails_config(self):
        context = {'environment': {'ADDRESS': ADDRESS}}
        with patch(DELETE) as mock_delete:
            with pytest.raises(ConfigurationError, match='No authentication configured'):
                lambda_handler(make_job_event(context=context), None)
        mock_delete.assert_not_called()

    @mock_aws
    def test_secrets_loaded_from_secrets_manager(self, monkeypatch):
        sm = boto3.client('secretsmanager', region_name=REGION)
        sm.create_secret(Name='okta/revoke-sessions',
                         SecretString=json.dumps({'BEARER_AUTH_TOKEN': 'from-sm'}))
        monkeypatch.setenv('AWS_DEFAULT_REGION', REGION)
        monkeypatch.setenv('SECRETS_ID', 'okta/revoke-sessions')

        context = {'environment': {'ADDRESS': ADDRESS}}
        with patch(DELETE, return_value=make_response(204)) as mock_delete:
            lambda_handler(make_job_event(context=context), None)
        assert mock_delete.call_args.kwargs['headers']['Authorization'] == 'SSWS from-sm'


# ---------------------------------------------------------------------------
# Audit records
# ---------------------------------------------------------------------------
class TestAudit:
    def _items(self, table):
        return table.scan()['Items']

    def test_success_is_audited(self, audit_table):
        with patch(DELETE, return_value=make_response(204)):
            lambda_handler(make_job_event(context=make_context()), None)
        items = self._items(audit_table)
        assert len(items) == 1
        assert items[0]['result'] == 'success'
        assert items[0]['target'] == USER_ID
        assert items[0]['job_id'] == 'job-123'
        assert items[0]['action'] == 'okta-revoke-sessions'

    def test_failure_is_audited_and_reraised(self, audit_table):
        with patch(DELETE, return_value=make_response(500, text='')):
            with pytest.raises(HttpError):
                lambda_handler(make_job_event(context=make_context()), None)
        items = self._items(audit_table)
        assert items[0]['result'] == 'failed'
        assert items[0]['details']['status_code'] == 500

    def test_recovery_is_audited(self, audit_table):
        params = {'userId': USER_ID, 'error': {'message': 'rate limit', 'statusCode': 429}}
        event = make_job_event('error', params=params, context=make_context(RATE_LIMIT_BACKOFF_MS='0'))
        with patch(DELETE, return_value=make_response(204)), patch('time.sleep'):
            lambda_handler(event, None)
        items = self._items(audit_table)
        assert items[0]['result'] == 'recovered'
        assert items[0]['details']['recovery_method'] == 'rate_limit_retry'

    def test_halt_is_audited(self, audit_table):
        lambda_handler(make_job_event('halt', params={'reason': 'cancelled'}), None)
        items = self._items(audit_table)
        assert items[0]['result'] == 'halted'
        assert items[0]['target'] == 'unknown'

    def test_audit_records_never_contain_credentials(self, audit_table):
        context = make_context({'BEARER_AUTH_TOKEN': 'very-secret-token'})
        with patch(DELETE, return_value=make_response(401, {'errorSummary': 'Invalid token provided'})):
            with pytest.raises(HttpError):
                lambda_handler(make_job_event(context=context), None)
        assert 'very-secret-token' not in json.dumps(self._items(audit_table), default=str)

    def test_audit_write_failure_does_not_change_outcome(self, monkeypatch):
        # Table name set but the table does not exist in moto
        with mock_aws():
            monkeypatch.setenv('AWS_DEFAULT_REGION', REGION)
            monkeypatch.setenv('AUDIT_TABLE', 'missing-table')
            with patch(DELETE, return_value=make_response(204)):
                result = lambda_handler(make_job_event(context=make_context()), None)
        assert result['sessionsRevoked'] is True

    def test_token_cache_disabled_by_default(self):
        assert handler._token_cache is None
