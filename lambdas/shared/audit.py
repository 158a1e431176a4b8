"""Audit logging for session revocation jobs.

Writes one record per lifecycle outcome to DynamoDB for compliance and
traceability. Disabled when AUDIT_TABLE is not set.
"""

import os
import time
import uuid
from datetime import datetime, timezone

import boto3

ACTION_ID = 'okta-revoke-sessions'

_table = None
_table_name = None


def _year_month(ts: int) -> str:
    """Return 'YYYY-MM' string for a Unix timestamp."""
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime('%Y-%m')


def is_enabled() -> bool:
    return bool(os.environ.get('AUDIT_TABLE'))


def _get_table():
    """Return the DynamoDB table, rebuilding it if AUDIT_TABLE changed."""
    global _table, _table_name
    name = os.environ['AUDIT_TABLE']
    if _table is None or name != _table_name:
        _table = boto3.resource('dynamodb').Table(name)
        _table_name = name
    return _table


def log_action(
    target: str,
    result: str,
    job_id: str = '',
    action: str = ACTION_ID,
    details: dict = None
) -> dict:
    """Write an audit record to DynamoDB.

    Args:
        target: The user whose sessions were targeted.
        result: Outcome ('success', 'recovered', 'failed', 'halted').
        job_id: Framework job/run identifier, if supplied.
        action: Action identifier.
        details: Additional context dict. Must never contain credentials.

    Returns:
        The audit record dict (including the generated 'id').
    """
    ts = int(time.time())
    record = {
        'id': str(uuid.uuid4()),
        'timestamp': ts,
        'year_month': _year_month(ts),
        'action': action,
        'target': target,
        'result': result,
        'job_id': job_id or '',
    }

    if details:
        record['details'] = details

    _get_table().put_item(Item=record)
    return record
