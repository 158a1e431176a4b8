"""Load the job's secret bundle from AWS Secrets Manager."""

import json

import boto3

from shared.errors import ConfigurationError


def load_secrets(secret_id: str, region: str | None = None) -> dict:
    """Return the JSON object stored in a Secrets Manager secret.

    botocore ClientError (missing secret, access denied) propagates as-is.
    """
    sm = boto3.client('secretsmanager', region_name=region) if region else boto3.client('secretsmanager')
    resp = sm.get_secret_value(SecretId=secret_id)

    try:
        bundle = json.loads(resp.get('SecretString') or '')
    except json.JSONDecodeError:
        raise ConfigurationError(f'Secret {secret_id} is not valid JSON') from None

    if not isinstance(bundle, dict):
        raise ConfigurationError(f'Secret {secret_id} must contain a JSON object')
    return bundle
