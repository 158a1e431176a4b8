"""Authorization header resolution for outbound API calls.

Supports four mutually exclusive methods, tried in a fixed order:

1. Bearer token            (BEARER_AUTH_TOKEN)
2. Basic auth              (BASIC_USERNAME + BASIC_PASSWORD)
3. OAuth2 auth-code token  (OAUTH2_AUTHORIZATION_CODE_ACCESS_TOKEN)
4. OAuth2 client creds     (OAUTH2_CLIENT_CREDENTIALS_CLIENT_SECRET + env)

The first configured method wins. Nothing here is provider specific.
"""

import base64
import enum
import json
from dataclasses import dataclass, field

import requests
import structlog

from shared.config import DEFAULT_HTTP_TIMEOUT_SECONDS
from shared.errors import ConfigurationError, TokenExchangeError

logger = structlog.get_logger(__name__)

AUTH_STYLE_IN_HEADER = 'InHeader'
AUTH_STYLE_IN_PARAMS = 'InParams'

_BEARER_PREFIX = 'Bearer '


class AuthMethod(enum.Enum):
    BEARER_TOKEN = 'bearer_token'
    BASIC_AUTH = 'basic_auth'
    OAUTH2_AUTHORIZATION_CODE = 'oauth2_authorization_code'
    OAUTH2_CLIENT_CREDENTIALS = 'oauth2_client_credentials'


@dataclass(frozen=True)
class Credential:
    """A resolved Authorization header and the method that produced it."""

    method: AuthMethod
    header: str = field(repr=False)


@dataclass(frozen=True)
class ClientCredentialsConfig:
    token_url: str
    client_id: str
    client_secret: str = field(repr=False)
    scope: str | None = None
    audience: str | None = None
    auth_style: str = AUTH_STYLE_IN_HEADER

    @classmethod
    def from_bundle(cls, secrets: dict, environment: dict) -> 'ClientCredentialsConfig':
        token_url = environment.get('OAUTH2_CLIENT_CREDENTIALS_TOKEN_URL')
        client_id = environment.get('OAUTH2_CLIENT_CREDENTIALS_CLIENT_ID')
        if not token_url or not client_id:
            raise ConfigurationError(
                'OAuth2 Client Credentials flow requires '
                'OAUTH2_CLIENT_CREDENTIALS_TOKEN_URL and OAUTH2_CLIENT_CREDENTIALS_CLIENT_ID in env'
            )
        return cls(
            token_url=token_url,
            client_id=client_id,
            client_secret=secrets['OAUTH2_CLIENT_CREDENTIALS_CLIENT_SECRET'],
            scope=environment.get('OAUTH2_CLIENT_CREDENTIALS_SCOPE') or None,
            audience=environment.get('OAUTH2_CLIENT_CREDENTIALS_AUDIENCE') or None,
            auth_style=environment.get('OAUTH2_CLIENT_CREDENTIALS_AUTH_STYLE') or AUTH_STYLE_IN_HEADER,
        )

    @property
    def cache_key(self) -> str:
        # Never includes the client secret.
        return '|'.join([self.token_url, self.client_id, self.scope or '', self.audience or ''])


def _as_bearer(token: str) -> str:
    return token if token.startswith(_BEARER_PREFIX) else f'{_BEARER_PREFIX}{token}'


def _basic(username: str, password: str) -> str:
    encoded = base64.b64encode(f'{username}:{password}'.encode()).decode()
    return f'Basic {encoded}'


def _error_body(response) -> str:
    try:
        return json.dumps(response.json())
    except ValueError:
        return response.text


def fetch_client_credentials_token(config: ClientCredentialsConfig,
                                   timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS) -> dict:
    """Run the OAuth2 client-credentials grant and return the token payload.

    Returns:
        The decoded JSON body; ``access_token`` is guaranteed to be present.

    Raises:
        TokenExchangeError: non-2xx response, network failure, or a body
            without ``access_token``.
    """
    data = {'grant_type': 'client_credentials'}
    if config.scope:
        data['scope'] = config.scope
    if config.audience:
        data['audience'] = config.audience

    headers = {
        'Content-Type': 'application/x-www-form-urlencoded',
        'Accept': 'application/json',
    }

    if config.auth_style == AUTH_STYLE_IN_PARAMS:
        data['client_id'] = config.client_id
        data['client_secret'] = config.client_secret
    else:
        headers['Authorization'] = _basic(config.client_id, config.client_secret)

    logger.info('Requesting OAuth2 client credentials token',
                token_url=config.token_url, auth_style=config.auth_style)

    try:
        response = requests.post(config.token_url, data=data, headers=headers, timeout=timeout)
    except requests.RequestException as e:
        raise TokenExchangeError(
            f'OAuth2 token request failed: {type(e).__name__}') from e

    if not 200 <= response.status_code < 300:
        body = _error_body(response)
        logger.error('OAuth2 token request rejected', status_code=response.status_code)
        status = f'{response.status_code} {response.reason or ""}'.strip()
        raise TokenExchangeError(
            f'OAuth2 token request failed: {status} - {body}',
            status_code=response.status_code,
            body=body,
        )

    try:
        payload = response.json()
    except ValueError:
        payload = None

    if not isinstance(payload, dict) or not payload.get('access_token'):
        raise TokenExchangeError('No access_token in OAuth2 response', status_code=response.status_code)

    return payload


def _client_credentials_header(config: ClientCredentialsConfig, token_cache, timeout: float) -> str:
    if token_cache is not None:
        cached = token_cache.get(config.cache_key)
        if cached:
            logger.debug('Using cached OAuth2 access token', token_url=config.token_url)
            return _as_bearer(cached)

    payload = fetch_client_credentials_token(config, timeout=timeout)
    if token_cache is not None:
        token_cache.put(config.cache_key, payload['access_token'], payload.get('expires_in'))
    return _as_bearer(payload['access_token'])


def resolve_credential(secrets: dict | None, environment: dict | None, token_cache=None,
                       timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS) -> Credential:
    """Pick the first configured auth method and build its Authorization header.

    Args:
        secrets: Secret bundle from the job context.
        environment: Environment bundle from the job context.
        token_cache: Optional TokenCache for client-credentials tokens.
        timeout: HTTP timeout for the token exchange.

    Raises:
        ConfigurationError: no method configured, or client credentials
            configured without token URL / client ID.
        TokenExchangeError: the client-credentials exchange failed.
    """
    secrets = secrets or {}
    environment = environment or {}

    if secrets.get('BEARER_AUTH_TOKEN'):
        return Credential(AuthMethod.BEARER_TOKEN, _as_bearer(secrets['BEARER_AUTH_TOKEN']))

    if secrets.get('BASIC_USERNAME') and secrets.get('BASIC_PASSWORD'):
        return Credential(AuthMethod.BASIC_AUTH,
                          _basic(secrets['BASIC_USERNAME'], secrets['BASIC_PASSWORD']))

    if secrets.get('OAUTH2_AUTHORIZATION_CODE_ACCESS_TOKEN'):
        return Credential(AuthMethod.OAUTH2_AUTHORIZATION_CODE,
                          _as_bearer(secrets['OAUTH2_AUTHORIZATION_CODE_ACCESS_TOKEN']))

    if secrets.get('OAUTH2_CLIENT_CREDENTIALS_CLIENT_SECRET'):
        config = ClientCredentialsConfig.from_bundle(secrets, environment)
        return Credential(AuthMethod.OAUTH2_CLIENT_CREDENTIALS,
                          _client_credentials_header(config, token_cache, timeout))

    raise ConfigurationError(
        'No authentication configured. Provide one of: '
        'BEARER_AUTH_TOKEN, BASIC_USERNAME/BASIC_PASSWORD, '
        'OAUTH2_AUTHORIZATION_CODE_ACCESS_TOKEN, or OAUTH2_CLIENT_CREDENTIALS_CLIENT_SECRET'
    )


def resolve_authorization_header(secrets: dict | None, environment: dict | None,
                                 token_cache=None) -> str:
    return resolve_credential(secrets, environment, token_cache=token_cache).header
