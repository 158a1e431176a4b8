"""Resolve the Okta API base URL for a job."""

from shared.errors import ConfigurationError


def get_base_url(params: dict | None, environment: dict | None) -> str:
    """Return the base URL with any trailing slash removed.

    Precedence: ``address`` parameter, legacy ``oktaDomain`` parameter,
    then the ``ADDRESS`` environment default. No scheme or reachability
    checks are made here.
    """
    params = params or {}
    environment = environment or {}

    address = _string_setting(params, 'address')
    domain = _string_setting(params, 'oktaDomain')
    if not address and domain:
        domain = domain.strip()
        address = domain if '://' in domain else f'https://{domain}'
    if not address:
        address = _string_setting(environment, 'ADDRESS')

    if not address:
        raise ConfigurationError(
            'No URL specified. Provide address parameter or ADDRESS environment variable'
        )

    return address[:-1] if address.endswith('/') else address


def _string_setting(source: dict, key: str):
    value = source.get(key)
    if value is not None and not isinstance(value, str):
        raise ConfigurationError(f'Invalid {key}: expected a string URL')
    return value
