"""Runtime settings read from the job environment bundle."""

from dataclasses import dataclass

DEFAULT_RATE_LIMIT_BACKOFF_MS = 30000
DEFAULT_SERVICE_ERROR_BACKOFF_MS = 10000
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0

RECOVERY_SELF = 'self'
RECOVERY_FRAMEWORK = 'framework'

_TRUTHY = {'1', 'true', 'yes', 'on'}


def _parse_ms(value, default: int) -> int:
    """Parse a non-negative integer millisecond value, falling back to default."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= 0 else default


@dataclass(frozen=True)
class BackoffConfig:
    """Fixed waits inserted before the single retry attempt."""

    rate_limit_backoff_ms: int = DEFAULT_RATE_LIMIT_BACKOFF_MS
    service_error_backoff_ms: int = DEFAULT_SERVICE_ERROR_BACKOFF_MS

    @classmethod
    def from_environment(cls, environment: dict) -> 'BackoffConfig':
        return cls(
            rate_limit_backoff_ms=_parse_ms(
                environment.get('RATE_LIMIT_BACKOFF_MS'), DEFAULT_RATE_LIMIT_BACKOFF_MS),
            service_error_backoff_ms=_parse_ms(
                environment.get('SERVICE_ERROR_BACKOFF_MS'), DEFAULT_SERVICE_ERROR_BACKOFF_MS),
        )


def get_environment(context: dict | None) -> dict:
    """Return the environment bundle from a job context.

    Frameworks send settings as ``environment``, ``env`` or both (backoff
    overrides usually arrive in ``env``). Both are merged; ``environment``
    wins on a key present in both.
    """
    context = context or {}
    return {**(context.get('env') or {}), **(context.get('environment') or {})}


def get_secrets(context: dict | None) -> dict:
    return (context or {}).get('secrets') or {}


def get_recovery_mode(environment: dict) -> str:
    """Who retries transient failures: this action ('self') or the framework."""
    mode = str(environment.get('RECOVERY_MODE', RECOVERY_SELF)).strip().lower()
    return RECOVERY_FRAMEWORK if mode == RECOVERY_FRAMEWORK else RECOVERY_SELF


def get_http_timeout(environment: dict) -> float:
    try:
        timeout = float(environment.get('HTTP_TIMEOUT_SECONDS', DEFAULT_HTTP_TIMEOUT_SECONDS))
    except (TypeError, ValueError):
        return DEFAULT_HTTP_TIMEOUT_SECONDS
    return timeout if timeout > 0 else DEFAULT_HTTP_TIMEOUT_SECONDS


def is_enabled(environment: dict, key: str) -> bool:
    return str(environment.get(key, '')).strip().lower() in _TRUTHY
