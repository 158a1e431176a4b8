"""Optional cache for OAuth2 client-credentials access tokens.

The resolver never caches on its own; callers that want reuse across warm
Lambda invocations build a TokenCache and pass it in explicitly.
"""

import time

from cachetools import TLRUCache

DEFAULT_MAXSIZE = 32
DEFAULT_EXPIRES_IN = 3600
DEFAULT_EXPIRY_SKEW_SECONDS = 60


class TokenCache:
    def __init__(self, maxsize: int = DEFAULT_MAXSIZE,
                 expiry_skew_seconds: int = DEFAULT_EXPIRY_SKEW_SECONDS,
                 timer=time.monotonic):
        """
        Args:
            maxsize: Maximum number of distinct token configurations kept.
            expiry_skew_seconds: Tokens are dropped this many seconds before
                the provider says they expire.
            timer: Clock used for expiry (injectable for tests).
        """
        self.expiry_skew_seconds = expiry_skew_seconds
        self._cache = TLRUCache(maxsize=maxsize, ttu=self._time_to_use, timer=timer)

    def _time_to_use(self, _key, value, now):
        _token, expires_in = value
        return now + max(expires_in - self.expiry_skew_seconds, 0)

    def get(self, key: str) -> str | None:
        entry = self._cache.get(key)
        return entry[0] if entry else None

    def put(self, key: str, access_token: str, expires_in=None) -> None:
        try:
            lifetime = int(expires_in) if expires_in is not None else DEFAULT_EXPIRES_IN
        except (TypeError, ValueError):
            lifetime = DEFAULT_EXPIRES_IN
        self._cache[key] = (access_token, lifetime)

    def invalidate(self, key: str) -> None:
        self._cache.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
