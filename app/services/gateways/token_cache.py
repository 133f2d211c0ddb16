"""
Process-local OAuth token cache for the Daraja client.

No lock: two requests refreshing at the same time both fetch a valid token
and the last write wins, which is harmless.
"""
import time
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_at: float  # unix seconds
    environment: str  # sandbox / production host that issued it

    def remaining(self, now: float) -> float:
        return self.expires_at - now


class TokenCache:
    def __init__(self, refresh_margin_seconds: float = 60.0, clock: Callable[[], float] = time.time) -> None:
        self.refresh_margin_seconds = refresh_margin_seconds
        self._clock = clock
        self._token: AccessToken | None = None

    def get(self) -> AccessToken | None:
        """Cached token if it stays valid for more than the refresh margin."""
        token = self._token
        if token is None:
            return None
        if token.remaining(self._clock()) > self.refresh_margin_seconds:
            return token
        return None

    def set(self, token: str, expires_in: float, environment: str) -> AccessToken:
        self._token = AccessToken(
            token=token,
            expires_at=self._clock() + expires_in,
            environment=environment,
        )
        return self._token

    def get_or_refresh(self, refresh: Callable[[], AccessToken]) -> AccessToken:
        return self.get() or refresh()

    def clear(self) -> None:
        self._token = None
