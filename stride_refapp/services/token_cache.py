import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

logger = logging.getLogger("app.token_cache")

# (access_token, expires_in seconds)
TokenFetcher = Callable[[], Awaitable[tuple[str, int]]]


def _consume_exception(task: asyncio.Task) -> None:
    # every caller may have been cancelled; _refresh already logged the failure
    if not task.cancelled():
        task.exception()


@dataclass(frozen=True)
class CachedToken:
    value: str
    expires_at: float


class TokenCache:
    """Single access token shared by every outbound call.

    Concurrent callers that find the token stale share one in-flight fetch
    instead of each requesting a token. The stale check and the registration
    of the fetch task happen without an ``await`` in between, so no second
    fetch can start while one is outstanding.
    """

    def __init__(
        self,
        fetcher: TokenFetcher,
        refresh_margin: int = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._fetcher = fetcher
        self._refresh_margin = refresh_margin
        self._clock = clock
        self._token: CachedToken | None = None
        self._inflight: asyncio.Task | None = None

    @property
    def token(self) -> CachedToken | None:
        return self._token

    async def get(self) -> str:
        now = self._clock()
        if self._token and now <= self._token.expires_at:
            ttl = round(self._token.expires_at - now, 1)
            logger.debug(
                "token_cache_hit",
                extra={"extra": {"ttl_seconds": ttl}},
            )
            return self._token.value

        if self._inflight is not None:
            logger.debug("token_cache_awaiting_inflight_fetch")
        else:
            logger.info("token_cache_refreshing")
            self._inflight = asyncio.ensure_future(self._refresh())
            self._inflight.add_done_callback(_consume_exception)

        # shield: a cancelled caller must not cancel the fetch other callers await
        return await asyncio.shield(self._inflight)

    async def _refresh(self) -> str:
        start = self._clock()
        try:
            value, expires_in = await self._fetcher()
            issued_at = self._clock()
            self._token = CachedToken(
                value=value,
                expires_at=issued_at + (expires_in - self._refresh_margin),
            )
            logger.info(
                "token_cache_refreshed",
                extra={
                    "extra": {
                        "expires_in": expires_in,
                        "effective_ttl": expires_in - self._refresh_margin,
                        "duration_ms": round((issued_at - start) * 1000, 1),
                    }
                },
            )
            return value
        except Exception:
            logger.error(
                "token_cache_refresh_failed",
                extra={"extra": {"duration_ms": round((self._clock() - start) * 1000, 1)}},
                exc_info=True,
            )
            raise
        finally:
            self._inflight = None

    def clear(self) -> None:
        self._token = None
