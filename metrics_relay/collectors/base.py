"""Scrape error taxonomy and failure isolation for per-source scrapes."""

import time
from functools import wraps
from typing import Optional

from ..utils.status import ScrapeStatus
from ..utils.metrics import ScrapeResult


class FetchError(Exception):
    """A source could not be scraped."""

    status = ScrapeStatus.ERROR

    def __init__(self, url: str, message: str):
        super().__init__(f"{url}: {message}")
        self.url = url


class Unreachable(FetchError):
    """DNS, connect, read or timeout failure reaching a source."""

    status = ScrapeStatus.UNREACHABLE

    def __init__(self, url: str, cause: Optional[BaseException] = None):
        if cause is None:
            reason = "unreachable"
        else:
            reason = str(cause) or type(cause).__name__
        super().__init__(url, f"unreachable ({reason})")
        self.cause = cause


class BadStatus(FetchError):
    """Source answered with a non-2xx HTTP status."""

    status = ScrapeStatus.BAD_STATUS

    def __init__(self, url: str, status_code: int):
        super().__init__(url, f"HTTP {status_code}")
        self.status_code = status_code


def safe_scrape(func):
    """
    Decorator isolating one source's scrape failure from the rest of the cycle.

    The wrapped coroutine takes ``(self, source)`` and returns a ScrapeResult.
    FetchErrors become failed results logged at WARNING; anything else is
    logged with its traceback and also becomes a failed result. Cancellation
    is never intercepted.

    Args:
        func: Per-source scrape coroutine to wrap

    Returns:
        Wrapped coroutine that always returns a ScrapeResult
    """
    @wraps(func)
    async def wrapper(self, source, *args, **kwargs):
        start_time = time.monotonic()
        try:
            return await func(self, source, *args, **kwargs)
        except FetchError as e:
            self.logger.warning(
                f"Scrape failed for {source.name}: {e}",
                extra={"source": source.name, "reason": e.status.value}
            )
            status, error = e.status, str(e)
        except Exception as e:
            self.logger.error(f"Unexpected scrape error for {source.name}: {e}", exc_info=True)
            status, error = ScrapeStatus.ERROR, f"{type(e).__name__}: {e}"

        return ScrapeResult(
            source_name=source.name,
            status=status,
            error=error,
            duration_ms=(time.monotonic() - start_time) * 1000
        )
    return wrapper
