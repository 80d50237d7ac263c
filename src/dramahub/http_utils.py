"""HTTP utilities: timeouts and a small transient-failure retry."""

import logging
import time
from typing import Any, Callable

logger = logging.getLogger(__name__)

# (connect_timeout, read_timeout)
DEFAULT_TIMEOUT = (3, 15)
SYNC_TIMEOUT = (5, 30)

TRANSIENT_STATUS = (429, 503, 504)


def retry_on_transient(
    func: Callable[..., Any],
    *args: Any,
    max_retries: int = 2,
    backoff_factor: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> Any:
    """Call ``func`` and retry on 429/503/504 or connection errors.

    Args:
        func: Callable returning a response (e.g. ``session.get``)
        *args: Positional arguments to func
        max_retries: Retries after the first attempt
        backoff_factor: Base wait in seconds, doubled per attempt
        sleep: Sleep function (injectable for tests)
        **kwargs: Keyword arguments to func

    Returns:
        The last response; a transient status is returned once retries
        are exhausted so the caller can inspect it

    Raises:
        The last connection error once retries are exhausted
    """
    attempt = 0
    while True:
        try:
            response = func(*args, **kwargs)
        except (TimeoutError, ConnectionError, OSError) as e:
            if attempt >= max_retries:
                raise
            wait = backoff_factor * (2 ** attempt)
            logger.debug(f"Connection error: {e}. Retrying in {wait}s ({attempt + 1}/{max_retries})")
            sleep(wait)
            attempt += 1
            continue

        if response.status_code in TRANSIENT_STATUS and attempt < max_retries:
            wait = backoff_factor * (2 ** attempt)
            logger.debug(
                f"Transient status {response.status_code}, retrying in {wait}s "
                f"({attempt + 1}/{max_retries})"
            )
            sleep(wait)
            attempt += 1
            continue

        return response


__all__ = [
    "DEFAULT_TIMEOUT",
    "SYNC_TIMEOUT",
    "retry_on_transient",
]
