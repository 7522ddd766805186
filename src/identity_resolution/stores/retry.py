from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from identity_resolution.errors import TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_with_retries(
    fn: Callable[[], T],
    *,
    label: str,
    is_transient: Callable[[BaseException], bool],
    retries: int = 3,
    backoff_seconds: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn``, retrying transient failures with exponential backoff.

    Non-transient exceptions propagate immediately. When every attempt fails
    with a transient error, ``TransientStoreError`` is raised from the last one.
    """
    attempts = max(1, 1 + retries)
    last_exc: BaseException | None = None
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as exc:
            if not is_transient(exc):
                raise
            last_exc = exc
            if attempt >= attempts:
                break
            sleep_for = max(0.0, backoff_seconds) * (2 ** (attempt - 1))
            logger.warning("%s: transient failure (%s), attempt %d/%d", label, exc, attempt, attempts)
            if sleep_for:
                sleep(sleep_for)
    raise TransientStoreError(f"{label} failed after {attempts} attempts: {last_exc}") from last_exc
