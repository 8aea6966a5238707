"""
Fire-and-forget cache refreshes.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_SYNC_WORKERS = 4


def make_executor(max_workers: int = DEFAULT_SYNC_WORKERS) -> ThreadPoolExecutor:
    return ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="passit-sync")


def submit_refresh(
    executor: Optional[Executor], refresh: Callable[[], object], description: str
) -> Future:
    """
    Runs `refresh` on `executor`. Failures are logged and swallowed so the
    returned future always completes without an exception.
    """

    def _run():
        try:
            refresh()
        except Exception as exc:
            logger.warning("Failed to %s: %s", description, exc)

    if executor is None:
        future: Future = Future()
        _run()
        future.set_result(None)
        return future
    return executor.submit(_run)
