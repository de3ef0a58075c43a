"""
Background scheduler for coordinate recalculation jobs.
"""

import random
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_for_futures
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Tuple

from ..models.core import EntityKind
from ..utils.config import RecomputeConfig
from ..utils.logging_config import get_logger
from ..utils.opensearch_client import NotFoundError

logger = get_logger(__name__)

CollectionKey = Tuple[str, EntityKind]


class RecomputeScheduler:
    """Runs recompute jobs off the request path.

    Jobs are keyed by (owner_id, kind). By default jobs for the same key run
    concurrently and the last write wins. With ``serialize`` enabled, jobs for
    one key run one at a time; jobs for different keys never wait on each
    other. Scheduled jobs are not cancelled.

    A job that raises ``NotFoundError`` is retried with backoff, since a
    freshly written item may not be searchable yet. It is dropped once the
    retries run out.
    """

    def __init__(self, job: Callable[[str], Any], config: RecomputeConfig):
        self._job = job
        self.serialize = config.serialize
        self.not_found_retries = config.not_found_retries
        self.retry_delay = config.retry_delay
        self._executor = ThreadPoolExecutor(max_workers=config.max_workers, thread_name_prefix='lifecopilot-recompute')
        # key -> [lock, number of jobs holding or waiting on it]
        self._key_locks: Dict[CollectionKey, List[Any]] = {}
        self._key_locks_guard = threading.Lock()
        self._pending: Set[Future] = set()
        self._pending_lock = threading.Lock()

        logger.info(f'Started recompute scheduler (workers={config.max_workers}, serialize={self.serialize})')

    @contextmanager
    def _key_lock(self, key: CollectionKey) -> Iterator[None]:
        with self._key_locks_guard:
            entry = self._key_locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._key_locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._key_locks[key]

    def _attempt(self, key: CollectionKey, item_id: str) -> Any:
        if self.serialize:
            with self._key_lock(key):
                return self._job(item_id)
        return self._job(item_id)

    def _run(self, key: CollectionKey, item_id: str) -> Any:
        attempt = 0
        while True:
            try:
                return self._attempt(key, item_id)
            except NotFoundError as e:
                if attempt >= self.not_found_retries:
                    raise
                delay = self.retry_delay * (2**attempt) + random.uniform(0, self.retry_delay)
                logger.warning(f'Recompute for {item_id} found nothing (attempt {attempt + 1}), '
                               f'retrying in {delay:.2f}s: {e}')
                time.sleep(delay)
                attempt += 1

    def _on_done(self, key: CollectionKey, item_id: str, future: Future) -> None:
        error = future.exception()
        if error is None:
            logger.debug(f'Recompute for {item_id} in ({key[0]}, {key[1].value}) finished')
        elif isinstance(error, NotFoundError):
            logger.warning(f'Recompute for {item_id} skipped: {error}')
        else:
            logger.error(f'Recompute for {item_id} in ({key[0]}, {key[1].value}) failed: {error}')

        # drain() treats an empty pending set as all outcomes reported
        with self._pending_lock:
            self._pending.discard(future)

    def schedule(self, owner_id: str, kind: EntityKind, item_id: str) -> Future:
        """
        Queue a recompute job and return immediately.

        Args:
            owner_id: Owner of the collection
            kind: Kind of the collection
            item_id: Item whose embedding must be regenerated

        Returns:
            Future resolving to the job's result
        """
        key = (owner_id, kind)
        future = self._executor.submit(self._run, key, item_id)
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(lambda f: self._on_done(key, item_id, f))

        logger.debug(f'Scheduled recompute for {item_id} in ({owner_id}, {kind.value})')
        return future

    @property
    def pending_count(self) -> int:
        with self._pending_lock:
            return len(self._pending)

    def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for outstanding jobs, including ones scheduled while waiting.

        Returns:
            True if every job finished within the timeout
        """
        while True:
            with self._pending_lock:
                futures = set(self._pending)
            if not futures:
                return True
            _, not_done = wait_for_futures(futures, timeout=timeout)
            if not_done:
                return False

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
        logger.info('Recompute scheduler stopped')
