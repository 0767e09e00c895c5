from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock


class CounsellorLocks:
    """One mutual-exclusion region per counsellor.

    Bookings for different counsellors never contend; every mutation of a
    single counsellor's calendar runs while holding that counsellor's lock.
    """

    def __init__(self) -> None:
        self._registry_lock = Lock()
        self._locks: dict[int, Lock] = {}

    def _lock_for(self, counsellor_id: int) -> Lock:
        with self._registry_lock:
            lock = self._locks.get(counsellor_id)
            if lock is None:
                lock = Lock()
                self._locks[counsellor_id] = lock
            return lock

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)

    @contextmanager
    def hold(self, counsellor_id: int) -> Iterator[None]:
        lock = self._lock_for(counsellor_id)
        with lock:
            yield


counsellor_locks = CounsellorLocks()
