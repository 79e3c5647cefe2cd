"""Per-book generation lease.

Only one generation job may work on a book at a time. Inside a process this
is an asyncio.Lock per book; across processes it is a lease file created
with O_CREAT | O_EXCL that records the owner and an expiry, so a lease left
behind by a crashed process is taken over once it expires. While the lease
is held a background task pushes the expiry forward every third of the TTL,
so a job that runs longer than the TTL keeps its lease.
"""

import asyncio
import json
import logging
import os
import socket
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Awaitable, Callable, Optional

from config.exceptions import BookLockedError

logger = logging.getLogger(__name__)


class BookLeaseManager:
    """Hands out exclusive per-book leases."""

    def __init__(
        self,
        lease_dir: Path | str,
        ttl_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.lease_dir = Path(lease_dir)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sleep = sleep
        self._locks: dict[int, asyncio.Lock] = {}
        self.owner = f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"

    def _path(self, book_id: int) -> Path:
        return self.lease_dir / f"{book_id}.lease"

    def _read_lease(self, path: Path) -> Optional[dict]:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("Unreadable lease %s treated as expired: %s", path, e)
            return {}

    def _lease_record(self) -> dict:
        return {"owner": self.owner, "expires_at": self._clock() + self.ttl_seconds}

    def _try_create(self, path: Path) -> bool:
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(self._lease_record(), f)
        return True

    def renew(self, book_id: int) -> bool:
        """Push the expiry of a lease this manager holds. Returns False if it lost the lease."""
        path = self._path(book_id)
        lease = self._read_lease(path)
        if not lease or lease.get("owner") != self.owner:
            logger.warning("Lease for book %d is no longer held by %s", book_id, self.owner)
            return False
        tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            tmp_path.write_text(json.dumps(self._lease_record()), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            logger.warning("Could not renew lease for book %d: %s", book_id, e)
            tmp_path.unlink(missing_ok=True)
            return False
        logger.debug("Lease renewed for book %d", book_id)
        return True

    async def _keep_alive(self, book_id: int):
        interval = self.ttl_seconds / 3
        while True:
            await self._sleep(interval)
            if not self.renew(book_id):
                return

    def _acquire_file(self, book_id: int):
        self.lease_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(book_id)
        if self._try_create(path):
            return

        lease = self._read_lease(path)
        if lease is not None and lease.get("expires_at", 0) > self._clock():
            raise BookLockedError(book_id, lease.get("owner", ""))

        logger.warning(
            "Taking over expired lease for book %d (previous owner %s)",
            book_id, (lease or {}).get("owner", "unknown"),
        )
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        if not self._try_create(path):
            lease = self._read_lease(path) or {}
            raise BookLockedError(book_id, lease.get("owner", ""))

    def _release_file(self, book_id: int):
        path = self._path(book_id)
        lease = self._read_lease(path)
        if lease is not None and lease.get("owner") != self.owner:
            logger.warning("Lease for book %d is held by %s, not releasing", book_id, lease.get("owner"))
            return
        try:
            path.unlink()
        except FileNotFoundError:
            pass

    def is_locked(self, book_id: int) -> bool:
        lock = self._locks.get(book_id)
        if lock is not None and lock.locked():
            return True
        lease = self._read_lease(self._path(book_id))
        return bool(lease) and lease.get("expires_at", 0) > self._clock()

    @asynccontextmanager
    async def acquire(self, book_id: int):
        """Hold the book's lease for the duration of the block.

        Raises:
            BookLockedError: If another job (in this or another process) holds it.
        """
        lock = self._locks.setdefault(book_id, asyncio.Lock())
        if lock.locked():
            raise BookLockedError(book_id, self.owner)
        async with lock:
            self._acquire_file(book_id)
            logger.debug("Lease acquired for book %d by %s", book_id, self.owner)
            keep_alive = asyncio.get_running_loop().create_task(self._keep_alive(book_id))
            try:
                yield self
            finally:
                keep_alive.cancel()
                self._release_file(book_id)
                logger.debug("Lease released for book %d", book_id)
