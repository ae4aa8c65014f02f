"""Single-owner cache of the current entry snapshot.

All access goes through one thread that takes messages off a queue, so an
install (swap and persist) never overlaps a read or another install.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple, Union

from .models import Entry
from .store import SnapshotStore

logger = logging.getLogger(__name__)

Snapshot = Tuple[Entry, ...]


@dataclass
class _Read:
    reply: "queue.Queue[Snapshot]"


@dataclass
class _Install:
    entries: Snapshot
    done: threading.Event
    persisted: bool = False


class _Stop:
    pass


_Message = Union[_Read, _Install, _Stop]


class CacheActor:
    def __init__(self, store: SnapshotStore, initial: Iterable[Entry] = ()):
        self._store = store
        self._snapshot: Snapshot = tuple(initial)
        self._inbox: "queue.Queue[_Message]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self.persistence_degraded = threading.Event()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="feed-cache", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        if self._thread is None:
            return
        self._inbox.put(_Stop())
        self._thread.join(timeout)
        self._thread = None

    def read(self, timeout: Optional[float] = None) -> Snapshot:
        """Return the snapshot that is current when the actor handles the request."""
        reply: "queue.Queue[Snapshot]" = queue.Queue(maxsize=1)
        self._inbox.put(_Read(reply))
        return reply.get(timeout=timeout)

    def write(self, entries: Iterable[Entry], timeout: Optional[float] = None) -> bool:
        """Install ``entries`` as the new snapshot and wait until it is persisted.

        Returns False if ``timeout`` expired before the install completed, or if
        the entries are being served but could not be persisted.
        """
        message = _Install(entries=tuple(entries), done=threading.Event())
        self._inbox.put(message)
        return message.done.wait(timeout) and message.persisted

    def snapshot_size(self, timeout: Optional[float] = None) -> int:
        return len(self.read(timeout))

    def _run(self) -> None:
        while True:
            message = self._inbox.get()
            if isinstance(message, _Stop):
                return
            if isinstance(message, _Read):
                message.reply.put(self._snapshot)
            elif isinstance(message, _Install):
                try:
                    message.persisted = self._install(message.entries)
                finally:
                    message.done.set()

    def _install(self, entries: Snapshot) -> bool:
        self._snapshot = entries
        try:
            self._store.save(entries)
        except Exception:  # noqa: BLE001 - the actor must outlive any store failure
            logger.exception(
                "Failed to persist %d entries; serving them from memory only.",
                len(entries),
            )
            self.persistence_degraded.set()
            return False
        if self.persistence_degraded.is_set():
            logger.info("Snapshot persistence recovered.")
            self.persistence_degraded.clear()
        return True
