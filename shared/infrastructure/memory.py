"""
In-memory persistence

A thread-safe store with the same transactional contract as the Django
units of work: reads return private copies, writes are staged and applied
atomically on commit, and ``lock`` gives the same exclusive per-row
critical section that ``SELECT ... FOR UPDATE`` gives in the database.

Used by single-process deployments and by the test-suite, which drives
it with real threads to exercise the reservation locking discipline.
"""

from collections import defaultdict
from copy import deepcopy
from threading import Lock, RLock
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Tuple
from weakref import WeakValueDictionary
import logging

from shared.application.message_bus import MessageBus
from shared.application.uow import AbstractUnitOfWork

logger = logging.getLogger(__name__)

_DELETED = object()


class InMemoryStore:
    """
    Tables of deep-copied records plus a registry of row locks.

    The registry only keeps a row lock alive while a unit of work or a
    waiting caller holds a reference to it.
    """

    def __init__(self):
        self._tables: Dict[str, Dict[Hashable, Any]] = defaultdict(dict)
        self._row_locks: "WeakValueDictionary[Tuple[str, Hashable], RLock]" = WeakValueDictionary()
        self._registry_lock = Lock()
        self._data_lock = Lock()

    def row_lock(self, table: str, key: Hashable) -> RLock:
        with self._registry_lock:
            lock = self._row_locks.get((table, key))
            if lock is None:
                lock = self._row_locks[(table, key)] = RLock()
            return lock

    def read(self, table: str, key: Hashable) -> Any:
        with self._data_lock:
            value = self._tables[table].get(key)
            return deepcopy(value) if value is not None else None

    def scan(self, table: str) -> List[Any]:
        with self._data_lock:
            return [deepcopy(value) for value in self._tables[table].values()]

    def apply(self, writes: Dict[Tuple[str, Hashable], Any]):
        with self._data_lock:
            for (table, key), value in writes.items():
                if value is _DELETED:
                    self._tables[table].pop(key, None)
                else:
                    self._tables[table][key] = value

    def put(self, table: str, key: Hashable, value: Any):
        """Seed a record outside of any unit of work (fixtures, admin tooling)."""
        self.apply({(table, key): deepcopy(value)})


class InMemoryUnitOfWork(AbstractUnitOfWork):
    """
    Unit of work over an ``InMemoryStore``.

    Row locks taken through ``lock`` are held until the unit of work
    exits, after the staged writes are applied. Events are published once
    the locks are released, mirroring ``transaction.on_commit``.
    """

    def __init__(self, store: InMemoryStore, message_bus: Optional[MessageBus] = None):
        super().__init__(message_bus)
        self.store = store
        self._pending: Dict[Tuple[str, Hashable], Any] = {}
        self._held: Dict[Tuple[str, Hashable], RLock] = {}
        self._committed_events = []

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            super().__exit__(exc_type, exc_val, exc_tb)
        finally:
            self._release_locks()
        events, self._committed_events = self._committed_events, []
        self._publish_events(events)

    def lock(self, table: str, key: Hashable):
        if (table, key) in self._held:
            return
        lock = self.store.row_lock(table, key)
        lock.acquire()
        self._held[(table, key)] = lock

    def _release_locks(self):
        for lock in reversed(list(self._held.values())):
            lock.release()
        self._held.clear()

    def read(self, table: str, key: Hashable) -> Any:
        if (table, key) in self._pending:
            value = self._pending[(table, key)]
            return None if value is _DELETED else deepcopy(value)
        return self.store.read(table, key)

    def scan(self, table: str, predicate: Callable[[Any], bool] = lambda _: True) -> Iterable[Any]:
        staged = {key: value for (name, key), value in self._pending.items() if name == table}
        for value in self.store.scan(table):
            key = getattr(value, 'id', None)
            if key in staged:
                continue
            if predicate(value):
                yield value
        for value in staged.values():
            if value is not _DELETED and predicate(value):
                yield deepcopy(value)

    def stage(self, table: str, key: Hashable, value: Any):
        value = deepcopy(value)
        if hasattr(value, 'clear_events'):
            value.clear_events()
        self._pending[(table, key)] = value

    def stage_delete(self, table: str, key: Hashable):
        self._pending[(table, key)] = _DELETED

    def commit(self):
        self.store.apply(self._pending)
        self._pending = {}
        self._committed_events.extend(self._drain_events())

    def rollback(self):
        if self._events:
            logger.warning(f"Rolling back in-memory unit of work, discarding {len(self._events)} events")
        self._pending = {}
        self._events.clear()
