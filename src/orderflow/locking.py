"""Per-key mutual exclusion for orders, agents, products and returns.

Locks are re-entrant so a use case holding an order lock can call another
operation on the same order. Multi-key acquisition always happens in sorted
key order to rule out lock-order inversions between concurrent callers.
A key's lock is dropped from the registry once nobody holds or waits on it.
"""

import threading
from collections.abc import Iterable, Iterator
from contextlib import ExitStack, contextmanager


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.users = 0


class KeyedLocks:
    """Registry of re-entrant locks, created on first use per ``(namespace, key)``."""

    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._entries: dict[tuple[str, str], _Entry] = {}

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._entries)

    def _checkout(self, namespace: str, key: str) -> threading.RLock:
        with self._registry_lock:
            entry = self._entries.get((namespace, key))
            if entry is None:
                entry = self._entries[(namespace, key)] = _Entry()
            entry.users += 1
            return entry.lock

    def _checkin(self, namespace: str, key: str) -> None:
        with self._registry_lock:
            entry = self._entries.get((namespace, key))
            if entry is None:
                return
            entry.users -= 1
            if entry.users <= 0:
                del self._entries[(namespace, key)]

    @contextmanager
    def hold(self, namespace: str, keys: Iterable[str]) -> Iterator[None]:
        """Hold the locks of every key in ``namespace`` for the duration of the block."""
        ordered = sorted({str(k) for k in keys if k})
        with ExitStack() as stack:
            for key in ordered:
                lock = self._checkout(namespace, key)
                stack.callback(self._checkin, namespace, key)
                stack.enter_context(lock)
            yield

    def reset(self) -> None:
        with self._registry_lock:
            self._entries.clear()


_locks = KeyedLocks()


def order_lock(order_id: str):
    return _locks.hold("order", [order_id])


def agent_locks(*agent_ids: str | None):
    return _locks.hold("agent", agent_ids)


def product_locks(product_ids: Iterable[str]):
    return _locks.hold("product", product_ids)


def return_lock(return_id: str):
    return _locks.hold("return", [return_id])


def sequence_lock(date_key: str):
    return _locks.hold("sequence", [date_key])


def get_locks() -> KeyedLocks:
    return _locks
