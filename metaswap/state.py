"""
Journaled ledger state.

All contract storage goes through a StateDB. Every write is recorded in a
journal so that a failed call can be rolled back to a snapshot, leaving no
partial state change behind. Committed state is flushed to the backing DB
(when one is attached) in a single write batch.
"""
import logging
from typing import Optional

import msgpack

logger = logging.getLogger(__name__)


class StateDB:
    def __init__(self, db=None):
        """
        Args:
            db: Optional persistent store exposing get() and write_batch().
                Without one the state lives in memory only.
        """
        self.db = db
        self._cache: dict[bytes, Optional[bytes]] = {}
        self._journal: list[tuple[bytes, Optional[bytes]]] = []
        self._dirty: set[bytes] = set()

    def get(self, key: bytes) -> Optional[bytes]:
        if key in self._cache:
            return self._cache[key]
        value = self.db.get(key) if self.db is not None else None
        self._cache[key] = value
        return value

    def put(self, key: bytes, value: Optional[bytes]):
        previous = self.get(key)
        self._journal.append((key, previous))
        self._cache[key] = value
        self._dirty.add(key)

    def delete(self, key: bytes):
        self.put(key, None)

    def get_obj(self, key: bytes, default=None):
        raw = self.get(key)
        if raw is None:
            return default
        return msgpack.unpackb(raw, raw=False)

    def put_obj(self, key: bytes, obj):
        self.put(key, msgpack.packb(obj, use_bin_type=True))

    def get_int(self, key: bytes) -> int:
        # Amounts exceed 64 bits, so they are stored as decimal strings
        raw = self.get(key)
        return int(raw.decode('ascii')) if raw is not None else 0

    def put_int(self, key: bytes, value: int):
        if value < 0:
            raise ValueError(f"Negative value for {key!r}: {value}")
        self.put(key, str(value).encode('ascii'))

    def snapshot(self) -> int:
        return len(self._journal)

    def revert(self, snapshot: int):
        """Undo every write made after `snapshot`."""
        if snapshot > len(self._journal):
            raise ValueError("Snapshot is ahead of the journal")
        while len(self._journal) > snapshot:
            key, previous = self._journal.pop()
            self._cache[key] = previous

    def commit(self) -> int:
        """Flush dirty keys to the backing store and clear the journal."""
        written = len(self._dirty)
        if self.db is not None and self._dirty:
            self.db.apply_changes({key: self._cache[key] for key in self._dirty})
            logger.debug(f"Committed {written} state keys")
        self._dirty.clear()
        self._journal.clear()
        return written

    @property
    def journal_size(self) -> int:
        return len(self._journal)
