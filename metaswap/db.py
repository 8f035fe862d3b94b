"""
LevelDB store for committed ledger state.

Contract storage keys are laid out as `address:name[:part...]`, so one
contract's storage is a contiguous key range and can be read back with a
prefix scan.
"""
import plyvel
import logging
from typing import Optional, Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class DB:
    def __init__(self, db_path: str, create_if_missing: bool = True,
                 write_buffer_size: int = 64 * 1024 * 1024,
                 max_open_files: int = 1000):
        """
        Args:
            db_path: Directory of the LevelDB store
            create_if_missing: Create the store on first use
            write_buffer_size: LevelDB write buffer, in bytes
            max_open_files: LevelDB file handle limit
        """
        self.path = db_path
        self._closed = True
        try:
            self._db = plyvel.DB(
                db_path,
                create_if_missing=create_if_missing,
                write_buffer_size=write_buffer_size,
                max_open_files=max_open_files,
            )
        except plyvel.Error as e:
            logger.error(f"Cannot open state store at {db_path}: {e}")
            raise
        self._closed = False
        logger.info(f"State store opened at {db_path}")

    @classmethod
    def from_config(cls, config) -> 'DB':
        """Open the store described by a DatabaseConfig."""
        return cls(
            config.path,
            write_buffer_size=config.write_buffer_size,
            max_open_files=config.max_open_files,
        )

    def _require_open(self):
        if self._closed:
            raise RuntimeError(f"State store at {self.path} is closed")

    # --- single keys ---

    def get(self, key: bytes) -> Optional[bytes]:
        self._require_open()
        return self._db.get(key)

    def put(self, key: bytes, value: bytes):
        self._require_open()
        self._db.put(key, value)

    def delete(self, key: bytes):
        self._require_open()
        self._db.delete(key)

    def exists(self, key: bytes) -> bool:
        return self.get(key) is not None

    # --- batches ---

    @contextmanager
    def write_batch(self):
        """
        All-or-nothing batch; nothing is written if the block raises.

            with db.write_batch() as batch:
                batch.put(b'key', b'value')
        """
        self._require_open()
        batch = self._db.write_batch(transaction=True)
        try:
            yield batch
        except Exception as e:
            logger.error(f"State batch discarded: {e}")
            raise
        batch.write()

    def apply_changes(self, changes: dict[bytes, Optional[bytes]]) -> int:
        """
        Write a set of state changes in one batch; a None value deletes the key.

        Returns:
            Number of keys written or deleted
        """
        with self.write_batch() as batch:
            for key, value in changes.items():
                if value is None:
                    batch.delete(key)
                else:
                    batch.put(key, value)
        return len(changes)

    # --- scans ---

    def iterator(self, prefix: bytes) -> Iterator[tuple[bytes, bytes]]:
        self._require_open()
        return self._db.iterator(prefix=prefix)

    def get_prefix(self, prefix: bytes) -> list[tuple[bytes, bytes]]:
        return list(self.iterator(prefix))

    def storage_of(self, address: bytes) -> dict[bytes, bytes]:
        """Committed storage of one contract, keyed by the part after the address."""
        prefix = address + b':'
        return {key[len(prefix):]: value for key, value in self.iterator(prefix)}

    # --- lifecycle ---

    def close(self):
        if not self._closed:
            self._db.close()
            self._closed = True
            logger.info(f"State store at {self.path} closed")

    def is_closed(self) -> bool:
        return self._closed

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
