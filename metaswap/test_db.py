"""
Test Suite: Persistence

Committed ledger state is flushed to LevelDB in one batch and survives
reopening the store; uncommitted or reverted state never reaches disk.
"""
import shutil
import tempfile

import pytest

from metaswap.config import Config
from metaswap.db import DB
from metaswap.erc20 import Token
from metaswap.errors import InsufficientBalance
from metaswap.ledger import Ledger
from metaswap.state import StateDB

OWNER = b'\x01' * 20
HOLDER = b'\x02' * 20


@pytest.fixture
def db_path():
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir)


@pytest.fixture
def db(db_path):
    store = DB(db_path)
    yield store
    store.close()


class TestDB:
    def test_put_get_delete(self, db):
        db.put(b'key', b'value')
        assert db.get(b'key') == b'value'
        assert db.exists(b'key')
        db.delete(b'key')
        assert db.get(b'key') is None

    def test_write_batch(self, db):
        with db.write_batch() as batch:
            batch.put(b'a:1', b'x')
            batch.put(b'a:2', b'y')
            batch.put(b'b:1', b'z')
        assert db.get_prefix(b'a:') == [(b'a:1', b'x'), (b'a:2', b'y')]

    def test_failed_batch_writes_nothing(self, db):
        with pytest.raises(RuntimeError):
            with db.write_batch() as batch:
                batch.put(b'a:1', b'x')
                raise RuntimeError("abort")
        assert db.get(b'a:1') is None

    def test_closed_db_rejects_access(self, db_path):
        store = DB(db_path)
        store.close()
        assert store.is_closed()
        with pytest.raises(RuntimeError):
            store.get(b'key')

    def test_from_config(self, db_path):
        config = Config.default()
        config.database.path = db_path
        with DB.from_config(config.database) as store:
            assert store.path == db_path


class TestStatePersistence:
    def test_commit_flushes_dirty_keys(self, db):
        state = StateDB(db)
        state.put_int(b'balance', 42)
        state.put(b'gone', b'x')
        state.delete(b'gone')
        state.commit()
        assert db.get(b'balance') == b'42'
        assert db.get(b'gone') is None

    def test_contract_storage_scan(self, db):
        ledger = Ledger(chain_id=1, timestamp=1_000, db=db)
        token = ledger.deploy(Token, OWNER, "Token", "TKN", 18, owner=OWNER)
        token.mint(OWNER, HOLDER, 500)
        ledger.commit()
        storage = db.storage_of(token.address)
        assert storage[b'balance:' + HOLDER] == b'500'
        assert storage[b'total_supply'] == b'500'

    def test_uncommitted_state_not_persisted(self, db):
        state = StateDB(db)
        state.put_int(b'balance', 42)
        assert db.get(b'balance') is None

    def test_ledger_reopened_sees_committed_balances(self, db_path):
        with DB(db_path) as store:
            ledger = Ledger(chain_id=1, timestamp=1_000, db=store)
            token = ledger.deploy(Token, OWNER, "Token", "TKN", 18, owner=OWNER)
            token.mint(OWNER, HOLDER, 500)
            with pytest.raises(InsufficientBalance):
                token.transfer(HOLDER, OWNER, 10_000)
            ledger.commit()
            address = token.address

        with DB(db_path) as store:
            reopened = Ledger(chain_id=1, timestamp=2_000, db=store)
            token = reopened.load(Token, address)
            assert token.balance_of(HOLDER) == 500
            assert token.total_supply() == 500
            assert token.symbol == "TKN"
