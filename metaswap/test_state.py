"""
Test Suite: Ledger State and Atomic Calls

Every external call must either apply completely or leave no trace:
state writes and events of a failing call (including nested calls) are
rolled back, and the reentrancy guard is released on every exit path.
"""
import pytest

from metaswap.crypto import create_address
from metaswap.errors import DeploymentError, ReentrantCall, ValidationError
from metaswap.erc20 import Token
from metaswap.ledger import Contract, ReentrancyGuard, external
from metaswap.state import StateDB


class Counter(Contract):
    INIT_CODE = b'test.Counter'

    def constructor(self, start: int = 0):
        self.ledger.state.put_int(self._key('value'), start)

    def value(self) -> int:
        return self.ledger.state.get_int(self._key('value'))

    @external
    def increment(self, sender: bytes, fail: bool = False):
        self.ledger.state.put_int(self._key('value'), self.value() + 1)
        self._emit('Incremented', value=self.value())
        if fail:
            raise ValidationError("boom")

    @external
    def increment_twice(self, sender: bytes, fail_second: bool):
        self.increment(sender)
        self.increment(sender, fail=fail_second)


SENDER = b'\x01' * 20


class TestStateDB:
    def test_missing_values(self):
        state = StateDB()
        assert state.get(b'missing') is None
        assert state.get_int(b'missing') == 0
        assert state.get_obj(b'missing', default={}) == {}

    def test_large_ints(self):
        state = StateDB()
        state.put_int(b'big', 2 ** 200)
        assert state.get_int(b'big') == 2 ** 200

    def test_negative_int_rejected(self):
        with pytest.raises(ValueError):
            StateDB().put_int(b'k', -1)

    def test_objects(self):
        state = StateDB()
        state.put_obj(b'obj', {'token0': b'\x01' * 20, 'reserve0': '5'})
        assert state.get_obj(b'obj') == {'token0': b'\x01' * 20, 'reserve0': '5'}

    def test_snapshot_and_revert(self):
        state = StateDB()
        state.put(b'a', b'1')
        snapshot = state.snapshot()
        state.put(b'a', b'2')
        state.put(b'b', b'3')
        state.delete(b'a')
        state.revert(snapshot)
        assert state.get(b'a') == b'1'
        assert state.get(b'b') is None

    def test_revert_ahead_of_journal(self):
        state = StateDB()
        with pytest.raises(ValueError):
            state.revert(5)

    def test_commit_clears_journal(self):
        state = StateDB()
        state.put(b'a', b'1')
        assert state.commit() == 1
        assert state.journal_size == 0
        assert state.get(b'a') == b'1'


class TestAtomicCalls:
    @pytest.fixture
    def counter(self, ledger):
        return ledger.deploy(Counter, SENDER, 10)

    def test_successful_call(self, ledger, counter):
        counter.increment(SENDER)
        assert counter.value() == 11
        assert ledger.events_named('Incremented')[-1]['value'] == 11

    def test_failed_call_reverts_state_and_events(self, ledger, counter):
        with pytest.raises(ValidationError):
            counter.increment(SENDER, fail=True)
        assert counter.value() == 10
        assert ledger.events_named('Incremented') == []

    def test_nested_failure_reverts_outer_call(self, ledger, counter):
        with pytest.raises(ValidationError):
            counter.increment_twice(SENDER, fail_second=True)
        assert counter.value() == 10

    def test_contained_inner_failure(self, ledger, counter):
        """A caller may catch an inner failure; only the inner frame is undone."""
        with ledger.atomic():
            counter.increment(SENDER)
            try:
                counter.increment(SENDER, fail=True)
            except ValidationError:
                pass
        assert counter.value() == 11
        assert len(ledger.events_named('Incremented')) == 1

    def test_commit_inside_call_rejected(self, ledger):
        with pytest.raises(RuntimeError):
            with ledger.atomic():
                ledger.commit()

    def test_time_moves_forward_only(self, ledger):
        start = ledger.timestamp
        assert ledger.advance_time(60) == start + 60
        with pytest.raises(ValueError):
            ledger.advance_time(-1)


class TestDeployment:
    def test_sequential_addresses_differ(self, ledger):
        first = ledger.deploy(Counter, SENDER)
        second = ledger.deploy(Counter, SENDER)
        assert first.address != second.address
        assert ledger.code_hash_at(first.address) == Counter.code_hash()

    def test_salted_redeploy_rejected(self, ledger):
        salt = b'\x05' * 32
        ledger.deploy(Counter, SENDER, salt=salt)
        with pytest.raises(DeploymentError):
            ledger.deploy(Counter, SENDER, salt=salt)

    def test_get_contract_unknown(self, ledger):
        with pytest.raises(ValidationError):
            ledger.get_contract(b'\x09' * 20)

    def test_load_checks_code_hash(self, ledger):
        counter = ledger.deploy(Counter, SENDER)
        with pytest.raises(DeploymentError):
            ledger.load(Token, counter.address)
        assert ledger.load(Counter, counter.address).value() == 0

    def test_failed_constructor_leaves_no_code(self, ledger):
        with pytest.raises(TypeError):
            ledger.deploy(Counter, SENDER, 'not', 'valid', 'args')
        assert not ledger.has_code(create_address(SENDER, 0))
        assert ledger.deploy(Counter, SENDER).address == create_address(SENDER, 0)


class TestReentrancyGuard:
    def test_nested_entry_raises(self):
        guard = ReentrancyGuard('Test')
        with guard:
            assert guard.locked
            with pytest.raises(ReentrantCall):
                with guard:
                    pass
        assert not guard.locked

    def test_released_after_exception(self):
        guard = ReentrancyGuard('Test')
        with pytest.raises(ValueError):
            with guard:
                raise ValueError("fail")
        assert not guard.locked
        with guard:
            pass
