"""
Execution host for the exchange contracts.

The ledger owns the journaled state, the block timestamp, the event log and
the registry of deployed contracts. Calls are serialized: a contract method
marked @external runs inside Ledger.atomic(), so any exception rolls back
every state write and event emitted during that call (including nested
calls), exactly like a reverted transaction.
"""
import functools
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Optional

from metaswap.crypto import generate_hash, create_address, create2_address, format_address
from metaswap.errors import DeploymentError, ReentrantCall, ValidationError
from metaswap.state import StateDB

logger = logging.getLogger(__name__)

CODE_PREFIX = b'code:'
DEPLOY_NONCE_PREFIX = b'deploy-nonce:'


@dataclass
class Event:
    name: str
    address: bytes
    args: dict = field(default_factory=dict)

    def __getitem__(self, key):
        return self.args[key]


class Ledger:
    def __init__(self, chain_id: int = 1, timestamp: Optional[int] = None, db=None):
        self.chain_id = chain_id
        self.state = StateDB(db)
        self.timestamp = int(timestamp if timestamp is not None else time.time())
        # Grows until clear_events(); events_cleared counts what was dropped
        self.events: list[Event] = []
        self.events_cleared = 0
        self._contracts: dict[bytes, 'Contract'] = {}
        self._depth = 0

    @classmethod
    def from_config(cls, config, db=None) -> 'Ledger':
        """Create a ledger from a Config object."""
        return cls(
            chain_id=config.chain.chain_id,
            timestamp=config.chain.genesis_timestamp,
            db=db,
        )

    # --- time ---

    def advance_time(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Time cannot move backwards")
        self.timestamp += seconds
        return self.timestamp

    # --- atomicity ---

    @contextmanager
    def atomic(self):
        """Run a call frame; roll back state and events if it raises."""
        snapshot = self.state.snapshot()
        event_mark = len(self.events)
        self._depth += 1
        try:
            yield
        except Exception as e:
            self.state.revert(snapshot)
            del self.events[event_mark:]
            if self._depth == 1:
                logger.warning(f"Call reverted: {type(e).__name__}: {e}")
            raise
        finally:
            self._depth -= 1

    def commit(self) -> int:
        """Persist all state written since the last commit."""
        if self._depth:
            raise RuntimeError("Cannot commit inside an open call frame")
        return self.state.commit()

    # --- events ---

    def emit(self, address: bytes, name: str, **args) -> Event:
        event = Event(name=name, address=address, args=args)
        self.events.append(event)
        logger.debug(f"{name} @ {format_address(address)}: {args}")
        return event

    def clear_events(self) -> int:
        """Drop the event log, typically after commit() once consumers have read it."""
        if self._depth:
            raise RuntimeError("Cannot clear events inside an open call frame")
        dropped = len(self.events)
        self.events = []
        self.events_cleared += dropped
        return dropped

    def events_named(self, name: str, address: Optional[bytes] = None) -> list[Event]:
        return [
            e for e in self.events
            if e.name == name and (address is None or e.address == address)
        ]

    # --- contracts ---

    def has_code(self, address: bytes) -> bool:
        return self.state.get(CODE_PREFIX + address) is not None

    def code_hash_at(self, address: bytes) -> Optional[bytes]:
        return self.state.get(CODE_PREFIX + address)

    def deploy(self, contract_cls, deployer: bytes, *args, salt: Optional[bytes] = None, **kwargs):
        """
        Deploy a contract and run its constructor.

        With a salt the address is content-addressed (deployer, salt and
        code hash); without one it is derived from the deployer's deploy count.
        """
        code_hash = contract_cls.code_hash()
        with self.atomic():
            if salt is None:
                nonce_key = DEPLOY_NONCE_PREFIX + deployer
                nonce = self.state.get_int(nonce_key)
                address = create_address(deployer, nonce)
                self.state.put_int(nonce_key, nonce + 1)
            else:
                address = create2_address(deployer, salt, code_hash)

            if self.has_code(address):
                raise DeploymentError(f"Address {format_address(address)} already has code")

            contract = contract_cls(self, address)
            self.state.put(CODE_PREFIX + address, code_hash)
            self._contracts[address] = contract
            contract.constructor(*args, **kwargs)

        logger.info(f"Deployed {contract_cls.__name__} at {format_address(address)}")
        return contract

    def get_contract(self, address: bytes):
        if not self.has_code(address):
            raise ValidationError(f"No contract at {format_address(address)}")
        contract = self._contracts.get(address)
        if contract is None:
            raise ValidationError(f"Contract at {format_address(address)} is not loaded")
        return contract

    def load(self, contract_cls, address: bytes):
        """Bind a contract class to code already present in (persisted) state."""
        code_hash = self.code_hash_at(address)
        if code_hash is None:
            raise ValidationError(f"No contract at {format_address(address)}")
        if code_hash != contract_cls.code_hash():
            raise DeploymentError(
                f"Code at {format_address(address)} does not match {contract_cls.__name__}"
            )
        contract = contract_cls(self, address)
        self._contracts[address] = contract
        return contract


class Contract:
    """Base class for contracts; storage lives in the ledger's StateDB."""

    INIT_CODE = b'metaswap.Contract'

    def __init__(self, ledger: Ledger, address: bytes):
        self.ledger = ledger
        self.address = address

    @classmethod
    def code_hash(cls) -> bytes:
        return generate_hash(cls.INIT_CODE)

    def constructor(self, *args, **kwargs):
        pass

    @property
    def now(self) -> int:
        return self.ledger.timestamp

    def _key(self, name: str, *parts: bytes) -> bytes:
        key = self.address + b':' + name.encode('ascii')
        for part in parts:
            key += b':' + part
        return key

    def _emit(self, name: str, **args) -> Event:
        return self.ledger.emit(self.address, name, **args)

    def _contract(self, address: bytes):
        return self.ledger.get_contract(address)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({format_address(self.address)})"


def external(method):
    """Mark a contract method as an atomic call frame."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.ledger.atomic():
            return method(self, *args, **kwargs)
    return wrapper


class ReentrancyGuard:
    """
    Held/free flag around a call sequence. Entering while held raises
    ReentrantCall; the flag is released on every exit path.
    """

    def __init__(self, name: str):
        self.name = name
        self._entered = False

    @property
    def locked(self) -> bool:
        return self._entered

    def __enter__(self):
        if self._entered:
            raise ReentrantCall(f"{self.name}: reentrant call")
        self._entered = True
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._entered = False
        return False
