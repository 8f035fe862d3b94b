"""
Pair registry: creates reserve pairs at deterministic addresses and holds
the exchange-wide settings (protocol fee recipient, authorized router).
"""
import logging

from metaswap import amm_state
from metaswap.crypto import ZERO_ADDRESS, format_address
from metaswap.errors import Forbidden, PairExists
from metaswap.ledger import Contract, external
from metaswap.pair import ReservePair

logger = logging.getLogger(__name__)


class PairRegistry(Contract):
    INIT_CODE = b'metaswap.factory.PairRegistry/v1'

    def constructor(self, fee_to_setter: bytes):
        self.ledger.state.put(self._key('fee_to_setter'), fee_to_setter)
        self.ledger.state.put(self._key('fee_to'), ZERO_ADDRESS)
        self.ledger.state.put(self._key('router'), ZERO_ADDRESS)

    # --- views ---

    def fee_to(self) -> bytes:
        return self.ledger.state.get(self._key('fee_to'))

    def fee_to_setter(self) -> bytes:
        return self.ledger.state.get(self._key('fee_to_setter'))

    def router(self) -> bytes:
        return self.ledger.state.get(self._key('router'))

    def get_pair(self, token_a: bytes, token_b: bytes) -> bytes:
        """Registered pair for two tokens in either order, or the zero address."""
        return self.ledger.state.get(self._key('pair', token_a, token_b)) or ZERO_ADDRESS

    def all_pairs_length(self) -> int:
        return self.ledger.state.get_int(self._key('all_pairs_length'))

    def all_pairs(self, index: int) -> bytes:
        if not 0 <= index < self.all_pairs_length():
            raise IndexError(f"Pair index {index} out of range")
        return self.ledger.state.get(self._key('all_pairs', str(index).encode('ascii')))

    def compute_pair_address(self, token_a: bytes, token_b: bytes) -> bytes:
        return amm_state.compute_pair_address(self.address, token_a, token_b)

    # --- mutations ---

    @external
    def create_pair(self, sender: bytes, token_a: bytes, token_b: bytes) -> bytes:
        token0, token1 = amm_state.sort_tokens(token_a, token_b)
        if self.get_pair(token0, token1) != ZERO_ADDRESS:
            raise PairExists(f"Pair already exists: {format_address(self.get_pair(token0, token1))}")

        salt = amm_state.pair_salt(token0, token1)
        pair = self.ledger.deploy(ReservePair, self.address, self.address, salt=salt)
        pair.initialize(self.address, token0, token1)

        self.ledger.state.put(self._key('pair', token0, token1), pair.address)
        self.ledger.state.put(self._key('pair', token1, token0), pair.address)
        index = self.all_pairs_length()
        self.ledger.state.put(self._key('all_pairs', str(index).encode('ascii')), pair.address)
        self.ledger.state.put_int(self._key('all_pairs_length'), index + 1)

        self._emit('PairCreated', token0=token0, token1=token1, pair=pair.address, index=index + 1)
        logger.info(
            f"Pair created: {format_address(token0)}/{format_address(token1)} "
            f"at {format_address(pair.address)}"
        )
        return pair.address

    @external
    def set_fee_to(self, sender: bytes, fee_to: bytes):
        self._only_admin(sender)
        self.ledger.state.put(self._key('fee_to'), fee_to)
        logger.info(f"Protocol fee recipient set to {format_address(fee_to)}")

    @external
    def set_fee_to_setter(self, sender: bytes, fee_to_setter: bytes):
        self._only_admin(sender)
        self.ledger.state.put(self._key('fee_to_setter'), fee_to_setter)
        logger.info(f"Registry admin set to {format_address(fee_to_setter)}")

    @external
    def set_router(self, sender: bytes, router: bytes):
        self._only_admin(sender)
        self.ledger.state.put(self._key('router'), router)
        logger.info(f"Authorized router set to {format_address(router)}")

    def _only_admin(self, sender: bytes):
        if sender != self.fee_to_setter():
            raise Forbidden("Registry: FORBIDDEN")
