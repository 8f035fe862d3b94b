"""
Reserve pair: holds the balances of two tokens and trades them along the
constant product curve. The pair is its own liquidity share token.
"""
import logging

from metaswap.amm_state import (
    MINIMUM_LIQUIDITY,
    PAIR_INIT_CODE,
    PairState,
    initial_liquidity,
    k_invariant_holds,
    protocol_fee_liquidity,
)
from metaswap.crypto import ZERO_ADDRESS, format_address
from metaswap.erc20 import ShareToken
from metaswap.errors import (
    Forbidden,
    InsufficientInputAmount,
    InsufficientLiquidity,
    InsufficientLiquidityBurned,
    InsufficientLiquidityMinted,
    InsufficientOutputAmount,
    InvalidRecipient,
    KInvariantViolation,
)
from metaswap.ledger import ReentrancyGuard, external

logger = logging.getLogger(__name__)

LP_NAME = 'MetaSwap LP'
LP_SYMBOL = 'MSWP-LP'


class ReservePair(ShareToken):
    INIT_CODE = PAIR_INIT_CODE

    def __init__(self, ledger, address):
        super().__init__(ledger, address)
        self._lock = ReentrancyGuard('Pair')

    def constructor(self, factory: bytes):
        super().constructor(LP_NAME, LP_SYMBOL, 18)
        self.ledger.state.put(self._key('factory'), factory)
        self._save_state(PairState())

    # --- views ---

    def factory(self) -> bytes:
        return self.ledger.state.get(self._key('factory'))

    def pair_state(self) -> PairState:
        return PairState(self.ledger.state.get_obj(self._key('state')))

    def token0(self) -> bytes:
        return self.pair_state().token0

    def token1(self) -> bytes:
        return self.pair_state().token1

    def get_reserves(self) -> tuple[int, int, int]:
        state = self.pair_state()
        return state.reserve0, state.reserve1, state.block_timestamp_last

    def price0_cumulative_last(self) -> int:
        return self.pair_state().price0_cumulative_last

    def price1_cumulative_last(self) -> int:
        return self.pair_state().price1_cumulative_last

    def k_last(self) -> int:
        return self.pair_state().k_last

    # --- registry hooks ---

    @external
    def initialize(self, sender: bytes, token0: bytes, token1: bytes):
        """Called once by the registry right after deployment."""
        if sender != self.factory():
            raise Forbidden("Pair: FORBIDDEN")
        state = self.pair_state()
        state.token0 = token0
        state.token1 = token1
        self._save_state(state)

    # --- liquidity and trading (router only) ---

    @external
    def mint(self, sender: bytes, to: bytes) -> int:
        """
        Mint shares for the tokens deposited since the last reserve update.

        Returns:
            Number of shares minted to `to`
        """
        with self._lock:
            self._only_router(sender)
            state = self.pair_state()
            balance0, balance1 = self._balances(state)
            amount0 = balance0 - state.reserve0
            amount1 = balance1 - state.reserve1

            fee_on = self._mint_fee(state)
            total_supply = self.total_supply()
            if total_supply == 0:
                if amount0 <= 0 or amount1 <= 0:
                    raise InsufficientLiquidityMinted("Pair: INSUFFICIENT_LIQUIDITY_MINTED")
                liquidity = initial_liquidity(amount0, amount1)
                if liquidity > 0:
                    # Permanently lock the first MINIMUM_LIQUIDITY shares
                    self._mint(ZERO_ADDRESS, MINIMUM_LIQUIDITY)
            else:
                liquidity = min(
                    amount0 * total_supply // state.reserve0,
                    amount1 * total_supply // state.reserve1,
                )
            if liquidity <= 0:
                raise InsufficientLiquidityMinted("Pair: INSUFFICIENT_LIQUIDITY_MINTED")
            self._mint(to, liquidity)

            self._update(state, balance0, balance1)
            if fee_on:
                state.k_last = state.k
            self._save_state(state)
            self._emit('Mint', sender=sender, amount0=amount0, amount1=amount1)
            return liquidity

    @external
    def burn(self, sender: bytes, to: bytes) -> tuple[int, int]:
        """
        Burn the shares held by the pair itself and pay out the
        proportional token balances to `to`.
        """
        with self._lock:
            self._only_router(sender)
            state = self.pair_state()
            balance0, balance1 = self._balances(state)
            liquidity = self.balance_of(self.address)

            fee_on = self._mint_fee(state)
            total_supply = self.total_supply()
            if total_supply == 0:
                raise InsufficientLiquidityBurned("Pair: INSUFFICIENT_LIQUIDITY_BURNED")
            amount0 = liquidity * balance0 // total_supply
            amount1 = liquidity * balance1 // total_supply
            if amount0 <= 0 or amount1 <= 0:
                raise InsufficientLiquidityBurned("Pair: INSUFFICIENT_LIQUIDITY_BURNED")

            self._burn(self.address, liquidity)
            self._token(state.token0).transfer(self.address, to, amount0)
            self._token(state.token1).transfer(self.address, to, amount1)
            balance0, balance1 = self._balances(state)

            self._update(state, balance0, balance1)
            if fee_on:
                state.k_last = state.k
            self._save_state(state)
            self._emit('Burn', sender=sender, amount0=amount0, amount1=amount1, to=to)
            return amount0, amount1

    @external
    def swap(self, sender: bytes, amount0_out: int, amount1_out: int, to: bytes):
        with self._lock:
            self._only_router(sender)
            if amount0_out <= 0 and amount1_out <= 0:
                raise InsufficientOutputAmount("Pair: INSUFFICIENT_OUTPUT_AMOUNT")
            state = self.pair_state()
            if amount0_out >= state.reserve0 or amount1_out >= state.reserve1:
                raise InsufficientLiquidity("Pair: INSUFFICIENT_LIQUIDITY")
            if to in (state.token0, state.token1):
                raise InvalidRecipient("Pair: INVALID_TO")

            # Optimistic transfer; payment is checked against the curve below
            if amount0_out > 0:
                self._token(state.token0).transfer(self.address, to, amount0_out)
            if amount1_out > 0:
                self._token(state.token1).transfer(self.address, to, amount1_out)
            balance0, balance1 = self._balances(state)

            amount0_in = max(balance0 - (state.reserve0 - amount0_out), 0)
            amount1_in = max(balance1 - (state.reserve1 - amount1_out), 0)
            if amount0_in <= 0 and amount1_in <= 0:
                raise InsufficientInputAmount("Pair: INSUFFICIENT_INPUT_AMOUNT")
            if not k_invariant_holds(balance0, balance1, amount0_in, amount1_in,
                                     state.reserve0, state.reserve1):
                raise KInvariantViolation("Pair: K")

            self._update(state, balance0, balance1)
            self._save_state(state)
            self._emit(
                'Swap',
                sender=sender,
                amount0_in=amount0_in,
                amount1_in=amount1_in,
                amount0_out=amount0_out,
                amount1_out=amount1_out,
                to=to,
            )

    # --- public maintenance ---

    @external
    def skim(self, sender: bytes, to: bytes):
        """Pay out any balance held above the reserves."""
        with self._lock:
            state = self.pair_state()
            balance0, balance1 = self._balances(state)
            if balance0 > state.reserve0:
                self._token(state.token0).transfer(self.address, to, balance0 - state.reserve0)
            if balance1 > state.reserve1:
                self._token(state.token1).transfer(self.address, to, balance1 - state.reserve1)

    @external
    def sync(self, sender: bytes):
        """Force reserves to match balances."""
        with self._lock:
            state = self.pair_state()
            balance0, balance1 = self._balances(state)
            self._update(state, balance0, balance1)
            self._save_state(state)

    # --- internals ---

    def _only_router(self, sender: bytes):
        router = self._contract(self.factory()).router()
        if sender != router:
            raise Forbidden(f"Pair: FORBIDDEN caller {format_address(sender)}")

    def _token(self, address: bytes):
        return self._contract(address)

    def _balances(self, state: PairState) -> tuple[int, int]:
        return (
            self._token(state.token0).balance_of(self.address),
            self._token(state.token1).balance_of(self.address),
        )

    def _save_state(self, state: PairState):
        self.ledger.state.put_obj(self._key('state'), state.to_dict())

    def _update(self, state: PairState, balance0: int, balance1: int):
        state.accumulate(self.now)
        state.reserve0 = balance0
        state.reserve1 = balance1
        self._emit('Sync', reserve0=balance0, reserve1=balance1)

    def _mint_fee(self, state: PairState) -> bool:
        """Mint the protocol's share of fee growth; returns whether the fee is on."""
        fee_to = self._contract(self.factory()).fee_to()
        fee_on = fee_to != ZERO_ADDRESS
        if fee_on:
            liquidity = protocol_fee_liquidity(self.total_supply(), state.k, state.k_last)
            if liquidity > 0:
                self._mint(fee_to, liquidity)
                logger.debug(f"Protocol fee: {liquidity} shares to {format_address(fee_to)}")
        elif state.k_last != 0:
            state.k_last = 0
        return fee_on
