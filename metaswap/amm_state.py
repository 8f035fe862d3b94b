"""
Constant product (x * y = k) market maker math and pair state.

Everything here is pure: the reserve pair contract and the router call
into these functions, and the client uses them to compute slippage bounds
without touching the ledger.
"""
from decimal import Decimal
from math import isqrt

from metaswap.crypto import ZERO_ADDRESS, create2_address, generate_hash
from metaswap.errors import (
    IdenticalAddresses,
    InsufficientInputAmount,
    InsufficientLiquidity,
    InsufficientOutputAmount,
    InvalidPath,
    ZeroAddress,
)

# Fee configuration (30 basis points = 0.30%)
FEE_NUMERATOR = 997  # Keep 99.7% of input
FEE_DENOMINATOR = 1000

# Shares locked at the zero address on the first deposit
MINIMUM_LIQUIDITY = 1000

Q112 = 2 ** 112

PAIR_INIT_CODE = b'metaswap.pair.ReservePair/v1'
PAIR_INIT_CODE_HASH = generate_hash(PAIR_INIT_CODE)


class PairState:
    """
    Reserve snapshot of one pair as kept in contract storage.

    Amounts can exceed 64 bits, so to_dict() stores them as strings.
    """

    def __init__(self, data: dict = None):
        if data is None:
            data = {
                'token0': ZERO_ADDRESS,
                'token1': ZERO_ADDRESS,
                'reserve0': 0,
                'reserve1': 0,
                'block_timestamp_last': 0,
                'price0_cumulative_last': 0,
                'price1_cumulative_last': 0,
                'k_last': 0,
            }

        self.token0 = data['token0']
        self.token1 = data['token1']
        self.reserve0 = int(data['reserve0'])
        self.reserve1 = int(data['reserve1'])
        self.block_timestamp_last = int(data['block_timestamp_last'])
        self.price0_cumulative_last = int(data['price0_cumulative_last'])
        self.price1_cumulative_last = int(data['price1_cumulative_last'])
        self.k_last = int(data['k_last'])

    def to_dict(self) -> dict:
        return {
            'token0': self.token0,
            'token1': self.token1,
            'reserve0': str(self.reserve0),
            'reserve1': str(self.reserve1),
            'block_timestamp_last': self.block_timestamp_last,
            'price0_cumulative_last': str(self.price0_cumulative_last),
            'price1_cumulative_last': str(self.price1_cumulative_last),
            'k_last': str(self.k_last),
        }

    @property
    def k(self) -> int:
        return self.reserve0 * self.reserve1

    @property
    def current_price(self) -> Decimal:
        """Price of token0 in units of token1."""
        if self.reserve0 == 0:
            return Decimal(0)
        return Decimal(self.reserve1) / Decimal(self.reserve0)

    def accumulate(self, timestamp: int):
        """
        Add the time-weighted prices since the last update to the
        cumulative accumulators (Q112 fixed point).
        """
        elapsed = timestamp - self.block_timestamp_last
        if elapsed > 0 and self.reserve0 and self.reserve1:
            self.price0_cumulative_last += (self.reserve1 * Q112 // self.reserve0) * elapsed
            self.price1_cumulative_last += (self.reserve0 * Q112 // self.reserve1) * elapsed
        self.block_timestamp_last = timestamp

    def __repr__(self) -> str:
        return (
            f"PairState("
            f"reserve0={self.reserve0}, "
            f"reserve1={self.reserve1}, "
            f"price={self.current_price})"
        )


def sort_tokens(token_a: bytes, token_b: bytes) -> tuple[bytes, bytes]:
    """Order two token addresses by their bytes; the lower one is token0."""
    if token_a == token_b:
        raise IdenticalAddresses("IDENTICAL_ADDRESSES")
    token0, token1 = (token_a, token_b) if token_a < token_b else (token_b, token_a)
    if token0 == ZERO_ADDRESS:
        raise ZeroAddress("ZERO_ADDRESS")
    return token0, token1


def pair_salt(token_a: bytes, token_b: bytes) -> bytes:
    token0, token1 = sort_tokens(token_a, token_b)
    return generate_hash(token0 + token1)


def compute_pair_address(factory: bytes, token_a: bytes, token_b: bytes) -> bytes:
    """Deterministic pair address; independent of argument order."""
    return create2_address(factory, pair_salt(token_a, token_b), PAIR_INIT_CODE_HASH)


def quote(amount_a: int, reserve_a: int, reserve_b: int) -> int:
    """Amount of B equal in value to `amount_a` of A at the current reserve ratio."""
    if amount_a <= 0:
        raise InsufficientLiquidity("INSUFFICIENT_AMOUNT")
    if reserve_a <= 0 or reserve_b <= 0:
        raise InsufficientLiquidity("INSUFFICIENT_LIQUIDITY")
    return amount_a * reserve_b // reserve_a


def get_amount_out(amount_in: int, reserve_in: int, reserve_out: int) -> int:
    """
    Output of one hop for an exact input, net of the 0.3% fee.

    Formula: out = r_out * in * 997 / (r_in * 1000 + in * 997)
    """
    if amount_in <= 0:
        raise InsufficientInputAmount("INSUFFICIENT_INPUT_AMOUNT")
    if reserve_in <= 0 or reserve_out <= 0:
        raise InsufficientLiquidity("INSUFFICIENT_LIQUIDITY")
    amount_in_with_fee = amount_in * FEE_NUMERATOR
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * FEE_DENOMINATOR + amount_in_with_fee
    return numerator // denominator


def get_amount_in(amount_out: int, reserve_in: int, reserve_out: int) -> int:
    """
    Input required by one hop for an exact output, rounded up.

    Formula: in = r_in * out * 1000 / ((r_out - out) * 997) + 1
    """
    if amount_out <= 0:
        raise InsufficientOutputAmount("INSUFFICIENT_OUTPUT_AMOUNT")
    if reserve_in <= 0 or reserve_out <= 0 or amount_out >= reserve_out:
        raise InsufficientLiquidity("INSUFFICIENT_LIQUIDITY")
    numerator = reserve_in * amount_out * FEE_DENOMINATOR
    denominator = (reserve_out - amount_out) * FEE_NUMERATOR
    return numerator // denominator + 1


def get_amounts_out(amount_in: int, reserves: list[tuple[int, int]]) -> list[int]:
    """
    Chain get_amount_out over a path.

    Args:
        amount_in: Exact input of the first token
        reserves: (reserve_in, reserve_out) for each hop, in path order
    """
    if not reserves:
        raise InvalidPath("INVALID_PATH")
    amounts = [amount_in]
    for reserve_in, reserve_out in reserves:
        amounts.append(get_amount_out(amounts[-1], reserve_in, reserve_out))
    return amounts


def get_amounts_in(amount_out: int, reserves: list[tuple[int, int]]) -> list[int]:
    """Chain get_amount_in backwards over a path; reserves are in path order."""
    if not reserves:
        raise InvalidPath("INVALID_PATH")
    amounts = [amount_out]
    for reserve_in, reserve_out in reversed(reserves):
        amounts.insert(0, get_amount_in(amounts[0], reserve_in, reserve_out))
    return amounts


def initial_liquidity(amount0: int, amount1: int) -> int:
    """Shares minted for the first deposit, after locking MINIMUM_LIQUIDITY."""
    return isqrt(amount0 * amount1) - MINIMUM_LIQUIDITY


def protocol_fee_liquidity(total_supply: int, k: int, k_last: int) -> int:
    """
    Shares owed to the protocol fee recipient: one sixth of the growth
    of sqrt(k) since k_last was recorded.
    """
    if k_last == 0:
        return 0
    root_k = isqrt(k)
    root_k_last = isqrt(k_last)
    if root_k <= root_k_last:
        return 0
    numerator = total_supply * (root_k - root_k_last)
    denominator = root_k * 5 + root_k_last
    return numerator // denominator


def k_invariant_holds(balance0: int, balance1: int, amount0_in: int, amount1_in: int,
                      reserve0: int, reserve1: int) -> bool:
    """Fee-adjusted check applied after every swap."""
    balance0_adjusted = balance0 * FEE_DENOMINATOR - amount0_in * (FEE_DENOMINATOR - FEE_NUMERATOR)
    balance1_adjusted = balance1 * FEE_DENOMINATOR - amount1_in * (FEE_DENOMINATOR - FEE_NUMERATOR)
    return balance0_adjusted * balance1_adjusted >= reserve0 * reserve1 * FEE_DENOMINATOR ** 2
