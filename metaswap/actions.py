"""
Typed user intents carried by relayed calls.

Each action hashes to a canonical payload hash (typehash plus fields) that
the signer embeds in the authorization envelope, and encodes to call data:
a 4-byte selector followed by the msgpack encoded action.
"""
from dataclasses import dataclass, field
from typing import Optional

from metaswap.crypto import Signature, generate_hash
from metaswap.utils.encoding import encode_call, function_selector, hash_address_list, hash_struct

ADD_LIQUIDITY_SIG = 'addLiquidity(AddLiquidity)'
SWAP_EXACT_TOKENS_FOR_TOKENS_SIG = 'swapExactTokensForTokens(Swap)'
SWAP_TOKENS_FOR_EXACT_TOKENS_SIG = 'swapTokensForExactTokens(Swap)'
REMOVE_LIQUIDITY_WITH_PERMIT_SIG = 'removeLiquidityWithPermit(RemoveLiquidity,Signature)'

ADD_LIQUIDITY_SELECTOR = function_selector(ADD_LIQUIDITY_SIG)
SWAP_EXACT_TOKENS_FOR_TOKENS_SELECTOR = function_selector(SWAP_EXACT_TOKENS_FOR_TOKENS_SIG)
SWAP_TOKENS_FOR_EXACT_TOKENS_SELECTOR = function_selector(SWAP_TOKENS_FOR_EXACT_TOKENS_SIG)
REMOVE_LIQUIDITY_WITH_PERMIT_SELECTOR = function_selector(REMOVE_LIQUIDITY_WITH_PERMIT_SIG)


@dataclass
class AddLiquidity:
    TYPE = (
        'AddLiquidity(address tokenA,address tokenB,uint256 amountADesired,uint256 amountBDesired,'
        'uint256 amountAMin,uint256 amountBMin,address user,uint256 deadline)'
    )

    token_a: bytes
    token_b: bytes
    amount_a_desired: int
    amount_b_desired: int
    amount_a_min: int
    amount_b_min: int
    user: bytes
    deadline: int

    def hash(self) -> bytes:
        return hash_struct(self.TYPE, [
            self.token_a,
            self.token_b,
            self.amount_a_desired,
            self.amount_b_desired,
            self.amount_a_min,
            self.amount_b_min,
            self.user,
            self.deadline,
        ])

    def to_dict(self) -> dict:
        return {
            'token_a': self.token_a,
            'token_b': self.token_b,
            'amount_a_desired': str(self.amount_a_desired),
            'amount_b_desired': str(self.amount_b_desired),
            'amount_a_min': str(self.amount_a_min),
            'amount_b_min': str(self.amount_b_min),
            'user': self.user,
            'deadline': self.deadline,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'AddLiquidity':
        return cls(
            token_a=data['token_a'],
            token_b=data['token_b'],
            amount_a_desired=int(data['amount_a_desired']),
            amount_b_desired=int(data['amount_b_desired']),
            amount_a_min=int(data['amount_a_min']),
            amount_b_min=int(data['amount_b_min']),
            user=data['user'],
            deadline=int(data['deadline']),
        )


@dataclass
class Swap:
    """
    A swap along `path`. For an exact-input swap amount0 is the input and
    amount1 the minimum output; for an exact-output swap amount0 is the
    output and amount1 the maximum input.
    """

    TYPE = 'Swap(uint256 amount0,uint256 amount1,address[] path,address user,uint256 deadline)'

    amount0: int
    amount1: int
    path: list = field(default_factory=list)
    user: bytes = b''
    deadline: int = 0

    def hash(self) -> bytes:
        return hash_struct(self.TYPE, [
            self.amount0,
            self.amount1,
            hash_address_list(self.path),
            self.user,
            self.deadline,
        ])

    def to_dict(self) -> dict:
        return {
            'amount0': str(self.amount0),
            'amount1': str(self.amount1),
            'path': list(self.path),
            'user': self.user,
            'deadline': self.deadline,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Swap':
        return cls(
            amount0=int(data['amount0']),
            amount1=int(data['amount1']),
            path=list(data['path']),
            user=data['user'],
            deadline=int(data['deadline']),
        )


@dataclass
class RemoveLiquidity:
    TYPE = (
        'RemoveLiquidity(address tokenA,address tokenB,uint256 liquidity,uint256 amountAMin,'
        'uint256 amountBMin,address user,uint256 deadline,bytes permitSig)'
    )

    token_a: bytes
    token_b: bytes
    liquidity: int
    amount_a_min: int
    amount_b_min: int
    user: bytes
    deadline: int

    def hash(self, permit: Optional[Signature]) -> bytes:
        """The permit signature is part of the signed intent."""
        permit_hash = generate_hash(permit.to_bytes() if permit is not None else b'')
        return hash_struct(self.TYPE, [
            self.token_a,
            self.token_b,
            self.liquidity,
            self.amount_a_min,
            self.amount_b_min,
            self.user,
            self.deadline,
            permit_hash,
        ])

    def to_dict(self) -> dict:
        return {
            'token_a': self.token_a,
            'token_b': self.token_b,
            'liquidity': str(self.liquidity),
            'amount_a_min': str(self.amount_a_min),
            'amount_b_min': str(self.amount_b_min),
            'user': self.user,
            'deadline': self.deadline,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'RemoveLiquidity':
        return cls(
            token_a=data['token_a'],
            token_b=data['token_b'],
            liquidity=int(data['liquidity']),
            amount_a_min=int(data['amount_a_min']),
            amount_b_min=int(data['amount_b_min']),
            user=data['user'],
            deadline=int(data['deadline']),
        )


def encode_add_liquidity(action: AddLiquidity) -> bytes:
    return encode_call(ADD_LIQUIDITY_SIG, {'action': action.to_dict()})

def encode_swap_exact_tokens_for_tokens(action: Swap) -> bytes:
    return encode_call(SWAP_EXACT_TOKENS_FOR_TOKENS_SIG, {'action': action.to_dict()})

def encode_swap_tokens_for_exact_tokens(action: Swap) -> bytes:
    return encode_call(SWAP_TOKENS_FOR_EXACT_TOKENS_SIG, {'action': action.to_dict()})

def encode_remove_liquidity_with_permit(action: RemoveLiquidity, permit: Signature) -> bytes:
    return encode_call(REMOVE_LIQUIDITY_WITH_PERMIT_SIG, {
        'action': action.to_dict(),
        'permit': permit.to_dict(),
    })
