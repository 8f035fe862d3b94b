"""
Client-side helpers: key handling, payload hashing, envelope and permit
signing, and slippage-bounded swap arguments.

Nothing here mutates the ledger; the helpers only read reserves and nonces.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from cryptography.hazmat.primitives.asymmetric import ec

from metaswap import amm_state
from metaswap.actions import (
    AddLiquidity,
    RemoveLiquidity,
    Swap,
    encode_add_liquidity,
    encode_remove_liquidity_with_permit,
    encode_swap_exact_tokens_for_tokens,
    encode_swap_tokens_for_exact_tokens,
)
from metaswap.crypto import (
    Signature,
    generate_key_pair,
    public_key_to_address,
    serialize_public_key,
    sign_digest,
)
from metaswap.forwarder import MetaTx

logger = logging.getLogger(__name__)

# 0.5%
DEFAULT_SLIPPAGE_BPS = 50
BPS_DENOMINATOR = 10_000


@dataclass
class Account:
    private_key: ec.EllipticCurvePrivateKey
    address: bytes

    @classmethod
    def generate(cls) -> 'Account':
        private_key, public_key = generate_key_pair()
        return cls(private_key, public_key_to_address(serialize_public_key(public_key)))

    def sign(self, digest: bytes) -> Signature:
        return sign_digest(self.private_key, digest)


def hash_add_liquidity_payload(action: AddLiquidity) -> bytes:
    return action.hash()

def hash_swap_payload(action: Swap) -> bytes:
    return action.hash()

def hash_remove_liquidity_payload(action: RemoveLiquidity, permit: Signature) -> bytes:
    return action.hash(permit)


def build_meta_tx(router, signer: bytes, fee_token: bytes, max_token_amount: int,
                  deadline: int, action, permit: Optional[Signature] = None,
                  exact_output: bool = False, nonce: Optional[int] = None) -> MetaTx:
    """
    Wrap an action in an unsigned envelope for `router`.

    Args:
        router: Router contract; used for the signer's current nonce
        action: AddLiquidity, Swap or RemoveLiquidity
        permit: Share permit signature, required for RemoveLiquidity
        exact_output: For a Swap, encode swapTokensForExactTokens
        nonce: Override the nonce read from the router
    """
    if isinstance(action, AddLiquidity):
        data = encode_add_liquidity(action)
        hashed_payload = hash_add_liquidity_payload(action)
    elif isinstance(action, Swap):
        if exact_output:
            data = encode_swap_tokens_for_exact_tokens(action)
        else:
            data = encode_swap_exact_tokens_for_tokens(action)
        hashed_payload = hash_swap_payload(action)
    elif isinstance(action, RemoveLiquidity):
        if permit is None:
            raise ValueError("RemoveLiquidity needs a permit signature")
        data = encode_remove_liquidity_with_permit(action, permit)
        hashed_payload = hash_remove_liquidity_payload(action, permit)
    else:
        raise TypeError(f"Unsupported action: {type(action).__name__}")

    return MetaTx(
        from_address=signer,
        fee_token=fee_token,
        max_token_amount=max_token_amount,
        deadline=deadline,
        nonce=router.nonces(signer) if nonce is None else nonce,
        data=data,
        hashed_payload=hashed_payload,
    )


def sign_meta_tx(account: Account, router, meta: MetaTx, domain_name: str) -> Signature:
    return account.sign(router.get_digest(meta, domain_name))


def sign_permit(account: Account, share_token, spender: bytes, value: int, deadline: int) -> Signature:
    """Sign a permit for `share_token` using the owner's next permit nonce."""
    nonce = share_token.nonces(account.address)
    digest = share_token.permit_digest(account.address, spender, value, nonce, deadline)
    return account.sign(digest)


def swap_exact_in_arguments(router, path: list[bytes], amount_in: int,
                            slippage_bps: int = DEFAULT_SLIPPAGE_BPS) -> tuple[int, int]:
    """
    Returns:
        (amount_in, amount_out_min): the minimum is the quoted output
        reduced by the slippage tolerance
    """
    amounts = router.get_amounts_out(amount_in, path)
    amount_out_min = amounts[-1] * BPS_DENOMINATOR // (BPS_DENOMINATOR + slippage_bps)
    return amount_in, amount_out_min


def swap_exact_out_arguments(router, path: list[bytes], amount_out: int,
                             slippage_bps: int = DEFAULT_SLIPPAGE_BPS) -> tuple[int, int]:
    """
    Returns:
        (amount_out, amount_in_max): the maximum is the quoted input
        increased by the slippage tolerance
    """
    amounts = router.get_amounts_in(amount_out, path)
    amount_in_max = amounts[0] * (BPS_DENOMINATOR + slippage_bps) // BPS_DENOMINATOR
    return amount_out, amount_in_max


def quote_path(reserves: list[tuple[int, int]], amount_in: int) -> list[int]:
    """Offline quote when the reserves are already known."""
    return amm_state.get_amounts_out(amount_in, reserves)
