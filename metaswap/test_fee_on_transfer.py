"""
Test Suite: Fee-on-Transfer Tokens

Tokens that deliver less than the transferred amount must never let a
liquidity add or a swap settle at the quoted amounts.
"""
import pytest

from metaswap.actions import AddLiquidity, Swap
from metaswap.erc20 import FeeOnTransferToken
from metaswap.errors import InconsistentTransfer, KInvariantViolation

SEED = 1_000_000


@pytest.fixture
def taxed(make_token):
    return make_token("TAX", token_cls=FeeOnTransferToken, fee_bps=100)


@pytest.fixture
def deadline(ledger):
    return ledger.timestamp + 3600


@pytest.fixture
def taxed_pool(ledger, registry, router, alice, taxed, token_a):
    """Pool seeded by hand, since the router refuses taxed deposits."""
    pair = ledger.get_contract(registry.create_pair(alice.address, taxed.address, token_a.address))
    taxed.transfer(alice.address, pair.address, SEED)
    token_a.transfer(alice.address, pair.address, SEED)
    pair.mint(router.address, alice.address)
    return pair


def test_add_liquidity_rejected(direct_router, registry, alice, taxed, token_a, deadline):
    action = AddLiquidity(taxed.address, token_a.address, SEED, SEED, 0, 0, alice.address, deadline)
    with pytest.raises(InconsistentTransfer):
        direct_router.add_liquidity(alice.address, action)
    # Lazy pair creation is rolled back with the failed call
    assert registry.all_pairs_length() == 0


def test_taxed_output_rejected(direct_router, taxed_pool, bob, taxed, token_a, deadline):
    path = [token_a.address, taxed.address]
    reserves = taxed_pool.get_reserves()
    with pytest.raises(InconsistentTransfer):
        direct_router.swap_exact_tokens_for_tokens(bob.address, Swap(10_000, 0, path, bob.address, deadline))
    assert taxed_pool.get_reserves() == reserves


def test_taxed_input_breaks_k(direct_router, taxed_pool, bob, taxed, token_a, deadline):
    """The pair receives less than quoted, so the quoted output fails the K check."""
    path = [taxed.address, token_a.address]
    before = token_a.balance_of(bob.address)
    with pytest.raises(KInvariantViolation):
        direct_router.swap_exact_tokens_for_tokens(bob.address, Swap(10_000, 0, path, bob.address, deadline))
    assert token_a.balance_of(bob.address) == before
