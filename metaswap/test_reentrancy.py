"""
Test Suite: Reentrancy

A token whose transfer hook calls back into the exchange must hit the
router and pair guards; the guards are released after the failure.
"""
import pytest

from metaswap.actions import AddLiquidity, Swap
from metaswap.client import build_meta_tx, sign_meta_tx
from metaswap.erc20 import Token
from metaswap.errors import ReentrantCall
from metaswap.router import DispatchMode

SEED = 1_000_000
DOMAIN_NAME = "MetaSwap Router"


class HookToken(Token):
    """Runs a one-shot callback after its next transfer."""

    INIT_CODE = b'metaswap.test.HookToken'

    def __init__(self, ledger, address):
        super().__init__(ledger, address)
        self.on_transfer = None

    def _after_transfer(self, owner, to, value):
        callback, self.on_transfer = self.on_transfer, None
        if callback is not None:
            callback()


@pytest.fixture
def deadline(ledger):
    return ledger.timestamp + 3600


@pytest.fixture
def hook(make_token):
    return make_token("HOOK", token_cls=HookToken)


@pytest.fixture
def pool(ledger, direct_router, registry, alice, hook, token_b, deadline):
    action = AddLiquidity(hook.address, token_b.address, SEED, SEED, 0, 0, alice.address, deadline)
    direct_router.add_liquidity(alice.address, action)
    return ledger.get_contract(registry.get_pair(hook.address, token_b.address))


def test_router_reentry_rejected(direct_router, pool, bob, hook, token_b, deadline):
    swap = Swap(10_000, 0, [hook.address, token_b.address], bob.address, deadline)
    hook.on_transfer = lambda: direct_router.swap_exact_tokens_for_tokens(bob.address, swap)
    reserves = pool.get_reserves()

    with pytest.raises(ReentrantCall):
        direct_router.swap_exact_tokens_for_tokens(bob.address, swap)
    assert pool.get_reserves() == reserves

    # Guard released: the same swap goes through now
    direct_router.swap_exact_tokens_for_tokens(bob.address, swap)
    assert pool.get_reserves() != reserves


def test_pair_reentry_rejected(direct_router, pool, bob, hook, token_b, deadline):
    hook.on_transfer = lambda: pool.sync(bob.address)
    swap = Swap(10_000, 0, [token_b.address, hook.address], bob.address, deadline)
    with pytest.raises(ReentrantCall):
        direct_router.swap_exact_tokens_for_tokens(bob.address, swap)
    pool.sync(bob.address)


def test_reentry_during_relay_is_contained(ledger, router, deployer, relayer, pool, bob,
                                           hook, token_b, fee_token, deadline):
    router.set_dispatch_mode(deployer.address, DispatchMode.RELAY_ONLY)
    swap = Swap(10_000, 0, [hook.address, token_b.address], bob.address, deadline)
    hook.on_transfer = lambda: router.swap_exact_tokens_for_tokens(bob.address, swap)

    meta = build_meta_tx(router, bob.address, fee_token.address, 10 ** 6, deadline, swap)
    signature = sign_meta_tx(bob, router, meta, DOMAIN_NAME)
    reserves = pool.get_reserves()

    assert router.execute_meta_tx(relayer.address, meta, DOMAIN_NAME, 1, 0, signature) is False
    assert pool.get_reserves() == reserves
    assert "reentrant" in ledger.events_named('MetaStatus', router.address)[-1]['reason']


def test_relay_reentry_is_contained(ledger, router, relayer, pool, alice, bob,
                                    hook, token_b, fee_token, deadline):
    inner = Swap(1_000, 0, [hook.address, token_b.address], alice.address, deadline)
    inner_meta = build_meta_tx(router, alice.address, fee_token.address, 10 ** 6, deadline, inner)
    inner_signature = sign_meta_tx(alice, router, inner_meta, DOMAIN_NAME)
    hook.on_transfer = lambda: router.execute_meta_tx(
        relayer.address, inner_meta, DOMAIN_NAME, 1, 0, inner_signature
    )

    swap = Swap(10_000, 0, [hook.address, token_b.address], bob.address, deadline)
    meta = build_meta_tx(router, bob.address, fee_token.address, 10 ** 6, deadline, swap)
    signature = sign_meta_tx(bob, router, meta, DOMAIN_NAME)
    reserves = pool.get_reserves()

    assert router.execute_meta_tx(relayer.address, meta, DOMAIN_NAME, 1, 0, signature) is False
    assert pool.get_reserves() == reserves
    assert "ReentrantCall: Forwarder" in ledger.events_named('MetaStatus', router.address)[-1]['reason']
    assert router.nonces(alice.address) == 0

    # The inner envelope was never consumed and relays on its own
    assert router.execute_meta_tx(relayer.address, inner_meta, DOMAIN_NAME, 1, 0, inner_signature)
    assert router.nonces(alice.address) == 1
