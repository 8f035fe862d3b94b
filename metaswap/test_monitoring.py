"""
Test Suite: Monitoring

Counters and gauges derived from the ledger's event log.
"""
import pytest

from metaswap.actions import AddLiquidity, Swap
from metaswap.client import build_meta_tx, sign_meta_tx
from metaswap.crypto import format_address
from metaswap.monitoring import Monitor

DOMAIN_NAME = "MetaSwap Router"
SEED = 1_000_000


@pytest.fixture
def monitor(ledger):
    return Monitor(ledger)


@pytest.fixture
def deadline(ledger):
    return ledger.timestamp + 3600


@pytest.fixture
def relay(router, relayer, fee_token, deadline):
    def _relay(account, action):
        meta = build_meta_tx(router, account.address, fee_token.address, 10 ** 6, deadline, action)
        signature = sign_meta_tx(account, router, meta, DOMAIN_NAME)
        return router.execute_meta_tx(relayer.address, meta, DOMAIN_NAME, 1, 0, signature)
    return _relay


def sample(monitor, name, **labels):
    return monitor.registry.get_sample_value(name, labels or None)


def test_relayed_activity_counted(ledger, monitor, router, registry, relay, fee_token,
                                  alice, bob, token_a, token_b, deadline):
    assert relay(alice, AddLiquidity(token_a.address, token_b.address, SEED, SEED, 0, 0, alice.address, deadline))
    assert relay(bob, Swap(10_000, 0, [token_a.address, token_b.address], bob.address, deadline))
    # Mismatched user: contained failure
    assert not relay(bob, Swap(10_000, 0, [token_a.address, token_b.address], alice.address, deadline))

    monitor.update()

    fee = router.compute_fee(1)
    assert sample(monitor, 'metaswap_meta_tx_total', status='success') == 2
    assert sample(monitor, 'metaswap_meta_tx_total', status='failure') == 1
    assert sample(monitor, 'metaswap_relay_fee_collected_total', token=format_address(fee_token.address)) == 2 * fee
    assert sample(monitor, 'metaswap_swaps_total') == 1
    assert sample(monitor, 'metaswap_liquidity_events_total', kind='mint') == 1
    assert sample(monitor, 'metaswap_pairs') == 1

    pair = registry.all_pairs(0)
    reserve0, reserve1, _ = ledger.get_contract(pair).get_reserves()
    assert sample(monitor, 'metaswap_pair_invariant_k', pair=format_address(pair)) == reserve0 * reserve1


def test_update_consumes_events_once(ledger, monitor, direct_router, alice, token_a, token_b, deadline):
    direct_router.add_liquidity(
        alice.address, AddLiquidity(token_a.address, token_b.address, SEED, SEED, 0, 0, alice.address, deadline)
    )
    monitor.update()
    monitor.update()
    assert sample(monitor, 'metaswap_liquidity_events_total', kind='mint') == 1


def test_ledger_timestamp_gauge(ledger, monitor):
    ledger.advance_time(42)
    monitor.update()
    assert sample(monitor, 'metaswap_ledger_timestamp') == ledger.timestamp


def test_monitors_are_isolated(ledger):
    first, second = Monitor(ledger), Monitor(ledger)
    first.swap_counter.inc()
    assert first.registry.get_sample_value('metaswap_swaps_total') == 1
    assert second.registry.get_sample_value('metaswap_swaps_total') == 0


def test_exposition_server_lifecycle(ledger):
    monitor = Monitor(ledger, port=0, serve=True)
    try:
        assert monitor.server is not None
        assert monitor.thread.is_alive()
    finally:
        monitor.stop_server()
    assert monitor.server is None


def test_update_across_cleared_events(ledger, monitor, direct_router, alice, token_a, token_b, deadline):
    add = AddLiquidity(token_a.address, token_b.address, SEED, SEED, 0, 0, alice.address, deadline)
    direct_router.add_liquidity(alice.address, add)
    monitor.update()
    ledger.commit()
    assert ledger.clear_events() > 0
    assert ledger.events == []

    direct_router.add_liquidity(alice.address, add)
    monitor.update()
    assert sample(monitor, 'metaswap_liquidity_events_total', kind='mint') == 2


def test_clear_events_inside_call_frame_rejected(ledger):
    with ledger.atomic():
        with pytest.raises(RuntimeError):
            ledger.clear_events()
