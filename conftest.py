"""
Shared fixtures: a fresh ledger, funded accounts, tokens and a deployed
exchange (registry plus router).
"""
import pytest

from metaswap.client import Account
from metaswap.deployer import deploy_system
from metaswap.erc20 import Token
from metaswap.ledger import Ledger
from metaswap.router import DispatchMode
from metaswap.utils.encoding import UINT256_MAX

GENESIS_TIMESTAMP = 1_700_000_000
INITIAL_BALANCE = 1_000_000 * 10 ** 18
DOMAIN_NAME = "MetaSwap Router"


@pytest.fixture
def ledger():
    return Ledger(chain_id=1, timestamp=GENESIS_TIMESTAMP)


@pytest.fixture(scope="session")
def keys():
    """Accounts are expensive to generate, so they are shared across tests."""
    return {
        'deployer': Account.generate(),
        'relayer': Account.generate(),
        'fee_holder': Account.generate(),
        'alice': Account.generate(),
        'bob': Account.generate(),
    }


@pytest.fixture
def deployer(keys):
    return keys['deployer']


@pytest.fixture
def relayer(keys):
    return keys['relayer']


@pytest.fixture
def fee_holder(keys):
    return keys['fee_holder']


@pytest.fixture
def alice(keys):
    return keys['alice']


@pytest.fixture
def bob(keys):
    return keys['bob']


@pytest.fixture
def exchange(ledger, deployer, relayer, fee_holder):
    """Registry and router in their default (relay-only) mode."""
    return deploy_system(
        ledger,
        deployer.address,
        relayer=relayer.address,
        fee_holder=fee_holder.address,
    )


@pytest.fixture
def registry(exchange):
    return exchange.registry


@pytest.fixture
def router(exchange):
    return exchange.router


@pytest.fixture
def direct_router(router, deployer):
    """Router switched to accept direct calls."""
    router.set_dispatch_mode(deployer.address, DispatchMode.DIRECT)
    return router


@pytest.fixture
def make_token(ledger, deployer, router, alice, bob):
    """Factory for tokens funded for alice and bob, with the router approved."""
    def _make(symbol, token_cls=Token, **kwargs):
        token = ledger.deploy(
            token_cls, deployer.address, f"Token {symbol}", symbol, 18,
            owner=deployer.address, **kwargs
        )
        for account in (alice, bob):
            token.mint(deployer.address, account.address, INITIAL_BALANCE)
            token.approve(account.address, router.address, UINT256_MAX)
        return token
    return _make


@pytest.fixture
def token_a(make_token):
    return make_token("TKA")


@pytest.fixture
def token_b(make_token):
    return make_token("TKB")


@pytest.fixture
def token_c(make_token):
    return make_token("TKC")


@pytest.fixture
def fee_token(make_token):
    return make_token("USDC")
